# model.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class Health(str, Enum):
    """What a probe reports about a service."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"  # e.g. connection refused, probe crashed


class Status(str, Enum):
    PENDING = "pending"
    STARTING = "starting"
    WAITING_HEALTHY = "waiting_healthy"
    HEALTHY = "healthy"
    FAILED = "failed"
    STOPPED = "stopped"


# Nodes that may hold live resources and are therefore stopped on teardown.
STOPPABLE = frozenset({Status.STARTING, Status.WAITING_HEALTHY, Status.HEALTHY})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceSpec:
    """
    One logical service in a stack.

    `start` launches the service (e.g. `docker compose up -d db`), `probe`
    answers "is it ready for traffic?", `stop` tears it down. Timing fields left
    as None fall back to the run's RunConfig.
    """
    name: str
    start: Callable[[], Any]
    probe: Callable[[], Any]
    depends_on: Tuple[str, ...] = ()
    stop: Optional[Callable[[], Any]] = None

    startup_timeout: Optional[float] = None
    probe_interval: Optional[float] = None
    probe_retries: Optional[int] = None

    def __post_init__(self) -> None:
        # accept any iterable of names, store a tuple so the spec stays hashable
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        if self.startup_timeout is not None and self.startup_timeout <= 0:
            raise ValueError(f"{self.name}: startup_timeout must be > 0, got {self.startup_timeout!r}")
        if self.probe_interval is not None and self.probe_interval < 0:
            raise ValueError(f"{self.name}: probe_interval must be >= 0, got {self.probe_interval!r}")
        if self.probe_retries is not None and self.probe_retries < 1:
            raise ValueError(f"{self.name}: probe_retries must be >= 1, got {self.probe_retries!r}")


@dataclass(frozen=True)
class ServiceState:
    """Immutable snapshot of one service; the scheduler replaces it on every transition."""
    status: Status = Status.PENDING
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    skipped: bool = False

    def evolve(self, **changes: Any) -> ServiceState:
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "last_error": self.last_error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "skipped": self.skipped,
        }


@dataclass(frozen=True)
class Transition:
    service: str
    status: Status
    at: datetime
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status.value,
            "at": self.at.isoformat(),
            "detail": self.detail,
        }


@dataclass(frozen=True)
class RunResult:
    """Final snapshot of a run (or a teardown)."""
    services: Mapping[str, ServiceState]
    success: bool
    transitions: List[Transition] = field(default_factory=list)

    def failed(self) -> List[str]:
        return [n for n, s in self.services.items() if s.status is Status.FAILED]

    def skipped(self) -> List[str]:
        return [n for n, s in self.services.items() if s.skipped]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "services": {n: s.to_dict() for n, s in self.services.items()},
            "transitions": [t.to_dict() for t in self.transitions],
        }
