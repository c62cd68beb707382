# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class StackError(Exception):
    """Base class for every error raised by stackup."""


class GraphError(StackError, ValueError):
    """The declaration cannot form a valid dependency graph. Nothing was started."""


# ----------------------------------------------------------------------
# Graph construction
# ----------------------------------------------------------------------

@dataclass
class CycleError(GraphError):
    cycle: List[str]

    def __str__(self) -> str:
        path = " -> ".join(self.cycle + self.cycle[:1])
        return f"Dependency cycle detected: {path}"


@dataclass
class UnknownDependencyError(GraphError):
    service: str
    dependency: str
    known: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Service '{self.service}' depends on missing service '{self.dependency}'. "
            f"Known services: {sorted(self.known)}"
        )


@dataclass
class DuplicateNameError(GraphError):
    names: List[str]

    def __str__(self) -> str:
        return f"Duplicate service names found: {self.names}"


# ----------------------------------------------------------------------
# Per-service failures (recorded in RunResult, never raised out of a run)
# ----------------------------------------------------------------------

@dataclass
class StartFailure(StackError):
    service: str
    cause: str

    def __str__(self) -> str:
        return f"[{self.service}] start failed: {self.cause}"


@dataclass
class HealthTimeoutError(StackError):
    service: str
    attempts: int
    elapsed: float
    last_health: Optional[str] = None

    def __str__(self) -> str:
        last = f", last probe: {self.last_health}" if self.last_health else ""
        return (
            f"[{self.service}] not healthy after {self.attempts} probe(s) "
            f"in {self.elapsed:.1f}s{last}"
        )


@dataclass
class CommandFailed(StackError):
    cmd: str
    exit_code: int
    stderr: str = ""

    def __str__(self) -> str:
        msg = f"command failed (exit={self.exit_code}): {self.cmd}"
        tail = self.stderr.strip().splitlines()[-1:] if self.stderr else []
        if tail:
            msg += f" ({tail[0]})"
        return msg


# ----------------------------------------------------------------------
# Orchestrator lifecycle
# ----------------------------------------------------------------------

@dataclass
class AlreadyRunningError(StackError):
    message: str = "A stack is already running; call stop() or reset() first"

    def __str__(self) -> str:
        return self.message
