# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

ENV_PREFIX = "STACKUP_"


@dataclass(frozen=True)
class RunConfig:
    """
    Run-wide defaults. A ServiceSpec's own timing fields win over these.

    startup_timeout: seconds a service may spend in waiting_healthy
    probe_interval:  seconds between two probe attempts
    probe_retries:   max probe attempts per service
    probe_timeout:   hard cap on a single probe call
    max_workers:     thread pool size (None -> one worker per service)
    """
    startup_timeout: float = 120.0
    probe_interval: float = 2.0
    probe_retries: int = 30
    probe_timeout: float = 5.0
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        for key in ("startup_timeout", "probe_timeout"):
            if getattr(self, key) <= 0:
                raise ValueError(f"{key} must be > 0, got {getattr(self, key)!r}")
        if self.probe_interval < 0:
            raise ValueError(f"probe_interval must be >= 0, got {self.probe_interval!r}")
        if self.probe_retries < 1:
            raise ValueError(f"probe_retries must be >= 1, got {self.probe_retries!r}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RunConfig:
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        def read(key: str, cast) -> None:
            raw = env.get(ENV_PREFIX + key.upper())
            if raw is not None and raw.strip() != "":
                values[key] = cast(raw)

        read("startup_timeout", float)
        read("probe_interval", float)
        read("probe_retries", int)
        read("probe_timeout", float)
        read("max_workers", int)
        return cls(**values)

    def override(self, **changes: Any) -> RunConfig:
        """Return a copy with every non-None value in `changes` applied (CLI flags)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
