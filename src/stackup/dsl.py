# src/stackup/dsl.py
from __future__ import annotations

import os
import subprocess
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .errors import CommandFailed
from .model import ServiceSpec
from .probes import Probe


# ---------------------------------------------------------------------
# Start / stop helper
# ---------------------------------------------------------------------

def sh(cmd: str, *, cwd: str | None = None, env: Optional[Dict[str, str]] = None) -> Callable[[], None]:
    """
    Shell command as a start/stop operation, e.g. sh("docker compose up -d db").
    Raises CommandFailed on a non-zero exit.
    """

    def run() -> None:
        full_env = os.environ.copy()
        full_env.update(env or {})
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=cwd,
            env=full_env,
            text=True,
            capture_output=True,
        )
        if proc.returncode != 0:
            raise CommandFailed(cmd=cmd, exit_code=proc.returncode, stderr=proc.stderr[-4000:])

    run.__qualname__ = f"sh({cmd!r})"
    return run


# ---------------------------------------------------------------------
# Functional service helper
# ---------------------------------------------------------------------

def service(
    name: str,
    *,
    start: Callable[[], Any],
    probe: Probe,
    depends_on: Optional[Iterable[str]] = None,
    stop: Optional[Callable[[], Any]] = None,
    startup_timeout: Optional[float] = None,
    probe_interval: Optional[float] = None,
    probe_retries: Optional[int] = None,
) -> ServiceSpec:
    if not callable(start):
        raise TypeError(f"service({name!r}): start must be callable")
    if not callable(probe):
        raise TypeError(f"service({name!r}): probe must be callable")
    if stop is not None and not callable(stop):
        raise TypeError(f"service({name!r}): stop must be callable")

    return ServiceSpec(
        name=name,
        start=start,
        probe=probe,
        depends_on=tuple(depends_on or ()),
        stop=stop,
        startup_timeout=startup_timeout,
        probe_interval=probe_interval,
        probe_retries=probe_retries,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class ServiceBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._start: Optional[Callable[[], Any]] = None
        self._stop: Optional[Callable[[], Any]] = None
        self._probe: Optional[Probe] = None
        self._timing: dict[str, Any] = {}

    def depends_on(self, *service_names: str):
        self._needs.extend(service_names)
        return self

    def start_with(self, fn: Callable[[], Any]):
        self._start = fn
        return self

    def start_cmd(self, cmd: str, cwd: str | None = None, **env):
        self._start = sh(cmd, cwd=cwd, env={k: str(v) for k, v in env.items()})
        return self

    def stop_with(self, fn: Callable[[], Any]):
        self._stop = fn
        return self

    def stop_cmd(self, cmd: str, cwd: str | None = None):
        self._stop = sh(cmd, cwd=cwd)
        return self

    def healthcheck(
        self,
        probe: Probe,
        *,
        interval: Optional[float] = None,
        retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """compose-style healthcheck block; timeout is the startup timeout for this service."""
        self._probe = probe
        self._timing.update(probe_interval=interval, probe_retries=retries, startup_timeout=timeout)
        return self

    def build(self) -> ServiceSpec:
        if self._start is None:
            raise ValueError(f"Service '{self.name}' has no start operation")
        if self._probe is None:
            raise ValueError(f"Service '{self.name}' has no healthcheck")

        return service(
            self.name,
            start=self._start,
            probe=self._probe,
            depends_on=self._needs,
            stop=self._stop,
            **self._timing,
        )


def build(name: str) -> ServiceBuilder:
    """Convenience: build('db').start_cmd(...).healthcheck(...).build()"""
    return ServiceBuilder(name)


# ---------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------

HEALTHY_CONDITION = "service_healthy"


def _parse_depends_on(name: str, raw: Any) -> List[str]:
    """
    Accept both compose forms:
        depends_on: [db, cache]
        depends_on: {db: {condition: service_healthy}}
    Only the "must be healthy" condition is supported.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, Mapping):
        deps: List[str] = []
        for dep, opts in raw.items():
            condition = (opts or {}).get("condition", HEALTHY_CONDITION)
            if condition != HEALTHY_CONDITION:
                raise ValueError(
                    f"Service '{name}': unsupported depends_on condition {condition!r} "
                    f"for '{dep}' (only {HEALTHY_CONDITION!r})"
                )
            deps.append(dep)
        return deps
    return list(raw)


def to_spec(entry: Union[ServiceSpec, Mapping[str, Any]]) -> ServiceSpec:
    """Turn one declaration entry (ServiceSpec or mapping) into a ServiceSpec."""
    if isinstance(entry, ServiceSpec):
        return entry
    if not isinstance(entry, Mapping):
        raise TypeError(f"Declaration entries must be ServiceSpec or mappings, got {type(entry).__name__}")

    try:
        name = entry["name"]
        start = entry["start"]
        probe = entry["probe"]
    except KeyError as e:
        raise ValueError(f"Declaration entry {dict(entry).get('name', '?')!r} is missing {e.args[0]!r}") from e

    raw_deps = entry.get("depends_on", entry.get("dependsOn"))
    return service(
        name,
        start=start,
        probe=probe,
        depends_on=_parse_depends_on(name, raw_deps),
        stop=entry.get("stop"),
        startup_timeout=entry.get("startup_timeout", entry.get("startupTimeout")),
        probe_interval=entry.get("probe_interval", entry.get("probeInterval")),
        probe_retries=entry.get("probe_retries", entry.get("probeRetries")),
    )


def stack(*services: Union[ServiceSpec, Mapping[str, Any]]) -> List[ServiceSpec]:
    """
    Stack definition helper.

    Users can write:
        from stackup import stack, service, sh, tcp_probe

        def services():
            return stack(
                service("db", start=sh(...), probe=tcp_probe("localhost", 5432)),
                service("api", ..., depends_on=["db"]),
            )

    Or use SERVICES directly:
        SERVICES = stack(service(...), service(...))
    """
    return [to_spec(s) for s in services]
