# orchestrator.py
from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .dag import DependencyGraph, build_graph
from .dsl import to_spec
from .errors import AlreadyRunningError
from .model import RunResult, ServiceSpec, ServiceState
from .scheduler import Scheduler
from .settings import RunConfig

Declaration = Iterable[Union[ServiceSpec, Mapping[str, Any]]]

_NO_STATE: Mapping[str, ServiceState] = MappingProxyType({})


class Orchestrator:
    """
    Owns the lifecycle of one stack: start -> status -> stop.

    A stack counts as running from the moment start() validates its
    declaration until stop() or reset(); a second start() in that window
    raises AlreadyRunningError.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scheduler: Optional[Scheduler] = None
        self._active = False
        self._idle = threading.Event()
        self._idle.set()

    @property
    def running(self) -> bool:
        return self._active

    @property
    def graph(self) -> Optional[DependencyGraph]:
        return self._scheduler.graph if self._scheduler else None

    def start(self, declaration: Declaration, config: Optional[RunConfig] = None) -> RunResult:
        """
        Validate the declaration and bring the stack up. Blocks until every
        service is healthy, failed, or skipped.

        Graph errors (CycleError, UnknownDependencyError, DuplicateNameError)
        are raised before any service is touched.
        """
        with self._lock:
            if self._active:
                raise AlreadyRunningError()
            graph = build_graph(to_spec(e) for e in declaration)
            scheduler = Scheduler(graph, config or RunConfig())
            self._scheduler = scheduler
            self._active = True
            self._idle.clear()

        try:
            return scheduler.run()
        finally:
            self._idle.set()

    def status(self) -> Mapping[str, ServiceState]:
        """Read-only snapshot of every service; empty before the first start."""
        scheduler = self._scheduler
        return scheduler.snapshot() if scheduler else _NO_STATE

    def status_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: state.to_dict() for name, state in self.status().items()}

    def cancel(self) -> None:
        scheduler = self._scheduler
        if scheduler is not None and not self._idle.is_set():
            scheduler.cancel()

    def stop(self) -> RunResult:
        """
        Cancel an in-flight start, wait for it to unwind, then stop every
        live service in reverse start order.
        """
        with self._lock:
            scheduler = self._scheduler
        if scheduler is None:
            return RunResult(services={}, success=True)

        self.cancel()
        self._idle.wait()
        result = scheduler.stop()

        with self._lock:
            self._active = False
        return result

    def reset(self) -> None:
        """Forget the last run without stopping anything."""
        with self._lock:
            if not self._idle.is_set():
                raise AlreadyRunningError("Cannot reset while a start is in progress")
            self._scheduler = None
            self._active = False
