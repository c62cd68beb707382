# scheduler.py
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from .dag import DependencyGraph
from .errors import HealthTimeoutError, StartFailure
from .model import (
    STOPPABLE,
    Health,
    RunResult,
    ServiceSpec,
    ServiceState,
    Status,
    Transition,
    utcnow,
)
from .probes import run_probe
from .settings import RunConfig
from .ui.console import get_console


class _Cancelled(Exception):
    """Raised inside a node task when the run's cancellation token is set."""


class Scheduler:
    """
    Brings a DependencyGraph up, one worker per node.

    Every node waits on the readiness events of its dependencies, starts,
    then polls its probe until healthy or out of time. A node that does
    not become healthy leaves its dependents pending (skipped).

    State is copy-on-write: each transition publishes a new read-only
    mapping, so `snapshot()` never blocks on a running node.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        config: Optional[RunConfig] = None,
        *,
        cancel_token: Optional[threading.Event] = None,
    ):
        self.graph = graph
        self.config = config or RunConfig()
        self._cancel = cancel_token or threading.Event()

        self._write_lock = threading.Lock()
        self._states: Mapping[str, ServiceState] = MappingProxyType(
            {name: ServiceState() for name in graph.order}
        )
        self._transitions: List[Transition] = []
        # set once a node settles (healthy, failed, skipped) or the run is cancelled
        self._ready: Dict[str, threading.Event] = {n: threading.Event() for n in graph.order}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def snapshot(self) -> Mapping[str, ServiceState]:
        return self._states

    def transitions(self) -> List[Transition]:
        with self._write_lock:
            return list(self._transitions)

    def _publish(self, name: str, state: ServiceState, detail: Optional[str] = None) -> None:
        with self._write_lock:
            states = dict(self._states)
            states[name] = state
            self._states = MappingProxyType(states)
            self._transitions.append(Transition(name, state.status, utcnow(), detail))
        get_console().print_transition(name, state.status, detail)

    def result(self) -> RunResult:
        states = self._states
        return RunResult(
            services=dict(states),
            success=all(s.status is Status.HEALTHY for s in states.values()),
            transitions=self.transitions(),
        )

    def cancel(self) -> None:
        """Abort in-flight waits. Nodes not yet started stay pending."""
        self._cancel.set()
        for ev in self._ready.values():
            ev.set()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def run(self) -> RunResult:
        workers = self.config.max_workers or max(1, len(self.graph))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stackup") as pool:
            # topological submission: a node is always queued after its dependencies,
            # so a bounded pool cannot fill up with waiters
            futures = {pool.submit(self._bring_up, name): name for name in self.graph.order}
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                # Ctrl-C lands here; unwind the workers before the pool joins them
                self.cancel()
                raise

        return self.result()

    def _bring_up(self, name: str) -> None:
        try:
            self._bring_up_node(self.graph.specs[name])
        except _Cancelled:
            get_console().print_debug(f"[{name}] cancelled in {self._states[name].status.value}")
        except Exception as e:
            state = self._states[name]
            self._publish(
                name,
                state.evolve(status=Status.FAILED, last_error=f"[{name}] internal error: {e}"),
            )
        finally:
            self._ready[name].set()

    def _bring_up_node(self, spec: ServiceSpec) -> None:
        name = spec.name

        for dep in spec.depends_on:
            self._ready[dep].wait()
        self._check_cancelled()

        # re-check: dependencies must be healthy, not merely settled
        blocked = [d for d in spec.depends_on if self._states[d].status is not Status.HEALTHY]
        if blocked:
            reason = "skipped: dependency " + ", ".join(f"'{d}'" for d in blocked) + " not healthy"
            self._publish(name, self._states[name].evolve(skipped=True, last_error=reason), reason)
            return

        self._publish(name, ServiceState(status=Status.STARTING, started_at=utcnow()))
        try:
            spec.start()
        except Exception as e:
            err = StartFailure(name, str(e) or type(e).__name__)
            self._publish(name, self._states[name].evolve(status=Status.FAILED, last_error=str(err)))
            return

        self._check_cancelled()
        self._publish(name, self._states[name].evolve(status=Status.WAITING_HEALTHY))

        try:
            attempts = self._await_healthy(spec)
        except HealthTimeoutError as err:
            self._publish(name, self._states[name].evolve(status=Status.FAILED, last_error=str(err)))
            return

        self._publish(
            name,
            self._states[name].evolve(status=Status.HEALTHY),
            f"after {attempts} probe(s)",
        )

    def _await_healthy(self, spec: ServiceSpec) -> int:
        """
        Poll the probe until healthy. Returns the number of attempts used.
        Raises HealthTimeoutError when probe_retries or startup_timeout runs out.
        """
        cfg = self.config
        timeout = spec.startup_timeout if spec.startup_timeout is not None else cfg.startup_timeout
        interval = spec.probe_interval if spec.probe_interval is not None else cfg.probe_interval
        retries = spec.probe_retries if spec.probe_retries is not None else cfg.probe_retries

        began = time.monotonic()
        deadline = began + timeout
        attempts = 0
        last: Optional[Health] = None

        while attempts < retries:
            self._check_cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break

            attempts += 1
            last = run_probe(spec.probe, min(cfg.probe_timeout, remaining), f"probe-{spec.name}")
            get_console().print_debug(f"[{spec.name}] probe #{attempts}: {last.value}")
            if last is Health.HEALTHY:
                return attempts

            if attempts >= retries:
                break
            pause = min(interval, deadline - time.monotonic())
            if pause > 0 and self._cancel.wait(pause):
                raise _Cancelled()

        raise HealthTimeoutError(
            service=spec.name,
            attempts=attempts,
            elapsed=time.monotonic() - began,
            last_health=last.value if last else None,
        )

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise _Cancelled()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def stop(self) -> RunResult:
        """
        Stop every node that may be live, in reverse start order.

        Best-effort: a failing stop is reported and recorded, and the
        remaining nodes are still stopped. Call after run() has returned.
        """
        console = get_console()
        mark = len(self.transitions())
        failures: List[str] = []

        for name in self.graph.shutdown_order:
            state = self._states[name]
            if state.status not in STOPPABLE:
                continue

            spec = self.graph.specs[name]
            error: Optional[str] = None
            if spec.stop is not None:
                try:
                    spec.stop()
                except Exception as e:
                    error = f"[{name}] stop failed: {e}"
                    failures.append(name)
                    console.print_error("Stop failed", error)

            # an earlier start/health error stays the reported cause
            self._publish(
                name,
                state.evolve(status=Status.STOPPED, last_error=state.last_error or error),
                error,
            )

        return RunResult(
            services=dict(self._states),
            success=not failures,
            transitions=self.transitions()[mark:],
        )
