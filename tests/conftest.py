from __future__ import annotations

import threading
from typing import List

import pytest

from stackup.model import Health, ServiceSpec
from stackup.settings import RunConfig
from stackup.ui.console import Console, set_console

FAST = RunConfig(startup_timeout=1.0, probe_interval=0.01, probe_retries=5, probe_timeout=0.5)


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(quiet=True))
    yield
    set_console(Console())


class Recorder:
    """Collects start/stop calls from many threads, in call order."""

    def __init__(self):
        self._lock = threading.Lock()
        self.started: List[str] = []
        self.stopped: List[str] = []

    def start(self, name: str, fail: Exception | None = None):
        def fn():
            with self._lock:
                self.started.append(name)
            if fail is not None:
                raise fail
        return fn

    def stop(self, name: str, fail: Exception | None = None):
        def fn():
            with self._lock:
                self.stopped.append(name)
            if fail is not None:
                raise fail
        return fn


def healthy():
    return Health.HEALTHY


def unhealthy():
    return Health.UNHEALTHY


def spec(rec: Recorder, name: str, *deps: str, probe=healthy, start_error=None, stop_error=None, **timing) -> ServiceSpec:
    return ServiceSpec(
        name=name,
        start=rec.start(name, start_error),
        probe=probe,
        depends_on=deps,
        stop=rec.stop(name, stop_error),
        **timing,
    )


@pytest.fixture
def rec() -> Recorder:
    return Recorder()


@pytest.fixture
def fast() -> RunConfig:
    return FAST
