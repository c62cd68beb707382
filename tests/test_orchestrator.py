from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

import stackup

from conftest import FAST, healthy, spec, unhealthy
from stackup.errors import AlreadyRunningError, CycleError, UnknownDependencyError
from stackup.model import Health, Status
from stackup.orchestrator import Orchestrator
from stackup.settings import RunConfig


def stack(rec, *, db_probe=healthy, api_start_error=None):
    return [
        spec(rec, "db", probe=db_probe),
        spec(rec, "api", "db", start_error=api_start_error),
        spec(rec, "web", "api"),
    ]


def test_scenario_a_everything_healthy(rec):
    orch = Orchestrator()
    result = orch.start(stack(rec), FAST)

    assert result.success
    assert rec.started == ["db", "api", "web"]
    assert [t.service for t in result.transitions if t.status is Status.HEALTHY] == ["db", "api", "web"]


def test_scenario_b_database_never_healthy(rec):
    result = Orchestrator().start(stack(rec, db_probe=unhealthy), FAST)

    assert not result.success
    assert result.services["db"].status is Status.FAILED
    for name in ("api", "web"):
        assert result.services[name].status is Status.PENDING
        assert result.services[name].skipped
    assert rec.started == ["db"]


def test_scenario_c_cycle_fails_before_anything_starts(rec):
    orch = Orchestrator()
    with pytest.raises(CycleError) as info:
        orch.start([spec(rec, "a", "b"), spec(rec, "b", "a")], FAST)

    assert info.value.cycle == ["a", "b"]
    assert rec.started == []
    assert not orch.running
    assert dict(orch.status()) == {}


def test_scenario_d_api_start_throws(rec):
    result = Orchestrator().start(stack(rec, api_start_error=OSError("port 5000 in use")), FAST)

    assert not result.success
    assert result.services["db"].status is Status.HEALTHY
    assert result.services["api"].status is Status.FAILED
    assert "start failed: port 5000 in use" in result.services["api"].last_error
    assert result.services["web"].skipped


def test_result_enumerates_every_service(rec):
    result = Orchestrator().start(stack(rec, db_probe=unhealthy), FAST)
    assert list(result.services) == ["db", "api", "web"]
    for state in result.services.values():
        assert state.status is Status.HEALTHY or state.last_error


def test_unknown_dependency_is_raised_up_front(rec):
    with pytest.raises(UnknownDependencyError):
        Orchestrator().start([spec(rec, "api", "db")], FAST)
    assert rec.started == []


def test_start_while_active_raises(rec):
    orch = Orchestrator()
    orch.start(stack(rec), FAST)
    with pytest.raises(AlreadyRunningError):
        orch.start(stack(rec), FAST)


def test_start_while_in_flight_raises(rec):
    gate = threading.Event()
    probing = threading.Event()

    def probe():
        probing.set()
        return Health.HEALTHY if gate.is_set() else Health.UNHEALTHY

    config = RunConfig(startup_timeout=5, probe_interval=0.01, probe_retries=1000, probe_timeout=0.5)
    orch = Orchestrator()
    runner = threading.Thread(target=orch.start, args=(stack(rec, db_probe=probe), config))
    runner.start()
    try:
        assert probing.wait(2)
        with pytest.raises(AlreadyRunningError):
            orch.start(stack(rec), FAST)
        with pytest.raises(AlreadyRunningError):
            orch.reset()
    finally:
        gate.set()
        runner.join(5)


def test_status_is_idempotent(rec):
    orch = Orchestrator()
    assert dict(orch.status()) == {}
    orch.start(stack(rec), FAST)

    first = orch.status()
    assert orch.status() == first
    assert orch.status_dict() == orch.status_dict()
    assert orch.status_dict()["db"]["status"] == "healthy"
    assert set(orch.status_dict()["db"]) == {"status", "last_error", "started_at", "skipped"}


def test_stop_tears_down_in_reverse_and_allows_restart(rec):
    orch = Orchestrator()
    orch.start(stack(rec), FAST)
    down = orch.stop()

    assert down.success
    assert rec.stopped == ["web", "api", "db"]
    assert not orch.running
    assert orch.status()["db"].status is Status.STOPPED

    again = orch.start(stack(rec), FAST)
    assert again.success


def test_stop_cancels_an_in_flight_start(rec):
    probing = threading.Event()

    def probe():
        probing.set()
        return Health.UNHEALTHY

    config = RunConfig(startup_timeout=30, probe_interval=0.05, probe_retries=1000, probe_timeout=0.5)
    orch = Orchestrator()
    results = []
    runner = threading.Thread(target=lambda: results.append(orch.start(stack(rec, db_probe=probe), config)))
    runner.start()

    assert probing.wait(2)
    down = orch.stop()
    runner.join(5)

    assert not results[0].success
    assert rec.stopped == ["db"]
    assert down.services["db"].status is Status.STOPPED
    assert down.services["api"].status is Status.PENDING


def test_stop_without_start_is_empty():
    down = Orchestrator().stop()
    assert down.success
    assert dict(down.services) == {}


def test_reset_discards_state(rec):
    orch = Orchestrator()
    orch.start(stack(rec), FAST)
    orch.reset()
    assert dict(orch.status()) == {}
    assert not orch.running
    assert orch.start(stack(rec), FAST).success


def test_mapping_declaration_with_compose_depends_on(rec):
    declaration = [
        {"name": "db", "start": rec.start("db"), "probe": healthy},
        {
            "name": "api",
            "start": rec.start("api"),
            "probe": healthy,
            "depends_on": {"db": {"condition": "service_healthy"}},
        },
        {"name": "web", "start": rec.start("web"), "probe": healthy, "dependsOn": ["api"]},
    ]
    result = Orchestrator().start(declaration, FAST)
    assert result.success
    assert rec.started == ["db", "api", "web"]


def test_unsupported_compose_condition_is_rejected(rec):
    declaration = [
        {"name": "db", "start": rec.start("db"), "probe": healthy},
        {
            "name": "api",
            "start": rec.start("api"),
            "probe": healthy,
            "depends_on": {"db": {"condition": "service_started"}},
        },
    ]
    with pytest.raises(ValueError, match="service_started"):
        Orchestrator().start(declaration, FAST)
    assert rec.started == []


HUNG_PROBE_SCRIPT = """
import time
from stackup import Orchestrator, RunConfig, service

config = RunConfig(startup_timeout=0.3, probe_interval=0.01, probe_retries=5, probe_timeout=0.1)
result = Orchestrator().start(
    [service("db", start=lambda: None, probe=lambda: time.sleep(30))],
    config,
)
print("success" if result.success else "failure")
"""


def test_hung_probe_does_not_hold_up_process_exit(tmp_path):
    script = tmp_path / "hung_probe.py"
    script.write_text(HUNG_PROBE_SCRIPT)
    env = dict(os.environ, PYTHONPATH=str(Path(stackup.__file__).resolve().parents[1]))

    began = time.monotonic()
    proc = subprocess.run(
        [sys.executable, str(script)],
        env=env,
        capture_output=True,
        text=True,
        timeout=25,
    )
    elapsed = time.monotonic() - began

    assert proc.returncode == 0, proc.stderr
    assert proc.stdout.strip().endswith("failure")
    assert elapsed < 10
