from __future__ import annotations

import time
from pathlib import Path

import pytest
from click.testing import CliRunner

from stackup import scheduler
from stackup.cli import cli

FAST_FLAGS = ["--probe-interval", "0.01", "--probe-retries", "3", "--startup-timeout", "1"]

HEALTHY_STACK = """
from stackup import service, stack, static_probe

def services():
    return stack(
        service("db", start=lambda: None, probe=static_probe(True)),
        service("cache", start=lambda: None, probe=static_probe(True)),
        service("api", start=lambda: None, probe=static_probe(True), depends_on=["db", "cache"]),
        service("web", start=lambda: None, probe=static_probe(True), depends_on=["api"]),
    )
"""

BROKEN_DB_STACK = """
from pathlib import Path
from stackup import service, stack, static_probe

def stopped(name):
    return lambda: Path("stopped.txt").open("a").write(name + "\\n")

def services():
    return stack(
        service("cache", start=lambda: None, stop=stopped("cache"), probe=static_probe(True)),
        service("db", start=lambda: None, stop=stopped("db"), probe=static_probe(False)),
        service("api", start=lambda: None, probe=static_probe(True), depends_on=["db"]),
    )
"""

SLOW_DB_STACK = """
import time
from pathlib import Path
from stackup import service, stack

READY_AT = time.monotonic() + 0.5

def record(path, name):
    return lambda: Path(path).open("a").write(name + "\\n")

def services():
    return stack(
        service("db", start=record("started.txt", "db"), stop=record("stopped.txt", "db"),
                probe=lambda: time.monotonic() >= READY_AT),
        service("api", start=record("started.txt", "api"), probe=lambda: True, depends_on=["db"]),
    )
"""

CYCLIC_STACK = """
from stackup import service, stack, static_probe

SERVICES = stack(
    service("a", start=lambda: None, probe=static_probe(True), depends_on=["b"]),
    service("b", start=lambda: None, probe=static_probe(True), depends_on=["a"]),
)
"""


@pytest.fixture
def runner():
    return CliRunner()


def _write(name: str, body: str) -> None:
    Path(name).write_text(body)


def test_up_success(runner):
    with runner.isolated_filesystem():
        _write("stackup_stack.py", HEALTHY_STACK)
        result = runner.invoke(cli, ["up", *FAST_FLAGS])

    assert result.exit_code == 0, result.output
    assert "Overall: SUCCESS" in result.output
    assert "[web] HEALTHY" in result.output


def test_up_failure_exits_nonzero_and_tears_down(runner):
    with runner.isolated_filesystem():
        _write("stackup_stack.py", BROKEN_DB_STACK)
        result = runner.invoke(cli, ["up", *FAST_FLAGS])
        stopped = Path("stopped.txt").read_text().split()

    assert result.exit_code == 1
    assert "Overall: FAILURE" in result.output
    assert "api: SKIPPED" in result.output
    assert "TEARDOWN" in result.output
    # only the healthy cache is still up; failed db is not stopped
    assert stopped == ["cache"]


def test_up_without_teardown(runner):
    with runner.isolated_filesystem():
        _write("stackup_stack.py", BROKEN_DB_STACK)
        result = runner.invoke(cli, ["up", "--no-teardown-on-failure", *FAST_FLAGS])
        assert not Path("stopped.txt").exists()

    assert result.exit_code == 1
    assert "TEARDOWN" not in result.output


def test_up_rejects_cycle(runner):
    with runner.isolated_filesystem():
        _write("cyclic_stack.py", CYCLIC_STACK)
        result = runner.invoke(cli, ["up", "--stack", "cyclic_stack.py"])

    assert result.exit_code == 1
    assert "Invalid stack" in result.output
    assert "a -> b -> a" in result.output


def test_up_without_stack_file(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["up"])

    assert result.exit_code == 1
    assert "No stack file found" in result.output


def test_multiple_stack_files_are_ambiguous(runner):
    with runner.isolated_filesystem():
        _write("one_stack.py", HEALTHY_STACK)
        _write("two_stack.py", HEALTHY_STACK)
        result = runner.invoke(cli, ["plan"])

    assert result.exit_code == 1
    assert "Multiple stack files found" in result.output


def test_plan_prints_stages_and_shutdown_order(runner):
    with runner.isolated_filesystem():
        _write("stackup_stack.py", HEALTHY_STACK)
        _write("other_stack.py", CYCLIC_STACK)
        result = runner.invoke(cli, ["plan"])

    assert result.exit_code == 0, result.output
    assert "Stage 1: db, cache" in result.output
    assert "Stage 2: api" in result.output
    assert "Stage 3: web" in result.output
    assert "web -> api -> cache -> db" in result.output


def test_plan_rejects_cycle(runner):
    with runner.isolated_filesystem():
        _write("cyclic_stack.py", CYCLIC_STACK)
        result = runner.invoke(cli, ["plan", "--stack", "cyclic_stack"])

    assert result.exit_code == 1
    assert "Dependency cycle detected" in result.output


def test_ctrl_c_during_up_cancels_pending_starts(runner, monkeypatch):
    def interrupted(futures):
        # Ctrl-C arrives once db is starting, while it is still waiting to be healthy
        deadline = time.monotonic() + 5
        while not Path("started.txt").exists() and time.monotonic() < deadline:
            time.sleep(0.01)
        raise KeyboardInterrupt
        yield

    monkeypatch.setattr(scheduler, "as_completed", interrupted)

    with runner.isolated_filesystem():
        _write("stackup_stack.py", SLOW_DB_STACK)
        result = runner.invoke(
            cli, ["up", "--probe-interval", "0.01", "--probe-retries", "500", "--startup-timeout", "5"]
        )
        # let a wrongly-running bring-up reach db healthy and start api
        time.sleep(0.8)
        started = Path("started.txt").read_text().split()
        stopped = Path("stopped.txt").read_text().split()

    assert result.exit_code == 130, result.output
    assert "Interrupted by user" in result.output
    assert started == ["db"]
    assert stopped == ["db"]
