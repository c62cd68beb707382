# probes.py
from __future__ import annotations

import queue
import socket
import subprocess
import threading
import urllib.error
import urllib.request
from typing import Any, Callable, Optional

import redis

from .model import Health

Probe = Callable[[], Any]


def to_health(value: Any) -> Health:
    """Normalise a probe's return value: Health as-is, bool -> healthy/unhealthy, else unknown."""
    if isinstance(value, Health):
        return value
    if isinstance(value, bool):
        return Health.HEALTHY if value else Health.UNHEALTHY
    if isinstance(value, str):
        try:
            return Health(value.lower())
        except ValueError:
            return Health.UNKNOWN
    return Health.UNKNOWN


def run_probe(probe: Probe, timeout: float, name: str = "probe") -> Health:
    """
    Call `probe` on a daemon thread with a hard timeout.

    - timed out     -> UNHEALTHY (the thread is abandoned and cannot hold up exit)
    - raised        -> UNKNOWN
    - returned      -> to_health(value)
    """
    outcome: queue.Queue = queue.Queue(maxsize=1)

    def call() -> None:
        try:
            outcome.put((True, probe()))
        except Exception:
            outcome.put((False, None))

    threading.Thread(target=call, name=name, daemon=True).start()
    try:
        ok, value = outcome.get(timeout=timeout)
    except queue.Empty:
        return Health.UNHEALTHY
    return to_health(value) if ok else Health.UNKNOWN


# ----------------------------------------------------------------------
# Probe factories (compose healthcheck equivalents)
# ----------------------------------------------------------------------

def static_probe(health: Health | bool) -> Probe:
    value = to_health(health)

    def probe() -> Health:
        return value

    return probe


def http_probe(
    url: str,
    *,
    expected_status: int = 200,
    timeout: float = 2.0,
    method: str = "GET",
) -> Probe:
    """
    Readiness over HTTP: `expected_status` -> healthy, any other status -> unhealthy,
    connection refused / DNS / socket timeout -> unknown.
    """

    def probe() -> Health:
        req = urllib.request.Request(url, method=method)
        try:
            with urllib.request.urlopen(req, timeout=timeout) as response:
                status = response.status
        except urllib.error.HTTPError as e:
            status = e.code
        except (urllib.error.URLError, OSError):
            return Health.UNKNOWN
        return Health.HEALTHY if status == expected_status else Health.UNHEALTHY

    return probe


def tcp_probe(host: str, port: int, *, timeout: float = 2.0) -> Probe:
    """A service is healthy once it accepts TCP connections (databases, brokers)."""

    def probe() -> Health:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return Health.HEALTHY
        except OSError:
            return Health.UNKNOWN

    return probe


def command_probe(cmd: str, *, cwd: Optional[str] = None, timeout: float = 10.0) -> Probe:
    """compose `test: ["CMD-SHELL", cmd]`: exit 0 means healthy."""

    def probe() -> Health:
        try:
            proc = subprocess.run(
                cmd,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Health.UNHEALTHY
        return Health.HEALTHY if proc.returncode == 0 else Health.UNHEALTHY

    return probe


def redis_probe(url: str, *, timeout: float = 2.0) -> Probe:
    """PING a redis-compatible cache."""

    def probe() -> Health:
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        try:
            return Health.HEALTHY if client.ping() else Health.UNHEALTHY
        except redis.exceptions.ConnectionError:
            return Health.UNKNOWN
        except redis.exceptions.RedisError:
            return Health.UNHEALTHY
        finally:
            client.close()

    return probe
