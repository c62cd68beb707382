# stackup_stack.py
# The application stack: frontend -> api -> (db, cache, broker).
# Containers come from docker-compose.yml; stackup only decides when each one
# may start and waits for it to report healthy.
from __future__ import annotations

import os

from stackup import http_probe, redis_probe, service, sh, stack, tcp_probe

COMPOSE = os.environ.get("COMPOSE", "docker compose")


def up(name: str):
    return sh(f"{COMPOSE} up -d --no-deps {name}")


def down(name: str):
    return sh(f"{COMPOSE} stop {name}")


def services():
    return stack(
        service(
            "db",
            start=up("db"),
            stop=down("db"),
            probe=tcp_probe("localhost", 5432),
            startup_timeout=60,
        ),
        service(
            "cache",
            start=up("cache"),
            stop=down("cache"),
            probe=redis_probe("redis://localhost:6379/0"),
        ),
        service(
            "broker",
            start=up("broker"),
            stop=down("broker"),
            probe=tcp_probe("localhost", 5672),
            startup_timeout=90,
        ),
        service(
            "api",
            start=up("api"),
            stop=down("api"),
            probe=http_probe("http://localhost:5000/health"),
            depends_on=["db", "cache", "broker"],
        ),
        service(
            "frontend",
            start=up("frontend"),
            stop=down("frontend"),
            probe=http_probe("http://localhost:3000/"),
            depends_on=["api"],
        ),
    )
