from __future__ import annotations

import threading
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from stackup.errors import StackError
from stackup.model import ServiceState
from stackup.orchestrator import Orchestrator
from stackup.runner import load_stack
from stackup.settings import RunConfig
from stackup.ui.console import get_console

from . import settings

app = FastAPI(title="stackup control plane")

orchestrator = Orchestrator()
_start_error: Optional[str] = None
_start_lock = threading.Lock()
_starting = False

# -------------------- Schemas --------------------

class ServiceStatus(BaseModel):
    status: str
    last_error: str | None = None
    started_at: str | None = None
    skipped: bool = False

class StatusResponse(BaseModel):
    running: bool
    error: str | None = None
    services: dict[str, ServiceStatus] = Field(default_factory=dict)

class StopResponse(BaseModel):
    success: bool
    services: dict[str, ServiceStatus] = Field(default_factory=dict)

def _services(states: dict[str, ServiceState]) -> dict[str, ServiceStatus]:
    return {name: ServiceStatus(**state.to_dict()) for name, state in states.items()}

# -------------------- Background start --------------------

def _start_stack(stack_file: str) -> None:
    global _start_error, _starting
    _start_error = None
    try:
        orchestrator.start(load_stack(stack_file), RunConfig.from_env())
    except StackError as e:
        _start_error = str(e)
        get_console().print_error("Stack start failed", str(e))
    except Exception as e:
        _start_error = f"{type(e).__name__}: {e}"
        get_console().print_exception(e)
    finally:
        with _start_lock:
            _starting = False

def _spawn_start(stack_file: str) -> bool:
    """Start the stack in the background; False when a start is already in flight or done."""
    global _starting
    with _start_lock:
        if _starting or orchestrator.running:
            return False
        _starting = True
    threading.Thread(target=_start_stack, args=(stack_file,), name="stackup-start", daemon=True).start()
    return True

# -------------------- Startup --------------------

@app.on_event("startup")
async def startup() -> None:
    if settings.AUTOSTART and settings.STACK_FILE:
        _spawn_start(settings.STACK_FILE)

# -------------------- Endpoints --------------------

@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Stack orchestrator is running"

@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "OK"

@app.get("/status", response_model=StatusResponse)
async def status():
    return StatusResponse(
        running=orchestrator.running,
        error=_start_error,
        services=_services(dict(orchestrator.status())),
    )

@app.post("/start", status_code=202, response_model=StatusResponse)
async def start():
    if not settings.STACK_FILE:
        raise HTTPException(status_code=400, detail="STACKUP_STACK_FILE is not set")
    if not _spawn_start(settings.STACK_FILE):
        raise HTTPException(status_code=409, detail="Stack is already running")

    return StatusResponse(running=True, services=_services(dict(orchestrator.status())))

@app.post("/stop", response_model=StopResponse)
def stop():
    # blocking teardown; plain def runs in the threadpool
    result = orchestrator.stop()
    return StopResponse(success=result.success, services=_services(dict(result.services)))
