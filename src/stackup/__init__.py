from .dsl import service, sh, stack, ServiceBuilder, build
from .dag import DependencyGraph, build_graph
from .errors import (
    AlreadyRunningError,
    CycleError,
    DuplicateNameError,
    HealthTimeoutError,
    StartFailure,
    UnknownDependencyError,
)
from .model import Health, RunResult, ServiceSpec, ServiceState, Status
from .orchestrator import Orchestrator
from .probes import command_probe, http_probe, redis_probe, static_probe, tcp_probe
from .runner import load_stack
from .settings import RunConfig

__all__ = [
    "service", "sh", "stack", "ServiceBuilder", "build",
    "DependencyGraph", "build_graph",
    "AlreadyRunningError", "CycleError", "DuplicateNameError", "HealthTimeoutError",
    "StartFailure", "UnknownDependencyError",
    "Health", "RunResult", "ServiceSpec", "ServiceState", "Status",
    "Orchestrator",
    "command_probe", "http_probe", "redis_probe", "static_probe", "tcp_probe",
    "load_stack",
    "RunConfig",
]
