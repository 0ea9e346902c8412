from .dispatcher import execute
from .execution.isolation import IsolationManager, SandboxSpawnError
from .execution.types import ExecutionRequest, ExecutionResult
from .settings import SandboxSettings

__all__ = [
    "ExecutionRequest",
    "ExecutionResult",
    "IsolationManager",
    "SandboxSettings",
    "SandboxSpawnError",
    "execute",
]
