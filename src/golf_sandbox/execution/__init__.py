from .engine import ExecutionEngine
from .isolation import IsolationManager, SandboxSpawnError
from .types import ExecutionRequest, ExecutionResult

__all__ = [
    "ExecutionEngine",
    "ExecutionRequest",
    "ExecutionResult",
    "IsolationManager",
    "SandboxSpawnError",
]
