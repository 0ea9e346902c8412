from __future__ import annotations

from typing import Protocol

from .types import ExecutionRequest, ExecutionResult


class ExecutionEngine(Protocol):
    def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute one request and return exactly one classified result.

        Example:
            ```python
            result = engine.run(ExecutionRequest(code="echo 1;", stdin="", max_duration_ms=1000))
            ```
        """
        ...
