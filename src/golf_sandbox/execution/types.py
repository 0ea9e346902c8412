from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any, Literal

from ..channel import OUTPUT_LIMIT_BYTES

ExecutionStatus = Literal["success", "runtime_error", "timeout"]

STATUS_SUCCESS: ExecutionStatus = "success"
STATUS_RUNTIME_ERROR: ExecutionStatus = "runtime_error"
STATUS_TIMEOUT: ExecutionStatus = "timeout"

STATUSES = frozenset({STATUS_SUCCESS, STATUS_RUNTIME_ERROR, STATUS_TIMEOUT})
REPLY_STATUSES = frozenset({STATUS_SUCCESS, STATUS_RUNTIME_ERROR})


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """One submission to run: source, stdin and a wall-clock budget.

    Example:
        ```python
        req = ExecutionRequest(code="<?php echo 1;", stdin="", max_duration_ms=1000)
        ```
    """

    code: str
    stdin: str
    max_duration_ms: int

    def __post_init__(self) -> None:
        """Reject budgets that are not positive integers.

        Example:
            ```python
            ExecutionRequest(code="", stdin="", max_duration_ms=1)
            ```
        """
        if isinstance(self.max_duration_ms, bool) or not isinstance(self.max_duration_ms, int):
            raise ValueError("max_duration_ms must be an integer")
        if self.max_duration_ms <= 0:
            raise ValueError("max_duration_ms must be positive")

    def to_message(self) -> dict[str, str]:
        """Build the single message sent to a sandbox process.

        Example:
            ```python
            message = req.to_message()  # {"code": ..., "input": ...}
            ```
        """
        return {"code": self.code, "input": self.stdin}


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Classified outcome of one submission.

    Example:
        ```python
        res = ExecutionResult(status="success", stdout="1", stderr="")
        ```
    """

    status: ExecutionStatus
    stdout: str = ""
    stderr: str = ""

    @classmethod
    def timeout(cls, max_duration_ms: int) -> "ExecutionResult":
        """Build the result reported when the deadline wins.

        Example:
            ```python
            res = ExecutionResult.timeout(200)
            assert res.stderr == "Time Limit Exceeded: 200 msec"
            ```
        """
        return cls(
            status=STATUS_TIMEOUT,
            stdout="",
            stderr=f"Time Limit Exceeded: {max_duration_ms} msec",
        )

    @classmethod
    def from_message(cls, message: Any, *, token: str | None = None) -> "ExecutionResult":
        """Validate a sandbox reply and convert it to a result.

        A sandbox may only report `success` or `runtime_error`; `timeout` is
        declared by the host alone. When `token` is given the reply must echo
        it, so lines written by anything but the sandbox runtime are rejected.

        Example:
            ```python
            res = ExecutionResult.from_message({"status": "success", "stdout": "1", "stderr": ""})
            ```
        """
        if not isinstance(message, dict):
            raise ValueError("Sandbox reply must be a JSON object")
        if token is not None:
            echoed = message.get("token")
            if not isinstance(echoed, str) or not hmac.compare_digest(
                echoed.encode("utf-8"), token.encode("utf-8")
            ):
                raise ValueError("Sandbox reply does not carry this run's token")
        status = message.get("status")
        if status not in REPLY_STATUSES:
            raise ValueError(f"Sandbox reply has unknown status: {status!r}")
        stdout = message.get("stdout", "")
        stderr = message.get("stderr", "")
        if not isinstance(stdout, str) or not isinstance(stderr, str):
            raise ValueError("Sandbox reply streams must be strings")
        if len(stdout) > OUTPUT_LIMIT_BYTES:
            raise ValueError("Sandbox reply stdout exceeds the output limit")
        return cls(status=status, stdout=stdout, stderr=stderr)

    def to_message(self) -> dict[str, str]:
        """Return the wire form shared by the sandbox reply and the HTTP response.

        Example:
            ```python
            payload = ExecutionResult(status="success").to_message()
            ```
        """
        return {"status": self.status, "stdout": self.stdout, "stderr": self.stderr}
