from __future__ import annotations

from .execution.types import STATUS_RUNTIME_ERROR, STATUS_SUCCESS, ExecutionResult


def describe_fault(fault: BaseException) -> str:
    """Render a thrown fault the way it is appended to stderr.

    Example:
        ```python
        assert describe_fault(RuntimeError("x")) == "RuntimeError: x"
        ```
    """
    message = str(fault)
    if not message:
        return type(fault).__name__
    return f"{type(fault).__name__}: {message}"


def classify(
    fault: BaseException | None,
    completion_code: int | None,
    captured_out: str,
    captured_err: str,
) -> ExecutionResult:
    """Map an interpreter outcome onto the status taxonomy.

    A timeout is never produced here; only the isolation manager declares one.

    Example:
        ```python
        res = classify(None, 0, "1", "")
        assert res.status == "success"
        ```
    """
    if fault is not None:
        return ExecutionResult(
            status=STATUS_RUNTIME_ERROR,
            stdout=captured_out,
            stderr=f"{captured_err}\n{describe_fault(fault)}",
        )
    if completion_code == 0:
        return ExecutionResult(status=STATUS_SUCCESS, stdout=captured_out, stderr=captured_err)
    return ExecutionResult(status=STATUS_RUNTIME_ERROR, stdout=captured_out, stderr=captured_err)
