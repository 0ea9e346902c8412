from __future__ import annotations

import logging

from .execution.engine import ExecutionEngine
from .execution.isolation import IsolationManager
from .execution.types import ExecutionRequest, ExecutionResult
from .settings import SandboxSettings

logger = logging.getLogger(__name__)


def _resolve_settings(settings: SandboxSettings | None, settings_file: str | None) -> SandboxSettings:
    """Resolve the effective settings object for a call.

    Example:
        ```python
        settings = _resolve_settings(None, "/etc/golf-sandbox.toml")
        ```
    """
    if settings is not None and settings_file is not None:
        raise ValueError("Provide either 'settings' or 'settings_file', not both")
    if settings_file is not None:
        return SandboxSettings.from_file(settings_file)
    if settings is None:
        return SandboxSettings()
    return settings


def execute(
    code: str,
    stdin: str,
    max_duration_ms: int,
    *,
    engine: ExecutionEngine | None = None,
    settings: SandboxSettings | None = None,
    settings_file: str | None = None,
) -> ExecutionResult:
    """Run one untrusted submission and return its classified result.

    Every call gets its own sandbox process, so concurrent calls need no
    coordination. Only a failure to start the sandbox raises.

    Example:
        ```python
        from golf_sandbox import execute
        result = execute("<?php echo 1;", "", 1000)
        assert result.status == "success" and result.stdout == "1"
        ```
    """
    request = ExecutionRequest(code=code, stdin=stdin, max_duration_ms=max_duration_ms)
    if engine is None:
        engine = IsolationManager.from_settings(_resolve_settings(settings, settings_file))
    logger.debug(
        "executing submission code_bytes=%d stdin_bytes=%d max_duration_ms=%d",
        len(code.encode("utf-8")),
        len(stdin.encode("utf-8")),
        max_duration_ms,
    )
    return engine.run(request)
