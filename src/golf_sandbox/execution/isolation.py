from __future__ import annotations

import json
import logging
import os
import secrets
import signal
import subprocess
import sys
import threading
import time
from typing import IO, Any, Mapping

from ..channel import OUTPUT_LIMIT_BYTES, BoundedBuffer
from ..interpreter import DEFAULT_INTERPRETER
from .types import STATUS_RUNTIME_ERROR, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

_REAPER_JOIN_SECONDS = 1.0
# Generous bound on one JSON reply line: two capped streams, escaped, plus fault text.
_REPLY_LIMIT_BYTES = 256 * 1024


class SandboxSpawnError(RuntimeError):
    """Raised when a sandbox process cannot be started at all."""


class _Resolution:
    """Holds the first result offered to it and ignores every later one.

    Example:
        ```python
        gate = _Resolution()
        assert gate.offer(first) is True
        assert gate.offer(second) is False
        assert gate.result is first
        ```
    """

    def __init__(self) -> None:
        """Create an unresolved gate.

        Example:
            ```python
            gate = _Resolution()
            ```
        """
        self._lock = threading.Lock()
        self._resolved = threading.Event()
        self._result: ExecutionResult | None = None

    def offer(self, result: ExecutionResult) -> bool:
        """Resolve with `result` unless already resolved; report whether it won.

        Example:
            ```python
            won = gate.offer(ExecutionResult.timeout(200))
            ```
        """
        with self._lock:
            if self._result is not None:
                return False
            self._result = result
            self._resolved.set()
            return True

    def wait(self, timeout: float) -> bool:
        """Block until resolved or until `timeout` seconds pass.

        Example:
            ```python
            replied = gate.wait(0.2)
            ```
        """
        return self._resolved.wait(timeout)

    @property
    def result(self) -> ExecutionResult:
        """Return the winning result.

        Example:
            ```python
            final = gate.result
            ```
        """
        with self._lock:
            if self._result is None:
                raise RuntimeError("Resolution has not been decided yet")
            return self._result


class IsolationManager:
    """Run each request in a brand-new sandbox process raced against its deadline.

    Example:
        ```python
        manager = IsolationManager(memory_limit_mb=1024)
        result = manager.run(ExecutionRequest(code="<?php echo 1;", stdin="", max_duration_ms=1000))
        ```
    """

    def __init__(
        self,
        *,
        interpreter: str = DEFAULT_INTERPRETER,
        interpreter_options: Mapping[str, Any] | None = None,
        memory_limit_mb: int = 0,
        python_executable: str | None = None,
    ) -> None:
        """Configure how sandbox processes are launched.

        Example:
            ```python
            manager = IsolationManager(interpreter="golf_sandbox.interpreter:PhpInterpreter")
            ```
        """
        if memory_limit_mb < 0:
            raise ValueError("memory_limit_mb must be >= 0")
        self._interpreter = interpreter
        self._interpreter_options = dict(interpreter_options or {})
        self._memory_limit_mb = memory_limit_mb
        self._python_executable = python_executable or sys.executable

    @classmethod
    def from_settings(cls, settings: Any) -> "IsolationManager":
        """Build a manager from a `SandboxSettings` instance.

        Example:
            ```python
            manager = IsolationManager.from_settings(SandboxSettings())
            ```
        """
        return cls(
            interpreter=settings.interpreter,
            interpreter_options=settings.interpreter_options,
            memory_limit_mb=settings.memory_limit_mb,
        )

    def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Spawn, deliver, race reply against deadline, kill, return one result.

        Example:
            ```python
            result = manager.run(ExecutionRequest(code="while(1);", stdin="", max_duration_ms=200))
            assert result.status == "timeout"
            ```
        """
        started = time.monotonic()
        proc = self._spawn()
        gate = _Resolution()
        diagnostics = BoundedBuffer(OUTPUT_LIMIT_BYTES)
        token = secrets.token_hex(16)
        drainer = threading.Thread(target=_drain, args=(proc.stderr, diagnostics), daemon=True)
        courier = threading.Thread(target=self._deliver, args=(proc, request, token), daemon=True)
        reader = threading.Thread(
            target=_await_reply,
            args=(proc, gate, drainer, diagnostics, token),
            daemon=True,
        )
        threads = [drainer, courier, reader]
        try:
            # The deadline covers delivery too, so a sandbox that never reads
            # stdin still resolves as a timeout.
            for thread in threads:
                thread.start()
            if not gate.wait(request.max_duration_ms / 1000):
                gate.offer(ExecutionResult.timeout(request.max_duration_ms))
            result = gate.result
        finally:
            _terminate(proc)
            for thread in threads:
                if thread.is_alive():
                    thread.join(timeout=_REAPER_JOIN_SECONDS)

        logger.info(
            "sandbox pid=%s finished status=%s elapsed_ms=%d",
            proc.pid,
            result.status,
            int((time.monotonic() - started) * 1000),
        )
        return result

    def _command(self) -> list[str]:
        """Return the argv used to launch one sandbox process.

        Example:
            ```python
            argv = manager._command()
            ```
        """
        return [
            self._python_executable,
            "-m",
            "golf_sandbox.worker",
            "--interpreter",
            self._interpreter,
            "--interpreter-options",
            json.dumps(self._interpreter_options),
            "--memory-limit-mb",
            str(self._memory_limit_mb),
        ]

    def _spawn(self) -> subprocess.Popen[bytes]:
        """Start a sandbox process in its own session.

        Example:
            ```python
            proc = manager._spawn()
            ```
        """
        try:
            proc = subprocess.Popen(
                self._command(),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=hasattr(os, "killpg"),
            )
        except OSError as exc:
            raise SandboxSpawnError(f"Failed to start sandbox process: {exc}") from exc
        logger.debug("spawned sandbox pid=%s", proc.pid)
        return proc

    def _deliver(self, proc: subprocess.Popen[bytes], request: ExecutionRequest, token: str) -> None:
        """Send the single inbound message and close the sandbox's stdin.

        `token` is echoed back in the reply and proves the line came from the
        sandbox runtime rather than from code it is running.

        Example:
            ```python
            manager._deliver(proc, request, secrets.token_hex(16))
            ```
        """
        assert proc.stdin is not None
        try:
            with proc.stdin:
                message = {**request.to_message(), "token": token}
                proc.stdin.write(json.dumps(message).encode("utf-8"))
        except (OSError, ValueError):
            # Died or was killed before reading; the reply reader or the deadline reports it.
            logger.warning("sandbox pid=%s closed stdin before the request was delivered", proc.pid)


def _drain(stream: IO[bytes] | None, sink: BoundedBuffer) -> None:
    """Read a pipe to EOF, keeping only what fits in `sink`.

    Example:
        ```python
        _drain(proc.stderr, BoundedBuffer())
        ```
    """
    if stream is None:
        return
    with stream:
        for chunk in iter(lambda: stream.read(4096), b""):
            sink.write(chunk)


def _await_reply(
    proc: subprocess.Popen[bytes],
    gate: _Resolution,
    drainer: threading.Thread,
    diagnostics: BoundedBuffer,
    token: str,
) -> None:
    """Offer the sandbox's reply, or a crash result if it exits without one.

    Only the first line counts; one without the run's token is rejected.

    Example:
        ```python
        _await_reply(proc, gate, drainer, BoundedBuffer(), token)
        ```
    """
    assert proc.stdout is not None
    with proc.stdout:
        line = proc.stdout.readline(_REPLY_LIMIT_BYTES)
    if line:
        try:
            gate.offer(ExecutionResult.from_message(json.loads(line), token=token))
            return
        except (ValueError, RecursionError) as exc:
            reason = f"Sandbox sent an invalid reply: {exc}"
    else:
        reason = f"Sandbox exited without a reply (exit code {proc.wait()})"
    drainer.join(timeout=_REAPER_JOIN_SECONDS)
    stderr = diagnostics.text()
    crash = ExecutionResult(
        status=STATUS_RUNTIME_ERROR,
        stdout="",
        stderr=f"{stderr}\n{reason}" if stderr else reason,
    )
    if gate.offer(crash):
        logger.warning("sandbox pid=%s crashed: %s", proc.pid, reason)


def _terminate(proc: subprocess.Popen[bytes]) -> None:
    """Force-kill the sandbox and anything it started, then reap it.

    Safe to call on a process that already exited.

    Example:
        ```python
        _terminate(proc)
        ```
    """
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:  # pragma: no cover - platform specific
            proc.kill()
    except (ProcessLookupError, PermissionError):
        pass
    proc.wait()
