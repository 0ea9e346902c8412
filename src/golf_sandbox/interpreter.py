from __future__ import annotations

import importlib
import subprocess
import tempfile
import threading
from typing import IO, Any, Callable, Protocol

_CHUNK_SIZE = 4096

# Process, signal and environment escapes; file access is fenced by open_basedir.
DISABLED_FUNCTIONS = (
    "exec",
    "system",
    "shell_exec",
    "passthru",
    "proc_open",
    "popen",
    "pcntl_exec",
    "pcntl_fork",
    "pcntl_signal",
    "posix_kill",
    "posix_setpgid",
    "posix_setsid",
    "putenv",
    "mail",
    "dl",
)


class ByteHooks(Protocol):
    """Byte-callback boundary an embedded interpreter performs its I/O through.

    Example:
        ```python
        hooks: ByteHooks = open_channel("")
        ```
    """

    def read(self) -> int | None:
        """Return the next stdin byte or None at end of input.

        Example:
            ```python
            value = hooks.read()
            ```
        """
        ...

    def write_out(self, value: int | None) -> None:
        """Accept one stdout byte code.

        Example:
            ```python
            hooks.write_out(65)
            ```
        """
        ...

    def write_err(self, value: int | None) -> None:
        """Accept one stderr byte code.

        Example:
            ```python
            hooks.write_err(65)
            ```
        """
        ...


class Interpreter(Protocol):
    def run(self, source: str) -> int:
        """Run preprocessed source once and return its completion code.

        Example:
            ```python
            code = interpreter.run(preprocess("echo 1;"))
            ```
        """
        ...


InterpreterFactory = Callable[..., Interpreter]

DEFAULT_INTERPRETER = "golf_sandbox.interpreter:PhpInterpreter"


class PhpInterpreter:
    """PHP engine backed by the `php` CLI binary.

    Runs as a child of the sandbox process, so it dies with the sandbox's
    process group.

    Example:
        ```python
        interpreter = PhpInterpreter(open_channel(""), binary="php")
        status = interpreter.run(preprocess("<?php echo 1;"))
        ```
    """

    def __init__(self, hooks: ByteHooks, *, binary: str = "php") -> None:
        """Wire a fresh engine instance to one channel's hooks.

        Example:
            ```python
            interpreter = PhpInterpreter(open_channel(""))
            ```
        """
        self._hooks = hooks
        self._binary = binary

    def run(self, source: str) -> int:
        """Execute `source` with `php -r` and return the binary's exit status.

        Each run gets a fresh empty directory as its working directory and
        `open_basedir`, so the submission cannot reach `/proc` or the host's
        files, and process-spawning and signalling functions are disabled.

        Example:
            ```python
            exit_status = PhpInterpreter(open_channel("")).run("echo 1;")
            ```
        """
        with tempfile.TemporaryDirectory(prefix="golf-sandbox-") as jail:
            return self._run_in(jail, source)

    def command(self, jail: str, source: str) -> list[str]:
        """Build the `php` argv, confining the submission to the `jail` directory.

        Example:
            ```python
            argv = PhpInterpreter(open_channel("")).command("/tmp/golf-sandbox-x", "echo 1;")
            assert "open_basedir=/tmp/golf-sandbox-x" in argv
            ```
        """
        argv = [self._binary]
        for setting in (
            "display_errors=stderr",
            "log_errors=0",
            f"open_basedir={jail}",
            f"disable_functions={','.join(DISABLED_FUNCTIONS)}",
            "allow_url_fopen=0",
            "allow_url_include=0",
        ):
            argv += ["-d", setting]
        return [*argv, "-r", source]

    def _run_in(self, jail: str, source: str) -> int:
        """Run one `php` process with `jail` as its working directory.

        Example:
            ```python
            exit_status = interpreter._run_in("/tmp/golf-sandbox-x", "echo 1;")
            ```
        """
        proc = subprocess.Popen(
            self.command(jail, source),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=jail,
        )
        assert proc.stdin is not None and proc.stdout is not None and proc.stderr is not None
        feeder = threading.Thread(target=self._feed_stdin, args=(proc.stdin,), daemon=True)
        err_pump = threading.Thread(
            target=_pump,
            args=(proc.stderr, self._hooks.write_err),
            daemon=True,
        )
        feeder.start()
        err_pump.start()
        try:
            _pump(proc.stdout, self._hooks.write_out)
            err_pump.join()
            return proc.wait()
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            feeder.join(timeout=1)

    def _feed_stdin(self, stream: IO[bytes]) -> None:
        """Pull stdin bytes from the hooks and hand them to the binary.

        Example:
            ```python
            interpreter._feed_stdin(proc.stdin)
            ```
        """
        pending = bytearray()
        try:
            while True:
                value = self._hooks.read()
                if value is None:
                    break
                pending.append(value)
                if len(pending) >= _CHUNK_SIZE:
                    stream.write(bytes(pending))
                    pending.clear()
            if pending:
                stream.write(bytes(pending))
            stream.close()
        except (BrokenPipeError, ValueError):
            # The binary exited without consuming all of stdin.
            return


def _pump(stream: IO[bytes], write: Callable[[int | None], None]) -> None:
    """Forward every byte of `stream` to a hook until EOF, then flush.

    Example:
        ```python
        _pump(proc.stdout, channel.write_out)
        ```
    """
    with stream:
        while True:
            chunk = stream.read1(_CHUNK_SIZE)  # type: ignore[attr-defined]
            if not chunk:
                break
            for value in chunk:
                write(value)
    write(None)


def load_interpreter(entrypoint: str) -> InterpreterFactory:
    """Resolve a `module:attribute` entrypoint to an interpreter factory.

    Example:
        ```python
        factory = load_interpreter("golf_sandbox.interpreter:PhpInterpreter")
        ```
    """
    module_name, sep, attr = entrypoint.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Interpreter entrypoint must look like 'module:attribute', got {entrypoint!r}")
    module = importlib.import_module(module_name)
    factory: Any = module
    for part in attr.split("."):
        factory = getattr(factory, part, None)
        if factory is None:
            raise ValueError(f"Interpreter entrypoint {entrypoint!r} was not found")
    if not callable(factory):
        raise ValueError(f"Interpreter entrypoint {entrypoint!r} is not callable")
    return factory
