from __future__ import annotations

import argparse
import contextlib
import json
import sys
from typing import Any, Sequence

from .channel import open_channel
from .classify import classify
from .execution.types import ExecutionResult
from .interpreter import DEFAULT_INTERPRETER, InterpreterFactory, load_interpreter
from .preprocess import preprocess

_resource: Any
try:
    import resource as _resource_module  # POSIX only
    _resource = _resource_module
except ImportError:  # pragma: no cover - platform specific
    _resource = None


def _set_limits(memory_limit_mb: int) -> list[str]:
    """Cap the address space of this process and everything it spawns.

    Example:
        ```python
        problems = _set_limits(memory_limit_mb=1024)
        ```
    """
    errors: list[str] = []
    if memory_limit_mb <= 0:
        return errors
    if _resource is None:
        errors.append("RLIMIT limits unavailable on this platform")
        return errors

    mem_bytes = int(memory_limit_mb) * 1024 * 1024

    try:
        _, current_hard = _resource.getrlimit(_resource.RLIMIT_AS)
        if current_hard in (-1, _resource.RLIM_INFINITY):
            target_hard = mem_bytes
        else:
            target_hard = min(mem_bytes, current_hard)
        target_soft = min(mem_bytes, target_hard)
        _resource.setrlimit(_resource.RLIMIT_AS, (target_soft, target_hard))
    except (ValueError, OSError) as exc:
        errors.append(f"RLIMIT_AS not applied: {exc}")

    return errors


def run_once(code: str, stdin: str, factory: InterpreterFactory, **options: Any) -> ExecutionResult:
    """Run one submission in this process and classify the outcome.

    Example:
        ```python
        result = run_once("<?php echo 1;", "", PhpInterpreter)
        ```
    """
    source = preprocess(code)
    channel = open_channel(stdin)

    fault: Exception | None = None
    completion_code: int | None = None
    try:
        interpreter = factory(channel, **options)
        # Keep stray prints off the reply stream.
        with contextlib.redirect_stdout(sys.stderr):
            completion_code = interpreter.run(source)
    except Exception as exc:
        fault = exc

    return classify(fault, completion_code, channel.snapshot_out(), channel.snapshot_err())


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    """Parse the flags the isolation manager launches the sandbox with.

    Example:
        ```python
        args = _parse_args(["--memory-limit-mb", "512"])
        ```
    """
    parser = argparse.ArgumentParser(prog="python -m golf_sandbox.worker")
    parser.add_argument("--interpreter", default=DEFAULT_INTERPRETER)
    parser.add_argument("--interpreter-options", default="{}")
    parser.add_argument("--memory-limit-mb", type=int, default=0)
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    """Read one request from stdin, run it, write one JSON reply line to stdout.

    Example:
        ```python
        # echo '{"code": "echo 1;", "input": "", "token": "t"}' | python -m golf_sandbox.worker
        exit_code = main([])
        ```
    """
    args = _parse_args(argv)
    options = json.loads(args.interpreter_options)
    if not isinstance(options, dict):
        raise ValueError("--interpreter-options must be a JSON object")
    factory = load_interpreter(args.interpreter)

    for problem in _set_limits(args.memory_limit_mb):
        sys.stderr.write(f"{problem}\n")

    message = json.loads(sys.stdin.read() or "{}")
    code = str(message.get("code", ""))
    stdin = str(message.get("input", ""))
    token = str(message.get("token", ""))

    result = run_once(code, stdin, factory, **options)
    reply = {"token": token, **result.to_message()}
    sys.stdout.write(json.dumps(reply) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
