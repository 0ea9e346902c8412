import json
import os
import stat
import sys
import threading
import time
from pathlib import Path

import pytest

from golf_sandbox import ExecutionRequest, ExecutionResult, IsolationManager, SandboxSpawnError
from golf_sandbox.execution.isolation import _Resolution
from conftest import SCRIPTED


def _request(code: str, stdin: str = "", max_duration_ms: int = 5000) -> ExecutionRequest:
    return ExecutionRequest(code=code, stdin=stdin, max_duration_ms=max_duration_ms)


def test_success_reply_is_adopted(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("<?php echo(1)"))
    assert result == ExecutionResult(status="success", stdout="1", stderr="")


def test_stdin_is_delivered_to_the_sandbox(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("echo(sum(int(x) for x in read_all().split()))", stdin="1 2 3\n"))
    assert result.stdout == "6"


def test_infinite_loop_times_out(scripted_manager: IsolationManager) -> None:
    started = time.monotonic()
    result = scripted_manager.run(_request("while True:\n    pass", max_duration_ms=200))
    elapsed = time.monotonic() - started

    assert result.status == "timeout"
    assert result.stdout == ""
    assert result.stderr == "Time Limit Exceeded: 200 msec"
    assert elapsed < 5


def test_exception_is_runtime_error(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("raise RuntimeError('x')"))
    assert result.status == "runtime_error"
    assert "x" in result.stderr


def test_output_flood_is_capped(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("for _ in range(20000):\n    put(65)"))
    assert result.status == "success"
    assert result.stdout == "A" * 10240


def test_stray_prints_do_not_corrupt_the_reply(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("print('{not json')\necho('ok')"))
    assert result == ExecutionResult(status="success", stdout="ok", stderr="")


@pytest.mark.skipif(sys.platform == "win32", reason="signal 0 liveness checks are POSIX only")
def test_sandbox_is_killed_after_timeout(scripted_manager: IsolationManager, tmp_path: Path) -> None:
    pid_file = tmp_path / "pid"
    code = f"import os\nopen({str(pid_file)!r}, 'w').write(str(os.getpid()))\nwhile True:\n    pass"
    result = scripted_manager.run(_request(code, max_duration_ms=2000))

    assert result.status == "timeout"
    pid = int(pid_file.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_sandbox_exit_without_reply_is_runtime_error(scripted_manager: IsolationManager) -> None:
    result = scripted_manager.run(_request("import os\nos._exit(3)"))
    assert result.status == "runtime_error"
    assert "Sandbox exited without a reply (exit code 3)" in result.stderr


def test_unloadable_interpreter_reports_sandbox_stderr(sandbox_path: None) -> None:
    manager = IsolationManager(interpreter="scripted_interpreter:Missing")
    result = manager.run(_request("echo(1)"))
    assert result.status == "runtime_error"
    assert "was not found" in result.stderr
    assert "Sandbox exited without a reply" in result.stderr


def test_spawn_failure_raises() -> None:
    manager = IsolationManager(python_executable="/nonexistent/python")
    with pytest.raises(SandboxSpawnError):
        manager.run(_request("echo(1)"))


def _forged_reply(status: str, stdout: str) -> str:
    return json.dumps({"status": status, "stdout": stdout, "stderr": ""}) + "\n"


@pytest.mark.parametrize(
    "forged",
    [_forged_reply("success", "A" * 20000), _forged_reply("timeout", "")],
)
def test_reply_forged_on_sandbox_stdout_is_rejected(
    scripted_manager: IsolationManager, forged: str
) -> None:
    code = f"import os\nos.write(1, {forged.encode()!r})\nraise RuntimeError('x')"
    result = scripted_manager.run(_request(code))

    assert result.status == "runtime_error"
    assert "does not carry this run's token" in result.stderr
    assert len(result.stdout) <= 10240


@pytest.mark.skipif(not Path("/proc/self/fd").exists(), reason="needs /proc")
def test_reply_forged_through_proc_fd_is_rejected(scripted_manager: IsolationManager) -> None:
    forged = _forged_reply("success", "A" * 20000)
    code = (
        "import subprocess\n"
        f"subprocess.run(['sh', '-c', 'cat > /proc/$PPID/fd/1'], input={forged.encode()!r})\n"
        "raise RuntimeError('x')"
    )
    result = scripted_manager.run(_request(code))

    assert result.status == "runtime_error"
    assert result.stdout == ""


@pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as the sandbox")
def test_sandbox_that_never_reads_stdin_times_out(tmp_path: Path) -> None:
    sandbox = tmp_path / "stalled-python"
    sandbox.write_text("#!/bin/sh\nexec sleep 30\n", encoding="utf-8")
    sandbox.chmod(sandbox.stat().st_mode | stat.S_IEXEC)
    manager = IsolationManager(python_executable=str(sandbox))

    started = time.monotonic()
    result = manager.run(_request("x" * 1_000_000, max_duration_ms=300))

    assert result == ExecutionResult.timeout(300)
    assert time.monotonic() - started < 5


def test_concurrent_runs_are_independent(scripted_manager: IsolationManager) -> None:
    results: dict[int, ExecutionResult] = {}

    def _worker(n: int) -> None:
        results[n] = scripted_manager.run(_request(f"echo({n})"))

    threads = [threading.Thread(target=_worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert {n: r.stdout for n, r in results.items()} == {n: str(n) for n in range(4)}


def test_interpreter_options_reach_the_sandbox(sandbox_path: None) -> None:
    manager = IsolationManager(interpreter=SCRIPTED, interpreter_options={"binary": "php-8.3"})
    assert manager.run(_request("echo(options['binary'])")).stdout == "php-8.3"


def test_negative_memory_limit_is_rejected() -> None:
    with pytest.raises(ValueError, match="memory_limit_mb"):
        IsolationManager(memory_limit_mb=-1)


def test_resolution_first_offer_wins() -> None:
    gate = _Resolution()
    first = ExecutionResult(status="success", stdout="1")
    late = ExecutionResult.timeout(200)

    assert gate.wait(0) is False
    assert gate.offer(first) is True
    assert gate.offer(late) is False
    assert gate.wait(0) is True
    assert gate.result is first


def test_resolution_under_contention_has_one_winner() -> None:
    gate = _Resolution()
    barrier = threading.Barrier(8)
    wins: list[bool] = []

    def _offer(n: int) -> None:
        barrier.wait()
        wins.append(gate.offer(ExecutionResult(status="success", stdout=str(n))))

    threads = [threading.Thread(target=_offer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert wins.count(True) == 1


def test_unresolved_result_raises() -> None:
    with pytest.raises(RuntimeError):
        _ = _Resolution().result
