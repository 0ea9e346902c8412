import os
from pathlib import Path

import pytest

from golf_sandbox import IsolationManager

TESTS_DIR = Path(__file__).resolve().parent
SRC_DIR = TESTS_DIR.parent / "src"

SCRIPTED = "scripted_interpreter:ScriptedInterpreter"


@pytest.fixture
def sandbox_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make the scripted interpreter importable inside sandbox processes."""
    parts = [str(TESTS_DIR), str(SRC_DIR)]
    existing = os.environ.get("PYTHONPATH")
    if existing:
        parts.append(existing)
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(parts))


@pytest.fixture
def scripted_manager(sandbox_path: None) -> IsolationManager:
    return IsolationManager(interpreter=SCRIPTED)
