import pytest
from fastapi.testclient import TestClient

from golf_sandbox import ExecutionRequest, ExecutionResult, SandboxSpawnError
from golf_sandbox.server import create_app


class _FakeEngine:
    def __init__(self) -> None:
        self.requests: list[ExecutionRequest] = []

    def run(self, request: ExecutionRequest) -> ExecutionResult:
        self.requests.append(request)
        if request.code == "loop":
            return ExecutionResult.timeout(request.max_duration_ms)
        return ExecutionResult(status="success", stdout="1", stderr="")


class _BrokenEngine:
    def run(self, request: ExecutionRequest) -> ExecutionResult:
        raise SandboxSpawnError("Failed to start sandbox process: no python")


@pytest.fixture
def engine() -> _FakeEngine:
    return _FakeEngine()


@pytest.fixture
def client(engine: _FakeEngine) -> TestClient:
    return TestClient(create_app(engine=engine))


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_exec_returns_result(client: TestClient, engine: _FakeEngine) -> None:
    response = client.post(
        "/exec",
        json={"code": "<?php echo 1;", "stdin": "", "max_duration_ms": 1000},
    )
    assert response.status_code == 200
    assert response.json() == {"status": "success", "stdout": "1", "stderr": ""}
    assert engine.requests == [ExecutionRequest(code="<?php echo 1;", stdin="", max_duration_ms=1000)]


def test_exec_stdin_defaults_to_empty(client: TestClient, engine: _FakeEngine) -> None:
    response = client.post("/exec", json={"code": "echo 1;", "max_duration_ms": 500})
    assert response.status_code == 200
    assert engine.requests[0].stdin == ""


def test_exec_timeout_is_a_normal_response(client: TestClient) -> None:
    response = client.post("/exec", json={"code": "loop", "stdin": "", "max_duration_ms": 200})
    assert response.status_code == 200
    assert response.json() == {
        "status": "timeout",
        "stdout": "",
        "stderr": "Time Limit Exceeded: 200 msec",
    }


@pytest.mark.parametrize(
    "body",
    [
        {"code": "echo 1;", "stdin": "", "max_duration_ms": 0},
        {"code": "echo 1;", "stdin": ""},
        {"stdin": "", "max_duration_ms": 100},
    ],
)
def test_exec_rejects_invalid_bodies(client: TestClient, engine: _FakeEngine, body: dict) -> None:
    response = client.post("/exec", json=body)
    assert response.status_code == 422
    assert engine.requests == []


def test_spawn_failure_is_503() -> None:
    client = TestClient(create_app(engine=_BrokenEngine()))
    response = client.post("/exec", json={"code": "echo 1;", "stdin": "", "max_duration_ms": 100})
    assert response.status_code == 503
    assert "no python" in response.json()["detail"]
