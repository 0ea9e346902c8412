"""HTTP surface of the execution worker.

Endpoints:
- POST /exec    -> run one submission, reply with {status, stdout, stderr}
- GET  /health  -> liveness check
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .dispatcher import execute
from .execution.engine import ExecutionEngine
from .execution.isolation import IsolationManager, SandboxSpawnError
from .settings import SandboxSettings

logger = logging.getLogger(__name__)


class ExecRequest(BaseModel):
    """Submission accepted by `POST /exec`."""

    code: str = Field(..., description="Submitted source, optionally starting with an open tag")
    stdin: str = Field(default="", description="Text fed to the submission's stdin")
    max_duration_ms: int = Field(..., gt=0, description="Wall-clock budget in milliseconds")


class ExecResponse(BaseModel):
    status: str
    stdout: str
    stderr: str


def create_app(
    engine: ExecutionEngine | None = None,
    settings: SandboxSettings | None = None,
) -> FastAPI:
    """Build the worker's FastAPI application.

    Example:
        ```python
        app = create_app(settings=SandboxSettings.from_file("/etc/golf-sandbox.toml"))
        ```
    """
    resolved = settings or SandboxSettings()
    runner: ExecutionEngine = engine or IsolationManager.from_settings(resolved)

    app = FastAPI(title="golf-sandbox", version="0.1.0")

    @app.exception_handler(SandboxSpawnError)
    async def _spawn_failed(request: Request, exc: SandboxSpawnError) -> JSONResponse:
        """Report infrastructure failures outside the result taxonomy.

        Example:
            ```python
            # raised by IsolationManager.run when the sandbox cannot start
            ```
        """
        logger.error("sandbox spawn failed for %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check.

        Example:
            ```python
            # GET /health -> {"status": "ok"}
            ```
        """
        return {"status": "ok"}

    # Sync handler: FastAPI runs it in its threadpool, one sandbox per call.
    @app.post("/exec", response_model=ExecResponse)
    def exec_submission(body: ExecRequest) -> ExecResponse:
        """Run one submission.

        Example:
            ```python
            # POST /exec {"code": "<?php echo 1;", "stdin": "", "max_duration_ms": 1000}
            ```
        """
        logger.info("worker/exec max_duration_ms=%d", body.max_duration_ms)
        result = execute(body.code, body.stdin, body.max_duration_ms, engine=runner)
        return ExecResponse(**result.to_message())

    return app


def serve(settings: SandboxSettings | None = None) -> None:
    """Run the HTTP app with uvicorn until interrupted.

    Example:
        ```python
        serve(SandboxSettings(port=9000))
        ```
    """
    import uvicorn

    resolved = settings or SandboxSettings()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("starting golf-sandbox worker on %s:%d", resolved.host, resolved.port)
    uvicorn.run(create_app(settings=resolved), host=resolved.host, port=resolved.port)
