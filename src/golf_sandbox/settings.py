from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .interpreter import DEFAULT_INTERPRETER


def _default_settings_path() -> Path:
    """Return bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> tuple[dict[str, Any], dict[str, Any]]:
    """Read a settings TOML file and return its sandbox and server tables.

    Example:
        ```python
        sandbox, server = _read_settings_toml(Path("/etc/golf-sandbox.toml"))
        ```
    """
    if not path.exists():
        return (
            {
                "interpreter": DEFAULT_INTERPRETER,
                "interpreter_options": {"binary": "php"},
                "memory_limit_mb": 1024,
                "default_max_duration_ms": 3000,
            },
            {"host": "0.0.0.0", "port": 8080},
        )
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    sandbox = raw.get("sandbox", {key: value for key, value in raw.items() if key != "server"})
    server = raw.get("server", {})
    if not isinstance(sandbox, dict):
        raise ValueError("'sandbox' settings must be a TOML table")
    if not isinstance(server, dict):
        raise ValueError("'server' settings must be a TOML table")
    return sandbox, server


def _int_field(value: Any, field_name: str) -> int:
    """Validate an integer setting.

    Example:
        ```python
        port = _int_field(8080, "port")
        ```
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{field_name}' must be an integer")
    return value


_DEFAULT_SANDBOX_RAW, _DEFAULT_SERVER_RAW = _read_settings_toml(_default_settings_path())

DEFAULT_MEMORY_LIMIT_MB = int(_DEFAULT_SANDBOX_RAW.get("memory_limit_mb", 1024))
DEFAULT_MAX_DURATION_MS = int(_DEFAULT_SANDBOX_RAW.get("default_max_duration_ms", 3000))
DEFAULT_INTERPRETER_OPTIONS: dict[str, Any] = dict(
    _DEFAULT_SANDBOX_RAW.get("interpreter_options", {"binary": "php"})
)
DEFAULT_HOST = str(_DEFAULT_SERVER_RAW.get("host", "0.0.0.0"))
DEFAULT_PORT = int(_DEFAULT_SERVER_RAW.get("port", 8080))


@dataclass(slots=True)
class SandboxSettings:
    """Deployment settings for the execution worker.

    Example:
        ```python
        settings = SandboxSettings(memory_limit_mb=512, port=9000)
        ```
    """

    interpreter: str = str(_DEFAULT_SANDBOX_RAW.get("interpreter", DEFAULT_INTERPRETER))
    interpreter_options: dict[str, Any] = field(
        default_factory=lambda: DEFAULT_INTERPRETER_OPTIONS.copy()
    )
    memory_limit_mb: int = DEFAULT_MEMORY_LIMIT_MB
    default_max_duration_ms: int = DEFAULT_MAX_DURATION_MS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate limits after dataclass initialization.

        Example:
            ```python
            SandboxSettings(memory_limit_mb=0)
            ```
        """
        if ":" not in self.interpreter:
            raise ValueError("'interpreter' must look like 'module:attribute'")
        if self.memory_limit_mb < 0:
            raise ValueError("'memory_limit_mb' must be >= 0")
        if self.default_max_duration_ms <= 0:
            raise ValueError("'default_max_duration_ms' must be positive")
        if not 0 < self.port < 65536:
            raise ValueError("'port' must be between 1 and 65535")

    @classmethod
    def from_file(cls, config_path: str) -> "SandboxSettings":
        """Create settings from a TOML file.

        Example:
            ```python
            settings = SandboxSettings.from_file("/etc/golf-sandbox.toml")
            ```
        """
        sandbox, server = _read_settings_toml(Path(config_path))
        options = sandbox.get("interpreter_options", DEFAULT_INTERPRETER_OPTIONS)
        if not isinstance(options, dict):
            raise ValueError("'interpreter_options' must be a TOML table")
        return cls(
            interpreter=str(sandbox.get("interpreter", DEFAULT_INTERPRETER)),
            interpreter_options=dict(options),
            memory_limit_mb=_int_field(
                sandbox.get("memory_limit_mb", DEFAULT_MEMORY_LIMIT_MB), "memory_limit_mb"
            ),
            default_max_duration_ms=_int_field(
                sandbox.get("default_max_duration_ms", DEFAULT_MAX_DURATION_MS),
                "default_max_duration_ms",
            ),
            host=str(server.get("host", DEFAULT_HOST)),
            port=_int_field(server.get("port", DEFAULT_PORT), "port"),
            config_path=config_path,
        )
