from __future__ import annotations

import argparse
import json
import sys
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter

from golf_sandbox import ExecutionResult, SandboxSettings, SandboxSpawnError, execute
from golf_sandbox.server import serve

_CONSOLE = Console(no_color=False)

_STATUS_STYLES = {
    "success": "bold green",
    "runtime_error": "bold red",
    "timeout": "bold yellow",
}


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m gsb")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for running submissions and the worker service.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m gsb",
        description=(
            "golf-sandbox CLI\n"
            "Run untrusted code-golf submissions in a throwaway sandbox process,\n"
            "or serve the POST /exec worker endpoint."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m gsb run answer.php\n"
            "  python -m gsb run answer.php --stdin-file input.txt --max-duration-ms 2000\n"
            "  echo '<?php echo 1;' | python -m gsb run - --json\n"
            "  python -m gsb serve --port 8080"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--settings",
        help=(
            "Path to a settings TOML file.\n"
            "Defaults to the bundled default_settings.toml."
        ),
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Run one submission and show its classified result.",
        description=(
            "Run one submission in a fresh sandbox process.\n"
            "Exit status is 0 for success and 1 for runtime_error or timeout."
        ),
        epilog=(
            "Examples:\n"
            "  python -m gsb run answer.php\n"
            "  python -m gsb run - --json < answer.php"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("source", help="Source file to run, or '-' to read it from stdin.")
    run_cmd.add_argument(
        "--stdin-file",
        help="File whose contents are fed to the submission's stdin (default: empty).",
    )
    run_cmd.add_argument(
        "--max-duration-ms",
        type=int,
        help="Wall-clock budget in milliseconds (default: from settings).",
    )
    run_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the raw {status, stdout, stderr} object instead of panels.",
    )

    serve_cmd = sub.add_parser(
        "serve",
        help="Serve the HTTP worker endpoint.",
        description=(
            "Serve POST /exec and GET /health with uvicorn.\n"
            "Host and port default to the [server] settings table."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    serve_cmd.add_argument("--host", help="Interface to bind.")
    serve_cmd.add_argument("--port", type=int, help="Port to bind.")

    return parser


def _load_settings(args: argparse.Namespace) -> SandboxSettings:
    """Resolve settings from the global `--settings` flag.

    Example:
        ```python
        settings = _load_settings(args)
        ```
    """
    if args.settings:
        return SandboxSettings.from_file(args.settings)
    return SandboxSettings()


def _read_text(path: str) -> str:
    """Read a source or stdin file, where '-' means this process's stdin.

    Example:
        ```python
        code = _read_text("answer.php")
        ```
    """
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _print_result(result: ExecutionResult) -> None:
    """Render a result as a status table plus stream panels.

    Example:
        ```python
        _print_result(ExecutionResult(status="success", stdout="1", stderr=""))
        ```
    """
    table = Table(title="Execution Result")
    table.add_column("Status", style=_STATUS_STYLES.get(result.status, "bold"))
    table.add_column("Stdout bytes", justify="right")
    table.add_column("Stderr bytes", justify="right")
    table.add_row(
        result.status,
        str(len(result.stdout.encode("utf-8"))),
        str(len(result.stderr.encode("utf-8"))),
    )
    _CONSOLE.print(table)
    if result.stdout:
        _CONSOLE.print(Panel(Text(result.stdout), title="stdout", border_style="cyan"))
    if result.stderr:
        _CONSOLE.print(Panel(Text(result.stderr), title="stderr", border_style="red"))


def _run(args: argparse.Namespace, settings: SandboxSettings) -> int:
    """Handle `gsb run`.

    Example:
        ```python
        code = _run(args, SandboxSettings())
        ```
    """
    code = _read_text(args.source)
    stdin = _read_text(args.stdin_file) if args.stdin_file else ""
    max_duration_ms = args.max_duration_ms or settings.default_max_duration_ms
    try:
        result = execute(code, stdin, max_duration_ms, settings=settings)
    except SandboxSpawnError as exc:
        _CONSOLE.print(Panel.fit(f"[bold red]Sandbox failed to start:[/bold red] {exc}", border_style="red"))
        return 2
    if args.json:
        payload: dict[str, Any] = result.to_message()
        _CONSOLE.print_json(json.dumps(payload))
    else:
        _print_result(result)
    return 0 if result.status == "success" else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `gsb` CLI command handler.

    Example:
        ```python
        code = main(["run", "answer.php", "--max-duration-ms", "1000"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = _load_settings(args)

    if args.command == "run":
        return _run(args, settings)
    if args.command == "serve":
        if args.host:
            settings.host = args.host
        if args.port:
            settings.port = args.port
        serve(settings)
        return 0

    parser.error("Unhandled command")
    return 2
