"""CLI error output, human-readable or JSON."""

import json
import sys
from typing import NoReturn

from rich.console import Console
from rich.text import Text

from scriptwell.foundation.errors import ErrorCode, ScriptwellError

_ICONS = {
    "model": "🤖",
    "script": "📜",
    "tool": "🔧",
    "config": "⚙️",
    "runtime": "⚡",
    "io": "📁",
}


def handle_error(error: ScriptwellError | Exception, json_output: bool = False) -> NoReturn:
    """Print ``error`` and exit with status 1.

    Errors that are not ScriptwellErrors are wrapped as TOOL_EXECUTION_FAILED
    so the output shape is the same either way.
    """
    if not isinstance(error, ScriptwellError):
        error = ScriptwellError(
            code=ErrorCode.TOOL_EXECUTION_FAILED,
            context={"tool": "scriptwell", "detail": str(error)},
            cause=error,
        )

    if json_output:
        error_dict = error.to_dict()
        if error.cause:
            error_dict["cause"] = str(error.cause)
        print(json.dumps(error_dict), file=sys.stderr)
        sys.exit(1)

    print_error(error)
    sys.exit(1)


def print_error(error: ScriptwellError, console: Console | None = None) -> None:
    console = console or Console(stderr=True)
    header = Text()
    header.append(f"{_ICONS.get(error.category, '❌')} ", style="bold")
    header.append(error.error_id, style="bold red")
    header.append(f" {error.message}")
    console.print(header)
    for hint in error.recovery_hints:
        console.print(f"  [dim]•[/dim] {hint}")
