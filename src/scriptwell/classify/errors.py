"""Error classification for exceptions and command output.

``ErrorClassifier.classify`` maps any failure onto the shared ErrorKind
taxonomy and decides whether the API layer may retry it.
``classify_output`` reads shell output and names the kind of problem with a
suggested fix the model can act on.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from scriptwell.foundation.errors import ErrorKind, ScriptwellError

logger = logging.getLogger(__name__)

_NEVER_RETRIED = frozenset({ErrorKind.CANCELLED, ErrorKind.SCRIPT_STRUCTURE, ErrorKind.KEYS_EXHAUSTED})

_USER_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Check your network connection and try again.",
    ErrorKind.RATE_LIMITED: "Wait a moment; the request will be retried.",
    ErrorKind.KEYS_EXHAUSTED: "All API keys are rate limited. Wait and retry, or add more keys.",
    ErrorKind.MALFORMED_RESPONSE: "The model returned an unusable response. Try again or switch models.",
    ErrorKind.TOOL_EXECUTION: "A tool failed; the model was told and can try another approach.",
    ErrorKind.FILE_NOT_FOUND: "Check that the file path exists in the workspace.",
    ErrorKind.INVALID_PARAMETERS: "The tool was called with invalid arguments.",
    ErrorKind.CANCELLED: "The operation was cancelled.",
    ErrorKind.TIMEOUT: "The operation timed out. Try a smaller task.",
    ErrorKind.SCRIPT_STRUCTURE: "Fix the script file and run it again.",
}


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    """A failure mapped onto the ErrorKind taxonomy."""

    kind: ErrorKind
    message: str
    retryable: bool
    user_action: str
    error_type: str
    """Exception class name, or "message" for plain text."""


class ErrorClassifier:
    """Maps exceptions (or error text) to an ErrorKind.

    Example:
        >>> ErrorClassifier().classify(FileNotFoundError("x.py")).kind
        <ErrorKind.FILE_NOT_FOUND: 'file_not_found'>
    """

    def classify(self, error: BaseException | str) -> ClassifiedError:
        if isinstance(error, str):
            kind = self._kind_from_text(error)
            message, error_type = error, "message"
        else:
            kind = self._kind_from_exception(error)
            message, error_type = str(error) or type(error).__name__, type(error).__name__
        return ClassifiedError(
            kind=kind,
            message=message,
            retryable=kind.is_transient and kind not in _NEVER_RETRIED,
            user_action=_USER_ACTIONS[kind],
            error_type=error_type,
        )

    def _kind_from_exception(self, e: BaseException) -> ErrorKind:
        if isinstance(e, ScriptwellError):
            return e.kind
        if isinstance(e, asyncio.CancelledError):
            return ErrorKind.CANCELLED
        if isinstance(e, (TimeoutError, httpx.TimeoutException)):
            return ErrorKind.TIMEOUT
        if isinstance(e, httpx.HTTPStatusError):
            status = e.response.status_code
            if status == 429:
                return ErrorKind.RATE_LIMITED
            if status >= 500:
                return ErrorKind.NETWORK
            return ErrorKind.MALFORMED_RESPONSE
        if isinstance(e, (httpx.TransportError, ConnectionError)):
            return ErrorKind.NETWORK
        if isinstance(e, FileNotFoundError):
            return ErrorKind.FILE_NOT_FOUND
        if isinstance(e, (ValueError, TypeError, PermissionError)):
            return ErrorKind.INVALID_PARAMETERS
        return self._kind_from_text(str(e))

    @staticmethod
    def _kind_from_text(text: str) -> ErrorKind:
        lower = text.lower()
        if "rate limit" in lower or "too many requests" in lower or "429" in lower:
            return ErrorKind.RATE_LIMITED
        if "timed out" in lower or "timeout" in lower:
            return ErrorKind.TIMEOUT
        if any(word in lower for word in ("connection", "network", "dns", "socket", "refused", "unreachable")):
            return ErrorKind.NETWORK
        if "no such file" in lower or "not found" in lower and "file" in lower:
            return ErrorKind.FILE_NOT_FOUND
        if "cancelled" in lower or "canceled" in lower:
            return ErrorKind.CANCELLED
        return ErrorKind.TOOL_EXECUTION


# ═══════════════════════════════════════════════════════════════════════════════
# Command Output
# ═══════════════════════════════════════════════════════════════════════════════


class OutputErrorType(Enum):
    """Problem categories found in shell/tool output."""

    COMMAND_NOT_FOUND = "command_not_found"
    CODE_ERROR = "code_error"
    DEPENDENCY_MISSING = "dependency_missing"
    PERMISSION_ERROR = "permission_error"
    CONFIGURATION_ERROR = "configuration_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class OutputClassification:
    error_type: OutputErrorType
    indicators: tuple[str, ...]
    suggested_fix: str | None


_FAILURE_KEYWORDS: tuple[str, ...] = (
    "error", "failed", "failure", "fatal", "exception", "traceback",
    "cannot", "can't", "unable", "not found", "permission denied",
    "no such file", "segmentation fault", "exit code", "exit status",
    "is not defined", "is not a function", "unexpected token",
    "assertion failed", "assertionerror", "npm err",
)

_TOOLS = ("node", "npm", "npx", "yarn", "python", "python3", "pip", "go", "cargo", "java", "javac", "mvn", "gradle", "gcc", "make")

_RULES: tuple[tuple[OutputErrorType, tuple[str, ...], str], ...] = (
    (
        OutputErrorType.COMMAND_NOT_FOUND,
        ("command not found", "is not recognized as an internal or external command", "executable file not found"),
        "Install the missing program or check that it is on PATH.",
    ),
    (
        OutputErrorType.DEPENDENCY_MISSING,
        (
            "no module named", "modulenotfounderror", "cannot find module", "module not found",
            "package not found", "missing dependency", "cannot resolve", "could not resolve",
        ),
        "Install the missing dependency (npm install / pip install) and run again.",
    ),
    (
        OutputErrorType.CODE_ERROR,
        (
            "syntaxerror", "syntax error", "parse error", "typeerror", "type error",
            "referenceerror", "reference error", "nameerror", "attributeerror",
            "importerror", "is not defined", "is not a function", "undefined",
            "traceback", "stack trace", "uncaught exception", "unhandled exception",
            "runtimeerror", "runtime error", "nullpointer", "null pointer",
            "cannot read propert", "unexpected token", "indentationerror",
        ),
        "Read the reported file and line, fix the code, then run the command again.",
    ),
    (
        OutputErrorType.PERMISSION_ERROR,
        ("permission denied", "permissionerror", "access denied", "forbidden", "eacces", "read-only"),
        "Check file permissions or write to a location inside the workspace.",
    ),
    (
        OutputErrorType.NETWORK_ERROR,
        (
            "connection refused", "connection reset", "econnrefused", "econnreset",
            "timed out", "timeout", "network error", "getaddrinfo", "dns",
        ),
        "Check that the service is running and reachable, then retry.",
    ),
    (
        OutputErrorType.CONFIGURATION_ERROR,
        ("ejsonparse", "json parse", "configuration", "config error", "invalid option", "eaddrinuse"),
        "Check the project configuration files (package.json, settings) for mistakes.",
    ),
)


def has_failure(output: str) -> bool:
    """Whether output contains any failure keyword."""
    lower = output.lower()
    return any(keyword in lower for keyword in _FAILURE_KEYWORDS)


def classify_output(output: str, command: str = "") -> OutputClassification:
    """Name the kind of problem in command output."""
    combined = f"{output}\n{command}".lower()
    for error_type, patterns, fix in _RULES:
        hits = tuple(p for p in patterns if p in combined)
        if hits:
            return OutputClassification(error_type, hits, fix)
    if "not found" in combined and any(tool in combined.split() for tool in _TOOLS):
        return OutputClassification(
            OutputErrorType.COMMAND_NOT_FOUND,
            ("not found",),
            "Install the missing program or check that it is on PATH.",
        )
    return OutputClassification(OutputErrorType.UNKNOWN, (), None)
