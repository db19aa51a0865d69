"""Scriptwell Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- An ErrorKind taxonomy shared by tools, the API layer and the engine
- User-friendly messages and recovery hints
- Context for debugging
"""

from enum import Enum, IntEnum
from typing import Any


class ErrorKind(Enum):
    """Failure taxonomy used to pick retry vs. surface-to-user behavior."""

    NETWORK = "network"
    """Transport failure or 5xx from the provider. Retried with backoff."""

    RATE_LIMITED = "rate_limited"
    """Provider rate limit (HTTP 429). Retried with backoff."""

    KEYS_EXHAUSTED = "keys_exhausted"
    """Every configured API key is rate limited. User is offered wait-and-retry."""

    MALFORMED_RESPONSE = "malformed_response"
    """Response could not be parsed into text or tool calls."""

    TOOL_EXECUTION = "tool_execution"
    """A tool raised while running. Returned to the model."""

    FILE_NOT_FOUND = "file_not_found"
    """A tool targeted a missing file. Returned to the model."""

    INVALID_PARAMETERS = "invalid_parameters"
    """Tool arguments failed schema validation or the tool is unknown."""

    CANCELLED = "cancelled"
    """Cancellation signal observed. Never retried."""

    TIMEOUT = "timeout"
    """Hard wall-clock timeout hit."""

    SCRIPT_STRUCTURE = "script_structure"
    """Malformed script or runaway control flow. Fatal for the run."""

    @property
    def is_transient(self) -> bool:
        """Whether the API layer retries this kind automatically."""
        return self in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT)


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Model/Provider errors
        2xxx - Script errors
        3xxx - Tool errors
        5xxx - Configuration errors
        6xxx - Runtime errors
        7xxx - Network/IO errors
    """

    # 1xxx - Model/Provider Errors
    MODEL_RATE_LIMITED = 1003
    MODEL_TIMEOUT = 1005
    MODEL_API_ERROR = 1006
    MODEL_KEYS_EXHAUSTED = 1007
    MODEL_RESPONSE_INVALID = 1010

    # 2xxx - Script Errors
    SCRIPT_NOT_FOUND = 2001
    SCRIPT_PARSE_ERROR = 2002
    SCRIPT_STRUCTURE_INVALID = 2003
    SCRIPT_CHAIN_NOT_FOUND = 2004

    # 3xxx - Tool Errors
    TOOL_NOT_FOUND = 3001
    TOOL_EXECUTION_FAILED = 3003
    TOOL_TIMEOUT = 3004
    TOOL_INVALID_ARGUMENTS = 3005

    # 5xxx - Configuration Errors
    CONFIG_MISSING = 5001
    CONFIG_INVALID = 5002

    # 6xxx - Runtime Errors
    RUNTIME_BUDGET_EXHAUSTED = 6001
    RUNTIME_CANCELLED = 6002
    RUNTIME_UNEXPECTED = 6003

    # 7xxx - Network/IO Errors
    NETWORK_UNREACHABLE = 7001
    FILE_NOT_FOUND = 7003
    FILE_WRITE_FAILED = 7005

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "model",
            2: "script",
            3: "tool",
            5: "config",
            6: "runtime",
            7: "io",
        }.get(prefix, "unknown")

    @property
    def is_recoverable(self) -> bool:
        """Whether this error type is typically recoverable."""
        non_recoverable = {
            ErrorCode.SCRIPT_STRUCTURE_INVALID,
            ErrorCode.SCRIPT_PARSE_ERROR,
            ErrorCode.CONFIG_MISSING,
            ErrorCode.CONFIG_INVALID,
            ErrorCode.RUNTIME_CANCELLED,
        }
        return self not in non_recoverable


ERROR_MESSAGES: dict[ErrorCode, str] = {
    # Model errors
    ErrorCode.MODEL_RATE_LIMITED: "Rate limited by {provider}. Retry after {retry_after}s.",
    ErrorCode.MODEL_TIMEOUT: "Request to {provider} timed out after {timeout}s.",
    ErrorCode.MODEL_API_ERROR: "API error from {provider}: {detail}",
    ErrorCode.MODEL_KEYS_EXHAUSTED: "All API keys for {provider} are rate limited.",
    ErrorCode.MODEL_RESPONSE_INVALID: "Invalid response from model: {detail}",

    # Script errors
    ErrorCode.SCRIPT_NOT_FOUND: "Script not found: {path}",
    ErrorCode.SCRIPT_PARSE_ERROR: "Failed to parse script '{path}': {detail}",
    ErrorCode.SCRIPT_STRUCTURE_INVALID: "Invalid script structure: {detail}",
    ErrorCode.SCRIPT_CHAIN_NOT_FOUND: "Chained script '{name}' not found next to '{path}'.",

    # Tool errors
    ErrorCode.TOOL_NOT_FOUND: "Tool '{tool}' not registered.",
    ErrorCode.TOOL_EXECUTION_FAILED: "Tool '{tool}' failed: {detail}",
    ErrorCode.TOOL_TIMEOUT: "Tool '{tool}' timed out after {timeout}s.",
    ErrorCode.TOOL_INVALID_ARGUMENTS: "Invalid arguments for tool '{tool}': {detail}",

    # Config errors
    ErrorCode.CONFIG_MISSING: "Required configuration '{key}' not found.",
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",

    # Runtime errors
    ErrorCode.RUNTIME_BUDGET_EXHAUSTED: "Execution incomplete: {detail}",
    ErrorCode.RUNTIME_CANCELLED: "Execution cancelled.",
    ErrorCode.RUNTIME_UNEXPECTED: "Unexpected error during execution: {detail}",

    # IO errors
    ErrorCode.NETWORK_UNREACHABLE: "Cannot reach {host}: {detail}",
    ErrorCode.FILE_NOT_FOUND: "File not found: {path}",
    ErrorCode.FILE_WRITE_FAILED: "Failed to write file: {path}",
}


RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.MODEL_RATE_LIMITED: [
        "Wait {retry_after} seconds before retrying",
        "Add more API keys to model.api_keys",
    ],
    ErrorCode.MODEL_KEYS_EXHAUSTED: [
        "Wait {retry_after} seconds, then use the wait-and-retry action",
        "Add more API keys to model.api_keys",
    ],
    ErrorCode.SCRIPT_STRUCTURE_INVALID: [
        "Check the turn separators (--- or ***) and role prefixes",
        "Make sure every $if/$while block has then:/else:/do: sections",
    ],
    ErrorCode.RUNTIME_BUDGET_EXHAUSTED: [
        "Raise engine.max_turns or engine.max_tool_iterations",
        "Split the task into smaller scripts",
    ],
    ErrorCode.CONFIG_MISSING: [
        "Set the value in .scriptwell/config.yaml",
        "Export the matching SCRIPTWELL_* environment variable",
    ],
}


class ScriptwellError(Exception):
    """Base error type for all Scriptwell errors.

    Example:
        >>> err = ScriptwellError(
        ...     code=ErrorCode.SCRIPT_NOT_FOUND,
        ...     context={"path": "fix.ai.yaml"},
        ... )
        >>> print(err)
        [SW-2001] Script not found: fix.ai.yaml
    """

    kind: ErrorKind = ErrorKind.TOOL_EXECUTION

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                formatted.append(hint)
        return formatted

    @property
    def is_recoverable(self) -> bool:
        return self.code.is_recoverable

    @property
    def category(self) -> str:
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'SW-2001')."""
        return f"SW-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging and event payloads."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "kind": self.kind.value,
            "category": self.category,
            "message": self.message,
            "recoverable": self.is_recoverable,
            "recovery_hints": self.recovery_hints,
            "context": self.context,
        }

    def for_llm(self) -> str:
        """Format error for model consumption."""
        parts = [
            f"ERROR {self.error_id}: {self.message}",
            f"Category: {self.category}",
            f"Recoverable: {self.is_recoverable}",
        ]
        if self.recovery_hints:
            parts.append("Recovery options:")
            for i, hint in enumerate(self.recovery_hints, 1):
                parts.append(f"  {i}. {hint}")
        return "\n".join(parts)


class ScriptStructureError(ScriptwellError):
    """Malformed script, unknown instruction, or runaway control flow."""

    kind = ErrorKind.SCRIPT_STRUCTURE

    def __init__(self, detail: str, path: str | None = None, cause: Exception | None = None):
        code = ErrorCode.SCRIPT_PARSE_ERROR if path else ErrorCode.SCRIPT_STRUCTURE_INVALID
        super().__init__(code, {"detail": detail, "path": path or ""}, cause)


class BudgetExhaustedError(ScriptwellError):
    """Turn or tool-iteration budget ran out before a final answer."""

    kind = ErrorKind.SCRIPT_STRUCTURE

    def __init__(self, detail: str):
        super().__init__(ErrorCode.RUNTIME_BUDGET_EXHAUSTED, {"detail": detail})


class ApiError(ScriptwellError):
    """Base for failures raised by the model API layer."""

    kind = ErrorKind.NETWORK

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "model",
        status_code: int | None = None,
        code: ErrorCode = ErrorCode.MODEL_API_ERROR,
        cause: Exception | None = None,
        **extra: Any,
    ):
        self.status_code = status_code
        super().__init__(code, {"provider": provider, "detail": detail, **extra}, cause)

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient


class NetworkError(ApiError):
    kind = ErrorKind.NETWORK


class ApiTimeoutError(ApiError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, detail: str, *, provider: str = "model", timeout: float = 0.0, **kwargs: Any):
        super().__init__(detail, provider=provider, code=ErrorCode.MODEL_TIMEOUT, timeout=timeout, **kwargs)


class RateLimitedError(ApiError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, detail: str, *, provider: str = "model", retry_after: float = 0.0, **kwargs: Any):
        self.retry_after = retry_after
        super().__init__(
            detail,
            provider=provider,
            code=ErrorCode.MODEL_RATE_LIMITED,
            retry_after=retry_after,
            **kwargs,
        )


class KeysExhaustedError(ApiError):
    """Every API key in the pool is cooling down."""

    kind = ErrorKind.KEYS_EXHAUSTED

    def __init__(self, *, provider: str = "model", retry_after: float = 0.0, **kwargs: Any):
        self.retry_after = retry_after
        super().__init__(
            "all keys rate limited",
            provider=provider,
            code=ErrorCode.MODEL_KEYS_EXHAUSTED,
            retry_after=round(retry_after, 1),
            **kwargs,
        )


class MalformedResponseError(ApiError):
    kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, detail: str, **kwargs: Any):
        super().__init__(detail, code=ErrorCode.MODEL_RESPONSE_INVALID, **kwargs)


class ApiRequestError(ApiError):
    """Request rejected by the provider (4xx other than 429). Not retried."""

    kind = ErrorKind.MALFORMED_RESPONSE


class ExecutionCancelledError(ScriptwellError):
    kind = ErrorKind.CANCELLED

    def __init__(self) -> None:
        super().__init__(ErrorCode.RUNTIME_CANCELLED)


class UnexpectedError(ScriptwellError):
    """Wraps an exception that is not a ScriptwellError so it can end a run cleanly."""

    def __init__(self, cause: Exception, kind: ErrorKind = ErrorKind.TOOL_EXECUTION) -> None:
        self.kind = kind
        super().__init__(
            ErrorCode.RUNTIME_UNEXPECTED,
            context={"detail": f"{type(cause).__name__}: {cause}"},
            cause=cause,
        )


def config_error(code: ErrorCode, key: str, detail: str = "") -> ScriptwellError:
    """Create a configuration error."""
    return ScriptwellError(code=code, context={"key": key, "detail": detail})
