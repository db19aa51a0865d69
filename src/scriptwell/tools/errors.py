"""Map tool exceptions to ToolResult errors with recovery hints.

Error responses steer the model toward a better next call: each result
carries the failure kind (as decided by ErrorClassifier) and a concrete
suggestion.
"""

from scriptwell.classify.errors import ErrorClassifier
from scriptwell.foundation.errors import ErrorKind, ScriptwellError
from scriptwell.script.model import ToolResult

_classifier = ErrorClassifier()

_FIXES: dict[ErrorKind, str] = {
    ErrorKind.FILE_NOT_FOUND: (
        "File not found. Try:\n"
        "1. Use list_files to see available files in the directory\n"
        "2. Check if path is relative to the workspace root\n"
        "3. Use write_file to create new files"
    ),
    ErrorKind.TIMEOUT: (
        "Operation timed out. Try:\n"
        "1. Break into smaller operations\n"
        "2. Avoid commands that wait for input or run forever"
    ),
    ErrorKind.RATE_LIMITED: "Rate limited. Wait before calling this tool again.",
    ErrorKind.NETWORK: "Network error. This is usually transient; try the call again.",
}


def _invalid_parameters_fix(e: BaseException, tool_name: str) -> str:
    if isinstance(e, PermissionError):
        return (
            "Permission denied. This path may be:\n"
            "- Outside the workspace directory\n"
            "- A protected file\n"
            "- Blocked by security policy"
        )
    if isinstance(e, TypeError):
        return (
            f"Type error in {tool_name} arguments. Try:\n"
            "1. Check parameter types match expected types\n"
            "2. Ensure strings are quoted, numbers are not"
        )
    return (
        f"Invalid arguments for {tool_name}. Try:\n"
        "1. Check the expected parameter types\n"
        "2. Ensure required parameters are provided\n"
        "3. Verify values are within valid ranges"
    )


def tool_error_from_exception(e: BaseException, tool_name: str) -> ToolResult:
    """Create an error ToolResult from an exception raised by a tool.

    Args:
        e: The exception that occurred
        tool_name: Name of the tool that failed

    Returns:
        ToolResult with ``error`` set
    """
    if isinstance(e, ScriptwellError):
        return ToolResult.failure(e.message, e.kind, "\n".join(e.recovery_hints) or None)

    classified = _classifier.classify(e)
    kind = classified.kind

    if kind is ErrorKind.CANCELLED:
        return ToolResult.failure("Operation was cancelled", kind)
    if kind is ErrorKind.TIMEOUT:
        return ToolResult.failure(f"Tool {tool_name} timed out", kind, _FIXES[kind])
    if kind is ErrorKind.INVALID_PARAMETERS:
        return ToolResult.failure(classified.message, kind, _invalid_parameters_fix(e, tool_name))
    if kind in _FIXES:
        return ToolResult.failure(classified.message, kind, _FIXES[kind])

    return ToolResult.failure(
        f"{classified.error_type}: {e}",
        ErrorKind.TOOL_EXECUTION,
        f"Tool '{tool_name}' failed unexpectedly.\n"
        "Consider trying with different parameters or an alternative approach.",
    )


def unknown_tool_result(tool_name: str, available: list[str]) -> ToolResult:
    return ToolResult.failure(
        f"Unknown tool '{tool_name}'",
        ErrorKind.INVALID_PARAMETERS,
        f"Available tools: {', '.join(sorted(available))}",
    )
