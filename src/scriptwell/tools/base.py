"""Base tool class and metadata for the built-in tools.

- ToolMetadata: frozen dataclass with tool properties
- ToolContext: services injected into every tool instance
- BaseTool: abstract base combining schema, validation and implementation
- tool_metadata: decorator that attaches metadata to tool classes
"""

from __future__ import annotations

import asyncio
import dataclasses
import fnmatch
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from scriptwell.analysis.dependencies import CodeDependencyAnalyzer
from scriptwell.analysis.ignore import IgnoreList
from scriptwell.coherence.manager import FileCoherenceManager
from scriptwell.foundation.errors import ExecutionCancelledError
from scriptwell.foundation.types import ToolsConfig
from scriptwell.models.protocol import Tool
from scriptwell.script.model import ToolResult

ProgressCallback = Callable[[str], None]

DEFAULT_BLOCKED_PATTERNS = frozenset({
    ".env",
    ".env.*",
    "*.pem",
    "*.key",
    "**/.git/**",
    "**/.ssh/**",
})


class PathSecurityError(PermissionError):
    """Raised when a path escapes the workspace or matches a blocked pattern."""


@dataclass(frozen=True, slots=True)
class ToolMetadata:
    """Metadata for a tool class.

    Attributes:
        name: Unique tool name (matches the model's function call name)
        simple_description: One-line description sent to the model
        mutates: Whether the tool writes to the workspace
        usage_guidance: Tips appended to the description
    """

    name: str
    simple_description: str
    mutates: bool = False
    usage_guidance: str | None = None


@dataclass(slots=True)
class ToolContext:
    """Services shared by every tool of one engine.

    Attributes:
        workspace: Root that all tool paths are resolved against
        coherence: Per-path locks and version-checked writes
        analyzer: Dependency matrix kept current as files are written
        config: Tool limits (timeouts, output size, fuzzy threshold)
        ignore: Ignore list for listings and scans
    """

    workspace: Path
    coherence: FileCoherenceManager = field(default_factory=FileCoherenceManager)
    analyzer: CodeDependencyAnalyzer = field(default_factory=CodeDependencyAnalyzer)
    config: ToolsConfig = field(default_factory=ToolsConfig)
    ignore: IgnoreList | None = None

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace).expanduser().resolve()
        if self.ignore is None:
            self.ignore = IgnoreList.for_workspace(self.workspace)


_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def _coerce(name: str, value: Any, expected: str) -> Any:
    """Check ``value`` against a JSON schema type, accepting numeric strings."""
    if expected in ("integer", "number") and isinstance(value, str):
        try:
            return int(value) if expected == "integer" else float(value)
        except ValueError:
            raise ValueError(f"'{name}' must be {expected}, got {value!r}") from None
    if expected in ("integer", "number") and isinstance(value, bool):
        raise TypeError(f"'{name}' must be {expected}, got boolean")
    if expected == "integer" and isinstance(value, float) and value.is_integer():
        return int(value)
    types = _JSON_TYPES.get(expected)
    if types is not None and not isinstance(value, types):
        raise TypeError(f"'{name}' must be {expected}, got {type(value).__name__}")
    if expected == "array":
        return tuple(value)
    return value


class BaseTool(ABC):
    """Base class for tools.

    Subclasses must:
    1. Use the @tool_metadata decorator
    2. Define ``parameters`` (JSON Schema) and ``params_type`` (frozen dataclass)
    3. Implement async ``execute()``

    Arguments are validated once, in ``validate``, into ``params_type``.
    ``targets``/``reads``/``writes`` describe which paths a call touches so the
    scheduler can decide what may run concurrently.

    Example:
        >>> @tool_metadata(name="read_file", simple_description="Read a file")
        ... class ReadFileTool(BaseTool):
        ...     parameters = {
        ...         "type": "object",
        ...         "properties": {"path": {"type": "string"}},
        ...         "required": ["path"],
        ...     }
        ...     params_type = ReadFileParams
        ...
        ...     async def execute(self, params, cancel=None, on_progress=None):
        ...         return ToolResult(content=self.resolve_path(params.path).read_text())
    """

    metadata: ClassVar[ToolMetadata]
    parameters: ClassVar[dict[str, Any]]
    params_type: ClassVar[type]

    def __init__(self, ctx: ToolContext) -> None:
        self.ctx = ctx

    @property
    def name(self) -> str:
        return self.metadata.name

    def to_tool(self) -> Tool:
        """Function declaration sent to the model."""
        description = self.metadata.simple_description
        if self.metadata.usage_guidance:
            description = f"{description}. {self.metadata.usage_guidance}"
        return Tool(name=self.metadata.name, description=description, parameters=self.parameters)

    def validate(self, raw_args: dict[str, Any]) -> Any:
        """Validate raw model arguments into ``params_type``.

        Unknown keys are dropped. Missing optional keys take the dataclass
        defaults.

        Raises:
            ValueError: Missing required argument or bad value.
            TypeError: Wrong argument type.
        """
        if not isinstance(raw_args, dict):
            raise TypeError(f"arguments for {self.name} must be an object")
        properties: dict[str, Any] = self.parameters.get("properties", {})
        missing = [k for k in self.parameters.get("required", ()) if raw_args.get(k) is None]
        if missing:
            raise ValueError(f"missing required argument(s): {', '.join(missing)}")

        accepted = {f.name for f in dataclasses.fields(self.params_type)}
        values: dict[str, Any] = {}
        for key, value in raw_args.items():
            if key not in accepted or value is None:
                continue
            schema = properties.get(key, {})
            value = _coerce(key, value, schema.get("type", ""))
            allowed = schema.get("enum")
            if allowed is not None and value not in allowed:
                raise ValueError(f"'{key}' must be one of {allowed}, got {value!r}")
            values[key] = value
        return self.params_type(**values)

    def targets(self, params: Any) -> tuple[str, ...]:
        """Workspace-relative paths this call touches."""
        path = getattr(params, "path", None)
        return (path,) if path else ()

    def reads(self, params: Any) -> tuple[str, ...]:
        return self.targets(params)

    def writes(self, params: Any) -> tuple[str, ...]:
        return self.targets(params) if self.metadata.mutates else ()

    def resolve_path(self, user_path: str) -> Path:
        """Canonicalize ``user_path`` inside the workspace.

        Raises:
            PathSecurityError: If the path escapes the workspace or is blocked.
        """
        if not user_path or user_path == "/":
            raise PathSecurityError(f"Invalid path: '{user_path}'. Must be a specific file or directory path.")
        workspace = self.ctx.workspace
        requested = (workspace / user_path).resolve()
        try:
            relative = requested.relative_to(workspace)
        except ValueError as err:
            raise PathSecurityError(f"Path escapes workspace: {user_path}") from err

        relative_str = relative.as_posix()
        for pattern in DEFAULT_BLOCKED_PATTERNS:
            if fnmatch.fnmatch(relative_str, pattern) or fnmatch.fnmatch(requested.name, pattern):
                raise PathSecurityError(f"Access blocked by pattern '{pattern}': {user_path}")
        return requested

    def relative(self, path: Path) -> str:
        return path.relative_to(self.ctx.workspace).as_posix()

    @staticmethod
    def check_cancelled(cancel: asyncio.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise ExecutionCancelledError()

    def truncate(self, text: str) -> str:
        limit = self.ctx.config.max_output_chars
        if len(text) <= limit:
            return text
        return f"{text[:limit]}\n... [truncated {len(text) - limit} characters]"

    @abstractmethod
    async def execute(
        self,
        params: Any,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        """Run the tool with validated params.

        Exceptions are mapped to ToolResult errors by the caller.
        """


def tool_metadata(
    name: str,
    simple_description: str,
    mutates: bool = False,
    usage_guidance: str | None = None,
) -> Callable[[type[BaseTool]], type[BaseTool]]:
    """Decorator to attach metadata to tool classes.

    Example:
        >>> @tool_metadata(
        ...     name="edit_file",
        ...     simple_description="Replace text in a file",
        ...     mutates=True,
        ...     usage_guidance="Prefer edit_file over write_file for existing files.",
        ... )
        ... class EditFileTool(BaseTool):
        ...     ...
    """

    def decorator(cls: type[BaseTool]) -> type[BaseTool]:
        cls.metadata = ToolMetadata(
            name=name,
            simple_description=simple_description,
            mutates=mutates,
            usage_guidance=usage_guidance,
        )
        return cls

    return decorator
