"""Tool registry: name -> tool instance for one engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from scriptwell.models.protocol import Tool
from scriptwell.tools.base import BaseTool, ToolContext
from scriptwell.tools.blueprint import DependencyBlueprintTool
from scriptwell.tools.files import EditFileTool, ListFilesTool, ReadFileTool, WriteFileTool
from scriptwell.tools.shell import ShellTool

logger = logging.getLogger(__name__)

BUILTIN_TOOLS: tuple[type[BaseTool], ...] = (
    ReadFileTool,
    WriteFileTool,
    EditFileTool,
    ListFilesTool,
    ShellTool,
    DependencyBlueprintTool,
)


@dataclass(slots=True)
class ToolRegistry:
    """Holds the tool instances an engine may dispatch to.

    Example:
        >>> registry = ToolRegistry.with_builtins(ToolContext(workspace=root))
        >>> tool = registry.get("read_file")
        >>> declarations = registry.to_tools()
    """

    ctx: ToolContext
    tools: dict[str, BaseTool] = field(default_factory=dict)

    @classmethod
    def with_builtins(cls, ctx: ToolContext, *, exclude: tuple[str, ...] = ()) -> ToolRegistry:
        registry = cls(ctx=ctx)
        for tool_cls in BUILTIN_TOOLS:
            if tool_cls.metadata.name not in exclude:
                registry.register(tool_cls)
        return registry

    def register(self, tool_cls: type[BaseTool]) -> BaseTool:
        """Instantiate and register a tool class. Later registrations replace earlier ones."""
        tool = tool_cls(self.ctx)
        if tool.name in self.tools:
            logger.warning("Replacing registered tool %s", tool.name)
        self.tools[tool.name] = tool
        return tool

    def get(self, name: str) -> BaseTool | None:
        return self.tools.get(name)

    def names(self) -> list[str]:
        return sorted(self.tools)

    def to_tools(self) -> tuple[Tool, ...]:
        """Declarations for the model, in registration order."""
        return tuple(tool.to_tool() for tool in self.tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)
