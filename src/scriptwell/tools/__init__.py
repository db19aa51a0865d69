"""Built-in tools, the tool registry and the parallel scheduler."""

from scriptwell.tools.base import BaseTool, PathSecurityError, ToolContext, ToolMetadata, tool_metadata
from scriptwell.tools.blueprint import DependencyBlueprintTool
from scriptwell.tools.errors import tool_error_from_exception
from scriptwell.tools.files import EditFileTool, ListFilesTool, ReadFileTool, WriteFileTool
from scriptwell.tools.registry import BUILTIN_TOOLS, ToolRegistry
from scriptwell.tools.scheduler import DispatchedCall, ToolScheduler
from scriptwell.tools.shell import ShellTool

__all__ = [
    "BUILTIN_TOOLS",
    "BaseTool",
    "DependencyBlueprintTool",
    "DispatchedCall",
    "EditFileTool",
    "ListFilesTool",
    "PathSecurityError",
    "ReadFileTool",
    "ShellTool",
    "ToolContext",
    "ToolMetadata",
    "ToolRegistry",
    "ToolScheduler",
    "WriteFileTool",
    "tool_error_from_exception",
]
