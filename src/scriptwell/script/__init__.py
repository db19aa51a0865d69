"""Script model, parser, loader and templates."""

from scriptwell.script.loader import ScriptLoader
from scriptwell.script.model import (
    Instruction,
    Message,
    Role,
    Script,
    ToolCall,
    ToolErrorInfo,
    ToolResult,
    Turn,
)
from scriptwell.script.parser import parse_file, parse_script
from scriptwell.script.template import render

__all__ = [
    "Instruction",
    "Message",
    "Role",
    "Script",
    "ScriptLoader",
    "ToolCall",
    "ToolErrorInfo",
    "ToolResult",
    "Turn",
    "parse_file",
    "parse_script",
    "render",
]
