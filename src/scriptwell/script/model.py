"""Immutable script data model.

A script is an ordered list of turns. Each turn holds messages (which may
contain one AI placeholder), post-turn instructions and an optional chain
directive. Tool calls and their results live here too because they are
appended to the same conversation history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scriptwell.foundation.errors import ErrorKind


class Role(Enum):
    """Message roles accepted in scripts."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str) -> Role | None:
        """Parse a role name, accepting common aliases. Returns None if unknown."""
        aliases = {"ai": "assistant", "model": "assistant", "human": "user"}
        normalized = aliases.get(value.lower(), value.lower())
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass(frozen=True, slots=True)
class Message:
    """One message of a turn, possibly holding an AI placeholder."""

    role: Role
    """Who speaks."""

    content: str
    """Raw content with {{var}} templates and at most one [[VAR]] placeholder."""

    placeholder_var: str | None = None
    """Variable that receives the model's answer when a placeholder is present."""

    placeholder_params: dict[str, Any] = field(default_factory=dict)
    """Parameters written as [[VAR:key=value]]."""

    @property
    def has_placeholder(self) -> bool:
        return self.placeholder_var is not None


@dataclass(frozen=True, slots=True)
class Instruction:
    """A post-turn directive such as $echo, $set, $print, $if or $while.

    Control blocks keep their nested instructions in ``body`` (then/do) and
    ``orelse`` (else).
    """

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    raw: str | None = None
    condition: str | None = None
    body: tuple[Instruction, ...] = ()
    orelse: tuple[Instruction, ...] = ()

    @property
    def is_block(self) -> bool:
        return self.name in ("if", "while")


@dataclass(frozen=True, slots=True)
class Turn:
    """One round of message resolution, model call and instructions."""

    messages: tuple[Message, ...] = ()
    instructions: tuple[Instruction, ...] = ()
    chain_to: str | None = None
    chain_params: dict[str, Any] = field(default_factory=dict)

    @property
    def has_placeholder(self) -> bool:
        return any(m.has_placeholder for m in self.messages)


@dataclass(frozen=True, slots=True)
class Script:
    """A loaded script. Never mutated by the engine."""

    parameters: dict[str, Any] = field(default_factory=dict)
    """Default variable values from front matter."""

    turns: tuple[Turn, ...] = ()
    """Turns in execution order."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Front matter keys with no dedicated field."""

    source_path: str | None = None
    """Canonical path the script was loaded from, used for chain resolution."""

    input: tuple[str, ...] = ()
    """Declared input variable names."""

    auto_run_model: bool = True
    """Call the model for turns that have a user message but no placeholder."""

    @property
    def name(self) -> str:
        if not self.source_path:
            return "<inline>"
        base = self.source_path.rsplit("/", 1)[-1]
        return base.removesuffix(".ai.yaml")


# =============================================================================
# Tool calls
# =============================================================================


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass(frozen=True, slots=True)
class ToolErrorInfo:
    """Why a tool call failed, in a form the model can act on."""

    message: str
    kind: ErrorKind
    suggested_fix: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of exactly one tool call."""

    content: str
    """Text fed back to the model."""

    display_text: str = ""
    """Short human-facing summary (may include a diff)."""

    error: ToolErrorInfo | None = None
    """Set when the call failed."""

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        message: str,
        kind: ErrorKind,
        suggested_fix: str | None = None,
    ) -> ToolResult:
        """Build an error result."""
        text = f"Error: {message}"
        if suggested_fix:
            text = f"{text}\n{suggested_fix}"
        return cls(
            content=text,
            display_text=message,
            error=ToolErrorInfo(message=message, kind=kind, suggested_fix=suggested_fix),
        )

    def to_response(self) -> dict[str, Any]:
        """Payload used for the provider's function response part."""
        if self.error is not None:
            return {"error": self.error.message, "kind": self.error.kind.value, "output": self.content}
        return {"output": self.content}
