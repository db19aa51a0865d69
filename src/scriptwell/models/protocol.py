"""Model protocol - provider-agnostic, non-streaming LLM interface.

Includes LLM output sanitization applied once at the model layer.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from scriptwell.script.model import ToolCall

logger = logging.getLogger(__name__)


# =============================================================================
# LLM Output Sanitization
# =============================================================================


def sanitize_llm_content(text: str | None) -> str | None:
    """Remove control characters from LLM output.

    Newlines, carriage returns and tabs are kept since code needs them.
    """
    if text is None:
        return None

    sanitized = "".join(c for c in text if not (ord(c) < 32 and c not in "\n\r\t"))

    if len(sanitized) != len(text):
        logger.debug(
            "Sanitized control chars from LLM output",
            extra={
                "original_len": len(text),
                "sanitized_len": len(sanitized),
                "chars_removed": len(text) - len(sanitized),
            },
        )

    return sanitized


def sanitize_arguments(d: dict[str, Any]) -> dict[str, Any]:
    """Recursively sanitize string values in tool call arguments."""
    result: dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, str):
            result[k] = sanitize_llm_content(v)
        elif isinstance(v, dict):
            result[k] = sanitize_arguments(v)
        elif isinstance(v, list):
            result[k] = [
                sanitize_arguments(i)
                if isinstance(i, dict)
                else sanitize_llm_content(i)
                if isinstance(i, str)
                else i
                for i in v
            ]
        else:
            result[k] = v
    return result


# =============================================================================
# Message Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class Message:
    """A conversation message sent to the model.

    Assistant messages may carry tool calls; tool messages carry the result
    of exactly one call.
    """

    role: Literal["system", "user", "assistant", "tool"] | str
    content: str | None = None

    # For assistant messages with tool calls
    tool_calls: tuple[ToolCall, ...] = ()

    # For tool result messages
    tool_call_id: str | None = None
    name: str | None = None
    response: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Tool:
    """A function declaration the model can call."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


# =============================================================================
# Generation Options & Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class GenerateOptions:
    """Options for model generation."""

    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] = ()
    system_prompt: str | None = None


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token usage statistics."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True, slots=True)
class GenerateResult:
    """Result from model generation.

    ``content`` may be None when the model only requested tool calls.
    """

    content: str | None
    model: str
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage | None = None
    finish_reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def text(self) -> str:
        return self.content or ""


# =============================================================================
# Model Protocol
# =============================================================================


@runtime_checkable
class ModelProtocol(Protocol):
    """Protocol for LLM providers.

    Implementations: ApiModel (HTTP), MockModel, MockModelWithTools.
    """

    @property
    def model_id(self) -> str:
        """The model identifier (e.g., 'gemini-2.0-flash')."""
        ...

    async def generate(
        self,
        prompt: str | tuple[Message, ...],
        *,
        tools: tuple[Tool, ...] | None = None,
        tool_choice: Literal["auto", "none", "required"] | str | None = None,
        options: GenerateOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerateResult:
        """Generate one complete (non-streaming) response.

        Args:
            prompt: A single prompt string, or the conversation as Messages.
            tools: Tools the model may call.
            tool_choice: "none" disables tool calling for this request.
            options: Temperature, token limit, system prompt.
            cancel: When set, retries and backoff sleeps stop and
                ExecutionCancelledError is raised.

        Returns:
            GenerateResult with content and/or tool calls.
        """
        ...


def as_messages(prompt: str | tuple[Message, ...]) -> tuple[Message, ...]:
    if isinstance(prompt, str):
        return (Message(role="user", content=prompt),)
    return tuple(prompt)
