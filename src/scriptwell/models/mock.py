"""Mock models for tests and offline runs."""

import asyncio
from dataclasses import dataclass, field
from typing import Literal

from scriptwell.foundation.errors import ExecutionCancelledError
from scriptwell.models.protocol import (
    GenerateOptions,
    GenerateResult,
    Message,
    TokenUsage,
    Tool,
    sanitize_llm_content,
)


def _prompt_text(prompt: str | tuple[Message, ...]) -> str:
    if isinstance(prompt, str):
        return prompt
    return "\n".join(m.content or "" for m in prompt if m.role in ("user", "system"))


@dataclass(slots=True)
class MockModel:
    """Returns predefined text responses in order, or echoes the prompt.

    Never requests tool calls.
    """

    responses: list[str] = field(default_factory=list)
    _call_count: int = field(default=0, init=False)
    _prompts: list[str] = field(default_factory=list, init=False)

    @property
    def model_id(self) -> str:
        return "mock-model"

    @property
    def call_count(self) -> int:
        """Number of times generate was called."""
        return self._call_count

    @property
    def prompts(self) -> list[str]:
        """Prompt text of every call (user and system messages)."""
        return self._prompts

    async def generate(
        self,
        prompt: str | tuple[Message, ...],
        *,
        tools: tuple[Tool, ...] | None = None,
        tool_choice: Literal["auto", "none", "required"] | str | None = None,
        options: GenerateOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerateResult:
        if cancel is not None and cancel.is_set():
            raise ExecutionCancelledError()
        prompt_text = _prompt_text(prompt)
        self._prompts.append(prompt_text)
        self._call_count += 1

        if self.responses:
            response = self.responses[(self._call_count - 1) % len(self.responses)]
        else:
            response = f"Mock response to: {prompt_text[:50]}..."

        return GenerateResult(
            content=sanitize_llm_content(response),
            model=self.model_id,
            usage=TokenUsage(
                prompt_tokens=len(prompt_text.split()),
                completion_tokens=len(response.split()),
                total_tokens=len(prompt_text.split()) + len(response.split()),
            ),
            finish_reason="stop",
        )


@dataclass(slots=True)
class MockModelWithTools:
    """Returns a scripted sequence of GenerateResults, cycling when exhausted.

    Example:
        mock = MockModelWithTools([
            GenerateResult(
                content=None,
                model="mock",
                tool_calls=(ToolCall(name="read_file", args={"path": "x.txt"}, id="1"),),
            ),
            GenerateResult(content="Done reading!", model="mock"),
        ])
    """

    responses: list[GenerateResult] = field(default_factory=list)
    _call_count: int = field(default=0, init=False)
    _prompts: list[str | tuple[Message, ...]] = field(default_factory=list, init=False)
    _tools_provided: list[tuple[Tool, ...] | None] = field(default_factory=list, init=False)
    _tool_choices: list[str | None] = field(default_factory=list, init=False)

    @property
    def model_id(self) -> str:
        return "mock-model-with-tools"

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def prompts(self) -> list[str | tuple[Message, ...]]:
        """Raw prompts (message tuples) of every call."""
        return self._prompts

    @property
    def tools_provided(self) -> list[tuple[Tool, ...] | None]:
        return self._tools_provided

    @property
    def tool_choices(self) -> list[str | None]:
        return self._tool_choices

    async def generate(
        self,
        prompt: str | tuple[Message, ...],
        *,
        tools: tuple[Tool, ...] | None = None,
        tool_choice: Literal["auto", "none", "required"] | str | None = None,
        options: GenerateOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerateResult:
        if cancel is not None and cancel.is_set():
            raise ExecutionCancelledError()
        self._prompts.append(prompt)
        self._tools_provided.append(tools)
        self._tool_choices.append(tool_choice)
        self._call_count += 1

        if self.responses:
            return self.responses[(self._call_count - 1) % len(self.responses)]

        prompt_text = _prompt_text(prompt)
        return GenerateResult(
            content=f"Mock response #{self._call_count}",
            model=self.model_id,
            usage=TokenUsage(
                prompt_tokens=len(prompt_text.split()),
                completion_tokens=3,
                total_tokens=len(prompt_text.split()) + 3,
            ),
        )

