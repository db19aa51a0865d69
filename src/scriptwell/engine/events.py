"""Events emitted while a script runs, and the queue that carries them.

The engine is the only producer; one consumer drains the queue and runs any
host callbacks, so callbacks never run concurrently with each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from time import time
from typing import Any

from scriptwell.script.model import ToolCall, ToolResult


class EventType(Enum):
    """Types of events in the execution stream."""

    CHUNK = "chunk"
    """Text for the user ($echo, $print, or the final answer)."""

    TOOL_CALL = "tool_call"
    """The model requested a tool call."""

    TOOL_RESULT = "tool_result"
    """A tool call finished (successfully or not)."""

    DONE = "done"
    """The run finished. Always the last event of a successful run."""

    ERROR = "error"
    """The run failed or was left incomplete."""

    KEYS_EXHAUSTED = "keys_exhausted"
    """Every API key is rate limited. ``data["retry_after"]`` says how long to wait."""


@dataclass(frozen=True, slots=True)
class AgentEvent:
    """A single event in the execution stream.

    Example:
        >>> event = AgentEvent.chunk("ok")
        >>> event.type, event.text
        (<EventType.CHUNK: 'chunk'>, 'ok')
    """

    type: EventType
    """The type of event."""

    data: dict[str, Any] = field(default_factory=dict)
    """Event-specific data."""

    timestamp: float = field(default_factory=time)
    """Unix timestamp when the event was created."""

    @classmethod
    def chunk(cls, text: str) -> AgentEvent:
        return cls(EventType.CHUNK, {"text": text})

    @classmethod
    def tool_call(cls, call: ToolCall) -> AgentEvent:
        return cls(EventType.TOOL_CALL, {"call": call})

    @classmethod
    def tool_result(cls, call: ToolCall, result: ToolResult) -> AgentEvent:
        return cls(EventType.TOOL_RESULT, {"call": call, "result": result})

    @classmethod
    def done(cls, final_content: str = "") -> AgentEvent:
        return cls(EventType.DONE, {"final_content": final_content})

    @classmethod
    def error(cls, message: str, *, incomplete: bool = False, details: dict[str, Any] | None = None) -> AgentEvent:
        """Error event. ``details`` is usually ``ScriptwellError.to_dict()``; its message is replaced."""
        return cls(EventType.ERROR, {**(details or {}), "message": message, "incomplete": incomplete})

    @classmethod
    def keys_exhausted(cls, retry_after: float, message: str = "") -> AgentEvent:
        return cls(EventType.KEYS_EXHAUSTED, {"retry_after": retry_after, "message": message})

    @property
    def text(self) -> str:
        return self.data.get("text", "")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        data: dict[str, Any] = {}
        for key, value in self.data.items():
            if isinstance(value, ToolCall):
                data[key] = {"name": value.name, "args": value.args, "id": value.id}
            elif isinstance(value, ToolResult):
                data[key] = {
                    "content": value.content,
                    "display_text": value.display_text,
                    "success": value.success,
                    "error_kind": value.error.kind.value if value.error else None,
                }
            else:
                data[key] = value
        return {"type": self.type.value, "data": data, "timestamp": self.timestamp}


_CLOSED = object()


class EventQueue:
    """Single-producer, single-consumer event channel.

    Example:
        queue = EventQueue()
        producer = asyncio.create_task(run_and_close(queue))
        async for event in queue:
            handle(event)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._emitted: list[AgentEvent] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def emitted(self) -> list[AgentEvent]:
        """Every event put so far, in order."""
        return self._emitted

    def put(self, event: AgentEvent) -> None:
        if self._closed:
            raise RuntimeError("event queue is closed")
        self._emitted.append(event)
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Mark the end of the stream. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[AgentEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
