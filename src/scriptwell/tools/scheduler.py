"""Dispatch a batch of tool calls, concurrently where it is safe.

Each call gets exactly one ToolResult, returned in the model's call order.
A call waits for every earlier call it conflicts with:

- both touch the same target path (or one target contains the other), or
- one reads a path the other writes.

Everything else runs concurrently under ``asyncio.gather``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scriptwell.foundation.errors import ErrorKind
from scriptwell.script.model import ToolCall, ToolResult
from scriptwell.tools.base import BaseTool
from scriptwell.tools.errors import tool_error_from_exception, unknown_tool_result
from scriptwell.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

CallProgress = Callable[[ToolCall, str], None]


@dataclass(frozen=True, slots=True)
class DispatchedCall:
    """A tool call and its outcome."""

    call: ToolCall
    result: ToolResult
    duration_ms: int = 0


@dataclass(slots=True)
class _Planned:
    index: int
    call: ToolCall
    tool: BaseTool | None = None
    params: Any = None
    early: ToolResult | None = None
    targets: frozenset[Path] = frozenset()
    reads: frozenset[Path] = frozenset()
    writes: frozenset[Path] = frozenset()
    waits_on: list[int] = field(default_factory=list)


def _overlaps(a: frozenset[Path], b: frozenset[Path]) -> bool:
    for x in a:
        for y in b:
            if x == y or x in y.parents or y in x.parents:
                return True
    return False


def conflicts(first: _Planned, second: _Planned) -> bool:
    """Whether ``second`` must wait for ``first``."""
    return (
        _overlaps(first.targets, second.targets)
        or _overlaps(first.writes, second.reads)
        or _overlaps(first.reads, second.writes)
    )


class ToolScheduler:
    """Runs tool calls against a registry with ordering guarantees.

    Example:
        scheduler = ToolScheduler(registry)
        outcomes = await scheduler.dispatch(result.tool_calls, cancel=cancel_event)
    """

    def __init__(self, registry: ToolRegistry, *, parallel: bool = True) -> None:
        self.registry = registry
        self.parallel = parallel

    def _paths(self, raw: tuple[str, ...]) -> frozenset[Path]:
        root = self.registry.ctx.workspace
        return frozenset((root / p).resolve() for p in raw if p)

    def plan(self, calls: list[ToolCall] | tuple[ToolCall, ...]) -> list[_Planned]:
        """Validate each call and work out which earlier calls it waits on."""
        planned: list[_Planned] = []
        for index, call in enumerate(calls):
            item = _Planned(index=index, call=call)
            tool = self.registry.get(call.name)
            if tool is None:
                logger.warning("Model called unknown tool %s", call.name)
                item.early = unknown_tool_result(call.name, self.registry.names())
            else:
                item.tool = tool
                try:
                    item.params = tool.validate(call.args)
                    item.targets = self._paths(tool.targets(item.params))
                    item.reads = self._paths(tool.reads(item.params))
                    item.writes = self._paths(tool.writes(item.params))
                except (ValueError, TypeError) as e:
                    logger.info("Invalid arguments for %s: %s", call.name, e)
                    item.early = tool_error_from_exception(e, call.name)
            if item.early is None:
                item.waits_on = [
                    prior.index for prior in planned
                    if prior.early is None and conflicts(prior, item)
                ]
            planned.append(item)
        return planned

    async def _run(
        self,
        item: _Planned,
        cancel: asyncio.Event | None,
        on_progress: CallProgress | None,
    ) -> DispatchedCall:
        if item.early is not None:
            return DispatchedCall(item.call, item.early)
        if cancel is not None and cancel.is_set():
            return DispatchedCall(item.call, ToolResult.failure("Operation was cancelled", ErrorKind.CANCELLED))

        progress = None
        if on_progress is not None:
            def progress(message: str, _call: ToolCall = item.call) -> None:
                on_progress(_call, message)

        started = time.monotonic()
        try:
            result = await item.tool.execute(item.params, cancel, progress)
        except Exception as e:
            logger.warning("Tool %s failed: %s", item.call.name, e, extra={"call_id": item.call.id})
            result = tool_error_from_exception(e, item.call.name)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "Tool %s finished",
            item.call.name,
            extra={"call_id": item.call.id, "success": result.success, "duration_ms": duration_ms},
        )
        return DispatchedCall(item.call, result, duration_ms)

    async def dispatch(
        self,
        calls: list[ToolCall] | tuple[ToolCall, ...],
        *,
        cancel: asyncio.Event | None = None,
        on_progress: CallProgress | None = None,
    ) -> list[DispatchedCall]:
        """Run ``calls`` and return one outcome per call, in call order."""
        planned = self.plan(calls)
        if not self.parallel or len(planned) <= 1:
            return [await self._run(item, cancel, on_progress) for item in planned]

        tasks: list[asyncio.Task[DispatchedCall]] = []

        async def run_after(item: _Planned) -> DispatchedCall:
            if item.waits_on:
                await asyncio.gather(*(tasks[i] for i in item.waits_on))
            return await self._run(item, cancel, on_progress)

        for item in planned:
            tasks.append(asyncio.ensure_future(run_after(item)))
        serialized = sum(1 for item in planned if item.waits_on)
        logger.debug("Dispatching %d tool calls", len(planned), extra={"serialized": serialized})
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
