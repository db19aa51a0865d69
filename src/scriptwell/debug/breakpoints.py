"""Breakpoints for script execution.

The engine calls ``check_breakpoint`` at each boundary (turn start,
instruction, tool call). A hit pauses that operation until the host calls
``continue_execution`` or ``step``; the engine blocks in ``wait_if_paused``.

Example:
    breakpoints = BreakpointManager()
    bp = breakpoints.set_breakpoint(BreakpointType.TOOL_CALL, "edit_file")
    ...
    if breakpoints.is_paused(op_id):
        print(breakpoints.variables_at_breakpoint(op_id))
        await breakpoints.step(op_id)
"""

import asyncio
import dataclasses
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scriptwell.foundation.errors import ExecutionCancelledError

logger = logging.getLogger(__name__)


class BreakpointType(Enum):
    TURN = "turn"
    """Break at a turn number (1-based) or turn location."""

    INSTRUCTION = "instruction"
    """Break at an instruction location such as ``"2:0"``."""

    CONDITION = "condition"
    """Break at any boundary where the condition holds."""

    VARIABLE = "variable"
    """Break while the named variable is set."""

    TOOL_CALL = "tool_call"
    """Break before a tool call; location is the tool name or ``*``."""


@dataclass(frozen=True, slots=True)
class Breakpoint:
    id: str
    type: BreakpointType
    location: str
    condition: str | None = None
    enabled: bool = True
    hit_count: int = 0


@dataclass(frozen=True, slots=True)
class BreakpointState:
    """Where an operation is paused. ``breakpoint`` is None for a step pause."""

    breakpoint: Breakpoint | None
    operation_id: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


# Two-character operators before their one-character prefixes
_CONDITION_OPERATORS = ("==", "!=", ">=", "<=", ">", "<")


def _as_number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_breakpoint_condition(condition: str, context: dict[str, Any]) -> bool:
    """Evaluate ``var OP value`` against ``context["variables"]``.

    Equality compares text; ordering compares numbers and is False when
    either side is not numeric. A bare name is true when the variable exists.
    """
    variables = context.get("variables") or {}
    text = condition.strip()
    for op in _CONDITION_OPERATORS:
        if op not in text:
            continue
        name, _, raw = text.partition(op)
        name, raw = name.strip(), raw.strip().strip("'\"")
        actual = variables.get(name)
        actual_text = "" if actual is None else str(actual)
        if op == "==":
            return actual_text == raw
        if op == "!=":
            return actual_text != raw
        left, right = _as_number(actual), _as_number(raw)
        if left is None or right is None:
            return False
        if op == ">=":
            return left >= right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left < right
    return text in variables


def _matches_location(bp: Breakpoint, location: str, context: dict[str, Any]) -> bool:
    if bp.type is BreakpointType.TURN:
        turn = context.get("turn_number")
        return bp.location == location or (turn is not None and bp.location == str(turn))
    if bp.type is BreakpointType.INSTRUCTION:
        return bp.location == location
    if bp.type is BreakpointType.CONDITION:
        return True
    if bp.type is BreakpointType.VARIABLE:
        return bp.location in (context.get("variables") or {})
    if bp.type is BreakpointType.TOOL_CALL:
        return bp.location in ("*", context.get("tool_name"))
    return False


class BreakpointManager:
    """Breakpoint registry and per-operation pause state.

    All mutation goes through this object under one lock; no await happens
    while the lock is held.
    """

    def __init__(self) -> None:
        self._breakpoints: dict[str, Breakpoint] = {}
        self._paused: dict[str, BreakpointState] = {}
        self._resume: dict[str, asyncio.Event] = {}
        self._stepping: set[str] = set()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def set_breakpoint(
        self,
        type: BreakpointType,
        location: str,
        condition: str | None = None,
    ) -> Breakpoint:
        with self._lock:
            bp = Breakpoint(id=f"bp-{next(self._ids)}", type=type, location=str(location), condition=condition)
            self._breakpoints[bp.id] = bp
        logger.debug("Breakpoint set: %s at %s", type.value, location, extra={"breakpoint_id": bp.id})
        return bp

    def remove_breakpoint(self, breakpoint_id: str) -> bool:
        with self._lock:
            return self._breakpoints.pop(breakpoint_id, None) is not None

    def set_enabled(self, breakpoint_id: str, enabled: bool) -> bool:
        with self._lock:
            bp = self._breakpoints.get(breakpoint_id)
            if bp is None:
                return False
            self._breakpoints[breakpoint_id] = dataclasses.replace(bp, enabled=enabled)
            return True

    def get(self, breakpoint_id: str) -> Breakpoint | None:
        return self._breakpoints.get(breakpoint_id)

    def list(self) -> list[Breakpoint]:
        with self._lock:
            return list(self._breakpoints.values())

    def clear(self) -> None:
        """Remove every breakpoint and release every paused operation."""
        with self._lock:
            self._breakpoints.clear()
            self._paused.clear()
            self._stepping.clear()
            events = list(self._resume.values())
            self._resume.clear()
        for event in events:
            event.set()

    # -------------------------------------------------------------------------
    # Pausing
    # -------------------------------------------------------------------------

    async def check_breakpoint(
        self,
        operation_id: str,
        type: BreakpointType,
        location: str,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """Pause ``operation_id`` if a breakpoint matches here.

        Every matching enabled breakpoint's condition must hold. Returns True
        when the operation is now paused.
        """
        context = context or {}
        with self._lock:
            if operation_id in self._paused:
                return False
            if operation_id in self._stepping:
                self._stepping.discard(operation_id)
                self._pause(BreakpointState(None, operation_id, context))
                logger.debug("Step paused %s at %s %s", operation_id, type.value, location)
                return True

            matching = [
                bp for bp in self._breakpoints.values()
                if bp.enabled and bp.type is type and _matches_location(bp, location, context)
            ]
            if not matching:
                return False
            if not all(bp.condition is None or evaluate_breakpoint_condition(bp.condition, context) for bp in matching):
                return False
            for bp in matching:
                self._breakpoints[bp.id] = dataclasses.replace(bp, hit_count=bp.hit_count + 1)
            hit = self._breakpoints[matching[0].id]
            self._pause(BreakpointState(hit, operation_id, context))
        logger.info("Breakpoint hit: %s at %s", hit.id, location, extra={"operation_id": operation_id})
        return True

    def _pause(self, state: BreakpointState) -> None:
        self._paused[state.operation_id] = state
        self._resume[state.operation_id] = asyncio.Event()

    def is_paused(self, operation_id: str | None = None) -> bool:
        if operation_id is None:
            return bool(self._paused)
        return operation_id in self._paused

    def get_state(self, operation_id: str) -> BreakpointState | None:
        return self._paused.get(operation_id)

    def variables_at_breakpoint(self, operation_id: str) -> dict[str, Any] | None:
        state = self._paused.get(operation_id)
        if state is None:
            return None
        return state.context.get("variables")

    def _release(self, operation_id: str) -> bool:
        with self._lock:
            if self._paused.pop(operation_id, None) is None:
                return False
            event = self._resume.pop(operation_id, None)
        if event is not None:
            event.set()
        return True

    async def continue_execution(self, operation_id: str) -> bool:
        released = self._release(operation_id)
        if released:
            logger.debug("Continuing execution: %s", operation_id)
        return released

    async def step(self, operation_id: str) -> bool:
        """Resume and pause again at the next boundary."""
        with self._lock:
            if operation_id not in self._paused:
                return False
            self._stepping.add(operation_id)
        return self._release(operation_id)

    async def wait_if_paused(self, operation_id: str, cancel: asyncio.Event | None = None) -> None:
        """Block while ``operation_id`` is paused.

        Raises:
            ExecutionCancelledError: ``cancel`` was set before the operation
                was resumed. The pause is released first.
        """
        event = self._resume.get(operation_id)
        if event is None or operation_id not in self._paused:
            return
        if cancel is None:
            await event.wait()
            return

        resumed = asyncio.ensure_future(event.wait())
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({resumed, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (resumed, cancelled):
                task.cancel()
            await asyncio.gather(resumed, cancelled, return_exceptions=True)
        if not event.is_set():
            self._release(operation_id)
            logger.debug("Cancelled while paused: %s", operation_id)
            raise ExecutionCancelledError()
