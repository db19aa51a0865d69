"""Live execution state per operation, for inspection while a script runs."""

import dataclasses
import threading
import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ToolCallInfo:
    name: str
    args: dict[str, Any]
    timestamp: float = field(default_factory=time.time)
    duration_ms: int | None = None
    success: bool | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ExecutionState:
    """Snapshot of one running operation."""

    operation_id: str
    script_path: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    tool_calls: tuple[ToolCallInfo, ...] = ()
    current_turn: int = 0
    total_turns: int = 0
    start_time: float = field(default_factory=time.time)


class ExecutionStateTracker:
    """Keyed by operation id. Snapshots are replaced, never mutated in place.

    Example:
        tracker = ExecutionStateTracker()
        tracker.start("op-1", script_path="fix.ai.yaml")
        tracker.update_turn("op-1", 1, 3)
        state = tracker.get("op-1")
    """

    def __init__(self) -> None:
        self._states: dict[str, ExecutionState] = {}
        self._lock = threading.Lock()

    def start(
        self,
        operation_id: str,
        script_path: str | None = None,
        variables: dict[str, Any] | None = None,
    ) -> ExecutionState:
        state = ExecutionState(operation_id, script_path, dict(variables or {}))
        with self._lock:
            self._states[operation_id] = state
        return state

    def _update(self, operation_id: str, **changes: Any) -> None:
        with self._lock:
            state = self._states.get(operation_id)
            if state is not None:
                self._states[operation_id] = dataclasses.replace(state, **changes)

    def update_variables(self, operation_id: str, variables: dict[str, Any]) -> None:
        self._update(operation_id, variables=dict(variables))

    def update_turn(self, operation_id: str, current_turn: int, total_turns: int) -> None:
        self._update(operation_id, current_turn=current_turn, total_turns=total_turns)

    def record_tool_call(
        self,
        operation_id: str,
        name: str,
        args: dict[str, Any],
        *,
        duration_ms: int | None = None,
        success: bool | None = None,
        error: str | None = None,
    ) -> None:
        info = ToolCallInfo(name=name, args=dict(args), duration_ms=duration_ms, success=success, error=error)
        with self._lock:
            state = self._states.get(operation_id)
            if state is not None:
                self._states[operation_id] = dataclasses.replace(state, tool_calls=(*state.tool_calls, info))

    def get(self, operation_id: str | None = None) -> ExecutionState | None:
        """State of ``operation_id``, or of the most recently started operation."""
        with self._lock:
            if operation_id is not None:
                return self._states.get(operation_id)
            if not self._states:
                return None
            return max(self._states.values(), key=lambda s: s.start_time)

    def active(self) -> list[ExecutionState]:
        with self._lock:
            return list(self._states.values())

    def end(self, operation_id: str) -> None:
        with self._lock:
            self._states.pop(operation_id, None)

    def clear(self) -> None:
        with self._lock:
            self._states.clear()
