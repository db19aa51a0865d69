"""Execution introspection: breakpoints, live state and the debug log."""

from scriptwell.debug.breakpoints import (
    Breakpoint,
    BreakpointManager,
    BreakpointState,
    BreakpointType,
)
from scriptwell.debug.log import DebugEntry, DebugLog
from scriptwell.debug.tracker import ExecutionState, ExecutionStateTracker, ToolCallInfo

__all__ = [
    "Breakpoint",
    "BreakpointManager",
    "BreakpointState",
    "BreakpointType",
    "DebugEntry",
    "DebugLog",
    "ExecutionState",
    "ExecutionStateTracker",
    "ToolCallInfo",
]
