"""Script execution: the turn engine, instructions, conditions and events."""

from scriptwell.engine.conditions import evaluate_condition, is_truthy
from scriptwell.engine.engine import (
    EngineServices,
    EngineState,
    ExecutionResult,
    ScriptEngine,
    trim_history,
)
from scriptwell.engine.events import AgentEvent, EventQueue, EventType
from scriptwell.engine.instructions import LATEST_RESULT, RESPONSE, InstructionRunner

__all__ = [
    "LATEST_RESULT",
    "RESPONSE",
    "AgentEvent",
    "EngineServices",
    "EngineState",
    "EventQueue",
    "EventType",
    "ExecutionResult",
    "InstructionRunner",
    "ScriptEngine",
    "evaluate_condition",
    "is_truthy",
    "trim_history",
]
