"""Script execution engine.

Drives a script turn by turn:

    LOAD_SCRIPT -> RESOLVE_TURN -> AWAIT_MODEL -> DISPATCH_TOOLS
                -> APPLY_INSTRUCTIONS -> NEXT_TURN | CHAIN_TO | TERMINAL

Within a turn each ``[[VAR]]`` placeholder runs a model/tool loop: the model
is called with the history so far, any tool calls it makes are dispatched
and their results appended, and the loop repeats until the model answers
with text or the tool-iteration budget runs out.

Example:
    services = EngineServices.create(Path("."))
    engine = ScriptEngine(model, services)
    async for event in engine.stream(services.loader.load("fix.ai.yaml")):
        print(event.type, event.text)
"""

import asyncio
import contextlib
import dataclasses
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from scriptwell.analysis.dependencies import CodeDependencyAnalyzer
from scriptwell.analysis.ignore import IgnoreList
from scriptwell.classify.errors import ErrorClassifier
from scriptwell.coherence.manager import FileCoherenceManager
from scriptwell.debug.breakpoints import BreakpointManager, BreakpointType
from scriptwell.debug.log import DebugLog
from scriptwell.debug.tracker import ExecutionStateTracker
from scriptwell.engine.events import AgentEvent, EventQueue
from scriptwell.engine.instructions import LATEST_RESULT, RESPONSE, InstructionRunner
from scriptwell.foundation.config import get_config
from scriptwell.foundation.errors import (
    BudgetExhaustedError,
    ExecutionCancelledError,
    KeysExhaustedError,
    ScriptStructureError,
    ScriptwellError,
    UnexpectedError,
)
from scriptwell.foundation.types import EngineConfig, ScriptwellConfig
from scriptwell.models.protocol import Message, ModelProtocol
from scriptwell.script.loader import ScriptLoader
from scriptwell.script.model import Instruction, Role, Script, Turn
from scriptwell.script.parser import PLACEHOLDER_PATTERN
from scriptwell.script.template import render, to_text
from scriptwell.tools.base import ToolContext
from scriptwell.tools.registry import ToolRegistry
from scriptwell.tools.scheduler import ToolScheduler

logger = logging.getLogger(__name__)


class EngineState(Enum):
    LOAD_SCRIPT = "load_script"
    RESOLVE_TURN = "resolve_turn"
    AWAIT_MODEL = "await_model"
    DISPATCH_TOOLS = "dispatch_tools"
    APPLY_INSTRUCTIONS = "apply_instructions"
    NEXT_TURN = "next_turn"
    CHAIN_TO = "chain_to"
    TERMINAL = "terminal"


# =============================================================================
# Services and results
# =============================================================================


@dataclass(slots=True)
class EngineServices:
    """Everything an engine shares with its tools and its host.

    Constructed once per workspace and passed in; nothing here is global.
    """

    registry: ToolRegistry
    loader: ScriptLoader = field(default_factory=ScriptLoader)
    breakpoints: BreakpointManager = field(default_factory=BreakpointManager)
    tracker: ExecutionStateTracker = field(default_factory=ExecutionStateTracker)
    debug_log: DebugLog = field(default_factory=DebugLog)

    @classmethod
    def create(cls, workspace: Path, *, config: ScriptwellConfig | None = None) -> "EngineServices":
        """Services with the built-in tools rooted at ``workspace``."""
        config = config or get_config()
        ctx = ToolContext(
            workspace=workspace,
            coherence=FileCoherenceManager(),
            analyzer=CodeDependencyAnalyzer(max_file_bytes=config.analysis.max_file_bytes),
            config=config.tools,
            ignore=IgnoreList.for_workspace(Path(workspace).expanduser().resolve(), config.analysis.ignore_file),
        )
        return cls(registry=ToolRegistry.with_builtins(ctx))

    @property
    def workspace(self) -> Path:
        return self.registry.ctx.workspace

    @property
    def coherence(self) -> FileCoherenceManager:
        return self.registry.ctx.coherence

    @property
    def analyzer(self) -> CodeDependencyAnalyzer:
        return self.registry.ctx.analyzer


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Outcome of one script run."""

    success: bool
    """True when every turn completed."""

    final_content: str
    """RESPONSE (or LatestResult) at the end of the run."""

    variables: dict[str, Any]
    """Variables at the end of the run."""

    history: tuple[Message, ...]
    """Conversation of the top-level script, tool exchanges included."""

    model_calls: int
    """Number of generate calls, chained scripts included."""

    incomplete: bool = False
    """True when a turn, tool-iteration or chain budget ran out."""

    error: ScriptwellError | None = None
    """Why the run stopped early, if it did."""

    operation_id: str = ""
    events: tuple[AgentEvent, ...] = ()


@dataclass(slots=True)
class _RunState:
    """Mutable state of one run. Chained scripts swap variables and history."""

    operation_id: str
    variables: dict[str, Any]
    history: list[Message] = field(default_factory=list)
    state: EngineState = EngineState.LOAD_SCRIPT
    turns_used: int = 0
    model_calls: int = 0
    tool_calls: int = 0
    output_emitted: bool = False


def trim_history(messages: list[Message], limit: int) -> tuple[Message, ...]:
    """Fit ``messages`` into ``limit``, most recent first.

    The first message and any system messages right after it are always
    kept, since they carry the task. The rest is cut from the front, and the
    kept tail never starts on an orphaned tool result.
    """
    if limit <= 0 or len(messages) <= limit:
        return tuple(messages)
    pinned = 1
    while pinned < len(messages) and messages[pinned].role == "system":
        pinned += 1
    room = max(limit - pinned, 0)
    tail = messages[len(messages) - room:] if room else []
    while tail and tail[0].role == "tool":
        tail = tail[1:]
    return (*messages[:pinned], *tail)


def _final_content(variables: dict[str, Any]) -> str:
    value = variables.get(RESPONSE)
    if value is None:
        value = variables.get(LATEST_RESULT)
    return to_text(value)


# =============================================================================
# Engine
# =============================================================================


class ScriptEngine:
    """Runs scripts against a model and a tool registry.

    Events go to the ``EventQueue`` passed to :meth:`run`. The engine is the
    only producer; a successful run always ends with a Done event, a failed
    one with an Error (or KeysExhausted) event.
    """

    def __init__(
        self,
        model: ModelProtocol,
        services: EngineServices,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        self.model = model
        self.services = services
        self.config = config or get_config().engine
        self.scheduler = ToolScheduler(services.registry, parallel=self.config.parallel_tools)
        self._classifier = ErrorClassifier()

    # -------------------------------------------------------------------------
    # Public entry points
    # -------------------------------------------------------------------------

    async def run(
        self,
        script: Script,
        variables: dict[str, Any] | None = None,
        *,
        queue: EventQueue | None = None,
        cancel: asyncio.Event | None = None,
        operation_id: str | None = None,
    ) -> ExecutionResult:
        """Execute ``script`` to completion.

        Errors never escape: they end the run with an Error event and an
        unsuccessful result. Exceptions that are not ScriptwellErrors (a
        provider library failing in an unexpected way) are wrapped in
        UnexpectedError first. The queue is left open for the caller.
        """
        queue = queue if queue is not None else EventQueue()
        op_id = operation_id or uuid.uuid4().hex[:12]
        run = _RunState(operation_id=op_id, variables={**script.parameters, **(variables or {})})
        self.services.tracker.start(op_id, script.source_path, run.variables)
        self._transition(run, EngineState.LOAD_SCRIPT)
        logger.info(
            "Running script %s",
            script.name,
            extra={"operation_id": op_id, "turns": len(script.turns), "model": self.model.model_id},
        )

        error: ScriptwellError | None = None
        incomplete = False
        try:
            await self._execute(script, run, queue, cancel, depth=0)
        except KeysExhaustedError as e:
            error = e
            logger.warning("API keys exhausted, retry after %.1fs", e.retry_after, extra={"operation_id": op_id})
            queue.put(AgentEvent.keys_exhausted(e.retry_after, e.message))
        except BudgetExhaustedError as e:
            error, incomplete = e, True
            logger.warning("Run incomplete: %s", e.message, extra={"operation_id": op_id})
            queue.put(AgentEvent.error(str(e), incomplete=True, details=e.to_dict()))
        except ScriptwellError as e:
            error = e
            logger.error("Run failed: %s", e, extra={"operation_id": op_id})
            queue.put(AgentEvent.error(str(e), details=e.to_dict()))
        except Exception as e:
            error = UnexpectedError(e, self._classifier.classify(e).kind)
            logger.exception("Run failed unexpectedly", extra={"operation_id": op_id})
            queue.put(AgentEvent.error(str(error), details=error.to_dict()))
        finally:
            self._transition(run, EngineState.TERMINAL)
            self.services.tracker.end(op_id)

        final = _final_content(run.variables)
        if error is None:
            if not run.output_emitted and final:
                queue.put(AgentEvent.chunk(final))
            queue.put(AgentEvent.done(final))
            logger.info(
                "Script %s finished",
                script.name,
                extra={"operation_id": op_id, "turns": run.turns_used, "model_calls": run.model_calls},
            )

        return ExecutionResult(
            success=error is None,
            final_content=final,
            variables=dict(run.variables),
            history=tuple(run.history),
            model_calls=run.model_calls,
            incomplete=incomplete,
            error=error,
            operation_id=op_id,
            events=tuple(queue.emitted),
        )

    async def run_file(self, path: str | Path, variables: dict[str, Any] | None = None, **kwargs: Any) -> ExecutionResult:
        """Load ``path`` through the shared loader and run it."""
        return await self.run(self.services.loader.load(path), variables, **kwargs)

    async def stream(
        self,
        script: Script,
        variables: dict[str, Any] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run ``script`` in a task and yield its events as they arrive."""
        queue = EventQueue()

        async def produce() -> ExecutionResult:
            try:
                return await self.run(script, variables, queue=queue, cancel=cancel)
            finally:
                queue.close()

        task = asyncio.create_task(produce())
        try:
            async for event in queue:
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    def _transition(self, run: _RunState, state: EngineState) -> None:
        previous, run.state = run.state, state
        logger.debug("Engine state %s -> %s", previous.value, state.value, extra={"operation_id": run.operation_id})
        self.services.debug_log.record(run.operation_id, "state", {"from": previous.value, "to": state.value})

    async def _checkpoint(
        self,
        run: _RunState,
        kind: BreakpointType,
        location: str,
        context: dict[str, Any] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Give breakpoints a chance to pause the run at this boundary."""
        breakpoints = self.services.breakpoints
        ctx = {"variables": dict(run.variables), **(context or {})}
        for bp_type in (kind, BreakpointType.CONDITION, BreakpointType.VARIABLE):
            if await breakpoints.check_breakpoint(run.operation_id, bp_type, location, ctx):
                self.services.debug_log.record(run.operation_id, "paused", {"type": bp_type.value, "location": location})
                await breakpoints.wait_if_paused(run.operation_id, cancel)
                self.services.debug_log.record(run.operation_id, "resumed", {"location": location})
                return

    def _emit(self, run: _RunState, queue: EventQueue, text: str) -> None:
        run.output_emitted = True
        queue.put(AgentEvent.chunk(text))

    async def _execute(
        self,
        script: Script,
        run: _RunState,
        queue: EventQueue,
        cancel: asyncio.Event | None,
        depth: int,
    ) -> None:
        for index, turn in enumerate(script.turns):
            if cancel is not None and cancel.is_set():
                raise ExecutionCancelledError()
            if run.turns_used >= self.config.max_turns:
                raise BudgetExhaustedError(f"turn budget of {self.config.max_turns} used up")
            run.turns_used += 1
            self.services.tracker.update_turn(run.operation_id, index + 1, len(script.turns))
            await self._checkpoint(run, BreakpointType.TURN, f"{script.name}:{index}", {"turn_number": run.turns_used}, cancel)

            self._transition(run, EngineState.RESOLVE_TURN)
            await self._resolve_turn(script, turn, run, queue, cancel)

            self._transition(run, EngineState.APPLY_INSTRUCTIONS)

            async def before(location: str, instruction: Instruction) -> None:
                await self._checkpoint(run, BreakpointType.INSTRUCTION, location, {"instruction": instruction.name}, cancel)

            runner = InstructionRunner(
                run.variables,
                emit=lambda text: self._emit(run, queue, text),
                before=before,
                max_loop_iterations=self.config.max_loop_iterations,
            )
            await runner.run(turn.instructions, prefix=f"{index}:")
            self.services.tracker.update_variables(run.operation_id, run.variables)

            if turn.chain_to:
                self._transition(run, EngineState.CHAIN_TO)
                await self._chain(script, turn, run, queue, cancel, depth)
            else:
                self._transition(run, EngineState.NEXT_TURN)

    async def _resolve_turn(
        self,
        script: Script,
        turn: Turn,
        run: _RunState,
        queue: EventQueue,
        cancel: asyncio.Event | None,
    ) -> None:
        """Render the turn's messages and fill its placeholder from the model."""
        turn_messages: list[Message] = []
        answered = False

        for message in turn.messages:
            role = message.role.value
            match = PLACEHOLDER_PATTERN.search(message.content) if message.has_placeholder else None
            if match is None:
                turn_messages.append(Message(role=role, content=render(message.content, run.variables)))
                continue

            before = render(message.content[:match.start()], run.variables)
            after = render(message.content[match.end():], run.variables)
            prompt = list(run.history) + turn_messages
            if before.strip() and message.role is not Role.ASSISTANT:
                prompt.append(Message(role=role, content=before.strip()))

            text, exchanged = await self._complete(prompt, run, queue, cancel)
            answered = True
            run.variables[message.placeholder_var] = text
            run.variables[RESPONSE] = text
            run.variables[LATEST_RESULT] = text
            turn_messages.extend(exchanged)
            turn_messages.append(Message(role=role, content=f"{before}{text}{after}"))

        if not answered and script.auto_run_model and any(m.role is Role.USER for m in turn.messages):
            text, exchanged = await self._complete(list(run.history) + turn_messages, run, queue, cancel)
            run.variables[RESPONSE] = text
            run.variables[LATEST_RESULT] = text
            turn_messages.extend(exchanged)
            turn_messages.append(Message(role="assistant", content=text))

        run.history.extend(turn_messages)

    async def _complete(
        self,
        prompt: list[Message],
        run: _RunState,
        queue: EventQueue,
        cancel: asyncio.Event | None,
    ) -> tuple[str, list[Message]]:
        """Model/tool loop for one placeholder.

        Returns the final text and the assistant/tool messages exchanged on
        the way there.
        """
        if not prompt:
            raise ScriptStructureError("a placeholder needs a message before it to send to the model")

        conversation = list(prompt)
        exchanged: list[Message] = []
        tools = self.services.registry.to_tools()

        for iteration in range(1, self.config.max_tool_iterations + 1):
            if cancel is not None and cancel.is_set():
                raise ExecutionCancelledError()

            self._transition(run, EngineState.AWAIT_MODEL)
            result = await self.model.generate(
                trim_history(conversation, self.config.max_history_messages),
                tools=tools or None,
                tool_choice="auto" if tools else "none",
                cancel=cancel,
            )
            run.model_calls += 1
            if not result.has_tool_calls:
                return result.text, exchanged

            self._transition(run, EngineState.DISPATCH_TOOLS)
            calls = tuple(
                call if call.id else dataclasses.replace(call, id=f"call_{run.tool_calls + i + 1}")
                for i, call in enumerate(result.tool_calls)
            )
            run.tool_calls += len(calls)
            logger.debug(
                "Model requested %d tool calls",
                len(calls),
                extra={"operation_id": run.operation_id, "iteration": iteration},
            )
            assistant = Message(role="assistant", content=result.content, tool_calls=calls)
            conversation.append(assistant)
            exchanged.append(assistant)

            for call in calls:
                queue.put(AgentEvent.tool_call(call))
                await self._checkpoint(
                    run, BreakpointType.TOOL_CALL, call.name, {"tool_name": call.name, "args": call.args}, cancel
                )

            outcomes = await self.scheduler.dispatch(
                calls,
                cancel=cancel,
                on_progress=lambda call, message: self.services.debug_log.record(
                    run.operation_id, "tool_progress", {"tool": call.name, "message": message}
                ),
            )
            for outcome in outcomes:
                call, tool_result = outcome.call, outcome.result
                queue.put(AgentEvent.tool_result(call, tool_result))
                self.services.tracker.record_tool_call(
                    run.operation_id,
                    call.name,
                    call.args,
                    duration_ms=outcome.duration_ms,
                    success=tool_result.success,
                    error=tool_result.error.message if tool_result.error else None,
                )
                self.services.debug_log.record(
                    run.operation_id,
                    "tool_result",
                    {"tool": call.name, "success": tool_result.success, "duration_ms": outcome.duration_ms},
                )
                reply = Message(
                    role="tool",
                    content=tool_result.content,
                    tool_call_id=call.id,
                    name=call.name,
                    response=tool_result.to_response(),
                )
                conversation.append(reply)
                exchanged.append(reply)

        raise BudgetExhaustedError(
            f"no final answer after {self.config.max_tool_iterations} tool iterations"
        )

    async def _chain(
        self,
        script: Script,
        turn: Turn,
        run: _RunState,
        queue: EventQueue,
        cancel: asyncio.Event | None,
        depth: int,
    ) -> None:
        """Run ``-> name(params)`` with ``content`` set to the latest result."""
        if depth + 1 > self.config.max_chain_depth:
            raise BudgetExhaustedError(f"chain depth of {self.config.max_chain_depth} exceeded at -> {turn.chain_to}")

        chained = self.services.loader.resolve_chain(turn.chain_to, script.source_path)
        latest = run.variables.get(LATEST_RESULT, run.variables.get(RESPONSE, ""))
        params = {
            key: render(value, run.variables) if isinstance(value, str) else value
            for key, value in turn.chain_params.items()
        }
        logger.info("Chaining to %s", chained.name, extra={"operation_id": run.operation_id, "depth": depth + 1})

        parent_variables, parent_history = run.variables, run.history
        run.variables = {**chained.parameters, "content": to_text(latest), **params}
        run.history = []
        try:
            await self._execute(chained, run, queue, cancel, depth + 1)
            chained_result = _final_content(run.variables)
        finally:
            run.variables, run.history = parent_variables, parent_history

        run.variables[LATEST_RESULT] = chained_result
        run.variables[RESPONSE] = chained_result


