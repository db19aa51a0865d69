"""Host surface: turn a user message into a script run and stream its events.

    agent = Agent(model, EngineServices.create(Path(".")))
    async for event in agent.send_message("TypeError: db.execute is not a function"):
        ...

The message is classified first. The route picks a script by name from the
scripts directory (``debug.ai.yaml``, ``upgrade.ai.yaml``...); when none
exists a single-turn script is synthesized. Events come from one queue and
host callbacks are called by the same loop that yields them, so callbacks
never overlap.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from scriptwell.classify.request import RequestClassifier, api_mismatch_hint, routing_info
from scriptwell.engine.engine import EngineServices, ExecutionResult, ScriptEngine
from scriptwell.engine.events import AgentEvent, EventQueue, EventType
from scriptwell.foundation.config import get_config
from scriptwell.foundation.errors import ScriptwellError
from scriptwell.foundation.types import ScriptwellConfig
from scriptwell.models.protocol import ModelProtocol
from scriptwell.script.model import Script, ToolCall, ToolResult
from scriptwell.script.parser import parse_script

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
ToolCallCallback = Callable[[ToolCall], None]
ToolResultCallback = Callable[[ToolCall, ToolResult], None]

_DEFAULT_SCRIPT = """\
user: |
  {{content}}
assistant: [[RESPONSE]]
"""


@dataclass(frozen=True, slots=True)
class _Request:
    message: str
    script_path: str | None
    on_chunk: ChunkCallback | None
    on_tool_call: ToolCallCallback | None
    on_tool_result: ToolResultCallback | None


class Agent:
    """Classifies, routes and runs user messages.

    Attributes:
        engine: The script engine runs go through
        classifier: Rules first, escalating low-confidence messages to the
            agent's model; pass ``RequestClassifier()`` for rules only
        last_result: Result of the most recent run
        retry_after: Seconds to wait after the last KEYS_EXHAUSTED event
    """

    def __init__(
        self,
        model: ModelProtocol,
        services: EngineServices,
        *,
        config: ScriptwellConfig | None = None,
        classifier: RequestClassifier | None = None,
    ) -> None:
        self.config = config or get_config()
        self.services = services
        self.engine = ScriptEngine(model, services, config=self.config.engine)
        self.classifier = classifier or RequestClassifier(model)
        self.last_result: ExecutionResult | None = None
        self.retry_after: float | None = None
        self._last_request: _Request | None = None
        self._cancel: asyncio.Event | None = None

    @property
    def scripts_dir(self) -> Path:
        return self.services.workspace / self.config.engine.scripts_dir

    def cancel(self) -> None:
        """Signal the running script (and its tools) to stop."""
        if self._cancel is not None:
            self._cancel.set()

    async def prepare(self, message: str, script_path: str | None = None) -> tuple[Script, dict[str, Any]]:
        """Pick the script for ``message`` and its input variables."""
        variables: dict[str, Any] = {"content": message}
        if script_path is not None:
            return self.services.loader.load(script_path), variables

        classification = await self.classifier.classify(message)
        route = routing_info(classification)
        variables.update(
            intent=classification.intent.value,
            classification=classification.to_dict(),
            route=route,
        )
        hint = api_mismatch_hint(message)
        if hint:
            variables["hint"] = hint

        script = self.services.loader.find(route["script"], [self.scripts_dir])
        if script is None:
            logger.debug("No %s script in %s, using the default", route["script"], self.scripts_dir)
            script = parse_script(_DEFAULT_SCRIPT)
        logger.info(
            "Routed message to %s",
            script.name,
            extra={"intent": classification.intent.value, "confidence": classification.confidence},
        )
        return script, variables

    async def send_message(
        self,
        user_message: str,
        *,
        script_path: str | None = None,
        on_chunk: ChunkCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run ``user_message`` and yield every event of the run."""
        request = _Request(user_message, script_path, on_chunk, on_tool_call, on_tool_result)
        self._last_request = request
        self.retry_after = None

        try:
            script, variables = await self.prepare(user_message, script_path)
        except ScriptwellError as e:
            logger.error("Cannot start run: %s", e)
            event = AgentEvent.error(str(e), details=e.to_dict())
            yield event
            return

        queue = EventQueue()
        self._cancel = asyncio.Event()

        async def produce() -> ExecutionResult:
            try:
                return await self.engine.run(script, variables, queue=queue, cancel=self._cancel)
            finally:
                queue.close()

        task = asyncio.create_task(produce())
        try:
            async for event in queue:
                self._notify(request, event)
                yield event
            self.last_result = await task
        finally:
            if not task.done():
                self._cancel.set()
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _notify(self, request: _Request, event: AgentEvent) -> None:
        if event.type is EventType.CHUNK and request.on_chunk is not None:
            request.on_chunk(event.text)
        elif event.type is EventType.TOOL_CALL and request.on_tool_call is not None:
            request.on_tool_call(event.data["call"])
        elif event.type is EventType.TOOL_RESULT and request.on_tool_result is not None:
            request.on_tool_result(event.data["call"], event.data["result"])
        elif event.type is EventType.KEYS_EXHAUSTED:
            self.retry_after = event.data["retry_after"]

    async def wait_and_retry(self) -> AsyncIterator[AgentEvent]:
        """Wait out the key cooldown, then resend the last message.

        Raises:
            RuntimeError: If no message has been sent yet.
        """
        request = self._last_request
        if request is None:
            raise RuntimeError("wait_and_retry called before send_message")
        delay = self.retry_after or 0.0
        if delay > 0:
            logger.info("Waiting %.1fs for an API key to cool down", delay)
            await asyncio.sleep(delay)
        async for event in self.send_message(
            request.message,
            script_path=request.script_path,
            on_chunk=request.on_chunk,
            on_tool_call=request.on_tool_call,
            on_tool_result=request.on_tool_result,
        ):
            yield event
