"""Tests for Agent: routing, callbacks and wait-and-retry."""

from pathlib import Path

import pytest

from scriptwell.agent import Agent
from scriptwell.classify.request import RequestClassifier
from scriptwell.engine.engine import EngineServices
from scriptwell.engine.events import EventType
from scriptwell.foundation.errors import KeysExhaustedError
from scriptwell.foundation.types import ScriptwellConfig
from scriptwell.models.mock import MockModel
from scriptwell.models.protocol import GenerateResult

ERROR_MESSAGE = "TypeError: db.execute is not a function at routes/main.js:45"


class FlakyModel:
    """Reports exhausted keys once, then answers."""

    model_id = "flaky"

    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, prompt, *, tools=None, tool_choice=None, options=None, cancel=None) -> GenerateResult:
        self.calls += 1
        if self.calls == 1:
            raise KeysExhaustedError(provider="gemini", retry_after=0.01)
        return GenerateResult(content="recovered", model=self.model_id)


async def _collect(events) -> list:
    return [event async for event in events]


class TestSendMessage:
    """Routing a message to a script and streaming the run."""

    @pytest.mark.asyncio
    async def test_default_script_when_no_route_exists(self, services: EngineServices, config: ScriptwellConfig) -> None:
        model = MockModel(responses=["fixed it"])
        agent = Agent(model, services, config=config)
        chunks: list[str] = []

        events = await _collect(agent.send_message(ERROR_MESSAGE, on_chunk=chunks.append))

        assert [e.type for e in events] == [EventType.CHUNK, EventType.DONE]
        assert chunks == ["fixed it"]
        assert model.prompts == [ERROR_MESSAGE]
        assert agent.last_result.success
        assert agent.last_result.variables["intent"] == "ERROR_DEBUG"
        assert "hint" in agent.last_result.variables

    @pytest.mark.asyncio
    async def test_routed_script(self, workspace: Path, services: EngineServices, config: ScriptwellConfig) -> None:
        scripts = workspace / ".scriptwell" / "scripts"
        scripts.mkdir(parents=True)
        (scripts / "debug.ai.yaml").write_text("user: Debug ({{intent}}): {{content}}\nassistant: [[RESPONSE]]\n")
        model = MockModel(responses=["ok"])

        await _collect(Agent(model, services, config=config).send_message(ERROR_MESSAGE))
        assert model.prompts == [f"Debug (ERROR_DEBUG): {ERROR_MESSAGE}"]

    @pytest.mark.asyncio
    async def test_explicit_script_path(self, workspace: Path, services: EngineServices, config: ScriptwellConfig) -> None:
        script = workspace / "echo.ai.yaml"
        script.write_text("$echo: got {{content}}\n")
        agent = Agent(MockModel(), services, config=config)

        events = await _collect(agent.send_message("hello", script_path=str(script)))
        assert events[0].text == "got hello"

    @pytest.mark.asyncio
    async def test_missing_script_path_is_an_error_event(self, workspace: Path, services: EngineServices, config: ScriptwellConfig) -> None:
        agent = Agent(MockModel(), services, config=config)
        events = await _collect(agent.send_message("hi", script_path=str(workspace / "nope.ai.yaml")))

        assert [e.type for e in events] == [EventType.ERROR]
        assert events[0].data["error_id"] == "SW-2001"

    @pytest.mark.asyncio
    async def test_low_confidence_message_asks_the_model(self, services: EngineServices, config: ScriptwellConfig) -> None:
        """An ambiguous message costs one classification call before the run."""
        model = MockModel(responses=[
            '{"intent": "UPGRADE", "confidence": 0.9, "reasoning": "asks for a feature"}',
            "done",
        ])
        agent = Agent(model, services, config=config)

        events = await _collect(agent.send_message("make the dashboard nicer"))

        assert events[-1].type is EventType.DONE
        assert model.call_count == 2
        assert "Classify the user request" in model.prompts[0]
        assert model.prompts[1] == "make the dashboard nicer"
        assert agent.last_result.variables["intent"] == "UPGRADE"
        assert agent.last_result.variables["classification"]["source"] == "model"

    @pytest.mark.asyncio
    async def test_confident_rules_skip_the_model(self, services: EngineServices, config: ScriptwellConfig) -> None:
        model = MockModel(responses=["fixed"])
        await _collect(Agent(model, services, config=config).send_message(ERROR_MESSAGE))
        assert model.call_count == 1

    @pytest.mark.asyncio
    async def test_tool_callbacks(self, services: EngineServices, config: ScriptwellConfig) -> None:
        from scriptwell.models.mock import MockModelWithTools
        from scriptwell.script.model import ToolCall

        model = MockModelWithTools([
            GenerateResult(content=None, model="m", tool_calls=(ToolCall(name="list_files", args={}),)),
            GenerateResult(content="listed", model="m"),
        ])
        calls, results = [], []
        agent = Agent(model, services, config=config, classifier=RequestClassifier())

        await _collect(agent.send_message(
            "list the files",
            on_tool_call=calls.append,
            on_tool_result=lambda call, result: results.append(result.success),
        ))

        assert [c.name for c in calls] == ["list_files"]
        assert results == [True]


class TestWaitAndRetry:
    @pytest.mark.asyncio
    async def test_requires_previous_message(self, services: EngineServices, config: ScriptwellConfig) -> None:
        agent = Agent(MockModel(), services, config=config)
        with pytest.raises(RuntimeError):
            await _collect(agent.wait_and_retry())

    @pytest.mark.asyncio
    async def test_retries_after_keys_exhausted(self, services: EngineServices, config: ScriptwellConfig) -> None:
        """The same message and callbacks are reused for the retry."""
        agent = Agent(FlakyModel(), services, config=config, classifier=RequestClassifier())
        chunks: list[str] = []

        first = await _collect(agent.send_message("hello", on_chunk=chunks.append))
        assert [e.type for e in first] == [EventType.KEYS_EXHAUSTED]
        assert agent.retry_after == 0.01

        second = await _collect(agent.wait_and_retry())
        assert second[-1].type is EventType.DONE
        assert chunks == ["recovered"]
        assert agent.retry_after is None
