"""Tests for post-turn instructions."""

import pytest

from scriptwell.engine.instructions import LATEST_RESULT, InstructionRunner, parse_assignment
from scriptwell.foundation.errors import ScriptStructureError
from scriptwell.script.parser import parse_turn


async def _run(text: str, variables: dict, **kwargs) -> list[str]:
    """Run the instructions of a one-turn snippet and return emitted text."""
    out: list[str] = []
    turn = parse_turn(text)
    await InstructionRunner(variables, emit=out.append, **kwargs).run(turn.instructions)
    return out


class TestParseAssignment:
    def test_equals_and_colon(self) -> None:
        assert parse_assignment("name=ada") == ("name", "ada")
        assert parse_assignment("name: 'a=b'") == ("name", "a=b")

    def test_invalid(self) -> None:
        with pytest.raises(ScriptStructureError):
            parse_assignment("no separator")
        with pytest.raises(ScriptStructureError):
            parse_assignment("bad name=1")


class TestRunner:
    """Echo, set, print and control flow."""

    @pytest.mark.asyncio
    async def test_echo_renders_template(self) -> None:
        assert await _run("$echo: hi {{name}}", {"name": "ada"}) == ["hi ada"]

    @pytest.mark.asyncio
    async def test_bare_echo_uses_latest_result(self) -> None:
        assert await _run("$echo", {LATEST_RESULT: "last"}) == ["last"]

    @pytest.mark.asyncio
    async def test_set_forms(self) -> None:
        variables: dict = {"who": "ada"}
        await _run("$set: greeting=hi {{who}}\n$set(count=3, quiet=true)", variables)

        assert variables["greeting"] == "hi ada"
        assert variables["count"] == 3
        assert variables["quiet"] is True

    @pytest.mark.asyncio
    async def test_print(self) -> None:
        assert await _run("$print: {{x}}!", {"x": "1"}) == ["1!"]

    @pytest.mark.asyncio
    async def test_if_else(self) -> None:
        text = "$if: mode == 'fast'\n  then:\n    - $echo: fast\n  else:\n    - $echo: slow\n"
        assert await _run(text, {"mode": "fast"}) == ["fast"]
        assert await _run(text, {"mode": "other"}) == ["slow"]

    @pytest.mark.asyncio
    async def test_while_loop(self) -> None:
        """A loop whose body flips its own condition runs once."""
        text = "$while: !done\n  do:\n    - $echo: working\n    - $set: done=true\n"
        variables: dict = {}
        assert await _run(text, variables) == ["working"]
        assert variables["done"] == "true"

    @pytest.mark.asyncio
    async def test_runaway_loop_is_stopped(self) -> None:
        text = "$while: true\n  do:\n    - $echo: again\n"
        with pytest.raises(ScriptStructureError, match="exceeded 5 iterations"):
            await _run(text, {}, max_loop_iterations=5)

    @pytest.mark.asyncio
    async def test_unknown_instruction(self) -> None:
        with pytest.raises(ScriptStructureError, match="unknown instruction"):
            await _run("$launch: rockets", {})

    @pytest.mark.asyncio
    async def test_before_hook_sees_nested_locations(self) -> None:
        seen: list[str] = []

        async def before(location, instruction) -> None:
            seen.append(location)

        text = "$echo: a\n$if: true\n  then:\n    - $echo: b\n"
        await _run(text, {}, before=before)
        assert seen == ["0", "1", "1.then.0"]
