"""Post-turn instructions: $echo, $set, $print, $if, $while."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from scriptwell.engine.conditions import evaluate_condition
from scriptwell.foundation.errors import ScriptStructureError
from scriptwell.script.model import Instruction
from scriptwell.script.template import render, to_text

logger = logging.getLogger(__name__)

LATEST_RESULT = "LatestResult"
RESPONSE = "RESPONSE"

DEFAULT_MAX_LOOP_ITERATIONS = 1000

Emit = Callable[[str], None]
BeforeHook = Callable[[str, Instruction], Awaitable[None]]


def parse_assignment(text: str) -> tuple[str, str]:
    """Split ``key=value`` or ``key: value``. Whichever separator comes first wins."""
    eq = text.find("=")
    colon = text.find(":")
    positions = [p for p in (eq, colon) if p > 0]
    if not positions:
        raise ScriptStructureError(f"$set expects key=value or key: value, got {text!r}")
    split = min(positions)
    key = text[:split].strip()
    value = text[split + 1:].strip()
    if not key.isidentifier():
        raise ScriptStructureError(f"invalid variable name in $set: {key!r}")
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


class InstructionRunner:
    """Applies a turn's instructions to the run's variables.

    Output goes through ``emit``; ``before`` (if given) is awaited ahead of
    each instruction with its location (``"2"``, ``"2.then.0"``...) so
    breakpoints can pause there.

    Example:
        runner = InstructionRunner(variables, emit=chunks.append)
        await runner.run(turn.instructions)
    """

    def __init__(
        self,
        variables: dict[str, Any],
        *,
        emit: Emit,
        before: BeforeHook | None = None,
        max_loop_iterations: int = DEFAULT_MAX_LOOP_ITERATIONS,
    ) -> None:
        self.variables = variables
        self.emit = emit
        self.before = before
        self.max_loop_iterations = max_loop_iterations

    async def run(self, instructions: tuple[Instruction, ...], prefix: str = "") -> None:
        for index, instruction in enumerate(instructions):
            location = f"{prefix}{index}"
            if self.before is not None:
                await self.before(location, instruction)
            await self.apply(instruction, location)

    async def apply(self, instruction: Instruction, location: str = "0") -> None:
        name = instruction.name
        if name == "echo":
            self._echo(instruction)
        elif name == "set":
            self._set(instruction)
        elif name == "print":
            self._print(instruction)
        elif name == "if":
            await self._if(instruction, location)
        elif name == "while":
            await self._while(instruction, location)
        else:
            raise ScriptStructureError(f"unknown instruction: ${name}")

    # -------------------------------------------------------------------------

    def _value(self, instruction: Instruction) -> str | None:
        value = instruction.args.get("value")
        if value is None and instruction.raw:
            value = instruction.raw
        return None if value is None else str(value)

    def _echo(self, instruction: Instruction) -> None:
        value = self._value(instruction)
        if value is None:
            text = to_text(self.variables.get(LATEST_RESULT))
        else:
            text = render(value, self.variables)
        self.emit(text)

    def _print(self, instruction: Instruction) -> None:
        value = self._value(instruction)
        if value:
            self.emit(render(value, self.variables))
        else:
            self.emit(to_text(self.variables.get(LATEST_RESULT)))

    def _set(self, instruction: Instruction) -> None:
        inline = instruction.args.get("value")
        if len(instruction.args) == 1 and isinstance(inline, str) and ("=" in inline or ":" in inline):
            key, value = parse_assignment(inline)
            self.variables[key] = render(value, self.variables)
            logger.debug("Set variable %s", key)
            return
        if not instruction.args:
            raise ScriptStructureError("$set needs at least one assignment")
        for key, value in instruction.args.items():
            self.variables[key] = render(value, self.variables) if isinstance(value, str) else value
            logger.debug("Set variable %s", key)

    async def _if(self, instruction: Instruction, location: str) -> None:
        if evaluate_condition(instruction.condition or "", self.variables):
            await self.run(instruction.body, f"{location}.then.")
        elif instruction.orelse:
            await self.run(instruction.orelse, f"{location}.else.")

    async def _while(self, instruction: Instruction, location: str) -> None:
        iterations = 0
        while evaluate_condition(instruction.condition or "", self.variables):
            iterations += 1
            if iterations > self.max_loop_iterations:
                raise ScriptStructureError(
                    f"$while {instruction.condition!r} exceeded {self.max_loop_iterations} iterations"
                )
            await self.run(instruction.body, f"{location}.do.")
        logger.debug("Loop finished", extra={"condition": instruction.condition, "iterations": iterations})
