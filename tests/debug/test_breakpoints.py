"""Tests for BreakpointManager."""

import asyncio

import pytest

from scriptwell.debug.breakpoints import (
    BreakpointManager,
    BreakpointType,
    evaluate_breakpoint_condition,
)
from scriptwell.foundation.errors import ExecutionCancelledError


def _ctx(**variables) -> dict:
    return {"variables": variables}


# =============================================================================
# Conditions
# =============================================================================


class TestConditions:
    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            ("status == done", True),
            ("status == 'done'", True),
            ("status != done", False),
            ("count > 3", True),
            ("count <= 3", False),
            ("count >= 4", True),
            ("name > 3", False),
            ("count", True),
            ("missing", False),
        ],
    )
    def test_evaluate(self, condition: str, expected: bool) -> None:
        context = _ctx(status="done", count="4", name="ada")
        assert evaluate_breakpoint_condition(condition, context) is expected


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    """Set, toggle, remove."""

    def test_ids_are_sequential(self) -> None:
        manager = BreakpointManager()
        first = manager.set_breakpoint(BreakpointType.TURN, "1")
        second = manager.set_breakpoint(BreakpointType.TOOL_CALL, "shell")

        assert (first.id, second.id) == ("bp-1", "bp-2")
        assert [bp.id for bp in manager.list()] == ["bp-1", "bp-2"]

    def test_disable_and_remove(self) -> None:
        manager = BreakpointManager()
        bp = manager.set_breakpoint(BreakpointType.TURN, "1")

        assert manager.set_enabled(bp.id, False)
        assert not manager.get(bp.id).enabled
        assert manager.remove_breakpoint(bp.id)
        assert not manager.remove_breakpoint(bp.id)
        assert not manager.set_enabled("bp-99", True)


# =============================================================================
# Pausing
# =============================================================================


class TestPausing:
    """check_breakpoint, continue and step."""

    @pytest.mark.asyncio
    async def test_turn_matches_number_or_location(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "2")

        assert not await manager.check_breakpoint("op", BreakpointType.TURN, "main:0", {"turn_number": 1})
        assert await manager.check_breakpoint("op", BreakpointType.TURN, "main:1", {"turn_number": 2})
        assert manager.is_paused("op")
        assert manager.is_paused()

    @pytest.mark.asyncio
    async def test_hit_count_and_state(self) -> None:
        manager = BreakpointManager()
        bp = manager.set_breakpoint(BreakpointType.TOOL_CALL, "*")

        await manager.check_breakpoint("op", BreakpointType.TOOL_CALL, "shell", {"tool_name": "shell", **_ctx(x=1)})
        state = manager.get_state("op")

        assert state.breakpoint.id == bp.id
        assert manager.get(bp.id).hit_count == 1
        assert manager.variables_at_breakpoint("op") == {"x": 1}

    @pytest.mark.asyncio
    async def test_condition_must_hold(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.INSTRUCTION, "0:1", condition="retries > 2")

        assert not await manager.check_breakpoint("op", BreakpointType.INSTRUCTION, "0:1", _ctx(retries=1))
        assert await manager.check_breakpoint("op", BreakpointType.INSTRUCTION, "0:1", _ctx(retries=3))

    @pytest.mark.asyncio
    async def test_variable_breakpoint(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.VARIABLE, "plan")

        assert not await manager.check_breakpoint("op", BreakpointType.VARIABLE, "x", _ctx())
        assert await manager.check_breakpoint("op", BreakpointType.VARIABLE, "x", _ctx(plan="ready"))

    @pytest.mark.asyncio
    async def test_disabled_breakpoint_never_pauses(self) -> None:
        manager = BreakpointManager()
        bp = manager.set_breakpoint(BreakpointType.CONDITION, "", condition="x")
        manager.set_enabled(bp.id, False)
        assert not await manager.check_breakpoint("op", BreakpointType.CONDITION, "any", _ctx(x=1))

    @pytest.mark.asyncio
    async def test_wait_blocks_until_continue(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("op", BreakpointType.TURN, "s:0", {"turn_number": 1})

        waiter = asyncio.create_task(manager.wait_if_paused("op"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        assert await manager.continue_execution("op")
        await asyncio.wait_for(waiter, timeout=1)
        assert not manager.is_paused("op")
        assert not await manager.continue_execution("op")

    @pytest.mark.asyncio
    async def test_step_pauses_at_next_boundary(self) -> None:
        """After step, the next check pauses even without a matching breakpoint."""
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("op", BreakpointType.TURN, "s:0", {"turn_number": 1})

        assert await manager.step("op")
        assert await manager.check_breakpoint("op", BreakpointType.INSTRUCTION, "0:0")
        assert manager.get_state("op").breakpoint is None

    @pytest.mark.asyncio
    async def test_operations_pause_independently(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("a", BreakpointType.TURN, "s:0", {"turn_number": 1})

        assert manager.is_paused("a")
        assert not manager.is_paused("b")
        await manager.wait_if_paused("b")

    @pytest.mark.asyncio
    async def test_clear_releases_waiters(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("op", BreakpointType.TURN, "s:0", {"turn_number": 1})
        waiter = asyncio.create_task(manager.wait_if_paused("op"))
        await asyncio.sleep(0)

        manager.clear()
        await asyncio.wait_for(waiter, timeout=1)
        assert manager.list() == []

    @pytest.mark.asyncio
    async def test_cancel_releases_paused_wait(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("op", BreakpointType.TURN, "s:0", {"turn_number": 1})
        cancel = asyncio.Event()

        waiter = asyncio.create_task(manager.wait_if_paused("op", cancel))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        cancel.set()
        with pytest.raises(ExecutionCancelledError):
            await asyncio.wait_for(waiter, timeout=1)
        assert not manager.is_paused("op")

    @pytest.mark.asyncio
    async def test_resume_wins_over_unset_cancel(self) -> None:
        manager = BreakpointManager()
        manager.set_breakpoint(BreakpointType.TURN, "1")
        await manager.check_breakpoint("op", BreakpointType.TURN, "s:0", {"turn_number": 1})

        waiter = asyncio.create_task(manager.wait_if_paused("op", asyncio.Event()))
        await asyncio.sleep(0)
        assert await manager.continue_execution("op")
        await asyncio.wait_for(waiter, timeout=1)
