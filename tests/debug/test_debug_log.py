"""Tests for the bounded debug log."""

import json
from pathlib import Path

import pytest

from scriptwell.debug.log import DebugLog


class TestDebugLog:
    def test_ring_buffer_drops_oldest(self) -> None:
        log = DebugLog(capacity=3)
        for i in range(5):
            log.record("op", "state", {"i": i})

        assert len(log) == 3
        assert [e.data["i"] for e in log.entries()] == [2, 3, 4]

    def test_filter_and_limit(self) -> None:
        log = DebugLog()
        log.record("a", "state")
        log.record("b", "tool_result", {"tool": "shell"})
        log.record("a", "paused")

        assert [e.event for e in log.entries("a")] == ["state", "paused"]
        assert [e.event for e in log.entries(limit=1)] == ["paused"]

    def test_export_json(self, tmp_path: Path) -> None:
        log = DebugLog()
        log.record("a", "state", {"to": "await_model"})
        log.record("b", "state")
        target = tmp_path / "out" / "debug.json"

        text = log.export_json(target, operation_id="a")
        payload = json.loads(target.read_text())

        assert text == target.read_text()
        assert len(payload) == 1
        assert payload[0]["data"] == {"to": "await_model"}
        assert payload[0]["operation_id"] == "a"

    def test_clear(self) -> None:
        log = DebugLog()
        log.record("a", "state")
        log.clear()
        assert len(log) == 0

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            DebugLog(capacity=0)
