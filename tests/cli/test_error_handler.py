"""Tests for CLI error handler.

Tests cover:
- JSON output mode for machine consumption
- Human-readable formatting with recovery hints
- Generic exception wrapping
"""

import json
import sys
from io import StringIO
from unittest.mock import patch

import pytest
from rich.console import Console

from scriptwell.cli.error_handler import handle_error, print_error
from scriptwell.foundation.errors import ErrorCode, ScriptwellError


class TestHandleErrorJson:
    """Tests for handle_error with JSON output mode."""

    def test_outputs_json_to_stderr(self) -> None:
        """JSON output goes to stderr and exits with status 1."""
        error = ScriptwellError(
            code=ErrorCode.SCRIPT_NOT_FOUND,
            context={"path": "fix.ai.yaml"},
        )

        captured_stderr = StringIO()
        with (
            patch.object(sys, "stderr", captured_stderr),
            pytest.raises(SystemExit) as exc_info,
        ):
            handle_error(error, json_output=True)

        assert exc_info.value.code == 1
        data = json.loads(captured_stderr.getvalue())
        assert data["code"] == ErrorCode.SCRIPT_NOT_FOUND.value
        assert data["error_id"] == "SW-2001"
        assert data["context"] == {"path": "fix.ai.yaml"}

    def test_includes_cause_in_json(self) -> None:
        """Cause is included in JSON output when present."""
        error = ScriptwellError(
            code=ErrorCode.FILE_WRITE_FAILED,
            context={"path": "a.txt"},
            cause=OSError("disk full"),
        )

        captured_stderr = StringIO()
        with patch.object(sys, "stderr", captured_stderr), pytest.raises(SystemExit):
            handle_error(error, json_output=True)

        data = json.loads(captured_stderr.getvalue())
        assert data["cause"] == "disk full"

    def test_wraps_generic_exception(self) -> None:
        """Plain exceptions are wrapped as TOOL_EXECUTION_FAILED."""
        captured_stderr = StringIO()
        with patch.object(sys, "stderr", captured_stderr), pytest.raises(SystemExit):
            handle_error(RuntimeError("boom"), json_output=True)

        data = json.loads(captured_stderr.getvalue())
        assert data["code"] == ErrorCode.TOOL_EXECUTION_FAILED.value
        assert data["cause"] == "boom"
        assert "boom" in data["message"]


class TestPrintError:
    """Tests for the human-readable format."""

    def _render(self, error: ScriptwellError) -> str:
        buffer = StringIO()
        print_error(error, console=Console(file=buffer, width=120, no_color=True))
        return buffer.getvalue()

    def test_shows_error_id_and_message(self) -> None:
        output = self._render(
            ScriptwellError(code=ErrorCode.SCRIPT_NOT_FOUND, context={"path": "fix.ai.yaml"})
        )

        assert "SW-2001" in output
        assert "Script not found: fix.ai.yaml" in output

    def test_shows_formatted_recovery_hints(self) -> None:
        """Hints are listed with their context filled in."""
        output = self._render(
            ScriptwellError(
                code=ErrorCode.MODEL_KEYS_EXHAUSTED,
                context={"provider": "gemini", "retry_after": 30},
            )
        )

        assert "Wait 30 seconds" in output
        assert "model.api_keys" in output

    def test_human_mode_exits_with_status_one(self) -> None:
        error = ScriptwellError(code=ErrorCode.CONFIG_MISSING, context={"key": "model.api_keys"})
        with (
            patch("scriptwell.cli.error_handler.print_error") as printer,
            pytest.raises(SystemExit) as exc_info,
        ):
            handle_error(error)

        assert exc_info.value.code == 1
        printer.assert_called_once_with(error)
