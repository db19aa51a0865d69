"""Tests for the error taxonomy."""

from scriptwell.foundation.errors import (
    BudgetExhaustedError,
    ErrorCode,
    ErrorKind,
    ExecutionCancelledError,
    KeysExhaustedError,
    RateLimitedError,
    ScriptStructureError,
    ScriptwellError,
    config_error,
)


class TestScriptwellError:
    """Message formatting and serialization."""

    def test_str_has_error_id(self) -> None:
        err = ScriptwellError(ErrorCode.SCRIPT_NOT_FOUND, {"path": "fix.ai.yaml"})
        assert str(err) == "[SW-2001] Script not found: fix.ai.yaml"
        assert err.category == "script"

    def test_missing_context_keeps_template(self) -> None:
        err = ScriptwellError(ErrorCode.SCRIPT_NOT_FOUND)
        assert "{path}" in err.message

    def test_to_dict(self) -> None:
        data = BudgetExhaustedError("turn budget of 3 used up").to_dict()

        assert data["error_id"] == "SW-6001"
        assert data["kind"] == "script_structure"
        assert data["category"] == "runtime"
        assert "turn budget of 3 used up" in data["message"]
        assert data["recovery_hints"]

    def test_for_llm_mentions_hints(self) -> None:
        text = BudgetExhaustedError("no final answer").for_llm()
        assert text.startswith("ERROR SW-6001:")
        assert "max_turns" in text


class TestSubclasses:
    def test_structure_error_code_depends_on_path(self) -> None:
        assert ScriptStructureError("bad").code is ErrorCode.SCRIPT_STRUCTURE_INVALID
        assert ScriptStructureError("bad", path="x.ai.yaml").code is ErrorCode.SCRIPT_PARSE_ERROR

    def test_keys_exhausted_keeps_retry_after(self) -> None:
        err = KeysExhaustedError(provider="gemini", retry_after=12.345)

        assert err.retry_after == 12.345
        assert err.kind is ErrorKind.KEYS_EXHAUSTED
        assert "Wait 12.3 seconds" in err.recovery_hints[0]

    def test_transient_kinds(self) -> None:
        assert RateLimitedError("slow down", retry_after=1).is_transient
        assert not KeysExhaustedError().is_transient
        assert not ErrorKind.CANCELLED.is_transient

    def test_cancelled_is_not_recoverable(self) -> None:
        err = ExecutionCancelledError()
        assert err.kind is ErrorKind.CANCELLED
        assert not err.is_recoverable

    def test_config_error(self) -> None:
        err = config_error(ErrorCode.CONFIG_INVALID, "engine", "expected a mapping")
        assert err.context == {"key": "engine", "detail": "expected a mapping"}
        assert err.category == "config"
