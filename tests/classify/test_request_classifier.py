"""Tests for request classification and routing."""

import pytest

from scriptwell.classify.request import (
    RequestClassifier,
    RequestIntent,
    api_mismatch_hint,
    extract_error_locations,
    parse_json_reply,
    routing_info,
)
from scriptwell.models.mock import MockModel


class TestRuleClassification:
    """Keyword rules."""

    def test_stack_trace_is_error_debug(self) -> None:
        """A runtime error with a location is classified as ERROR_DEBUG."""
        result = RequestClassifier().classify_with_rules(
            "TypeError: db.execute is not a function at routes/main.js:45"
        )

        assert result.intent is RequestIntent.ERROR_DEBUG
        assert result.confidence >= 0.6
        assert "is not a function" in result.error_indicators
        assert [(loc.file_path, loc.line) for loc in result.locations] == [("routes/main.js", 45)]

    def test_feature_request_is_upgrade(self) -> None:
        result = RequestClassifier().classify_with_rules("Add a dark mode toggle and improve the settings page")

        assert result.intent is RequestIntent.UPGRADE
        assert result.confidence == 0.8
        assert set(result.upgrade_indicators) >= {"add", "improve"}

    def test_fix_and_feature_is_both(self) -> None:
        result = RequestClassifier().classify_with_rules(
            "The login page is broken, fix the bug and add a remember-me option"
        )
        assert result.intent is RequestIntent.BOTH
        assert result.confidence == 0.85

    def test_no_keywords_is_unknown(self) -> None:
        result = RequestClassifier().classify_with_rules("hello there")
        assert result.intent is RequestIntent.UNKNOWN
        assert result.confidence == 0.3

    def test_add_does_not_match_inside_words(self) -> None:
        """"address" must not count as "add"."""
        result = RequestClassifier().classify_with_rules("what is the address")
        assert result.upgrade_indicators == ()


class TestModelEscalation:
    """Low-confidence results go to the model when one is configured."""

    @pytest.mark.asyncio
    async def test_high_confidence_skips_model(self) -> None:
        model = MockModel(responses=['{"intent": "UPGRADE", "confidence": 0.9}'])
        result = await RequestClassifier(model=model).classify("TypeError: x is not a function")

        assert result.source == "rules"
        assert model.call_count == 0

    @pytest.mark.asyncio
    async def test_ambiguous_message_uses_model(self) -> None:
        model = MockModel(responses=['```json\n{"intent": "upgrade", "confidence": 1.7, "reasoning": "wants a feature"}\n```'])
        result = await RequestClassifier(model=model).classify("make the app nicer")

        assert result.intent is RequestIntent.UPGRADE
        assert result.confidence == 1.0
        assert result.source == "model"
        assert model.call_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_model_reply_falls_back_to_rules(self) -> None:
        model = MockModel(responses=["I think it is an upgrade"])
        result = await RequestClassifier(model=model).classify("make the app nicer")

        assert result.source == "rules"
        assert result.intent is RequestIntent.UNKNOWN


class TestHelpers:
    """Locations, routing and hints."""

    def test_python_traceback_location(self) -> None:
        text = 'Traceback (most recent call last):\n  File "app/main.py", line 12, in handler\n'
        [location] = extract_error_locations(text)
        assert location.file_path == "app/main.py"
        assert location.line == 12
        assert location.function == "handler"

    def test_js_stack_frame_with_column(self) -> None:
        [location] = extract_error_locations("    at start (src/app.js:10:7)")
        assert (location.file_path, location.line, location.column, location.function) == ("src/app.js", 10, 7, "start")

    def test_routing_for_each_intent(self) -> None:
        classifier = RequestClassifier()
        both = routing_info(classifier.classify_with_rules("broken bug, add export"))
        unknown = routing_info(classifier.classify_with_rules("hmm"))

        assert both == {"script": "debug_then_upgrade", "debug": True, "upgrade": True, "needs_clarification": False}
        assert unknown["script"] == "general"
        assert unknown["needs_clarification"]

    def test_api_mismatch_hint(self) -> None:
        assert "prepare" in api_mismatch_hint("db.execute is not a function")
        assert api_mismatch_hint("all good") is None

    def test_parse_json_reply_rejects_plain_text(self) -> None:
        with pytest.raises(ValueError):
            parse_json_reply("no json here")
