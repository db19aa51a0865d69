"""Tests for exception and command-output classification."""

import asyncio

import httpx

from scriptwell.classify.errors import (
    ErrorClassifier,
    OutputErrorType,
    classify_output,
    has_failure,
)
from scriptwell.foundation.errors import ErrorKind


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("status", request=request, response=response)


class TestErrorClassifier:
    """Exceptions map onto ErrorKind."""

    def test_http_statuses(self) -> None:
        classifier = ErrorClassifier()
        assert classifier.classify(_status_error(429)).kind is ErrorKind.RATE_LIMITED
        assert classifier.classify(_status_error(503)).kind is ErrorKind.NETWORK
        assert classifier.classify(_status_error(400)).kind is ErrorKind.MALFORMED_RESPONSE

    def test_builtin_exceptions(self) -> None:
        classifier = ErrorClassifier()
        assert classifier.classify(FileNotFoundError("x.py")).kind is ErrorKind.FILE_NOT_FOUND
        assert classifier.classify(TimeoutError()).kind is ErrorKind.TIMEOUT
        assert classifier.classify(ValueError("bad")).kind is ErrorKind.INVALID_PARAMETERS

    def test_cancellation_is_never_retryable(self) -> None:
        classified = ErrorClassifier().classify(asyncio.CancelledError())
        assert classified.kind is ErrorKind.CANCELLED
        assert not classified.retryable

    def test_plain_text(self) -> None:
        classified = ErrorClassifier().classify("connection refused by host")
        assert classified.kind is ErrorKind.NETWORK
        assert classified.error_type == "message"
        assert classified.user_action


class TestOutputClassification:
    """Shell output names the kind of problem."""

    def test_missing_module(self) -> None:
        result = classify_output("Error: Cannot find module 'express'", "node server.js")
        assert result.error_type is OutputErrorType.DEPENDENCY_MISSING
        assert "cannot find module" in result.indicators

    def test_code_error(self) -> None:
        result = classify_output("TypeError: db.execute is not a function")
        assert result.error_type is OutputErrorType.CODE_ERROR
        assert result.suggested_fix

    def test_command_not_found(self) -> None:
        result = classify_output("bash: foo: command not found")
        assert result.error_type is OutputErrorType.COMMAND_NOT_FOUND

    def test_clean_output(self) -> None:
        assert classify_output("all 12 tests passed").error_type is OutputErrorType.UNKNOWN
        assert not has_failure("all 12 tests passed")
        assert has_failure("npm ERR! missing script: start")
