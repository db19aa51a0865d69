"""Response parsing for Gemini, OpenAI, Anthropic and Ollama bodies.

Every provider shape is normalized into a GenerateResult. A body with neither
text nor tool calls (or the wrong shape altogether) raises
MalformedResponseError so the caller never mistakes it for an empty answer.
"""

import json
import logging
import uuid
from typing import Any

from scriptwell.foundation.errors import MalformedResponseError
from scriptwell.models.protocol import GenerateResult, TokenUsage, sanitize_arguments, sanitize_llm_content
from scriptwell.script.model import ToolCall

logger = logging.getLogger(__name__)


def _call_id(raw: Any) -> str:
    return str(raw) if raw else f"call_{uuid.uuid4().hex[:12]}"


def _arguments(raw: Any, provider: str) -> dict[str, Any]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"tool call arguments are not JSON: {raw[:80]!r}", provider=provider, cause=e) from e
    if not isinstance(raw, dict):
        raise MalformedResponseError("tool call arguments must be an object", provider=provider)
    return sanitize_arguments(raw)


def detect_provider(data: dict[str, Any]) -> str:
    if "candidates" in data or "promptFeedback" in data:
        return "gemini"
    if "choices" in data:
        return "openai"
    if data.get("type") == "message" or ("content" in data and "stop_reason" in data):
        return "anthropic"
    if "message" in data:
        return "ollama"
    raise MalformedResponseError("unrecognized response shape", provider="unknown")


def parse_response(data: Any, provider: str | None = None, *, model: str = "") -> GenerateResult:
    """Normalize a provider response body.

    Raises:
        MalformedResponseError: On a wrong shape or an empty answer.
    """
    if not isinstance(data, dict):
        raise MalformedResponseError("response body is not a JSON object", provider=provider or "unknown")
    provider = provider or detect_provider(data)
    if "error" in data and isinstance(data["error"], dict):
        message = data["error"].get("message", "unknown error")
        raise MalformedResponseError(f"provider returned an error body: {message}", provider=provider)

    try:
        if provider == "gemini":
            result = _parse_gemini(data, model)
        elif provider == "openai":
            result = _parse_openai(data, model)
        elif provider == "anthropic":
            result = _parse_anthropic(data, model)
        elif provider == "ollama":
            result = _parse_ollama(data, model)
        else:
            raise MalformedResponseError(f"unsupported provider {provider!r}", provider=provider)
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise MalformedResponseError(f"unexpected response shape: {e}", provider=provider, cause=e) from e

    if not result.text.strip() and not result.tool_calls:
        raise MalformedResponseError(
            f"response has neither text nor tool calls (finish_reason={result.finish_reason})",
            provider=provider,
        )
    return result


def _parse_gemini(data: dict[str, Any], model: str) -> GenerateResult:
    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
        raise MalformedResponseError(f"no candidates in response ({reason})", provider="gemini")
    candidate = candidates[0]
    texts: list[str] = []
    calls: list[ToolCall] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if "text" in part and not part.get("thought"):
            texts.append(part["text"])
        elif "functionCall" in part:
            fc = part["functionCall"]
            calls.append(ToolCall(name=fc["name"], args=_arguments(fc.get("args"), "gemini"), id=_call_id(fc.get("id"))))

    usage_data = data.get("usageMetadata")
    usage = None
    if usage_data:
        prompt = int(usage_data.get("promptTokenCount", 0))
        completion = int(usage_data.get("candidatesTokenCount", 0))
        usage = TokenUsage(prompt, completion, int(usage_data.get("totalTokenCount", prompt + completion)))

    return GenerateResult(
        content=sanitize_llm_content("".join(texts)) if texts else None,
        model=data.get("modelVersion", model),
        tool_calls=tuple(calls),
        usage=usage,
        finish_reason=candidate.get("finishReason"),
        raw=data,
    )


def _parse_openai(data: dict[str, Any], model: str) -> GenerateResult:
    choice = data["choices"][0]
    message = choice["message"]
    calls = tuple(
        ToolCall(
            name=tc["function"]["name"],
            args=_arguments(tc["function"].get("arguments"), "openai"),
            id=_call_id(tc.get("id")),
        )
        for tc in message.get("tool_calls") or ()
    )
    usage_data = data.get("usage")
    usage = None
    if usage_data:
        usage = TokenUsage(
            int(usage_data.get("prompt_tokens", 0)),
            int(usage_data.get("completion_tokens", 0)),
            int(usage_data.get("total_tokens", 0)),
        )
    return GenerateResult(
        content=sanitize_llm_content(message.get("content")),
        model=data.get("model", model),
        tool_calls=calls,
        usage=usage,
        finish_reason=choice.get("finish_reason"),
        raw=data,
    )


def _parse_anthropic(data: dict[str, Any], model: str) -> GenerateResult:
    texts: list[str] = []
    calls: list[ToolCall] = []
    for block in data["content"]:
        if block.get("type") == "text":
            texts.append(block.get("text", ""))
        elif block.get("type") == "tool_use":
            calls.append(ToolCall(name=block["name"], args=_arguments(block.get("input"), "anthropic"), id=_call_id(block.get("id"))))
    usage_data = data.get("usage")
    usage = None
    if usage_data:
        prompt = int(usage_data.get("input_tokens", 0))
        completion = int(usage_data.get("output_tokens", 0))
        usage = TokenUsage(prompt, completion, prompt + completion)
    return GenerateResult(
        content=sanitize_llm_content("".join(texts)) if texts else None,
        model=data.get("model", model),
        tool_calls=tuple(calls),
        usage=usage,
        finish_reason=data.get("stop_reason"),
        raw=data,
    )


def _parse_ollama(data: dict[str, Any], model: str) -> GenerateResult:
    message = data["message"]
    calls = tuple(
        ToolCall(
            name=tc["function"]["name"],
            args=_arguments(tc["function"].get("arguments"), "ollama"),
            id=_call_id(tc.get("id")),
        )
        for tc in message.get("tool_calls") or ()
    )
    prompt = int(data.get("prompt_eval_count", 0))
    completion = int(data.get("eval_count", 0))
    return GenerateResult(
        content=sanitize_llm_content(message.get("content")),
        model=data.get("model", model),
        tool_calls=calls,
        usage=TokenUsage(prompt, completion, prompt + completion) if prompt or completion else None,
        finish_reason=data.get("done_reason"),
        raw=data,
    )
