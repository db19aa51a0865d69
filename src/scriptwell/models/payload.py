"""Request payload builders.

``build_request`` produces the Gemini ``generateContent`` body, the primary
wire format. OpenAI-compatible (OpenAI, Ollama) and Anthropic bodies are built
from the same Message history by ``build_payload``.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

from scriptwell.models.protocol import GenerateOptions, Message, Tool

logger = logging.getLogger(__name__)

_GEMINI_ROLES = {
    "user": "user",
    "assistant": "model",
    "model": "model",
    "system": "user",
    "tool": "user",
}


def gemini_role(role: str) -> str:
    """Map a history role onto the two roles Gemini accepts. Never drops a message."""
    mapped = _GEMINI_ROLES.get(role.lower())
    if mapped is None:
        logger.warning("Unknown role %r, mapping to 'user'", role)
        return "user"
    return mapped


def _gemini_parts(message: Message) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    if message.role == "tool":
        response = message.response if message.response is not None else {"output": message.content or ""}
        function_response: dict[str, Any] = {"name": message.name or "tool", "response": response}
        if message.tool_call_id:
            function_response["id"] = message.tool_call_id
        return [{"functionResponse": function_response}]
    if message.content:
        parts.append({"text": message.content})
    for call in message.tool_calls:
        function_call: dict[str, Any] = {"name": call.name, "args": dict(call.args)}
        if call.id:
            function_call["id"] = call.id
        parts.append({"functionCall": function_call})
    if not parts:
        parts.append({"text": ""})
    return parts


def _generation_config(options: GenerateOptions | None) -> dict[str, Any]:
    if options is None:
        return {}
    config: dict[str, Any] = {}
    if options.temperature is not None:
        config["temperature"] = options.temperature
    if options.max_tokens is not None:
        config["maxOutputTokens"] = options.max_tokens
    if options.stop_sequences:
        config["stopSequences"] = list(options.stop_sequences)
    return config


def build_request(
    history: Sequence[Message],
    tools: Sequence[Tool] = (),
    *,
    tools_enabled: bool = True,
    system_prompt: str | None = None,
    generation: GenerateOptions | None = None,
) -> dict[str, Any]:
    """Gemini request body for the given conversation.

    The system instruction is only attached when tools are enabled. With tools
    disabled, function calling is switched off explicitly.
    """
    contents: list[dict[str, Any]] = []
    for message in history:
        role = gemini_role(message.role)
        parts = _gemini_parts(message)
        # Consecutive function responses answer one model turn together
        if (
            message.role == "tool"
            and contents
            and contents[-1]["role"] == "user"
            and all("functionResponse" in p for p in contents[-1]["parts"])
        ):
            contents[-1]["parts"].extend(parts)
            continue
        contents.append({"role": role, "parts": parts})

    request: dict[str, Any] = {"contents": contents}

    if tools_enabled:
        if tools:
            request["tools"] = [
                {
                    "functionDeclarations": [
                        {"name": t.name, "description": t.description, "parameters": t.parameters}
                        for t in tools
                    ]
                }
            ]
        if system_prompt:
            request["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    else:
        request["toolConfig"] = {"functionCallingConfig": {"mode": "NONE"}}
        request["toolChoice"] = {"none": {}}

    config = _generation_config(generation)
    if config:
        request["generationConfig"] = config
    return request


# =============================================================================
# Other providers
# =============================================================================


def build_openai_request(
    model: str,
    history: Sequence[Message],
    tools: Sequence[Tool] = (),
    *,
    tools_enabled: bool = True,
    system_prompt: str | None = None,
    generation: GenerateOptions | None = None,
) -> dict[str, Any]:
    """OpenAI chat-completions body (also accepted by Ollama)."""
    messages: list[dict[str, Any]] = []
    if tools_enabled and system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for message in history:
        if message.role == "tool":
            content = message.content if message.content is not None else json.dumps(message.response or {})
            messages.append({"role": "tool", "tool_call_id": message.tool_call_id or "", "content": content})
        elif message.role == "assistant" and message.tool_calls:
            messages.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args)},
                    }
                    for call in message.tool_calls
                ],
            })
        else:
            role = message.role if message.role in ("system", "user", "assistant") else "user"
            messages.append({"role": role, "content": message.content or ""})

    body: dict[str, Any] = {"model": model, "messages": messages, "stream": False}
    if tools_enabled and tools:
        body["tools"] = [
            {"type": "function", "function": {"name": t.name, "description": t.description, "parameters": t.parameters}}
            for t in tools
        ]
    elif not tools_enabled:
        body["tool_choice"] = "none"
    if generation is not None:
        if generation.temperature is not None:
            body["temperature"] = generation.temperature
        if generation.max_tokens is not None:
            body["max_tokens"] = generation.max_tokens
        if generation.stop_sequences:
            body["stop"] = list(generation.stop_sequences)
    return body


def build_anthropic_request(
    model: str,
    history: Sequence[Message],
    tools: Sequence[Tool] = (),
    *,
    tools_enabled: bool = True,
    system_prompt: str | None = None,
    generation: GenerateOptions | None = None,
) -> dict[str, Any]:
    """Anthropic messages body."""
    messages: list[dict[str, Any]] = []
    system_parts: list[str] = [system_prompt] if tools_enabled and system_prompt else []

    def append(role: str, blocks: list[dict[str, Any]]) -> None:
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": role, "content": blocks})

    for message in history:
        if message.role == "system":
            system_parts.append(message.content or "")
        elif message.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id or "",
                "content": message.content or "",
            }
            if message.response and "error" in message.response:
                block["is_error"] = True
            append("user", [block])
        elif message.role == "assistant":
            blocks: list[dict[str, Any]] = []
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            blocks.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": dict(call.args)}
                for call in message.tool_calls
            )
            append("assistant", blocks or [{"type": "text", "text": ""}])
        else:
            append("user", [{"type": "text", "text": message.content or ""}])

    max_tokens = generation.max_tokens if generation and generation.max_tokens else 4096
    body: dict[str, Any] = {"model": model, "messages": messages, "max_tokens": max_tokens}
    if system_parts:
        body["system"] = "\n\n".join(system_parts)
    if tools_enabled and tools:
        body["tools"] = [{"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools]
    elif not tools_enabled:
        body["tool_choice"] = {"type": "none"}
    if generation is not None:
        if generation.temperature is not None:
            body["temperature"] = generation.temperature
        if generation.stop_sequences:
            body["stop_sequences"] = list(generation.stop_sequences)
    return body


def build_payload(
    provider: str,
    model: str,
    history: Sequence[Message],
    tools: Sequence[Tool] = (),
    *,
    tools_enabled: bool = True,
    system_prompt: str | None = None,
    generation: GenerateOptions | None = None,
) -> dict[str, Any]:
    """Request body for ``provider`` (gemini, openai, ollama, anthropic)."""
    kwargs = {"tools_enabled": tools_enabled, "system_prompt": system_prompt, "generation": generation}
    if provider == "gemini":
        return build_request(history, tools, **kwargs)
    if provider in ("openai", "ollama"):
        return build_openai_request(model, history, tools, **kwargs)
    if provider == "anthropic":
        return build_anthropic_request(model, history, tools, **kwargs)
    raise ValueError(f"unsupported provider: {provider}")
