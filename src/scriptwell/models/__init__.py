"""Model layer: protocol, request payloads, response parsing and the HTTP client."""

from scriptwell.models.backoff import BackoffPolicy, sleep_with_backoff
from scriptwell.models.client import ApiClient, ApiKeyPool, ApiModel
from scriptwell.models.mock import MockModel, MockModelWithTools
from scriptwell.models.parsing import parse_response
from scriptwell.models.payload import build_payload, build_request
from scriptwell.models.prompts import build_system_prompt
from scriptwell.models.protocol import (
    GenerateOptions,
    GenerateResult,
    Message,
    ModelProtocol,
    TokenUsage,
    Tool,
)

__all__ = [
    "ApiClient",
    "ApiKeyPool",
    "ApiModel",
    "BackoffPolicy",
    "GenerateOptions",
    "GenerateResult",
    "Message",
    "MockModel",
    "MockModelWithTools",
    "ModelProtocol",
    "TokenUsage",
    "Tool",
    "build_payload",
    "build_request",
    "build_system_prompt",
    "parse_response",
    "sleep_with_backoff",
]
