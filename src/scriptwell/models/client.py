"""Non-streaming HTTP model client with retries and API key rotation.

Failure handling:
    - HTTP 429: the key cools down and the next available key is used at once.
      When every key is cooling down, a short wait is retried; a long one
      raises KeysExhaustedError carrying ``retry_after``.
    - HTTP 5xx and transport errors: NetworkError, retried with backoff.
    - Timeouts: ApiTimeoutError, retried with backoff.
    - Other 4xx: ApiRequestError, not retried.
    - Unparseable bodies: MalformedResponseError, not retried.

Whether a failure is retried is decided by ErrorClassifier. A set ``cancel``
event interrupts an in-flight request as well as a backoff sleep.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from scriptwell.classify.errors import ErrorClassifier
from scriptwell.foundation.errors import (
    ApiError,
    ApiRequestError,
    ApiTimeoutError,
    ErrorCode,
    ExecutionCancelledError,
    KeysExhaustedError,
    MalformedResponseError,
    NetworkError,
    RateLimitedError,
    config_error,
)
from scriptwell.foundation.types import ModelConfig
from scriptwell.models.backoff import BackoffPolicy, sleep_with_backoff
from scriptwell.models.parsing import parse_response
from scriptwell.models.payload import build_payload
from scriptwell.models.prompts import build_system_prompt
from scriptwell.models.protocol import GenerateOptions, GenerateResult, Message, Tool, as_messages

logger = logging.getLogger(__name__)

_KEYLESS_PROVIDERS = frozenset({"ollama"})


# =============================================================================
# Key pool
# =============================================================================


@dataclass(slots=True)
class _KeyState:
    key: str
    cooldown_until: float = 0.0
    rate_limit_hits: int = 0


class ApiKeyPool:
    """Round-robin API keys, skipping keys that are cooling down after a 429.

    Example:
        >>> pool = ApiKeyPool(["k1", "k2"], cooldown_seconds=60)
        >>> key = pool.acquire()
        >>> pool.mark_rate_limited(key)
        >>> pool.acquire()
        'k2'
    """

    def __init__(
        self,
        keys: Sequence[str],
        *,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._states = [_KeyState(k) for k in dict.fromkeys(k for k in keys if k)]
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._index = 0

    def __len__(self) -> int:
        return len(self._states)

    def available(self) -> int:
        now = self._clock()
        return sum(1 for s in self._states if s.cooldown_until <= now)

    def retry_after(self) -> float:
        """Seconds until the next key leaves cooldown (0 if one is available)."""
        if not self._states:
            return 0.0
        now = self._clock()
        return max(0.0, min(s.cooldown_until for s in self._states) - now)

    def acquire(self, provider: str = "model") -> str:
        """Next available key in rotation.

        Raises:
            KeysExhaustedError: If every key is cooling down.
        """
        now = self._clock()
        for offset in range(len(self._states)):
            state = self._states[(self._index + offset) % len(self._states)]
            if state.cooldown_until <= now:
                self._index = (self._index + offset) % len(self._states)
                return state.key
        raise KeysExhaustedError(provider=provider, retry_after=self.retry_after())

    def mark_rate_limited(self, key: str, retry_after: float | None = None) -> None:
        for i, state in enumerate(self._states):
            if state.key == key:
                state.cooldown_until = self._clock() + (retry_after if retry_after else self._cooldown)
                state.rate_limit_hits += 1
                self._index = (i + 1) % len(self._states)
                logger.info(
                    "API key %d rate limited, rotating",
                    i,
                    extra={"cooldown_s": state.cooldown_until - self._clock(), "available": self.available()},
                )
                return

    def reset(self) -> None:
        """Clear all cooldowns (used by wait-and-retry)."""
        for state in self._states:
            state.cooldown_until = 0.0


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message", body["error"]))[:200]
    return str(body)[:200]


# =============================================================================
# Client
# =============================================================================


async def _until_cancelled(request: Awaitable[httpx.Response], cancel: asyncio.Event | None) -> httpx.Response:
    """Await ``request``, abandoning it if ``cancel`` is set first."""
    if cancel is None:
        return await request
    sending = asyncio.ensure_future(request)
    watching = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sending, watching}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sending, watching):
            if not task.done():
                task.cancel()
        await asyncio.gather(sending, watching, return_exceptions=True)
    if not sending.done() or sending.cancelled():
        raise ExecutionCancelledError()
    return sending.result()


class ApiClient:
    """POSTs request bodies to the configured provider and returns parsed JSON.

    Example:
        async with ApiClient(config) as client:
            data = await client.post(build_request(history, tools))
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: BackoffPolicy | None = None,
        key_pool: ApiKeyPool | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self.config = config
        self.classifier = classifier or ErrorClassifier()
        self.policy = policy or BackoffPolicy.from_config(config)
        self.keys = key_pool or ApiKeyPool(config.api_keys, cooldown_seconds=config.key_cooldown_seconds)
        if not len(self.keys) and config.provider not in _KEYLESS_PROVIDERS:
            raise config_error(ErrorCode.CONFIG_MISSING, "model.api_keys")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_connections,
            )
            timeout = httpx.Timeout(
                timeout=self.config.request_timeout,
                connect=self.config.connect_timeout,
            )
            self._client = httpx.AsyncClient(limits=limits, timeout=timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def _endpoint(self, key: str | None) -> tuple[str, dict[str, str]]:
        base = self.config.base_url.rstrip("/")
        provider = self.config.provider
        headers = {"Content-Type": "application/json"}
        if provider == "gemini":
            headers["x-goog-api-key"] = key or ""
            return f"{base}/models/{self.config.model}:generateContent", headers
        if provider == "openai":
            headers["Authorization"] = f"Bearer {key}"
            return f"{base}/chat/completions", headers
        if provider == "anthropic":
            headers["x-api-key"] = key or ""
            headers["anthropic-version"] = "2023-06-01"
            return f"{base}/messages", headers
        if provider == "ollama":
            return f"{base}/api/chat", headers
        raise config_error(ErrorCode.CONFIG_INVALID, "model.provider", f"unsupported provider {provider!r}")

    async def post(self, payload: dict[str, Any], *, cancel: asyncio.Event | None = None) -> dict[str, Any]:
        """Send one request, retrying transient failures.

        Raises:
            KeysExhaustedError: Every key is rate limited for longer than a backoff step.
            ApiError: Non-transient failure, or retries used up.
            ExecutionCancelledError: ``cancel`` was set.
        """
        provider = self.config.provider
        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise ExecutionCancelledError()

            key = self.keys.acquire(provider) if len(self.keys) else None
            url, headers = self._endpoint(key)
            started = time.monotonic()
            try:
                response = await _until_cancelled(self._get_client().post(url, json=payload, headers=headers), cancel)
            except httpx.TimeoutException as e:
                error: ApiError = ApiTimeoutError(str(e) or "timed out", provider=provider, timeout=self.config.request_timeout, cause=e)
            except httpx.TransportError as e:
                error = NetworkError(str(e) or type(e).__name__, provider=provider, cause=e)
            except httpx.RequestError as e:
                # Decoding failures and redirect loops: the body is unusable
                raise MalformedResponseError(f"{type(e).__name__}: {e}", provider=provider, cause=e) from e
            else:
                logger.debug(
                    "Model API responded",
                    extra={"status": response.status_code, "elapsed_ms": int((time.monotonic() - started) * 1000)},
                )
                if response.status_code == 429:
                    retry_after = _parse_retry_after(response)
                    if key is not None:
                        self.keys.mark_rate_limited(key, retry_after)
                        if self.keys.available():
                            continue
                        wait = self.keys.retry_after()
                        if wait * 1000 > self.policy.max_ms or attempt >= self.config.max_retries:
                            raise KeysExhaustedError(provider=provider, retry_after=wait)
                        retry_after = wait
                    error = RateLimitedError(_error_detail(response), provider=provider, retry_after=retry_after or 0.0, status_code=429)
                elif response.status_code >= 500:
                    error = NetworkError(_error_detail(response), provider=provider, status_code=response.status_code)
                elif response.status_code >= 400:
                    raise ApiRequestError(_error_detail(response), provider=provider, status_code=response.status_code)
                else:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise MalformedResponseError("response body is not JSON", provider=provider, cause=e) from e
                    if not isinstance(data, dict):
                        raise MalformedResponseError("response body is not a JSON object", provider=provider)
                    return data

            if not self.classifier.classify(error).retryable or attempt >= self.config.max_retries:
                logger.error("Model API request failed: %s", error, extra={"attempts": attempt + 1})
                raise error
            attempt += 1
            minimum = error.retry_after if isinstance(error, RateLimitedError) else 0.0
            logger.warning(
                "Transient API failure (%s), retrying %d/%d",
                error.kind.value,
                attempt,
                self.config.max_retries,
            )
            if not await sleep_with_backoff(self.policy, attempt, cancel, minimum_s=minimum):
                raise ExecutionCancelledError()


# =============================================================================
# Model adapter
# =============================================================================


class ApiModel:
    """ModelProtocol implementation backed by ApiClient.

    Example:
        model = ApiModel(get_config().model)
        result = await model.generate("Hello!")
    """

    def __init__(self, config: ModelConfig, *, client: ApiClient | None = None, workspace: str | None = None) -> None:
        self.config = config
        self.client = client or ApiClient(config)
        self.workspace = workspace

    @property
    def model_id(self) -> str:
        return f"{self.config.provider}/{self.config.model}"

    async def generate(
        self,
        prompt: str | tuple[Message, ...],
        *,
        tools: tuple[Tool, ...] | None = None,
        tool_choice: Literal["auto", "none", "required"] | str | None = None,
        options: GenerateOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerateResult:
        messages = as_messages(prompt)
        tools_enabled = tool_choice != "none"
        opts = options or GenerateOptions(temperature=self.config.temperature)
        system_prompt = opts.system_prompt
        if system_prompt is None and tools_enabled:
            system_prompt = build_system_prompt([t.name for t in tools or ()], workspace=self.workspace)

        payload = build_payload(
            self.config.provider,
            self.config.model,
            messages,
            tools or (),
            tools_enabled=tools_enabled,
            system_prompt=system_prompt,
            generation=opts,
        )
        data = await self.client.post(payload, cancel=cancel)
        result = parse_response(data, self.config.provider, model=self.config.model)
        logger.debug(
            "Generated response",
            extra={"model": self.model_id, "tool_calls": len(result.tool_calls), "finish_reason": result.finish_reason},
        )
        return result

    async def aclose(self) -> None:
        await self.client.aclose()
