"""Retry delays for the model API: exponential growth with jitter.

Example:
    >>> policy = BackoffPolicy.from_config(get_config().model)
    >>> await sleep_with_backoff(policy, attempt=3, cancel=cancel)

Delay for attempt n (1-indexed) is ``initial * factor^(n-1)`` plus up to
``jitter`` of that again, capped at ``max_ms``. A Retry-After hint from the
provider raises the delay but never lowers it.
"""

import asyncio
import random
from dataclasses import dataclass

from scriptwell.foundation.types import ModelConfig


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """How long the API client waits between attempts."""

    initial_ms: int = 1_000
    """Delay before the first retry, in milliseconds."""

    max_ms: int = 10_000
    """No single delay exceeds this. Also the longest key cooldown worth waiting out."""

    factor: float = 2.0

    jitter: float = 0.25
    """Extra random delay, as a fraction of the base delay."""

    def __post_init__(self) -> None:
        if self.initial_ms <= 0:
            raise ValueError("initial_ms must be positive")
        if self.max_ms < self.initial_ms:
            raise ValueError("max_ms must be >= initial_ms")
        if self.factor < 1.0:
            raise ValueError("factor must be >= 1.0")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")

    @classmethod
    def from_config(cls, config: ModelConfig) -> "BackoffPolicy":
        return cls(initial_ms=config.retry_initial_ms, max_ms=config.retry_max_ms)

    def delay_ms(self, attempt: int, *, minimum_s: float = 0.0) -> int:
        """Delay before retry number ``attempt``, at least ``minimum_s``."""
        base = self.initial_ms * self.factor ** max(attempt - 1, 0)
        jittered = min(self.max_ms, int(base * (1.0 + self.jitter * random.random())))
        return max(jittered, int(minimum_s * 1000))


async def sleep_with_backoff(
    policy: BackoffPolicy,
    attempt: int,
    cancel: asyncio.Event | None = None,
    *,
    minimum_s: float = 0.0,
) -> bool:
    """Wait out the delay for ``attempt``.

    Returns:
        True if the full delay passed, False if ``cancel`` was set first.
    """
    delay_s = policy.delay_ms(attempt, minimum_s=minimum_s) / 1000
    if cancel is None:
        await asyncio.sleep(delay_s)
        return True
    if cancel.is_set():
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay_s)
    except TimeoutError:
        return True
    return False
