"""Tests for exponential backoff."""

import asyncio

import pytest

from scriptwell.foundation.types import ModelConfig
from scriptwell.models.backoff import BackoffPolicy, sleep_with_backoff


class TestDelay:
    """Delay growth and capping."""

    def test_exponential_growth_without_jitter(self) -> None:
        policy = BackoffPolicy(initial_ms=1_000, max_ms=10_000, jitter=0.0)
        assert [policy.delay_ms(n) for n in (1, 2, 3)] == [1_000, 2_000, 4_000]

    def test_capped_at_max(self) -> None:
        policy = BackoffPolicy(initial_ms=1_000, max_ms=5_000)
        assert policy.delay_ms(10) == 5_000

    def test_jitter_stays_within_ratio(self) -> None:
        policy = BackoffPolicy(initial_ms=1_000, max_ms=100_000, jitter=0.25)
        delays = {policy.delay_ms(1) for _ in range(50)}
        assert all(1_000 <= d <= 1_250 for d in delays)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_ms": 0},
            {"initial_ms": 10, "max_ms": 5},
            {"factor": 0.5},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_policy(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)


class TestSleepWithBackoff:
    """Cancellable sleeping."""

    @pytest.mark.asyncio
    async def test_completes_without_abort(self) -> None:
        assert await sleep_with_backoff(BackoffPolicy(initial_ms=1, max_ms=1), 1)

    @pytest.mark.asyncio
    async def test_cancel_stops_sleep(self) -> None:
        cancel = asyncio.Event()
        cancel.set()
        assert not await sleep_with_backoff(BackoffPolicy(initial_ms=10_000, max_ms=10_000), 1, cancel)


class TestPolicyFromConfig:
    """Policy construction and provider hints."""

    def test_uses_model_retry_settings(self) -> None:
        policy = BackoffPolicy.from_config(ModelConfig(retry_initial_ms=200, retry_max_ms=800))
        assert (policy.initial_ms, policy.max_ms) == (200, 800)

    def test_retry_after_hint_raises_delay(self) -> None:
        """A provider's Retry-After wins over a shorter computed delay."""
        policy = BackoffPolicy(initial_ms=100, max_ms=1_000, jitter=0.0)
        assert policy.delay_ms(1, minimum_s=3.0) == 3_000
        assert policy.delay_ms(1, minimum_s=0.05) == 100
