"""
Tests for the bounded retry loop and backoff strategies.
"""

import random

import pytest

from harness.orchestration.retry import (
    ExponentialBackoff,
    FixedBackoff,
    RetryResult,
    retry_until,
)


# =============================================================================
# Backoff Tests
# =============================================================================


class TestFixedBackoff:
    """Tests for FixedBackoff."""

    def test_same_delay_every_attempt(self):
        backoff = FixedBackoff(3.0)
        assert [backoff.delay(n) for n in (1, 2, 10)] == [3.0, 3.0, 3.0]


class TestExponentialBackoff:
    """Tests for ExponentialBackoff."""

    def test_grows_then_caps(self):
        """Delay doubles per attempt until max_delay."""
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=5.0)

        assert backoff.delay(1) == 1.0
        assert backoff.delay(2) == 2.0
        assert backoff.delay(3) == 4.0
        assert backoff.delay(4) == 5.0
        assert backoff.delay(10) == 5.0

    def test_jitter_stays_within_bounds(self):
        """Jitter of 0.5 keeps the delay within +/-50%."""
        backoff = ExponentialBackoff(base_delay=2.0, max_delay=2.0, jitter=0.5, rng=random.Random(7))

        delays = [backoff.delay(1) for _ in range(50)]

        assert all(1.0 <= d <= 3.0 for d in delays)
        assert len(set(delays)) > 1


# =============================================================================
# retry_until Tests
# =============================================================================


class TestRetryUntil:
    """Tests for retry_until."""

    @pytest.mark.asyncio
    async def test_stops_on_first_success(self):
        calls = []
        sleeps = []

        async def attempt(n):
            calls.append(n)
            return n

        async def sleep(delay):
            sleeps.append(delay)

        result = await retry_until(attempt, lambda r: r == 2, 5, FixedBackoff(0.1), sleep=sleep)

        assert result.succeeded is True
        assert result.attempts == 2
        assert calls == [1, 2]
        assert sleeps == [0.1]

    @pytest.mark.asyncio
    async def test_exhausted_budget_is_not_an_error(self):
        """Never sleeps after the final attempt."""
        sleeps = []

        async def attempt(n):
            return n

        async def sleep(delay):
            sleeps.append(delay)

        result = await retry_until(attempt, lambda r: False, 3, FixedBackoff(0.5), sleep=sleep)

        assert result.succeeded is False
        assert result.attempts == 3
        assert result.last == 3
        assert sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        slept = False

        async def sleep(delay):
            nonlocal slept
            slept = True

        async def attempt(n):
            return None

        result = await retry_until(attempt, lambda r: False, 1, FixedBackoff(1.0), sleep=sleep)

        assert result.attempts == 1
        assert slept is False

    @pytest.mark.asyncio
    async def test_on_attempt_callback(self):
        seen = []

        async def attempt(n):
            return n * 10

        async def sleep(delay):
            pass

        await retry_until(
            attempt,
            lambda r: r >= 30,
            5,
            FixedBackoff(0),
            sleep=sleep,
            on_attempt=lambda n, r: seen.append((n, r)),
        )

        assert seen == [(1, 10), (2, 20), (3, 30)]

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        async def attempt(n):
            return n

        with pytest.raises(ValueError):
            await retry_until(attempt, lambda r: True, 0, FixedBackoff(0))

    @pytest.mark.asyncio
    async def test_attempt_exceptions_propagate(self):
        """Only the predicate decides success; raising attempts are the caller's bug."""

        async def attempt(n):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await retry_until(attempt, lambda r: True, 3, FixedBackoff(0))


class TestRetryResult:
    """Tests for RetryResult."""

    def test_empty_result(self):
        result = RetryResult(succeeded=False, results=[])
        assert result.attempts == 0
        assert result.last is None
