"""
Bounded retry with pluggable backoff.

This module provides:
1. Backoff strategies - FixedBackoff (default) and ExponentialBackoff
2. retry_until - call an async attempt until a predicate accepts its result

Usage:
    from harness.orchestration.retry import FixedBackoff, retry_until

    result = await retry_until(
        lambda attempt: probe.probe(url, 8000, attempt=attempt),
        lambda r: r.succeeded,
        max_attempts=30,
        backoff=FixedBackoff(3.0),
    )
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Protocol, TypeVar

from harness.core.logging import get_logger

logger = get_logger("retry")

T = TypeVar("T")


# =============================================================================
# Backoff strategies
# =============================================================================


class Backoff(Protocol):
    """Delay (seconds) to wait after a failed attempt number (1-based)."""

    def delay(self, attempt: int) -> float: ...


@dataclass(frozen=True)
class FixedBackoff:
    """Same delay after every attempt."""

    interval: float

    def delay(self, attempt: int) -> float:
        return self.interval


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    Exponential backoff with optional jitter.

    Args:
        base_delay: Delay after the first failed attempt
        max_delay: Delay cap
        exponential_base: Growth factor per attempt
        jitter: Random jitter factor (0.5 = +/-50% of delay)
    """

    base_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: float = 0.0
    rng: random.Random = field(default_factory=random.Random, compare=False)

    def delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter > 0:
            delay *= 1 + (self.rng.random() - 0.5) * 2 * self.jitter
        return max(delay, 0.0)


# =============================================================================
# Retry loop
# =============================================================================


@dataclass
class RetryResult(Generic[T]):
    """Every attempt result plus whether the predicate was ever satisfied."""

    succeeded: bool
    results: list[T]

    @property
    def attempts(self) -> int:
        return len(self.results)

    @property
    def last(self) -> T | None:
        return self.results[-1] if self.results else None


async def retry_until(
    attempt: Callable[[int], Awaitable[T]],
    predicate: Callable[[T], bool],
    max_attempts: int,
    backoff: Backoff,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_attempt: Callable[[int, T], None] | None = None,
) -> RetryResult[T]:
    """
    Call ``attempt`` until ``predicate`` accepts its result.

    Stops on the first accepted result. Sleeps ``backoff.delay(n)`` between
    attempts, never after the last one. Exhausting the budget is not an
    error: the caller inspects ``RetryResult.succeeded``.

    Args:
        attempt: Async callable receiving the 1-based attempt number
        predicate: Returns True when a result counts as success
        max_attempts: Maximum number of attempts (including the first)
        backoff: Delay strategy between attempts
        sleep: Awaitable sleep, replaceable in tests
        on_attempt: Callback(attempt_number, result) after each attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    results: list[T] = []

    for number in range(1, max_attempts + 1):
        result = await attempt(number)
        results.append(result)

        if on_attempt:
            on_attempt(number, result)

        if predicate(result):
            return RetryResult(succeeded=True, results=results)

        if number < max_attempts:
            delay = backoff.delay(number)
            if delay > 0:
                await sleep(delay)

    logger.debug(f"Retry budget of {max_attempts} attempts exhausted")
    return RetryResult(succeeded=False, results=results)
