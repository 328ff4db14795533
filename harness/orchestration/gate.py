"""Service readiness gate - bounded fixed-interval polling of one service."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from harness.core.logging import get_logger
from harness.orchestration.models import ProbeResult, ReadinessOutcome, ServiceDescriptor
from harness.orchestration.probe import ServiceProbe
from harness.orchestration.retry import Backoff, FixedBackoff, retry_until

logger = get_logger("gate")

# Progress is logged on the first attempt and every Nth after it
LOG_EVERY = 10


class ServiceReadinessGate:
    """
    Decide whether one service is usable by its dependents.

    Runs the probe up to ``max_attempts`` times with ``interval_ms`` between
    attempts and returns as soon as one succeeds. An exhausted budget yields
    ``ready=False``; whether that is fatal is the orchestrator's call.

    Args:
        probe: Probe used for every attempt
        backoff_factory: Builds the delay strategy for a descriptor
            (fixed ``interval_ms`` by default)
        sleep: Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        probe: ServiceProbe,
        backoff_factory: Callable[[ServiceDescriptor], Backoff] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.probe = probe
        self.backoff_factory = backoff_factory or (
            lambda d: FixedBackoff(d.interval_ms / 1000)
        )
        self.sleep = sleep

    async def await_ready(self, descriptor: ServiceDescriptor) -> ReadinessOutcome:
        logger.info(f"Waiting for {descriptor.name}: {descriptor.health_url or descriptor.runtime_name}")
        start = time.monotonic()

        def log_attempt(number: int, result: ProbeResult) -> None:
            if result.succeeded:
                return
            if number == 1 or number % LOG_EVERY == 0:
                logger.info(
                    f"Attempt {number}/{descriptor.max_attempts} for {descriptor.name}: "
                    f"{result.describe()}"
                )

        outcome = await retry_until(
            lambda number: self.probe.check(descriptor, number),
            lambda result: result.succeeded,
            max_attempts=descriptor.max_attempts,
            backoff=self.backoff_factory(descriptor),
            sleep=self.sleep,
            on_attempt=log_attempt,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if outcome.succeeded:
            logger.info(f"Service ready: {descriptor.name} ({outcome.attempts} attempt(s), {elapsed_ms}ms)")
        else:
            logger.warning(
                f"Service failed to become ready: {descriptor.name} after "
                f"{outcome.attempts} attempts ({outcome.last.describe() if outcome.last else 'no result'})"
            )

        return ReadinessOutcome(
            service=descriptor,
            ready=outcome.succeeded,
            attempts_used=outcome.attempts,
            total_elapsed_ms=elapsed_ms,
            attempts=tuple(outcome.results),
        )
