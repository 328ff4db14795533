"""
Health probes - one bounded check per call, no internal retry.

Two probes share the same contract: HealthProbe issues an HTTP GET,
ContainerHealthProbe reads the Docker health status of a container.
Retry policy lives in ServiceReadinessGate.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol

import httpx

from harness.core.logging import get_logger
from harness.orchestration.models import ProbeResult, ServiceDescriptor

if TYPE_CHECKING:
    from harness.runtime.compose import ContainerRuntime

logger = get_logger("probe")


class ServiceProbe(Protocol):
    """Anything that can check a service once."""

    async def check(self, descriptor: ServiceDescriptor, attempt: int) -> ProbeResult: ...


class HealthProbe:
    """
    Single-shot HTTP health check.

    A response below ``success_below`` (default 400) is healthy. Refused
    connections, DNS failures, timeouts and error statuses are all plain
    failures; the exception class name is kept in ``ProbeResult.error``.

    Usage:
        async with HealthProbe() as probe:
            result = await probe.probe("http://localhost:5055/health", 8000)
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        success_below: int = 400,
    ):
        self._client = client
        self._owns_client = client is None
        self.success_below = success_below

    async def __aenter__(self) -> "HealthProbe":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def probe(
        self,
        url: str,
        timeout_ms: int,
        attempt: int = 1,
        expected_status: frozenset[str] | None = None,
    ) -> ProbeResult:
        """Issue one GET and classify the response."""
        timestamp = datetime.now(timezone.utc)
        start = time.monotonic()

        try:
            response = await self.client.get(url, timeout=timeout_ms / 1000)
        except httpx.HTTPError as e:
            return ProbeResult(
                attempt=attempt,
                timestamp=timestamp,
                succeeded=False,
                error=f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                elapsed_ms=(time.monotonic() - start) * 1000,
            )

        elapsed_ms = (time.monotonic() - start) * 1000
        status_code = response.status_code

        if status_code >= self.success_below:
            return ProbeResult(
                attempt=attempt,
                timestamp=timestamp,
                succeeded=False,
                status_code=status_code,
                error=f"HTTPStatus: {status_code}",
                elapsed_ms=elapsed_ms,
            )

        body_status = _body_status(response)

        if expected_status is not None and body_status not in expected_status:
            return ProbeResult(
                attempt=attempt,
                timestamp=timestamp,
                succeeded=False,
                status_code=status_code,
                error=f"UnexpectedStatus: {body_status!r}",
                elapsed_ms=elapsed_ms,
                body_status=body_status,
            )

        return ProbeResult(
            attempt=attempt,
            timestamp=timestamp,
            succeeded=True,
            status_code=status_code,
            elapsed_ms=elapsed_ms,
            body_status=body_status,
        )

    async def check(self, descriptor: ServiceDescriptor, attempt: int) -> ProbeResult:
        if not descriptor.health_url:
            raise ValueError(f"{descriptor.name} has no health_url")
        return await self.probe(
            descriptor.health_url,
            descriptor.timeout_ms,
            attempt=attempt,
            expected_status=descriptor.expected_status,
        )


class ContainerHealthProbe:
    """Reads ``State.Health.Status`` of a container through the runtime."""

    def __init__(self, runtime: "ContainerRuntime"):
        self.runtime = runtime

    async def check(self, descriptor: ServiceDescriptor, attempt: int) -> ProbeResult:
        timestamp = datetime.now(timezone.utc)
        start = time.monotonic()
        try:
            status = await asyncio.wait_for(
                asyncio.to_thread(self.runtime.health_status, descriptor.runtime_name),
                timeout=descriptor.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            status = None
            error = "TimeoutError"
        except Exception as e:  # noqa: BLE001 - a probe never raises
            status = None
            error = f"{type(e).__name__}: {e}"
        else:
            error = None if status == "healthy" else f"ContainerHealth: {status}"

        return ProbeResult(
            attempt=attempt,
            timestamp=timestamp,
            succeeded=status == "healthy",
            error=error,
            elapsed_ms=(time.monotonic() - start) * 1000,
            body_status=status,
        )


class DescriptorProbe:
    """Routes each descriptor to the HTTP or container probe."""

    def __init__(self, http: HealthProbe, container: ContainerHealthProbe | None = None):
        self.http = http
        self.container = container

    async def check(self, descriptor: ServiceDescriptor, attempt: int) -> ProbeResult:
        if descriptor.health_url:
            return await self.http.check(descriptor, attempt)
        if self.container is None:
            raise ValueError(f"{descriptor.name} needs a container runtime to probe")
        return await self.container.check(descriptor, attempt)


def _body_status(response: httpx.Response) -> str | None:
    """Extract the JSON ``status`` field, if any."""
    if not response.headers.get("content-type", "").startswith("application/json"):
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and data.get("status") is not None:
        return str(data["status"])
    return None
