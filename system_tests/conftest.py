"""
System test configuration - fixtures for the live Docker Compose stack.

This conftest assumes the harness already brought the stack up. It still
re-gates every HTTP service once (short budget) so a suite started by hand
fails fast with a clear message instead of a wall of connection errors.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Generator

import httpx
import pytest

from harness.core.config import Settings, get_settings
from harness.orchestration import HealthProbe, ServiceReadinessGate
from harness.orchestration.topology import default_services
from system_tests.fixtures.service_context import ServiceContext


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture(scope="session")
def harness_settings() -> Settings:
    """Load harness settings from environment."""
    return get_settings()


# =============================================================================
# STACK READINESS (Session-scoped)
# =============================================================================


async def _gate_http_services(settings: Settings) -> list[str]:
    not_ready = []
    async with httpx.AsyncClient() as client:
        gate = ServiceReadinessGate(HealthProbe(client))
        for descriptor in default_services(settings):
            if descriptor.health_url is None:
                continue
            quick = dataclasses.replace(descriptor, max_attempts=3, interval_ms=1_000)
            outcome = await gate.await_ready(quick)
            if not outcome.ready:
                not_ready.append(f"{descriptor.name}: {outcome.last_error}")
    return not_ready


@pytest.fixture(scope="session", autouse=True)
def stack_ready(harness_settings: Settings) -> None:
    """Verify every HTTP service answers before running any test."""
    print("\n" + "=" * 60)
    print("🔍 FIGURE COLLECTOR INTEGRATION SUITE")
    print("=" * 60)
    print(f"  Backend:  {harness_settings.backend_url}")
    print(f"  Frontend: {harness_settings.frontend_url}")
    print(f"  Scraper:  {harness_settings.scraper_url}")
    print(f"  Version:  {harness_settings.version_manager_url}")
    print("=" * 60)

    not_ready = asyncio.run(_gate_http_services(harness_settings))
    if not_ready:
        pytest.fail(
            "Services not ready:\n"
            + "\n".join(f"  ❌ {line}" for line in not_ready)
            + "\n\nStart the stack with:\n  stack-harness debug"
        )


# =============================================================================
# HTTP CLIENTS
# =============================================================================


@pytest.fixture
def services(harness_settings: Settings) -> Generator[ServiceContext, None, None]:
    """
    Fresh clients for every test.

    Usage:
        def test_endpoint(services):
            response = services.backend.get("/health")
            assert response.status_code == 200
    """
    context = ServiceContext.from_settings(harness_settings)
    yield context
    context.close()


@pytest.fixture
def user1_api(services: ServiceContext) -> Generator[httpx.Client, None, None]:
    """Backend client authenticated as the first seeded user."""
    try:
        client = services.authenticated("USER1")
    except httpx.HTTPError as e:
        pytest.skip(f"Could not authenticate seeded user: {e}")
    yield client
    client.close()


# =============================================================================
# PYTEST HOOKS
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "workflow: Cross-service workflow test",
    )
    config.addinivalue_line(
        "markers",
        "smoke: Quick sanity check for service health",
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "/smoke/" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)

        if "/workflows/" in str(item.fspath):
            item.add_marker(pytest.mark.workflow)
