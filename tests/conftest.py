"""Pytest configuration and fixtures."""

import pytest

from harness.core.config import Settings
from harness.orchestration.models import ServiceDescriptor

from fakes import FakeRuntime, make_service


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        backend_url="http://backend.test",
        frontend_url="http://frontend.test",
        scraper_url="http://scraper.test",
        version_manager_url="http://version.test",
        health_interval_ms=10,
        probe_timeout_ms=500,
    )


@pytest.fixture
def stack_phases() -> list[list[ServiceDescriptor]]:
    """mongodb -> {version-manager, scraper} -> backend -> frontend."""
    return [
        [make_service("mongodb", 1, health_url=None)],
        [make_service("version-manager", 2), make_service("scraper", 2)],
        [make_service("backend", 3)],
        [make_service("frontend", 4)],
    ]
