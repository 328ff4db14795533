"""Default service topology for the figure collector integration stack."""

from __future__ import annotations

from harness.core.config import Settings
from harness.orchestration.models import ServiceDescriptor, build_phases

# Accepted JSON ``status`` values for endpoints that report one
HEALTHY_STATUSES = frozenset({"ok", "healthy"})

# Statuses the backend reports for its dependencies in /version
KNOWN_DEPENDENCY_STATUSES = frozenset({"healthy", "unhealthy", "unknown", "not-registered"})


def default_services(settings: Settings) -> list[ServiceDescriptor]:
    """
    MongoDB -> {version manager, scraper} -> backend -> frontend.

    MongoDB has no HTTP endpoint and is gated on its container health; the
    scraper needs Chrome and gets the longest budget.
    """
    interval = settings.health_interval_ms
    timeout = settings.probe_timeout_ms

    return [
        ServiceDescriptor(
            name="mongodb",
            container="mongodb-test",
            max_attempts=60,
            interval_ms=interval,
            dependency_group=1,
            timeout_ms=timeout,
        ),
        ServiceDescriptor(
            name="version-manager",
            container="version-manager-test",
            health_url=f"{settings.version_manager_url}/health",
            max_attempts=30,
            interval_ms=interval,
            dependency_group=2,
            timeout_ms=timeout,
        ),
        ServiceDescriptor(
            name="scraper",
            container="scraper-test",
            health_url=f"{settings.scraper_url}/health",
            max_attempts=60,
            interval_ms=interval,
            dependency_group=2,
            timeout_ms=timeout,
        ),
        ServiceDescriptor(
            name="backend",
            container="backend-test",
            health_url=f"{settings.backend_url}/health",
            max_attempts=60,
            interval_ms=interval,
            dependency_group=3,
            timeout_ms=timeout,
        ),
        ServiceDescriptor(
            name="frontend",
            container="frontend-test",
            health_url=settings.frontend_url,
            max_attempts=40,
            interval_ms=interval,
            dependency_group=4,
            timeout_ms=timeout,
        ),
    ]


def default_phases(settings: Settings) -> list[list[ServiceDescriptor]]:
    return build_phases(default_services(settings))


def connectivity_checks(settings: Settings) -> list[ServiceDescriptor]:
    """Cross-service checks run after every phase is ready. Never fatal."""
    return [
        ServiceDescriptor(
            name="frontend-to-backend",
            health_url=f"{settings.frontend_url}/api/health",
            max_attempts=10,
            interval_ms=settings.health_interval_ms,
            timeout_ms=settings.probe_timeout_ms,
            required=False,
        ),
        ServiceDescriptor(
            name="backend-version",
            health_url=f"{settings.backend_url}/version",
            max_attempts=3,
            interval_ms=settings.health_interval_ms,
            timeout_ms=settings.probe_timeout_ms,
            required=False,
        ),
    ]
