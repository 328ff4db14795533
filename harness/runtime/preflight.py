"""
Pre-flight environment validation.

Runs before any container starts:
1. Docker daemon reachable
2. Compose file present and parseable
3. Every orchestrated service defined in the compose file
4. Every container-gated service has a healthcheck
5. Enough free disk space (warning only)
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from harness.core.exceptions import EnvironmentCheckError
from harness.core.logging import get_logger
from harness.orchestration.models import ServiceDescriptor

logger = get_logger("preflight")


@dataclass
class PreflightReport:
    """Findings from environment validation."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise EnvironmentCheckError(
                "Environment validation failed:\n" + "\n".join(f"  - {e}" for e in self.errors),
                details={"errors": self.errors},
            )


def load_compose(path: Path) -> dict[str, Any]:
    """Parse a compose file into a dict."""
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise EnvironmentCheckError(f"{path} is not a compose mapping")
    return data


def check_compose(
    compose: dict[str, Any],
    descriptors: Iterable[ServiceDescriptor],
) -> list[str]:
    """Return problems with the compose definition for the given services."""
    problems: list[str] = []
    services = compose.get("services") or {}

    for descriptor in descriptors:
        name = descriptor.runtime_name
        service = services.get(name)
        if service is None:
            problems.append(f"service '{name}' is not defined in the compose file")
            continue
        if descriptor.health_url is None and not (service or {}).get("healthcheck"):
            problems.append(f"service '{name}' is gated on container health but has no healthcheck")

    return problems


def validate_environment(
    compose_file: str | Path,
    descriptors: Iterable[ServiceDescriptor],
    docker_available: bool,
    min_free_bytes: int = 2 * 1024**3,
    disk_path: str | Path = ".",
) -> PreflightReport:
    """Collect every pre-flight problem instead of stopping at the first."""
    report = PreflightReport()
    logger.info("Validating environment...")

    if not docker_available:
        report.errors.append("Docker is not running")

    path = Path(compose_file)
    if not path.is_file():
        report.errors.append(f"Compose file {path} not found")
    else:
        try:
            compose = load_compose(path)
        except (yaml.YAMLError, EnvironmentCheckError) as e:
            report.errors.append(f"Compose file {path} is invalid: {e}")
        else:
            report.errors.extend(check_compose(compose, descriptors))

    try:
        free = shutil.disk_usage(disk_path).free
    except OSError as e:
        report.warnings.append(f"Could not read disk usage: {e}")
    else:
        if free < min_free_bytes:
            report.warnings.append(
                f"Low disk space detected ({free // 1024**2} MB free). Integration tests may fail."
            )

    for warning in report.warnings:
        logger.warning(warning)
    if report.ok:
        logger.info("Environment validation passed")

    return report
