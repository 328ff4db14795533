"""
Harness session - one end-to-end integration run.

Ties the pieces together in the order the stack needs them:
pre-flight -> phased startup -> connectivity -> fixture check -> tests ->
coverage -> teardown. The CLI drives a session; each step is also usable
on its own.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Sequence

import httpx
import pytest

from harness.core.config import Settings
from harness.core.exceptions import RunInterruptedError
from harness.core.logging import get_logger
from harness.orchestration import (
    ContainerHealthProbe,
    DescriptorProbe,
    HealthProbe,
    OrchestrationRun,
    ServiceDescriptor,
    ServiceReadinessGate,
    StartupOrchestrator,
    TeardownCoordinator,
)
from harness.orchestration.topology import (
    KNOWN_DEPENDENCY_STATUSES,
    connectivity_checks,
    default_phases,
)
from harness.reporters import FailureReport
from harness.runtime.compose import ComposeRuntime
from harness.runtime.fixtures import FixtureVerifier
from harness.runtime.preflight import PreflightReport, validate_environment

logger = get_logger("session")

COVERAGE_PATH = "/app/coverage"
JUNIT_FILENAME = "integration-test-results.xml"


class HarnessSession:
    """
    Owns the runtime, the teardown coordinator and the service topology.

    Args:
        settings: Harness settings
        runtime: Compose runtime (built from settings when omitted)
        phases: Service phases (default figure collector topology when omitted)
        transport: httpx transport for probes, replaceable in tests
        install_handlers: Install signal/atexit teardown hooks
    """

    def __init__(
        self,
        settings: Settings,
        runtime: ComposeRuntime | None = None,
        phases: Sequence[Sequence[ServiceDescriptor]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        install_handlers: bool = True,
    ):
        self.settings = settings
        self.runtime = runtime or ComposeRuntime(settings.compose_file, settings.compose_project)
        self.phases = [list(p) for p in (phases or default_phases(settings))]
        self.transport = transport
        self.install_handlers = install_handlers
        self.teardown = TeardownCoordinator(
            self.runtime, network=settings.resolved_network_name
        )
        self.results_dir = Path(settings.results_dir)

    @property
    def services(self) -> list[ServiceDescriptor]:
        return [d for phase in self.phases for d in phase]

    def resolve(self, name: str) -> str:
        """Map a logical service name to its container; unknown names pass through."""
        for descriptor in self.services:
            if name in (descriptor.name, descriptor.runtime_name):
                return descriptor.runtime_name
        return name

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def preflight(self) -> PreflightReport:
        report = validate_environment(
            self.settings.compose_file,
            self.services,
            docker_available=self.runtime.ping(),
            min_free_bytes=self.settings.min_free_disk_bytes,
        )
        report.raise_for_errors()
        return report

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=False)

    async def orchestrate(self, keep_alive: bool = False) -> OrchestrationRun:
        """Start every phase and gate on readiness."""
        async with self._http_client() as client:
            probe = DescriptorProbe(HealthProbe(client), ContainerHealthProbe(self.runtime))
            orchestrator = StartupOrchestrator(
                ServiceReadinessGate(probe),
                runtime=self.runtime,
                teardown=self.teardown,
                ceiling=self.settings.test_timeout_seconds,
                log_tail_lines=self.settings.log_tail_lines,
                keep_alive=keep_alive,
                install_handlers=self.install_handlers,
            )
            run = await orchestrator.run(self.phases)

        if run.failure is not None:
            path = FailureReport(run).save(self.results_dir / "reports")
            logger.error(f"Failure report written to {path}")
        return run

    async def check_connectivity(self, run: OrchestrationRun) -> list[str]:
        """Cross-service checks; problems become run warnings, never failures."""
        warnings: list[str] = []
        async with self._http_client() as client:
            gate = ServiceReadinessGate(HealthProbe(client))
            for descriptor in connectivity_checks(self.settings):
                outcome = await gate.await_ready(descriptor)
                if not outcome.ready:
                    warnings.append(f"{descriptor.name} connectivity issue ({outcome.last_error})")

            warnings.extend(await self._dependency_statuses(client))

        for warning in warnings:
            logger.warning(warning)
        run.warnings.extend(warnings)
        return warnings

    async def _dependency_statuses(self, client: httpx.AsyncClient) -> list[str]:
        """Inspect the backend's view of its dependencies in /version."""
        try:
            response = await client.get(
                f"{self.settings.backend_url}/version",
                timeout=self.settings.probe_timeout_ms / 1000,
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return [f"backend /version unavailable ({type(e).__name__})"]

        services = data.get("services") if isinstance(data, dict) else None
        if not isinstance(services, dict):
            return ["backend /version reports no services"]

        warnings = []
        for name, info in services.items():
            status = info.get("status") if isinstance(info, dict) else None
            if status not in KNOWN_DEPENDENCY_STATUSES:
                warnings.append(f"backend reports unexpected status {status!r} for {name}")
            elif status != "healthy":
                warnings.append(f"backend reports {name} as {status}")
        return warnings

    def verify_fixtures(self) -> None:
        database = next((d for d in self.services if d.health_url is None), None)
        if database is None:
            logger.info("No database service in topology, skipping fixture verification")
            return
        FixtureVerifier(
            self.runtime.exec, database.runtime_name, self.settings.mongodb_uri
        ).verify()

    def run_tests(self, pattern: str | None = None, extra_args: Sequence[str] = ()) -> int:
        """Run the live-stack suites with pytest and return its exit code."""
        self.results_dir.mkdir(parents=True, exist_ok=True)
        args = [
            self.settings.system_tests_path,
            f"--junitxml={self.results_dir / JUNIT_FILENAME}",
            "-p",
            "no:cacheprovider",
        ]
        if pattern:
            args += ["-k", pattern]
        args += list(extra_args)

        logger.info(f"Running integration tests: pytest {' '.join(args)}")
        # pytest ends the session on KeyboardInterrupt; teardown is left to the caller
        with self.teardown.deferred():
            code = int(pytest.main(args))
        if self.teardown.received_signal is not None:
            raise RunInterruptedError(self.teardown.received_signal)
        return code

    def collect_coverage(self) -> list[Path]:
        """Copy /app/coverage out of every HTTP service container."""
        collected = []
        for descriptor in self.services:
            if descriptor.health_url is None:
                continue
            destination = self.results_dir / f"{descriptor.name}-coverage"
            try:
                copied = self.runtime.copy_from(descriptor.runtime_name, COVERAGE_PATH, destination)
            except Exception as e:  # noqa: BLE001 - coverage is best effort
                logger.warning(f"Coverage extraction from {descriptor.name} failed: {e}")
                continue
            if copied:
                collected.append(destination)
            else:
                logger.info(f"No {descriptor.name} coverage to extract")
        return collected

    def status_lines(self) -> list[tuple[str, str]]:
        return [(d.name, self.runtime.health_status(d.runtime_name)) for d in self.services]

    def close(self) -> None:
        """Release the Docker client."""
        self.runtime.close()


def run_orchestration(session: HarnessSession, keep_alive: bool = False) -> OrchestrationRun:
    """Synchronous entry point for the phased startup."""
    return asyncio.run(session.orchestrate(keep_alive=keep_alive))
