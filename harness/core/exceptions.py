"""Harness exception hierarchy."""

from __future__ import annotations

import signal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from harness.orchestration.models import OrchestrationRun


class HarnessError(Exception):
    """Base harness exception with a structured payload."""

    error_code: str = "HARNESS_ERROR"
    message: str = "Integration harness failed"
    exit_code: int = 1

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ReadinessTimeoutError(HarnessError):
    """A service exhausted its retry budget without a successful probe."""

    error_code = "READINESS_TIMEOUT"
    message = "Service failed to become ready within its retry budget"

    def __init__(self, service: str, attempts: int, last_error: str | None = None):
        self.service = service
        self.attempts = attempts
        self.last_error = last_error
        message = f"{service} not ready after {attempts} attempts"
        if last_error:
            message += f": {last_error}"
        super().__init__(
            message,
            details={"service": service, "attempts": attempts, "last_error": last_error},
        )


class PhaseAbortError(HarnessError):
    """A required service in a phase never became ready; later phases were skipped."""

    error_code = "PHASE_ABORT"
    message = "Orchestration aborted"

    def __init__(
        self,
        run: "OrchestrationRun",
        message: str | None = None,
    ):
        self.run = run
        failure = run.failure
        details: dict[str, Any] = {}
        if failure is not None:
            details = {
                "phase": failure.phase,
                "service": failure.service,
                "reason": failure.reason,
            }
            message = message or (
                f"Phase {failure.phase + 1} aborted: {failure.service} - {failure.reason}"
            )
        super().__init__(message, details=details)

    @property
    def logs(self) -> str:
        return self.run.failure.logs if self.run.failure else ""


class OrchestrationTimeoutError(HarnessError):
    """The global orchestration ceiling was exceeded."""

    error_code = "ORCHESTRATION_TIMEOUT"
    message = "Orchestration exceeded its global timeout"


class TeardownError(HarnessError):
    """A cleanup step failed. Logged by the coordinator, never propagated."""

    error_code = "TEARDOWN_FAILED"
    message = "Teardown step failed"


class EnvironmentCheckError(HarnessError):
    """Pre-flight validation failed (Docker, compose file, disk)."""

    error_code = "ENVIRONMENT_INVALID"
    message = "Environment validation failed"


class RuntimeCommandError(HarnessError):
    """A container runtime command returned a non-zero exit status."""

    error_code = "RUNTIME_COMMAND_FAILED"
    message = "Container runtime command failed"

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"{' '.join(command)} exited with {returncode}: {stderr.strip()[:500]}",
            details={"returncode": returncode},
        )


class FixtureVerificationError(HarnessError):
    """Seeded test data is missing from the database."""

    error_code = "FIXTURES_MISSING"
    message = "Test data not found. Ensure MongoDB initialization completed."


class RunInterruptedError(HarnessError):
    """SIGINT/SIGTERM arrived while the live suites were running."""

    error_code = "RUN_INTERRUPTED"
    message = "Run interrupted by signal"

    def __init__(self, signum: int):
        self.signum = signum
        self.exit_code = 128 + signum
        super().__init__(
            f"Run interrupted by {signal.Signals(signum).name}",
            details={"signal": signum},
        )
