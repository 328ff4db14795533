"""
Orchestration data model.

Descriptors are static configuration; probe results and readiness
outcomes are produced once and never mutated. The OrchestrationRun is the
only mutable record and is written once per service key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

from harness.core.exceptions import PhaseAbortError


class RunState(Enum):
    """Orchestration run states."""

    NOT_STARTED = "not_started"
    PHASE_IN_PROGRESS = "phase_in_progress"
    PHASE_FAILED = "phase_failed"
    ALL_READY = "all_ready"
    TORN_DOWN = "torn_down"


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    One service to gate on.

    Exactly how readiness is probed depends on which target is set:
    ``health_url`` is polled over HTTP, otherwise the Docker health status
    of ``container`` is read.
    """

    name: str
    health_url: str | None = None
    max_attempts: int = 30
    interval_ms: int = 3_000
    dependency_group: int = 0
    container: str | None = None
    timeout_ms: int = 8_000
    required: bool = True
    expected_status: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if not self.health_url and not self.container:
            raise ValueError(f"{self.name}: a health_url or a container is required")
        if self.max_attempts < 1:
            raise ValueError(f"{self.name}: max_attempts must be >= 1")
        if self.interval_ms < 0:
            raise ValueError(f"{self.name}: interval_ms must be >= 0")

    @property
    def runtime_name(self) -> str:
        """Name used when starting, stopping and tailing logs."""
        return self.container or self.name


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single health check attempt."""

    attempt: int
    timestamp: datetime
    succeeded: bool
    status_code: int | None = None
    error: str | None = None
    elapsed_ms: float = 0.0
    body_status: str | None = None

    def describe(self) -> str:
        if self.succeeded:
            return f"ok ({self.status_code or self.body_status})"
        if self.error:
            return self.error
        return f"HTTP {self.status_code}"


@dataclass(frozen=True)
class ReadinessOutcome:
    """Terminal readiness verdict for one service in one run."""

    service: ServiceDescriptor
    ready: bool
    attempts_used: int
    total_elapsed_ms: int
    attempts: tuple[ProbeResult, ...] = ()

    @property
    def last_error(self) -> str | None:
        if not self.attempts:
            return None
        return self.attempts[-1].describe()


@dataclass(frozen=True)
class PhaseFailure:
    """Why a run stopped."""

    phase: int
    service: str
    reason: str
    logs: str = ""


@dataclass
class OrchestrationRun:
    """One end-to-end execution of the phased startup sequence."""

    phases: list[list[ServiceDescriptor]]
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    outcomes: dict[str, ReadinessOutcome] = field(default_factory=dict)
    overall_ready: bool = False
    state: RunState = RunState.NOT_STARTED
    current_phase: int | None = None
    failure: PhaseFailure | None = None
    warnings: list[str] = field(default_factory=list)
    started_services: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None

    def record(self, outcome: ReadinessOutcome) -> None:
        name = outcome.service.name
        if name in self.outcomes:
            raise ValueError(f"Outcome for {name} already recorded")
        self.outcomes[name] = outcome

    def mark_started(self, names: Iterable[str]) -> None:
        for name in names:
            if name not in self.started_services:
                self.started_services.append(name)

    def raise_for_failure(self) -> None:
        """Raise PhaseAbortError if the run did not reach readiness."""
        if self.overall_ready:
            return
        raise PhaseAbortError(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "overall_ready": self.overall_ready,
            "current_phase": self.current_phase,
            "phases": [[s.name for s in phase] for phase in self.phases],
            "started_services": list(self.started_services),
            "warnings": list(self.warnings),
            "failure": {
                "phase": self.failure.phase,
                "service": self.failure.service,
                "reason": self.failure.reason,
            } if self.failure else None,
            "outcomes": {
                name: {
                    "ready": o.ready,
                    "attempts_used": o.attempts_used,
                    "total_elapsed_ms": o.total_elapsed_ms,
                    "last_error": None if o.ready else o.last_error,
                }
                for name, o in self.outcomes.items()
            },
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def build_phases(descriptors: Iterable[ServiceDescriptor]) -> list[list[ServiceDescriptor]]:
    """Group descriptors into phases ordered by dependency_group."""
    groups: dict[int, list[ServiceDescriptor]] = {}
    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise ValueError(f"Duplicate service name: {descriptor.name}")
        seen.add(descriptor.name)
        groups.setdefault(descriptor.dependency_group, []).append(descriptor)
    return [groups[key] for key in sorted(groups)]
