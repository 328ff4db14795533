"""Phased startup, readiness gating and teardown."""

from harness.orchestration.gate import ServiceReadinessGate
from harness.orchestration.models import (
    OrchestrationRun,
    PhaseFailure,
    ProbeResult,
    ReadinessOutcome,
    RunState,
    ServiceDescriptor,
    build_phases,
)
from harness.orchestration.orchestrator import StartupOrchestrator
from harness.orchestration.probe import ContainerHealthProbe, DescriptorProbe, HealthProbe
from harness.orchestration.retry import ExponentialBackoff, FixedBackoff, retry_until
from harness.orchestration.teardown import TeardownCoordinator

__all__ = [
    "ContainerHealthProbe",
    "DescriptorProbe",
    "ExponentialBackoff",
    "FixedBackoff",
    "HealthProbe",
    "OrchestrationRun",
    "PhaseFailure",
    "ProbeResult",
    "ReadinessOutcome",
    "RunState",
    "ServiceDescriptor",
    "ServiceReadinessGate",
    "StartupOrchestrator",
    "TeardownCoordinator",
    "build_phases",
    "retry_until",
]
