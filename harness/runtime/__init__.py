"""Container runtime collaborators."""

from harness.runtime.compose import ComposeRuntime, ContainerRuntime
from harness.runtime.fixtures import FixtureVerifier
from harness.runtime.preflight import PreflightReport, validate_environment

__all__ = [
    "ComposeRuntime",
    "ContainerRuntime",
    "FixtureVerifier",
    "PreflightReport",
    "validate_environment",
]
