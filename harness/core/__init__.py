"""Core infrastructure: settings, logging, exceptions."""

from .config import Settings, get_settings
from .exceptions import (
    EnvironmentCheckError,
    FixtureVerificationError,
    HarnessError,
    OrchestrationTimeoutError,
    PhaseAbortError,
    ReadinessTimeoutError,
    RunInterruptedError,
    RuntimeCommandError,
    TeardownError,
)
from .logging import get_logger, run_id_var, setup_logging


__all__ = [
    "EnvironmentCheckError",
    "FixtureVerificationError",
    "HarnessError",
    "OrchestrationTimeoutError",
    "PhaseAbortError",
    "ReadinessTimeoutError",
    "RunInterruptedError",
    "RuntimeCommandError",
    "Settings",
    "TeardownError",
    "get_logger",
    "get_settings",
    "run_id_var",
    "setup_logging",
]
