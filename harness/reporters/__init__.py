"""
Failure reporting.
"""

from harness.reporters.failure_report import FailureReport
from harness.reporters.log_extractor import LogExtractor, LogSnippet

__all__ = [
    "FailureReport",
    "LogExtractor",
    "LogSnippet",
]
