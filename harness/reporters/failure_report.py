"""
Failure Report - structured JSON record of an aborted orchestration run.

Contains everything needed to diagnose a startup failure without
re-running the stack: per-service outcomes, the attempt log of the
failing service, its log tail and the error snippets extracted from it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from harness.orchestration.models import OrchestrationRun
from harness.reporters.log_extractor import LogExtractor, split_lines


@dataclass
class FailureReport:
    """JSON report written when a run does not reach readiness."""

    run: OrchestrationRun
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        failure = self.run.failure
        data: dict[str, Any] = {
            "summary": self._summary(),
            "run": self.run.to_dict(),
        }
        if failure is None:
            return data

        outcome = self.run.outcomes.get(failure.service)
        if outcome is not None:
            data["attempts"] = [
                {
                    "attempt": a.attempt,
                    "timestamp": a.timestamp.isoformat(),
                    "succeeded": a.succeeded,
                    "status_code": a.status_code,
                    "error": a.error,
                    "elapsed_ms": round(a.elapsed_ms, 1),
                }
                for a in outcome.attempts
            ]

        lines = split_lines(failure.logs)
        extractor = LogExtractor()
        data["logs"] = {
            "tail": lines,
            "error_snippets": [
                s.to_string() for s in extractor.extract_error_snippets(lines, failure.service)
            ],
            "tracebacks": extractor.extract_tracebacks(lines),
        }
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save(self, directory: Path | str) -> Path:
        """Write the report and return its path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        service = self.run.failure.service if self.run.failure else "run"
        timestamp = self.created_at.strftime("%Y%m%d_%H%M%S")
        path = directory / f"{service}_{timestamp}.json"
        path.write_text(self.to_json())
        return path

    def _summary(self) -> str:
        failure = self.run.failure
        if failure is None:
            return "All services ready"
        ready = sum(1 for o in self.run.outcomes.values() if o.ready)
        return (
            f"Phase {failure.phase + 1} failed on {failure.service}: {failure.reason} "
            f"({ready}/{len(self.run.outcomes)} gated services ready)"
        )
