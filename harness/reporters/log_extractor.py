"""
Log Extractor - pull the relevant lines out of a failing container's logs.

Correlates error lines with the lines around them so a failure report
shows what the service was doing before it stopped answering.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_ERROR_PATTERNS = (
    re.compile(r"ERROR", re.IGNORECASE),
    re.compile(r"FATAL", re.IGNORECASE),
    re.compile(r"Exception|Traceback", re.IGNORECASE),
    re.compile(r"ECONNREFUSED|EADDRINUSE|ENOTFOUND"),
    re.compile(r"MongoServerError|MongoNetworkError"),
    re.compile(r"UnhandledPromiseRejection"),
)

TRACEBACK_START = re.compile(r"Traceback \(most recent call last\)")
EXCEPTION_END = re.compile(r"^\w+Error:|^\w+Exception:")
MAX_TRACEBACK_LINES = 50


@dataclass
class LogSnippet:
    """An error line with the lines around it."""

    container: str
    error_line: str
    context_before: list[str]
    context_after: list[str]
    line_number: int

    def to_string(self) -> str:
        lines = []
        start_num = max(1, self.line_number - len(self.context_before))

        for i, line in enumerate(self.context_before):
            lines.append(f"  {start_num + i:4d} │ {line}")
        lines.append(f"→ {self.line_number:4d} │ {self.error_line}")
        for i, line in enumerate(self.context_after):
            lines.append(f"  {self.line_number + 1 + i:4d} │ {line}")

        return "\n".join(lines)


class LogExtractor:
    """Extract error snippets and tracebacks from raw log lines."""

    def __init__(
        self,
        context_lines: int = 3,
        error_patterns: tuple[re.Pattern, ...] = DEFAULT_ERROR_PATTERNS,
    ):
        self.context_lines = context_lines
        self.error_patterns = error_patterns

    def extract_error_snippets(
        self,
        logs: list[str],
        container: str,
        limit: int = 5,
    ) -> list[LogSnippet]:
        """
        Snippets around the first ``limit`` error lines.

        Error lines that fall inside an earlier snippet's trailing context
        are not reported again.
        """
        snippets: list[LogSnippet] = []
        covered_until = -1

        for i, line in enumerate(logs):
            if i <= covered_until:
                continue
            if not any(p.search(line) for p in self.error_patterns):
                continue

            start = max(0, i - self.context_lines)
            end = min(len(logs), i + self.context_lines + 1)
            snippets.append(LogSnippet(
                container=container,
                error_line=line,
                context_before=logs[start:i],
                context_after=logs[i + 1:end],
                line_number=i + 1,
            ))
            covered_until = end - 1

            if len(snippets) >= limit:
                break

        return snippets

    def extract_tracebacks(self, logs: list[str]) -> list[str]:
        """Complete Python tracebacks found in the logs."""
        tracebacks = []
        current: list[str] = []
        in_traceback = False

        for line in logs:
            if TRACEBACK_START.search(line):
                in_traceback = True
                current = [line]
                continue

            if not in_traceback:
                continue

            current.append(line)
            if EXCEPTION_END.search(line.strip()):
                tracebacks.append("\n".join(current))
                in_traceback = False
                current = []
            elif len(current) > MAX_TRACEBACK_LINES:
                current.append("[TRUNCATED]")
                tracebacks.append("\n".join(current))
                in_traceback = False
                current = []

        return tracebacks


def split_lines(raw: str) -> list[str]:
    return [line for line in raw.splitlines() if line.strip()]
