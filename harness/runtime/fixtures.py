"""
Seeded test data verification.

Counts documents through ``mongosh`` inside the MongoDB container so the
harness needs no database driver of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from harness.core.exceptions import FixtureVerificationError
from harness.core.logging import get_logger

logger = get_logger("fixtures")

Exec = Callable[[str, list[str]], tuple[int, str]]


@dataclass(frozen=True)
class FixtureCounts:
    """Document counts per collection."""

    counts: dict[str, int]

    @property
    def empty(self) -> list[str]:
        return [name for name, count in self.counts.items() if count == 0]


class FixtureVerifier:
    """
    Confirm the database was seeded before tests start.

    Usage:
        verifier = FixtureVerifier(runtime.exec, "mongodb-test", settings.mongodb_uri)
        verifier.verify()  # raises FixtureVerificationError if users/figures are empty
    """

    def __init__(
        self,
        exec: Exec,
        container: str,
        mongodb_uri: str,
        collections: tuple[str, ...] = ("users", "figures"),
    ):
        self.exec = exec
        self.container = container
        self.mongodb_uri = mongodb_uri
        self.collections = collections

    def count(self, collection: str) -> int:
        """Count documents in one collection."""
        command = [
            "mongosh",
            self.mongodb_uri,
            "--quiet",
            "--eval",
            f"db.getCollection('{collection}').countDocuments()",
        ]
        exit_code, output = self.exec(self.container, command)
        if exit_code != 0:
            raise FixtureVerificationError(
                f"Counting {collection} failed (exit {exit_code}): {output.strip()[:300]}"
            )
        try:
            return int(output.strip().splitlines()[-1])
        except (IndexError, ValueError) as e:
            raise FixtureVerificationError(
                f"Unexpected mongosh output for {collection}: {output.strip()[:300]}"
            ) from e

    def verify(self) -> FixtureCounts:
        counts = FixtureCounts({name: self.count(name) for name in self.collections})
        summary = ", ".join(f"{count} {name}" for name, count in counts.counts.items())
        logger.info(f"Test data verification: {summary}")

        if counts.empty:
            raise FixtureVerificationError(
                details={"empty_collections": counts.empty, "counts": counts.counts}
            )
        return counts
