import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.exceptions import BatchError

logger = logging.getLogger(__name__)


class OutcomeStatus(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class Operation(Enum):
    EXPORT = "Export"
    IMPORT = "Import"


@dataclass
class Outcome:
    name: str
    status: OutcomeStatus
    payload: Any = None
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, name: str, payload: Any = None) -> "Outcome":
        return cls(name=name, status=OutcomeStatus.SUCCEEDED, payload=payload)

    @classmethod
    def skipped(cls, name: str, reason: Optional[str] = None) -> "Outcome":
        return cls(name=name, status=OutcomeStatus.SKIPPED, error=reason)

    @classmethod
    def failed(cls, name: str, error: str) -> "Outcome":
        return cls(name=name, status=OutcomeStatus.FAILED, error=error)


@dataclass
class BatchResult:
    """Aggregated outcomes of one export or import batch for one resource kind.

    ``error`` is set exactly when ``failed`` is non-empty; the counts are always
    available so a caller can continue with the next kind.
    """

    kind: str
    operation: Operation
    succeeded: int = 0
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    duration: float = 0.0
    error: Optional[BatchError] = None

    @property
    def total(self) -> int:
        return self.succeeded + len(self.skipped) + len(self.failed)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_outcomes(
        cls,
        kind: str,
        operation: Operation,
        outcomes: List[Outcome],
        duration: float = 0.0,
    ) -> "BatchResult":
        result = cls(kind=kind, operation=operation, duration=duration)
        for outcome in outcomes:
            if outcome.status == OutcomeStatus.SUCCEEDED:
                result.succeeded += 1
            elif outcome.status == OutcomeStatus.SKIPPED:
                result.skipped.append(outcome.name)
            else:
                result.failed.append(outcome.name)
        result.skipped.sort()
        result.failed.sort()
        result.seal()
        return result

    def seal(self) -> None:
        """Recompute ``error`` from ``failed``."""
        if not self.failed:
            self.error = None
            return
        verb = self.operation.value.lower()
        self.error = BatchError(
            f"unable to {verb} {len(self.failed)} {self.kind}: "
            f"{', '.join(self.failed)}",
            operation=self.operation.value,
            kind=self.kind,
            failed_names=list(self.failed),
        )


@dataclass
class RunReport:
    """Rows of one CLI invocation, one per batch, in execution order."""

    results: List[BatchResult] = field(default_factory=list)

    def add(self, result: BatchResult) -> BatchResult:
        self.results.append(result)
        if result.error is not None:
            logger.error("%s", result.error.message)
        logger.info(
            "%s %s: %d migrated, %d skipped, %d failed in %.2fs",
            result.operation.value,
            result.kind,
            result.succeeded,
            len(result.skipped),
            len(result.failed),
            result.duration,
        )
        return result

    @property
    def has_failures(self) -> bool:
        return any(r.failed for r in self.results)

    def failures(self) -> Dict[str, List[str]]:
        return {
            f"{r.operation.value} {r.kind}": list(r.failed)
            for r in self.results
            if r.failed
        }

    def rows(self) -> List[List[str]]:
        return [
            [
                r.operation.value,
                r.kind,
                str(r.succeeded),
                str(len(r.skipped)),
                str(len(r.failed)),
                f"{r.duration:.2f}s",
            ]
            for r in self.results
        ]

    def format_table(self) -> str:
        headers = ["Operation", "Resource", "Migrated", "Skipped", "Failed", "Duration"]
        rows = self.rows()
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        def _line(cells: List[str]) -> str:
            return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells))

        lines = [_line(headers), "  ".join("-" * w for w in widths)]
        lines.extend(_line(row) for row in rows)
        return "\n".join(lines)
