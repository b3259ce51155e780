"""Result models shared by the runner and its consumers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class FailureReport:
    """Structured description of one failed case.

    Attributes:
        reason: Normalized failure message. Assertion failures carry the
            matcher's message; anything else starts with ``Unhandled: ``.
        source_file: File of the attribution frame.
        line_number: Line of the attribution frame, -1 if unknown.
        locals: (name, repr) pairs of the attribution frame's bindings.
        execution_context: The execution context the failure happened in.
    """

    reason: str
    source_file: str
    line_number: int
    locals: tuple[tuple[str, str], ...] = ()
    execution_context: Any = field(default=None, compare=False, repr=False)

    @property
    def is_unhandled(self) -> bool:
        """Whether the failure was an error rather than a failed expectation."""
        return self.reason.startswith("Unhandled: ")

    def format_location(self) -> str:
        return f"{self.source_file}:{self.line_number}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "reason": self.reason,
            "source_file": self.source_file,
            "line_number": self.line_number,
            "locals": [list(pair) for pair in self.locals],
        }


class CaseOutcome(str, Enum):
    """Verdict of one case."""

    PASSED = "passed"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass
class CaseResult:
    """Result of running one case.

    Attributes:
        name: Case name.
        outcome: Verdict.
        report: Failure details when the outcome is FAILED.
        duration_ms: Wall-clock time spent running the case.
    """

    name: str
    outcome: CaseOutcome
    report: FailureReport | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome is CaseOutcome.PASSED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "outcome": self.outcome.value,
            "report": self.report.to_dict() if self.report else None,
            "duration_ms": self.duration_ms,
        }
