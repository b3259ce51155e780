"""Core result models for casebox."""

from casebox.core.models import CaseOutcome, CaseResult, FailureReport

__all__ = [
    "CaseOutcome",
    "CaseResult",
    "FailureReport",
]
