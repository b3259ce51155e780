"""Errors raised by casebox.

Two kinds of failure flow through the harness. Matchers raise
``ExpectationFailed`` inside test code, and the harness turns it (and any
other exception a case raises) into a failure report. Misuse of the harness
itself raises a ``CaseboxError`` subclass, which carries an ``ErrorCode``, an
``ErrorContext`` locating the problem, and a few hints for fixing it::

    try:
        settings = load_settings("casebox.yaml")
    except ConfigError as e:
        logger.error(f"{e.error_code.value}: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

# Every matcher failure message starts with this marker.
EXPECTATION_MARKER = "Expectation Failed"

_CATEGORY_BY_HUNDREDS = {2: "config", 3: "registration", 4: "execution"}


class ErrorCode(Enum):
    """Codes for harness errors, grouped by hundreds.

    E2xx settings, E3xx callback and stub registration, E4xx execution
    contexts, E999 anything else.
    """

    INVALID_CONFIG = "E201"
    CONFIG_NOT_FOUND = "E202"
    INVALID_CALLBACK = "E301"
    INVALID_STUB_TARGET = "E302"
    CONTEXT_DEAD = "E401"
    CONTEXT_RUNNING = "E402"
    LOOP_RUNNING = "E403"
    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        return _CATEGORY_BY_HUNDREDS.get(int(self.value[1:]) // 100, "unknown")


@dataclass
class ErrorContext:
    """Where a harness error happened."""

    case_name: str | None = None
    source_file: str | None = None
    line_number: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_located(self) -> bool:
        return bool(self.case_name or self.source_file)

    def format_location(self) -> str:
        segments = []
        if self.case_name:
            segments.append(f"case={self.case_name}")
        if self.source_file:
            line = "" if self.line_number is None else f":{self.line_number}"
            segments.append(f"source={self.source_file}{line}")
        return " > ".join(segments)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"extra": self.extra, "timestamp": self.timestamp.isoformat()}
        for key in ("case_name", "source_file", "line_number"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


class CaseboxError(Exception):
    """Base class for errors caused by using the harness incorrectly.

    Subclasses set ``error_code``, ``default_message`` and ``hints`` as class
    attributes. Keyword arguments not consumed by the constructor are stored
    in ``context.extra``.
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: ClassVar[str] = "Harness error"
    hints: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        suggestions: list[str] | None = None,
        **extra: Any,
    ) -> None:
        self.message = message or self.default_message
        if error_code is not None:
            self.error_code = error_code
        self.context = context if context is not None else ErrorContext()
        self.context.extra.update(extra)
        self.cause = cause
        self.suggestions = list(self.hints) if suggestions is None else suggestions
        super().__init__(self.message)

    def __str__(self) -> str:
        text = f"[{self.error_code.value}] {self.message}"
        if self.context.is_located:
            text += f" | at {self.context.format_location()}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "error_type": type(self).__name__,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": None if self.cause is None else str(self.cause),
        }


class ConfigError(CaseboxError):
    """Settings could not be read or failed validation."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid harness configuration"
    hints = (
        "Make sure the settings file holds a YAML mapping",
        "Look for misspelled CASEBOX_* environment variables",
    )


class RegistrationError(CaseboxError):
    error_code = ErrorCode.INVALID_CALLBACK
    default_message = "Invalid registration"
    hints = ("Register a function, bound method or stub",)


class ContextStateError(CaseboxError):
    """An execution context was resumed while running or after finishing."""

    error_code = ErrorCode.CONTEXT_DEAD
    default_message = "Cannot resume execution context"
    hints = ("Resume only contexts that are CREATED or SUSPENDED",)


class ExpectationFailed(AssertionError):
    """A matcher found its expectation violated.

    Messages start with ``Expectation Failed: ``; failure normalization relies
    on that prefix to tell assertions apart from unhandled errors.
    """

    def __init__(self, message: str, subject: Any = None) -> None:
        super().__init__(message)
        self.subject = subject
