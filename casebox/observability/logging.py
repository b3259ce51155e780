"""Logging setup for casebox.

Every casebox module logs through ``logging.getLogger(__name__)``, so all
records land under the ``casebox`` logger. ``configure_logging`` attaches a
single handler there, rendering either JSON lines or a compact text line.

Fields bound with ``log_context`` (the running case, the setup phase) are
picked up by both formatters for every record emitted inside the block::

    configure_logging(level="DEBUG", json_format=True)

    with log_context(case="test_login"):
        logger.warning("Degraded attribution")
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, TextIO

PACKAGE_LOGGER = "casebox"

_bound_fields: ContextVar[dict[str, Any]] = ContextVar("casebox_bound_fields", default={})

_ANSI_BY_LEVEL = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


def _exception_summary(formatter: logging.Formatter, record: logging.LogRecord) -> dict[str, Any] | None:
    if not record.exc_info or record.exc_info[0] is None:
        return None
    exc_type, exc_value, _ = record.exc_info
    return {
        "type": exc_type.__name__,
        "message": None if exc_value is None else str(exc_value),
        "traceback": formatter.formatException(record.exc_info),
    }


class StructuredFormatter(logging.Formatter):
    """Render each record as one JSON object.

    Attributes:
        include_location: Add a ``location`` object with file, line and function.
        extra_fields: Constant fields merged into every payload. They never
            overwrite the standard keys.
    """

    def __init__(
        self,
        include_location: bool = False,
        extra_fields: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.include_location = include_location
        self.extra_fields = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = dict(self.extra_fields)
        payload.update(
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            level=record.levelname.lower(),
            logger=record.name,
            message=record.getMessage(),
        )

        if self.include_location:
            payload["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        bound = get_context()
        if bound:
            payload["context"] = bound

        error = _exception_summary(self, record)
        if error is not None:
            payload["exception"] = error

        return json.dumps(payload, default=str, ensure_ascii=False)


class HumanReadableFormatter(logging.Formatter):
    """One line per record: time, padded level, logger name and message."""

    def __init__(self, use_colors: bool = True, stream: TextIO | None = None) -> None:
        super().__init__()
        target = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and bool(getattr(target, "isatty", lambda: False)())

    def _level_label(self, record: logging.LogRecord) -> str:
        label = record.levelname.ljust(8)
        code = _ANSI_BY_LEVEL.get(record.levelno)
        if not self.use_colors or code is None:
            return label
        return f"\033[{code}m{label}\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).isoformat(sep=" ", timespec="milliseconds")
        parts = [f"{stamp} {self._level_label(record)} [{record.name}] {record.getMessage()}"]

        bound = get_context()
        if bound:
            parts.append(f" | context={json.dumps(bound, default=str)}")
        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return "".join(parts)


def configure_logging(
    level: int | str = logging.WARNING,
    json_format: bool = False,
    include_location: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Install a single handler on the ``casebox`` logger.

    Calling it again replaces the previous handler, so settings can be
    reapplied without duplicating output. Records still propagate to the
    root logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    target = stream if stream is not None else sys.stderr
    handler = logging.StreamHandler(target)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter(include_location=include_location)
        if json_format
        else HumanReadableFormatter(stream=target)
    )

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for previous in list(package_logger.handlers):
        package_logger.removeHandler(previous)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every record formatted inside the block.

    Nested blocks extend the outer fields and restore them on exit.
    """
    token = _bound_fields.set({**_bound_fields.get(), **fields})
    try:
        yield
    finally:
        _bound_fields.reset(token)


def get_context() -> dict[str, Any]:
    """Return a copy of the fields currently bound by ``log_context``."""
    return dict(_bound_fields.get())
