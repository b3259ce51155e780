"""Failure attribution for failed execution contexts.

Given a failed context, the inspector finds the frame that should be
blamed (the innermost frame that is neither a boundary frame nor part of
casebox itself), reads its local variables and turns the raw error into
a normalized reason:

    tests/test_login.py:12: Expectation Failed: Expected 1 to equal '2'
        -> "Expected 1 to equal '2'"
    tests/test_login.py:15: AttributeError: 'NoneType' object has no attribute 'foo'
        -> "Unhandled: AttributeError: 'NoneType' object has no attribute 'foo'"
"""

from __future__ import annotations

import functools
import inspect
import logging
import os
import re
import site
import sysconfig
from collections.abc import Callable, Iterator
from pathlib import Path
from types import FrameType
from typing import Any, NamedTuple

from rich.pretty import pretty_repr

from casebox.config import HarnessSettings
from casebox.core.models import FailureReport
from casebox.errors import EXPECTATION_MARKER, ExpectationFailed
from casebox.runner.context import ExecutionContext

logger = logging.getLogger(__name__)

UNHANDLED_MARKER = "Unhandled"
REASON_SEPARATOR = ": "

_PACKAGE_DIR = os.path.normcase(str(Path(__file__).resolve().parent.parent)) + os.sep
_BOUNDARY_PREFIXES = ("<frozen", "<built-in")
_LIBRARY_PATH_KEYS = ("stdlib", "platstdlib", "purelib", "platlib")
_LINE_TOKEN = re.compile(r":(\d+):")
# Comprehension iterators, pytest assertion-rewrite temporaries
_SKIPPED_LOCAL_PREFIXES = (".", "@")
_SKIPPED_LOCALS = frozenset({"__tracebackhide__"})


@functools.lru_cache(maxsize=2048)
def _real_path(filename: str) -> str:
    return os.path.normcase(os.path.realpath(filename))


def _library_dirs() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    dirs = {_real_path(paths[key]) for key in _LIBRARY_PATH_KEYS if paths.get(key)}
    user_site = site.getusersitepackages()
    if isinstance(user_site, str):
        dirs.add(_real_path(user_site))
    return tuple(sorted(path.rstrip(os.sep) + os.sep for path in dirs))


_LIBRARY_DIRS = _library_dirs()


def is_library_file(filename: str) -> bool:
    """Check whether ``filename`` lives in the standard library or site-packages."""
    if filename.startswith("<"):
        return False
    return _real_path(filename).startswith(_LIBRARY_DIRS)


class FrameInfo(NamedTuple):
    """Where a failure is attributed."""

    source_file: str
    line_number: int
    function_name: str


def normalize_reason(raw: str) -> str:
    """Strip the location head from a raw error and tag its kind.

    Raises:
        ValueError: If ``raw`` is empty.
    """
    if raw == "":
        raise ValueError("Cannot normalize an empty error reason")

    segments = raw.split(REASON_SEPARATOR)
    if len(segments) == 1:
        return f"{UNHANDLED_MARKER}{REASON_SEPARATOR}{raw}"

    if segments[1] == EXPECTATION_MARKER:
        del segments[1]
    else:
        segments.insert(1, UNHANDLED_MARKER)

    return REASON_SEPARATOR.join(segments[1:])


def recover_line(raw: str, frame: FrameType | None = None) -> int:
    """Get a line number from the ``file:line:`` head of ``raw``.

    Falls back to the frame's current line, then to -1.
    """
    match = _LINE_TOKEN.search(raw)
    if match:
        return int(match.group(1))
    if frame is not None and frame.f_lineno is not None:
        return frame.f_lineno
    return -1


def definition_site(func: Callable[..., Any]) -> FrameInfo:
    """Get where ``func`` was defined.

    Partials and ``__wrapped__`` chains are unwrapped first. Callables
    without Python code report ``[builtin]`` and line -1.
    """
    target: Any = func
    while True:
        if isinstance(target, functools.partial):
            target = target.func
            continue
        try:
            unwrapped = inspect.unwrap(target)
        except ValueError:
            unwrapped = target
        if unwrapped is target:
            break
        target = unwrapped

    code = getattr(target, "__code__", None)
    if code is None:
        code = getattr(getattr(target, "__call__", None), "__code__", None)
    name = getattr(target, "__name__", repr(target))
    if code is None:
        return FrameInfo("[builtin]", -1, name)
    return FrameInfo(code.co_filename, code.co_firstlineno, code.co_name)


class StackInspector:
    """Locates attribution frames and builds failure reports."""

    def __init__(self, settings: HarnessSettings | None = None) -> None:
        self.settings = settings or HarnessSettings()
        self._internal_patterns = tuple(self.settings.internal_paths)

    def is_internal(self, filename: str) -> bool:
        """Check whether ``filename`` belongs to the harness."""
        if any(pattern in filename for pattern in self._internal_patterns):
            return True
        if filename.startswith("<"):
            return False
        return _real_path(filename).startswith(_PACKAGE_DIR)

    @staticmethod
    def is_boundary(filename: str) -> bool:
        """Check whether ``filename`` is not user code.

        Frozen and built-in modules have no source; the standard library
        and installed third-party packages are never the code under test.
        """
        return filename.startswith(_BOUNDARY_PREFIXES) or is_library_file(filename)

    def _skipped(self, filename: str) -> bool:
        return self.is_boundary(filename) or self.is_internal(filename)

    def _frames(
        self,
        error: BaseException | None,
        outer_frame: FrameType | None,
    ) -> Iterator[tuple[FrameType, int | None]]:
        entries = []
        tb = error.__traceback__ if error is not None else None
        while tb is not None:
            entries.append((tb.tb_frame, tb.tb_lineno))
            tb = tb.tb_next
        yield from reversed(entries)

        frame = outer_frame
        while frame is not None:
            yield frame, frame.f_lineno
            frame = frame.f_back

    def render(self, value: Any) -> str:
        """Render a local's value for a report."""
        try:
            return pretty_repr(
                value,
                max_width=1000,
                max_length=self.settings.locals_max_length,
                max_string=self.settings.locals_max_string,
            )
        except Exception:
            return f"<unrepresentable {type(value).__name__}>"

    def extract_locals(self, frame: FrameType) -> list[tuple[str, str]]:
        """Read a frame's bound local names, in declaration order."""
        code = frame.f_code
        values = frame.f_locals
        result: list[tuple[str, str]] = []
        seen: set[str] = set()

        for name in code.co_varnames + code.co_cellvars + code.co_freevars:
            if name in seen:
                continue
            seen.add(name)
            if name.startswith(_SKIPPED_LOCAL_PREFIXES) or name in _SKIPPED_LOCALS:
                continue
            if name not in values:
                continue
            result.append((name, self.render(values[name])))

        return result

    def locate(
        self,
        context: ExecutionContext,
        original_function: Callable[..., Any],
        raw_message: str,
        outer_frame: FrameType | None = None,
    ) -> tuple[FrameInfo, list[tuple[str, str]]]:
        """Find the attribution frame of a failed context.

        The context's traceback is searched innermost first, then the live
        stack from ``outer_frame`` outward. Without any candidate frame the
        failure is attributed to ``original_function``'s definition site
        with no locals.
        """
        frames = self._frames(context.error, outer_frame)
        for depth, (frame, lineno) in enumerate(frames):
            if depth >= self.settings.max_stack_depth:
                break
            filename = frame.f_code.co_filename
            if self._skipped(filename):
                continue

            if lineno is None or lineno < 0:
                lineno = recover_line(raw_message, frame)
            info = FrameInfo(filename, lineno, frame.f_code.co_name)
            return info, self.extract_locals(frame)

        info = definition_site(original_function)
        logger.warning(
            f"Could not find a stack frame for the failure of {info.function_name!r}, "
            f"pointing at its definition ({info.source_file}:{info.line_number}) instead; "
            "locals are unavailable"
        )
        return info, []

    def _error_location(self, error: BaseException) -> str:
        innermost = None
        tb = error.__traceback__
        while tb is not None:
            filename = tb.tb_frame.f_code.co_filename
            if not self._skipped(filename) or innermost is None:
                innermost = (filename, tb.tb_lineno)
            tb = tb.tb_next
        if innermost is None:
            return "[unknown]"
        filename, lineno = innermost
        return f"{filename}:{lineno if lineno is not None else '?'}"

    def describe(self, error: BaseException) -> str:
        """Build the raw ``file:line: message`` text of an error.

        Returns an empty string for an ExpectationFailed without a message.
        """
        text = str(error)
        if isinstance(error, ExpectationFailed):
            if not text:
                return ""
            body = text
        else:
            name = type(error).__name__
            body = f"{name}{REASON_SEPARATOR}{text}" if text else name
        return f"{self._error_location(error)}{REASON_SEPARATOR}{body}"

    def build_report(
        self,
        context: ExecutionContext,
        original_function: Callable[..., Any],
        error: BaseException | None = None,
        outer_frame: FrameType | None = None,
    ) -> FailureReport | None:
        """Turn a failed context into a FailureReport.

        Returns None for an empty error reason, which is logged and ignored.
        """
        error = error if error is not None else context.error
        if error is None:
            raise ValueError(f"{context!r} has no error to report")

        raw = self.describe(error)
        if raw == "":
            logger.warning(
                f"Received empty error reason from {context!r}; ignoring",
                stack_info=True,
            )
            return None

        reason = normalize_reason(raw)
        info, local_values = self.locate(context, original_function, raw, outer_frame)
        return FailureReport(
            reason=reason,
            source_file=info.source_file,
            line_number=info.line_number,
            locals=tuple(local_values),
            execution_context=context,
        )
