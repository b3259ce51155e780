"""Resumable execution contexts.

An ExecutionContext runs one callable. If the callable returns a
generator or a coroutine, the context keeps it and can be resumed at each
``yield``/bare ``await`` until it finishes. An exception raised at any
point, before or after a suspension, ends the context in the FAILED
state with the exception (and its traceback) kept for inspection.

Example:
    >>> def case():
    ...     value = yield
    ...     assert value == 42
    >>> context = ExecutionContext(case)
    >>> context.resume().succeeded, context.status.value
    (True, 'suspended')
    >>> context.resume(42).succeeded, context.status.value
    (True, 'dead')
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

from casebox.errors import ContextStateError, ErrorCode


class ContextStatus(str, Enum):
    """Lifecycle state of an execution context."""

    CREATED = "created"
    RUNNING = "running"
    SUSPENDED = "suspended"
    DEAD = "dead"
    FAILED = "failed"


@dataclass
class ExecutionOutcome:
    """Result of resuming a context once.

    Attributes:
        succeeded: False if the context raised.
        raw_error: The exception the context raised.
    """

    succeeded: bool
    raw_error: BaseException | None = None


class ExecutionContext:
    """A unit of execution that can suspend and be resumed later."""

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self.func = func
        self._args = args
        self._kwargs = kwargs
        self._body: Any = None
        self.status = ContextStatus.CREATED
        self.yielded: Any = None
        self.result: Any = None
        self.error: BaseException | None = None

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"<ExecutionContext {name} {self.status.value}>"

    @property
    def suspended(self) -> bool:
        return self.status is ContextStatus.SUSPENDED

    @property
    def is_coroutine(self) -> bool:
        """True once the callable has returned a coroutine body."""
        return inspect.iscoroutine(self._body)

    @property
    def finished(self) -> bool:
        return self.status in (ContextStatus.DEAD, ContextStatus.FAILED)

    @property
    def traceback(self) -> TracebackType | None:
        return self.error.__traceback__ if self.error is not None else None

    def resume(self, value: Any = None, error: BaseException | None = None) -> ExecutionOutcome:
        """Run the context until it suspends, finishes or raises.

        Args:
            value: Value sent to the suspended body (the result of its ``yield``).
            error: Exception thrown into the suspended body instead of a value.

        Raises:
            ContextStateError: If the context is running or finished, or an
                error is thrown into a context that has not started.
        """
        if self.status is ContextStatus.RUNNING:
            raise ContextStateError(
                "Cannot resume a running context", error_code=ErrorCode.CONTEXT_RUNNING
            )
        if self.finished:
            raise ContextStateError(f"Cannot resume a {self.status.value} context")
        if error is not None and self.status is ContextStatus.CREATED:
            raise ContextStateError("Cannot throw into a context that has not started")

        if self._body is None:
            outcome = self.enter()
            if self.finished:
                return outcome
            value = None

        self.status = ContextStatus.RUNNING
        try:
            try:
                if error is not None:
                    yielded = self._body.throw(error)
                else:
                    yielded = self._body.send(value)
            except StopIteration as stop:
                return self._complete(stop.value)
            except Exception as e:
                return self._fail(e)
        except BaseException:
            self.status = ContextStatus.DEAD
            raise

        self.yielded = yielded
        self.status = ContextStatus.SUSPENDED
        return ExecutionOutcome(succeeded=True)

    def enter(self) -> ExecutionOutcome:
        """Call the callable without advancing a generator or coroutine body.

        A plain return or an exception finishes the context; a generator or
        coroutine is kept, and the first ``resume()`` runs it.
        """
        if self.status is not ContextStatus.CREATED or self._body is not None:
            raise ContextStateError("Context was already entered")

        self.status = ContextStatus.RUNNING
        try:
            returned = self.func(*self._args, **self._kwargs)
        except Exception as e:
            return self._fail(e)
        except BaseException:
            self.status = ContextStatus.DEAD
            raise

        if not (inspect.isgenerator(returned) or inspect.iscoroutine(returned)):
            return self._complete(returned)
        self._body = returned
        self.status = ContextStatus.CREATED
        return ExecutionOutcome(succeeded=True)

    def close(self) -> None:
        """Abandon a suspended context."""
        if self._body is not None and not self.finished:
            self._body.close()
        if not self.finished:
            self.status = ContextStatus.DEAD

    def _complete(self, result: Any) -> ExecutionOutcome:
        self.result = result
        self.yielded = None
        self.status = ContextStatus.DEAD
        return ExecutionOutcome(succeeded=True)

    def _fail(self, error: Exception) -> ExecutionOutcome:
        self.error = error
        self.yielded = None
        self.status = ContextStatus.FAILED
        return ExecutionOutcome(succeeded=False, raw_error=error)
