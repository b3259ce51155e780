"""Non-fatal execution of case code.

The runner executes a callable inside an ExecutionContext and drives it
to completion. Generator and coroutine bodies are trampolined: a callable
value produced at a suspension point is run as a deferred operation and
its result (or exception) is fed back into the body; any other value is
a plain suspension and the body resumes with None.

Coroutine bodies run on a fresh asyncio event loop, so they may await
asyncio futures, sleeps and tasks as well as deferred operations.

Failures never propagate. They come back as a FailureReport built by the
StackInspector.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from types import FrameType
from typing import Any

from casebox.core.models import FailureReport
from casebox.errors import ContextStateError, ErrorCode
from casebox.runner.context import ExecutionContext, ExecutionOutcome
from casebox.runner.inspector import StackInspector

logger = logging.getLogger(__name__)


class SuspendedRunner:
    """Runs callables and turns their failures into reports.

    Example:
        >>> runner = SuspendedRunner()
        >>> ok, report = runner.run(lambda: 1 / 0)
        >>> ok, report.reason
        (False, 'Unhandled: ZeroDivisionError: division by zero')
    """

    def __init__(self, inspector: StackInspector | None = None) -> None:
        self.inspector = inspector or StackInspector()

    @staticmethod
    def _advance(context: ExecutionContext, pending: Any) -> ExecutionOutcome:
        if not callable(pending):
            return context.resume()
        try:
            value = pending()
        except Exception as e:
            return context.resume(error=e)
        return context.resume(value)

    def _step(self, context: ExecutionContext) -> ExecutionOutcome:
        outcome = context.enter()
        if context.finished:
            return outcome
        if context.is_coroutine:
            return self._run_on_loop(context)

        outcome = context.resume()
        while outcome.succeeded and context.suspended:
            outcome = self._advance(context, context.yielded)
        return outcome

    def _run_on_loop(self, context: ExecutionContext) -> ExecutionOutcome:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self._drive(context))

        context.close()
        raise ContextStateError(
            f"Cannot run coroutine case {context!r} while an event loop is running",
            error_code=ErrorCode.LOOP_RUNNING,
        )

    async def _drive(self, context: ExecutionContext) -> ExecutionOutcome:
        outcome = context.resume()
        while outcome.succeeded and context.suspended:
            pending = context.yielded
            if not asyncio.isfuture(pending):
                if pending is None:
                    # Bare yield: let the loop run its ready callbacks first
                    await asyncio.sleep(0)
                outcome = self._advance(context, pending)
                continue

            try:
                await asyncio.wait([pending])
            except asyncio.CancelledError as e:
                pending.cancel()
                outcome = context.resume(error=e)
            else:
                outcome = context.resume()
        return outcome

    def run(
        self,
        func: Callable[..., Any],
        *args: Any,
        outer_frame: FrameType | None = None,
        **kwargs: Any,
    ) -> tuple[bool, FailureReport | None]:
        """Run ``func`` without letting its failure escape.

        Args:
            func: Callable to run. May return a generator or coroutine.
            outer_frame: Live frame to continue the attribution search from
                when the failure's own traceback has no user frame.

        Returns:
            ``(True, None)`` on success, ``(False, report)`` on failure.
        """
        context = ExecutionContext(func, *args, **kwargs)
        outcome = self._step(context)
        if outcome.succeeded:
            return True, None

        report = self.inspector.build_report(
            context, func, outcome.raw_error, outer_frame=outer_frame
        )
        if report is None:
            return True, None

        logger.debug(f"{context!r} failed at {report.format_location()}: {report.reason}")
        return False, report
