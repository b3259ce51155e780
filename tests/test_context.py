"""Tests for resumable execution contexts."""

from __future__ import annotations

import pytest

from casebox.errors import ContextStateError, ErrorCode
from casebox.runner.context import ContextStatus, ExecutionContext


class Pause:
    """Awaitable that suspends a coroutine once and returns what it is sent."""

    def __await__(self):
        value = yield
        return value


class TestPlainFunctions:
    """Tests for contexts over plain callables."""

    def test_return_value(self) -> None:
        context = ExecutionContext(lambda a, b: a + b, 1, b=2)
        outcome = context.resume()

        assert outcome.succeeded is True
        assert outcome.raw_error is None
        assert context.status is ContextStatus.DEAD
        assert context.result == 3

    def test_error_is_captured(self) -> None:
        def fail() -> None:
            raise ValueError("boom")

        context = ExecutionContext(fail)
        outcome = context.resume()

        assert outcome.succeeded is False
        assert isinstance(outcome.raw_error, ValueError)
        assert context.status is ContextStatus.FAILED
        assert context.error is outcome.raw_error
        assert context.traceback is not None

    def test_stop_iteration_from_plain_function_is_an_error(self) -> None:
        def fail() -> None:
            raise StopIteration

        outcome = ExecutionContext(fail).resume()
        assert outcome.succeeded is False

    def test_base_exception_propagates(self) -> None:
        def interrupt() -> None:
            raise KeyboardInterrupt

        context = ExecutionContext(interrupt)
        with pytest.raises(KeyboardInterrupt):
            context.resume()
        assert context.status is ContextStatus.DEAD


class TestGenerators:
    """Tests for contexts over generator functions."""

    def test_suspends_and_resumes(self) -> None:
        received: list[object] = []

        def body():
            received.append((yield "first"))
            received.append((yield "second"))
            return "finished"

        context = ExecutionContext(body)
        assert context.resume().succeeded
        assert context.status is ContextStatus.SUSPENDED
        assert context.yielded == "first"

        context.resume(1)
        assert context.yielded == "second"

        context.resume(2)
        assert context.status is ContextStatus.DEAD
        assert context.result == "finished"
        assert received == [1, 2]

    def test_error_after_resume_is_captured(self) -> None:
        def body():
            yield
            raise RuntimeError("late")

        context = ExecutionContext(body)
        assert context.resume().succeeded
        outcome = context.resume()

        assert outcome.succeeded is False
        assert str(outcome.raw_error) == "late"
        assert context.status is ContextStatus.FAILED

    def test_throw_into_suspended_body(self) -> None:
        def body():
            try:
                yield
            except KeyError:
                return "handled"

        context = ExecutionContext(body)
        context.resume()
        outcome = context.resume(error=KeyError("k"))

        assert outcome.succeeded is True
        assert context.result == "handled"

    def test_unhandled_throw_fails_context(self) -> None:
        def body():
            yield

        context = ExecutionContext(body)
        context.resume()
        outcome = context.resume(error=LookupError("missing"))

        assert outcome.succeeded is False
        assert isinstance(context.error, LookupError)

    def test_close_abandons_body(self) -> None:
        closed: list[bool] = []

        def body():
            try:
                yield
            finally:
                closed.append(True)

        context = ExecutionContext(body)
        context.resume()
        context.close()

        assert closed == [True]
        assert context.status is ContextStatus.DEAD


class TestCoroutines:
    """Tests for contexts over coroutine functions."""

    def test_coroutine_suspends_at_await(self) -> None:
        async def body():
            value = await Pause()
            return value * 2

        context = ExecutionContext(body)
        context.resume()
        assert context.suspended

        context.resume(21)
        assert context.result == 42

    def test_coroutine_error_after_await(self) -> None:
        async def body():
            await Pause()
            raise ValueError("after await")

        context = ExecutionContext(body)
        context.resume()
        outcome = context.resume()

        assert outcome.succeeded is False
        assert str(context.error) == "after await"


class TestStateErrors:
    """Tests for resuming contexts in invalid states."""

    def test_resume_finished_context(self) -> None:
        context = ExecutionContext(lambda: None)
        context.resume()

        with pytest.raises(ContextStateError) as exc_info:
            context.resume()
        assert exc_info.value.error_code is ErrorCode.CONTEXT_DEAD

    def test_resume_failed_context(self) -> None:
        context = ExecutionContext(lambda: 1 / 0)
        context.resume()

        with pytest.raises(ContextStateError):
            context.resume()

    def test_throw_into_unstarted_context(self) -> None:
        context = ExecutionContext(lambda: None)
        with pytest.raises(ContextStateError):
            context.resume(error=ValueError())
        assert context.status is ContextStatus.CREATED

    def test_resume_while_running(self) -> None:
        errors: list[ContextStateError] = []

        def body() -> None:
            try:
                context.resume()
            except ContextStateError as e:
                errors.append(e)

        context = ExecutionContext(body)
        context.resume()

        assert errors[0].error_code is ErrorCode.CONTEXT_RUNNING
        assert context.status is ContextStatus.DEAD


class TestEnter:
    """Tests for entering a context without advancing its body."""

    def test_generator_body_is_not_started(self) -> None:
        steps: list[str] = []

        def body():
            steps.append("ran")
            yield

        context = ExecutionContext(body)
        outcome = context.enter()

        assert outcome.succeeded is True
        assert steps == []
        assert context.status is ContextStatus.CREATED

        context.resume()
        assert steps == ["ran"]

    def test_plain_function_finishes(self) -> None:
        context = ExecutionContext(lambda: 3)
        context.enter()

        assert context.result == 3
        assert context.status is ContextStatus.DEAD

    def test_coroutine_is_detected(self) -> None:
        async def body():
            return 1

        context = ExecutionContext(body)
        context.enter()

        assert context.is_coroutine is True
        context.close()
        assert context.status is ContextStatus.DEAD

    def test_enter_twice(self) -> None:
        def body():
            yield

        context = ExecutionContext(body)
        context.enter()
        with pytest.raises(ContextStateError):
            context.enter()
