"""Expectation builder.

``expect(subject)`` returns an Expectation whose ``to`` and ``to_not``
matcher sets check the subject and raise ExpectationFailed on violation::

    expect(1 + 1).to.eq(2)
    expect(None).to_not.exist()
    expect(lambda: int("x")).to.err_with("invalid literal for int() with base 10: 'x'")

Every failure goes through ``Expectation.fail``, so replacing that one
method changes how all matchers of the expectation report failures.
"""

from __future__ import annotations

import weakref
from typing import Any

from casebox.errors import EXPECTATION_MARKER, ExpectationFailed

_MESSAGE_PREFIX = f"{EXPECTATION_MARKER}: Expected %s "


def is_valid(subject: Any) -> bool:
    """Check whether ``subject`` is a live reference.

    None is invalid, a weak reference is valid while its referent is
    alive, and an object with an ``is_valid()`` method is asked directly.
    """
    if subject is None:
        return False
    if isinstance(subject, weakref.ReferenceType):
        return subject() is not None
    check = getattr(subject, "is_valid", None)
    if callable(check):
        return bool(check())
    return True


def error_message(error: BaseException) -> str:
    """Get the message of ``error`` without the expectation marker."""
    message = str(error)
    if isinstance(error, ExpectationFailed):
        marker = f"{EXPECTATION_MARKER}: "
        if message.startswith(marker):
            return message[len(marker):]
    return message


def _type_name(kind: Any) -> str:
    return kind if isinstance(kind, str) else getattr(kind, "__name__", repr(kind))


def _type_matches(subject: Any, kind: Any) -> bool:
    if isinstance(kind, str):
        return type(subject).__name__ == kind
    return type(subject) is kind


class MatcherSet:
    """Matchers for one subject, optionally negated.

    Each matcher returns the set itself so checks can be chained.
    """

    def __init__(self, expectation: Expectation, negated: bool = False) -> None:
        self._expectation = expectation
        self.negated = negated

    @property
    def _subject(self) -> Any:
        return self._expectation.subject

    def _check(self, passed: bool, suffix: str, *args: Any) -> MatcherSet:
        if bool(passed) == self.negated:
            verb = "to not " if self.negated else "to "
            self._expectation.fail(verb + suffix, *args)
        return self

    def _call_subject(self) -> BaseException | None:
        try:
            self._subject()
        except Exception as e:
            return e
        return None

    def eq(self, comparison: Any) -> MatcherSet:
        return self._check(self._subject == comparison, "equal '%s'", comparison)

    equal = eq

    def be_less_than(self, comparison: Any) -> MatcherSet:
        return self._check(self._subject < comparison, "be less than '%s'", comparison)

    def be_greater_than(self, comparison: Any) -> MatcherSet:
        return self._check(self._subject > comparison, "be greater than '%s'", comparison)

    def be_true(self) -> MatcherSet:
        return self._check(self._subject is True, "be true")

    def be_false(self) -> MatcherSet:
        return self._check(self._subject is False, "be false")

    def be_valid(self) -> MatcherSet:
        return self._check(is_valid(self._subject), "be valid")

    def be_invalid(self) -> MatcherSet:
        return self._check(not is_valid(self._subject), "be invalid")

    def be_none(self) -> MatcherSet:
        return self._check(self._subject is None, "be None")

    def exist(self) -> MatcherSet:
        return self._check(self._subject is not None, "exist")

    def be_a(self, kind: type | str) -> MatcherSet:
        return self._check(_type_matches(self._subject, kind), "be a '%s'", _type_name(kind))

    def be_an(self, kind: type | str) -> MatcherSet:
        return self._check(_type_matches(self._subject, kind), "be an '%s'", _type_name(kind))

    def succeed(self) -> MatcherSet:
        return self._check(self._call_subject() is None, "succeed")

    def err(self) -> MatcherSet:
        return self._check(self._call_subject() is not None, "error")

    def err_with(self, comparison: str) -> MatcherSet:
        """Check that calling the subject raises with message ``comparison``.

        Negated, the call must still raise, but with a different message.
        """
        error = self._call_subject()
        if error is None:
            self._expectation.fail("to error")
            return self

        message = error_message(error)
        if self.negated:
            if message == comparison:
                self._expectation.fail("to not error with '%s'", comparison)
        elif message != comparison:
            self._expectation.fail("to error with '%s', got '%s'", comparison, message)
        return self


class Expectation:
    """Everything ``expect(subject)`` returns.

    Attributes:
        subject: The value under test.
        to: Matchers that must hold.
        to_not: Matchers that must not hold (alias ``not_to``).
    """

    def __init__(self, subject: Any) -> None:
        self.subject = subject
        self.to = MatcherSet(self)
        self.to_not = MatcherSet(self, negated=True)
        self.not_to = self.to_not

    def fail(self, suffix: str, *args: Any) -> None:
        """Raise ExpectationFailed describing the subject.

        Args:
            suffix: %-style template appended after the subject.
            *args: Values substituted into ``suffix``.
        """
        message = (_MESSAGE_PREFIX + suffix) % (self.subject, *args)
        raise ExpectationFailed(message, subject=self.subject)


def expect(subject: Any) -> Expectation:
    """Start an expectation about ``subject``."""
    return Expectation(subject)
