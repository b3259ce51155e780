"""Stub factory handed to test cases.

Stubs are ``unittest.mock.MagicMock`` objects flagged with ``is_stub``.
A stub can optionally replace an attribute on a target object for the
duration of one case; ``StubMaker.reset()`` restores every patched
attribute and is called once when the case's sandbox is cleaned up.

Example:
    >>> stub = StubMaker()
    >>> fake_now = stub(time, "time").returns(0.0)
    >>> time.time()
    0.0
    >>> stub.reset()  # time.time is restored
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock, NonCallableMock, patch

from casebox.errors import ErrorCode, RegistrationError

logger = logging.getLogger(__name__)


class Stub(MagicMock):
    """A mock callable created by StubMaker."""

    is_stub = True

    def returns(self, value: Any) -> Stub:
        """Set the value the stub returns when called."""
        self.return_value = value
        return self

    def with_implementation(self, func: Any) -> Stub:
        """Run ``func`` with the call's arguments whenever the stub is called."""
        self.side_effect = func
        return self

    def _get_child_mock(self, **kwargs: Any) -> MagicMock:
        return MagicMock(**kwargs)


def is_stub(value: Any) -> bool:
    """Check whether ``value`` is a stub or any other mock object."""
    return isinstance(value, NonCallableMock) or getattr(value, "is_stub", False) is True


class StubMaker:
    """Creates stubs for one case and undoes their patches on reset."""

    def __init__(self) -> None:
        self._patchers: list[Any] = []
        self._stubs: list[Stub] = []
        self.closed = False

    def __call__(
        self,
        target: Any = None,
        attribute: str | None = None,
        return_value: Any = None,
    ) -> Stub:
        """Create a stub, optionally patching ``target.attribute`` with it.

        Args:
            target: Object whose attribute is replaced.
            attribute: Name of the attribute to replace.
            return_value: Value the stub returns when called.

        Returns:
            The new stub.

        Raises:
            RegistrationError: If only one of target/attribute is given, or
                the attribute does not exist on the target.
        """
        if (target is None) != (attribute is None):
            raise RegistrationError(
                "stub() needs both a target and an attribute name, or neither",
                error_code=ErrorCode.INVALID_STUB_TARGET,
            )

        if target is not None and not hasattr(target, attribute):
            raise RegistrationError(
                f"{target!r} has no attribute {attribute!r} to stub",
                error_code=ErrorCode.INVALID_STUB_TARGET,
            )

        stub = Stub(name=attribute or "stub")
        stub.return_value = return_value
        self._stubs.append(stub)

        if target is not None and self.closed:
            logger.debug(f"Not stubbing {attribute} on {target!r}: the case was already cleaned up")
        elif target is not None:
            patcher = patch.object(target, attribute, new=stub)
            patcher.start()
            self._patchers.append(patcher)
            logger.debug(f"Stubbed {attribute} on {target!r}")

        return stub

    @property
    def stubs(self) -> list[Stub]:
        """Stubs created since the last reset."""
        return list(self._stubs)

    def reset(self) -> None:
        """Restore every patched attribute, most recent first."""
        while self._patchers:
            self._patchers.pop().stop()
        self._stubs.clear()

    def close(self) -> None:
        """Reset, and stop patching attributes from now on."""
        self.closed = True
        self.reset()
