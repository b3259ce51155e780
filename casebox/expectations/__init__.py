from casebox.expectations.expect import (
    Expectation,
    MatcherSet,
    error_message,
    expect,
    is_valid,
)

__all__ = [
    "Expectation",
    "MatcherSet",
    "error_message",
    "expect",
    "is_valid",
]
