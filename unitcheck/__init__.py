"""unitcheck: a small unittest-like test runner."""

from unitcheck.errors import AssertionFailure, SkipRequest
from unitcheck.markers import (
    attr,
    expected_failure,
    fail,
    skip,
    skip_if,
    skip_test,
    skip_unless,
    tag,
)

__all__ = [
    "AssertionFailure",
    "SkipRequest",
    "attr",
    "expected_failure",
    "fail",
    "skip",
    "skip_if",
    "skip_test",
    "skip_unless",
    "tag",
]
