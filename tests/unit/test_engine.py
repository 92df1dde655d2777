"""Tests for single-unit execution."""

import sys
from collections.abc import Callable

import pytest

from unitcheck.engine import (
    call_with_context,
    check_skip,
    describe_exception,
    execute_unit,
    outcome_from_exception,
)
from unitcheck.errors import SetupError
from unitcheck.markers import fail, skip_test
from unitcheck.models.tree import (
    ConditionalSkip,
    Decoration,
    ExpectedFailure,
    Skip,
    TestUnit,
    UnitMetadata,
)


def make_unit(*decorations: Decoration) -> TestUnit:
    """Create a unit whose body is supplied to execute_unit directly."""
    return TestUnit(
        name="test_sample",
        unit_id="test_engine_sample.py::test_sample",
        func=lambda: None,
        metadata=UnitMetadata(decorations=decorations),
    )


def raise_value_error() -> None:
    """Raise an unexpected error."""
    raise ValueError("bad value")


def test_clean_body_passes() -> None:
    """No exception means pass."""
    outcome = execute_unit(make_unit(), lambda: None)

    assert outcome.kind == "pass"
    assert outcome.message is None
    assert outcome.duration >= 0


def test_assertion_error_fails_with_message() -> None:
    """AssertionError and fail() map to fail."""

    def body() -> None:
        fail("expected 2, got 3")

    outcome = execute_unit(make_unit(), body)

    assert outcome.kind == "fail"
    assert outcome.message == "expected 2, got 3"
    assert outcome.cause == "AssertionFailure"
    assert outcome.location is not None
    assert "test_engine.py:" in outcome.location


def test_bare_assert_fails_with_type_name() -> None:
    """An assertion without a message still has a message."""

    def body() -> None:
        assert [] == [1]

    outcome = execute_unit(make_unit(), body)

    assert outcome.kind == "fail"
    assert outcome.message


def test_unexpected_exception_is_an_error() -> None:
    """Non-assertion exceptions map to error carrying the cause."""
    outcome = execute_unit(make_unit(), raise_value_error)

    assert outcome.kind == "error"
    assert outcome.message == "ValueError: bad value"
    assert outcome.cause == "ValueError"
    assert outcome.detail is not None
    assert outcome.detail.startswith("Traceback (most recent call last):")
    assert "raise_value_error" in outcome.detail
    assert "unitcheck/engine.py" not in outcome.detail


def test_skip_request_mid_body_skips() -> None:
    """skip_test() at any point of the body yields skip with its reason."""

    def body() -> None:
        skip_test("not on this platform")

    outcome = execute_unit(make_unit(), body)

    assert outcome.kind == "skip"
    assert outcome.message == "not on this platform"


def test_expected_failure_that_raises() -> None:
    """An expected failure that raises is recorded as expected_failure."""
    outcome = execute_unit(make_unit(ExpectedFailure()), raise_value_error)

    assert outcome.kind == "expected_failure"
    assert outcome.cause == "ValueError"


def test_expected_failure_that_passes() -> None:
    """An expected failure that passes is an unexpected success."""
    outcome = execute_unit(make_unit(ExpectedFailure(reason="bug 12")), lambda: None)

    assert outcome.kind == "unexpected_success"
    assert outcome.message == "Unit marked as expected failure passed"


def test_skip_in_expected_failure_is_still_a_skip() -> None:
    """A skip is never turned into an expected failure."""

    def body() -> None:
        skip_test("later")

    assert execute_unit(make_unit(ExpectedFailure()), body).kind == "skip"


def test_coroutine_body_is_an_error() -> None:
    """Async units are not awaited and are reported as errors."""

    async def body() -> None:
        pass

    outcome = execute_unit(make_unit(), body)

    assert outcome.kind == "error"
    assert outcome.cause == "TypeError"
    assert "async units are not supported" in (outcome.message or "")


def test_keyboard_interrupt_propagates() -> None:
    """KeyboardInterrupt is not swallowed."""

    def body() -> None:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        execute_unit(make_unit(), body)


def test_system_exit_is_an_error() -> None:
    """sys.exit() from a body is an error, not the end of the run."""

    def body() -> None:
        sys.exit(2)

    outcome = execute_unit(make_unit(), body)

    assert outcome.kind == "error"
    assert outcome.cause == "SystemExit"
    assert outcome.message == "SystemExit: 2"



@pytest.mark.parametrize(
    ("decoration", "kind"),
    [
        (Skip(reason="static"), "skip"),
        (ConditionalSkip(predicate=lambda: True, reason="dynamic"), "skip"),
        (
            ConditionalSkip(predicate=lambda: False, reason="dynamic", skip_when=False),
            "skip",
        ),
    ],
)
def test_check_skip_returns_skip_outcomes(decoration: Decoration, kind: str) -> None:
    """Static and conditional skips produce a skip outcome."""
    outcome = check_skip(UnitMetadata(decorations=(decoration,)))

    assert outcome is not None
    assert outcome.kind == kind


def test_check_skip_lets_unit_run_when_condition_does_not_hold() -> None:
    """A false condition means the unit runs."""
    metadata = UnitMetadata(
        decorations=(ConditionalSkip(predicate=lambda: False), ExpectedFailure())
    )

    assert check_skip(metadata) is None


def test_check_skip_reports_raising_predicate_as_error() -> None:
    """A predicate that raises makes the unit an error."""
    metadata = UnitMetadata(decorations=(ConditionalSkip(predicate=lambda: 1 / 0),))

    outcome = check_skip(metadata)

    assert outcome is not None
    assert outcome.kind == "error"
    assert outcome.message == "Skip condition raised ZeroDivisionError: division by zero"


@pytest.mark.parametrize(
    ("func", "passes_context"),
    [
        (lambda: "bare", False),
        (lambda context: context, True),
        (lambda context=None: context, False),
        (lambda *args: args, True),
    ],
)
def test_call_with_context(func: Callable[..., object], passes_context: bool) -> None:
    """The context is passed only to callables with a required positional slot."""
    context = object()

    result = call_with_context(func, context)

    if passes_context:
        assert result is context or result == (context,)
    else:
        assert result is not context


def test_scope_errors_are_described_by_their_cause() -> None:
    """Outcome cause and traceback come from the wrapped exception."""
    try:
        raise_value_error()
    except ValueError as exc:
        error = SetupError("test_m.py::TestA", exc)

    detail, location = describe_exception(error)
    outcome = outcome_from_exception("error", error)

    assert detail.endswith("ValueError: bad value\n")
    assert location is not None
    assert outcome.cause == "ValueError"
    assert outcome.message == "test_m.py::TestA: ValueError: bad value"


def test_exception_without_user_frames_has_no_location() -> None:
    """A never-raised exception has no traceback to point into."""
    detail, location = describe_exception(RuntimeError("detached"))

    assert detail == "RuntimeError: detached\n"
    assert location is None
