"""Execute a single unit body and classify what happened."""

import inspect
import logging
import time
import traceback
from collections.abc import Callable
from pathlib import Path

from unitcheck.errors import ScopeError, SkipRequest, UnhandledError
from unitcheck.models.outcome import Outcome, OutcomeKind
from unitcheck.models.tree import ConditionalSkip, Skip, TestUnit, UnitMetadata

log = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent

POSITIONAL_KINDS = frozenset(
    {inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD}
)


def _is_internal(filename: str) -> bool:
    return Path(filename).resolve().is_relative_to(PACKAGE_DIR)


def _user_frames(exc: BaseException) -> traceback.StackSummary:
    frames = [
        frame
        for frame in traceback.extract_tb(exc.__traceback__)
        if not _is_internal(frame.filename)
    ]
    return traceback.StackSummary.from_list(frames)


def describe_exception(exc: BaseException) -> tuple[str, str | None]:
    """Return the formatted traceback and innermost user location of ``exc``.

    Frames belonging to the runner itself are left out of both.
    """
    if isinstance(exc, ScopeError):
        exc = exc.cause
    frames = _user_frames(exc)
    lines = ["Traceback (most recent call last):\n", *frames.format()] if frames else []
    detail = "".join(lines + traceback.format_exception_only(exc))
    location = f"{frames[-1].filename}:{frames[-1].lineno}" if frames else None
    return detail, location


def outcome_from_exception(
    kind: OutcomeKind,
    exc: BaseException,
    *,
    duration: float = 0.0,
    message: str | None = None,
) -> Outcome:
    """Build an outcome carrying the cause, traceback and location of ``exc``."""
    detail, location = describe_exception(exc)
    cause = exc.cause if isinstance(exc, ScopeError) else exc
    return Outcome(
        kind=kind,
        duration=duration,
        message=message if message is not None else (str(exc) or type(exc).__name__),
        detail=detail,
        location=location,
        cause=type(cause).__name__,
    )


def call_with_context(func: Callable[..., object], context: object) -> object:
    """Call ``func``, passing ``context`` if its signature takes an argument."""
    try:
        parameters = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return func()

    takes_context = any(
        p.kind is inspect.Parameter.VAR_POSITIONAL
        or (p.kind in POSITIONAL_KINDS and p.default is inspect.Parameter.empty)
        for p in parameters
    )
    return func(context) if takes_context else func()


def check_skip(metadata: UnitMetadata) -> Outcome | None:
    """Evaluate skip decorations before anything of the unit runs.

    Returns a skip outcome, an error outcome if a skip condition raised, or
    None when the unit should run.
    """
    for decoration in metadata.decorations:
        if isinstance(decoration, Skip):
            return Outcome(kind="skip", message=decoration.reason)
        if isinstance(decoration, ConditionalSkip):
            try:
                condition = bool(decoration.predicate())
            except KeyboardInterrupt:
                raise
            except BaseException as exc:
                return outcome_from_exception(
                    "error", exc, message=f"Skip condition raised {UnhandledError(exc)}"
                )
            if condition is decoration.skip_when:
                return Outcome(kind="skip", message=decoration.reason)
    return None


def execute_unit(unit: TestUnit, body: Callable[[], object]) -> Outcome:
    """Run ``body`` for ``unit`` and map the result to an outcome.

    Fixtures are the caller's concern: ``body`` runs only once the enclosing
    scopes are active. Only ``KeyboardInterrupt`` escapes; anything else raised,
    ``SystemExit`` included, becomes an outcome.
    """
    expects_failure = unit.metadata.expects_failure
    start = time.perf_counter()
    try:
        result = body()
        if inspect.iscoroutine(result):
            result.close()
            raise TypeError(
                f"{unit.name} is a coroutine function; async units are not supported"
            )
    except SkipRequest as exc:
        return Outcome(
            kind="skip", duration=time.perf_counter() - start, message=exc.reason
        )
    except AssertionError as exc:
        kind: OutcomeKind = "expected_failure" if expects_failure else "fail"
        return outcome_from_exception(kind, exc, duration=time.perf_counter() - start)
    except KeyboardInterrupt:
        raise
    except BaseException as exc:
        duration = time.perf_counter() - start
        if expects_failure:
            return outcome_from_exception("expected_failure", exc, duration=duration)
        log.debug("Unit %s raised %s", unit.unit_id, type(exc).__name__)
        return outcome_from_exception(
            "error", exc, duration=duration, message=str(UnhandledError(exc))
        )

    duration = time.perf_counter() - start
    if expects_failure:
        return Outcome(
            kind="unexpected_success",
            duration=duration,
            message="Unit marked as expected failure passed",
        )
    return Outcome(kind="pass", duration=duration)
