"""Authoring API: decorators and helpers imported by test modules.

Marks attach immutable metadata to functions and classes. The registry reads
it back at discovery time; nothing here runs a test.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, NoReturn, overload

from unitcheck.errors import AssertionFailure, SkipRequest
from unitcheck.models.tree import (
    ConditionalSkip,
    ExpectedFailure,
    Skip,
    UnitMetadata,
)

MARKS_ATTR = "__unitcheck_marks__"
MODULE_MARKS_NAME = "unitmarks"


@dataclass(frozen=True, kw_only=True)
class Mark:
    """Metadata that can decorate a test function or class.

    A mark can also be listed in a module's ``unitmarks`` global to apply to
    every unit of the module.
    """

    metadata: UnitMetadata = field(default_factory=UnitMetadata)

    def __call__[T](self, target: T) -> T:
        existing = vars(target).get(MARKS_ATTR, ())
        setattr(target, MARKS_ATTR, (*existing, self))
        return target


def _merge(marks: Iterable[Mark]) -> UnitMetadata:
    metadata = UnitMetadata()
    for mark in marks:
        metadata = metadata.merged(mark.metadata)
    return metadata


def marks_of(target: object) -> UnitMetadata:
    """Collect the metadata attached to a function or class.

    Class marks are inherited: base class marks come first.
    """
    if isinstance(target, type):
        marks: list[Mark] = []
        for klass in reversed(target.__mro__):
            marks.extend(vars(klass).get(MARKS_ATTR, ()))
        return _merge(marks)
    return _merge(getattr(target, MARKS_ATTR, ()))


def module_marks(module: ModuleType) -> UnitMetadata:
    """Collect the marks listed in a module's ``unitmarks`` global."""
    value = getattr(module, MODULE_MARKS_NAME, ())
    if isinstance(value, Mark):
        value = (value,)
    return _merge(mark for mark in value if isinstance(mark, Mark))


@overload
def skip[T](reason: Callable[..., T]) -> Callable[..., T]: ...
@overload
def skip(reason: str = "") -> Mark: ...
def skip(reason: Any = "") -> Any:
    """Skip unconditionally. Usable bare (``@skip``) or with a reason."""
    if callable(reason):
        return Mark(metadata=UnitMetadata(decorations=(Skip(),)))(reason)
    return Mark(metadata=UnitMetadata(decorations=(Skip(reason=reason),)))


def skip_if(condition: bool | Callable[[], object], reason: str = "") -> Mark:
    """Skip when ``condition`` holds.

    A callable condition is evaluated when the unit is about to run.
    """
    if callable(condition):
        decoration = ConditionalSkip(predicate=condition, reason=reason)
        return Mark(metadata=UnitMetadata(decorations=(decoration,)))
    if condition:
        return skip(reason)
    return Mark()


def skip_unless(condition: bool | Callable[[], object], reason: str = "") -> Mark:
    """Skip unless ``condition`` holds."""
    if callable(condition):
        decoration = ConditionalSkip(
            predicate=condition, reason=reason, skip_when=False
        )
        return Mark(metadata=UnitMetadata(decorations=(decoration,)))
    if not condition:
        return skip(reason)
    return Mark()


@overload
def expected_failure[T](reason: Callable[..., T]) -> Callable[..., T]: ...
@overload
def expected_failure(reason: str = "") -> Mark: ...
def expected_failure(reason: Any = "") -> Any:
    """Mark a unit whose body is expected to raise."""
    if callable(reason):
        return Mark(metadata=UnitMetadata(decorations=(ExpectedFailure(),)))(reason)
    return Mark(metadata=UnitMetadata(decorations=(ExpectedFailure(reason=reason),)))


def tag(*names: str) -> Mark:
    """Attach tags, e.g. ``@tag("slow", "network")``."""
    return Mark(metadata=UnitMetadata(tags=frozenset(names)))


def attr(*flags: str, **attributes: Any) -> Mark:
    """Attach attributes; bare names become ``True`` flags."""
    values: dict[str, Any] = dict.fromkeys(flags, True)
    values.update(attributes)
    return Mark(metadata=UnitMetadata(attributes=values))


def skip_test(reason: str = "") -> NoReturn:
    """Stop the current unit (or setup, or module import) as skipped."""
    raise SkipRequest(reason)


def fail(message: str = "Test failed") -> NoReturn:
    """Fail the current unit with ``message``."""
    raise AssertionFailure(message)
