"""Discovered test trees: modules own containers, containers own units."""

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any

from unitcheck.errors import DiscoveryError

type Fixture = Callable[..., object]


@dataclass(frozen=True, kw_only=True)
class Skip:
    """Unconditional skip."""

    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class ConditionalSkip:
    """Skip decided at execution time.

    The unit is skipped when ``predicate()`` returns ``skip_when``.
    """

    predicate: Callable[[], object] = field(compare=False)
    reason: str = ""
    skip_when: bool = True


@dataclass(frozen=True, kw_only=True)
class ExpectedFailure:
    """The unit is expected to raise."""

    reason: str = ""


type Decoration = Skip | ConditionalSkip | ExpectedFailure


def _frozen_mapping(values: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(values))


@dataclass(frozen=True, kw_only=True)
class UnitMetadata:
    """Immutable tags, attributes and decorations attached at discovery."""

    tags: frozenset[str] = frozenset()
    attributes: Mapping[str, Any] = field(default_factory=dict)
    decorations: tuple[Decoration, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", frozenset(self.tags))
        object.__setattr__(self, "attributes", _frozen_mapping(self.attributes))

    def lookup(self, name: str) -> Any:
        """Resolve a name for selection; missing names resolve to None."""
        if name in self.attributes:
            return self.attributes[name]
        if name in {"tag", "tags"}:
            return self.tags
        if name in self.tags:
            return True
        return None

    def merged(self, inner: "UnitMetadata") -> "UnitMetadata":
        """Combine outer (self) with inner metadata; inner attributes win."""
        return UnitMetadata(
            tags=self.tags | inner.tags,
            attributes={**self.attributes, **inner.attributes},
            decorations=self.decorations + inner.decorations,
        )

    @property
    def expects_failure(self) -> bool:
        """Whether the unit carries an expected-failure decoration."""
        return any(isinstance(d, ExpectedFailure) for d in self.decorations)


@dataclass(frozen=True, kw_only=True)
class TestUnit:
    """Smallest executable test action."""

    __test__ = False

    name: str
    unit_id: str
    func: Callable[..., object] = field(repr=False, compare=False)
    metadata: UnitMetadata = field(default_factory=UnitMetadata)


@dataclass(frozen=True, kw_only=True)
class TestContainer:
    """Units sharing class-scoped fixtures.

    ``cls`` is None for the implicit container holding a module's top-level
    test functions; its per-unit fixtures are ``setup_function`` and
    ``teardown_function`` instead of methods.
    """

    __test__ = False

    name: str
    scope_id: str
    cls: type | None = field(default=None, compare=False)
    units: tuple[TestUnit, ...] = ()
    setup: Fixture | None = field(default=None, repr=False, compare=False)
    teardown: Fixture | None = field(default=None, repr=False, compare=False)
    function_setup: Fixture | None = field(default=None, repr=False, compare=False)
    function_teardown: Fixture | None = field(default=None, repr=False, compare=False)
    skips: tuple[Skip | ConditionalSkip, ...] = ()

    def instantiate(self) -> object | None:
        """Create a fresh instance for one unit."""
        return self.cls() if self.cls is not None else None

    def instance_fixtures(
        self, instance: object | None
    ) -> tuple[Fixture | None, Fixture | None]:
        """Return the per-unit setup and teardown for an instance."""
        if instance is None:
            return self.function_setup, self.function_teardown
        return (
            getattr(instance, "setup_method", None),
            getattr(instance, "teardown_method", None),
        )

    def bind(self, unit: TestUnit, instance: object | None) -> Callable[..., object]:
        """Bind a unit's function to the instance it runs on."""
        if instance is None:
            return unit.func
        return unit.func.__get__(instance, type(instance))

    def with_units(self, units: tuple[TestUnit, ...]) -> "TestContainer":
        """Copy of this container holding only ``units``."""
        return replace(self, units=units)


@dataclass(frozen=True, kw_only=True)
class TestModule:
    """One imported test file and its module-scoped fixtures."""

    __test__ = False

    name: str
    path: Path
    module: ModuleType | None = field(default=None, repr=False, compare=False)
    containers: tuple[TestContainer, ...] = ()
    setup: Fixture | None = field(default=None, repr=False, compare=False)
    teardown: Fixture | None = field(default=None, repr=False, compare=False)
    skips: tuple[Skip | ConditionalSkip, ...] = ()

    def iter_units(self) -> Iterator[TestUnit]:
        """Yield every unit in discovery order."""
        for container in self.containers:
            yield from container.units

    def with_containers(self, containers: tuple[TestContainer, ...]) -> "TestModule":
        """Copy of this module holding only ``containers``."""
        return replace(self, containers=containers)


@dataclass(frozen=True, kw_only=True)
class LoadFailure:
    """A test file that could not be turned into a module tree.

    Either the import raised (``error`` is set) or the module asked to be
    skipped while importing (``skip_reason`` is set).
    """

    name: str
    path: Path
    error: DiscoveryError | None = None
    skip_reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class DiscoveryResult:
    """Everything the registry found under a root."""

    modules: tuple[TestModule, ...] = ()
    failures: tuple[LoadFailure, ...] = ()

    def iter_units(self) -> Iterator[TestUnit]:
        """Yield every discovered unit in discovery order."""
        for module in self.modules:
            yield from module.iter_units()

    @property
    def unit_count(self) -> int:
        """Number of units plus load failures, i.e. expected report entries."""
        return sum(1 for _ in self.iter_units()) + len(self.failures)
