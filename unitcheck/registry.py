"""Discover test units under a root path."""

import importlib.util
import inspect
import logging
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from functools import partial
from pathlib import Path
from types import ModuleType

from unitcheck.errors import DiscoveryError, SkipRequest
from unitcheck.markers import marks_of, module_marks
from unitcheck.models.config import DEFAULT_PATTERNS, EXCLUDED_DIRS, RunConfig
from unitcheck.models.tree import (
    ConditionalSkip,
    DiscoveryResult,
    Fixture,
    LoadFailure,
    Skip,
    TestContainer,
    TestModule,
    TestUnit,
    UnitMetadata,
)

log = logging.getLogger(__name__)

SCOPE_SKIPS = (Skip, ConditionalSkip)


def split_scope_skips(
    metadata: UnitMetadata,
) -> tuple[tuple[Skip | ConditionalSkip, ...], UnitMetadata]:
    """Separate skip decorations from the rest of a scope's metadata.

    Skips on a module or class, conditional or not, are decided once for the
    whole scope before its setup runs. Every other decoration is inherited by
    the units inside it.
    """
    skips = tuple(d for d in metadata.decorations if isinstance(d, SCOPE_SKIPS))
    rest = tuple(d for d in metadata.decorations if not isinstance(d, SCOPE_SKIPS))
    return skips, replace(metadata, decorations=rest)


def _ensure_on_sys_path(directory: Path) -> None:
    entry = str(directory)
    if entry not in sys.path:
        log.debug("Adding %s to sys.path", entry)
        sys.path.insert(0, entry)


def _module_name(relative: Path) -> str:
    return ".".join(relative.with_suffix("").parts)


def _class_fixture(cls: type, name: str) -> Fixture | None:
    raw = inspect.getattr_static(cls, name, None)
    if raw is None:
        return None
    if inspect.isfunction(raw):
        # Declared without @classmethod
        return partial(raw, cls)
    return getattr(cls, name)


def _is_test_function(obj: object, module: ModuleType) -> bool:
    return (
        inspect.isfunction(obj)
        and obj.__module__ == module.__name__
        and getattr(obj, "__test__", True)
    )


@dataclass(frozen=True, kw_only=True)
class Registry:
    """Finds test files, imports them and builds module trees.

    Discovery never executes a unit. A file that fails to import is recorded
    as a load failure and does not stop discovery of its siblings.
    """

    patterns: Sequence[str] = DEFAULT_PATTERNS
    function_prefix: str = "test"
    class_prefix: str = "Test"
    excluded_dirs: frozenset[str] = frozenset(EXCLUDED_DIRS)

    @classmethod
    def from_config(cls, config: RunConfig) -> "Registry":
        """Create a registry using the discovery settings of ``config``."""
        return cls(
            patterns=tuple(config.patterns),
            function_prefix=config.function_prefix,
            class_prefix=config.class_prefix,
            excluded_dirs=frozenset(config.excluded_dirs),
        )

    def discover(self, root: Path) -> DiscoveryResult:
        """Discover every unit under ``root`` (a directory or a single file).

        Raises:
            FileNotFoundError: If ``root`` does not exist

        """
        root = root.resolve()
        if not root.exists():
            raise FileNotFoundError(f"Test path not found: {root}")

        base = root if root.is_dir() else root.parent
        _ensure_on_sys_path(base)

        modules: list[TestModule] = []
        failures: list[LoadFailure] = []
        for path in self.find_test_files(root):
            relative = path.relative_to(base)
            name = relative.as_posix()
            try:
                module = self.import_module(path, _module_name(relative))
            except SkipRequest as exc:
                log.info("Module %s skipped at import: %s", name, exc.reason)
                failures.append(
                    LoadFailure(name=name, path=path, skip_reason=exc.reason)
                )
                continue
            except KeyboardInterrupt:
                raise
            except BaseException as exc:
                log.warning("Failed to import %s: %s", name, exc)
                failures.append(
                    LoadFailure(name=name, path=path, error=DiscoveryError(name, exc))
                )
                continue
            modules.append(self.collect_module(module, name, path))

        result = DiscoveryResult(modules=tuple(modules), failures=tuple(failures))
        log.info(
            "Discovered %d unit(s) in %d module(s), %d load failure(s)",
            sum(1 for _ in result.iter_units()),
            len(modules),
            len(failures),
        )
        return result

    def find_test_files(self, root: Path) -> Sequence[Path]:
        """Return test files under ``root`` in sorted path order."""
        if root.is_file():
            return [root] if root.suffix == ".py" else []

        found: set[Path] = set()
        for pattern in self.patterns:
            for path in root.rglob(pattern):
                if not path.is_file():
                    continue
                parts = path.relative_to(root).parts
                if any(part in self.excluded_dirs for part in parts):
                    continue
                found.add(path)
        return sorted(found)

    def import_module(self, path: Path, module_name: str) -> ModuleType:
        """Import a test file under ``module_name``.

        The module is registered in ``sys.modules`` before execution so that
        classes defined in it resolve their ``__module__``. It is removed again
        if the import raises.
        """
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load test file: {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module

    def collect_module(self, module: ModuleType, name: str, path: Path) -> TestModule:
        """Build the tree for an imported module."""
        module_skips, outer = split_scope_skips(module_marks(module))

        containers: list[TestContainer] = []
        functions = [
            obj
            for attr_name, obj in vars(module).items()
            if attr_name.startswith(self.function_prefix)
            and _is_test_function(obj, module)
        ]
        if functions:
            containers.append(
                TestContainer(
                    name="",
                    scope_id=name,
                    units=tuple(
                        self._make_unit(func, f"{name}::{func.__name__}", outer)
                        for func in functions
                    ),
                    function_setup=getattr(module, "setup_function", None),
                    function_teardown=getattr(module, "teardown_function", None),
                )
            )

        for attr_name, obj in vars(module).items():
            if not (
                attr_name.startswith(self.class_prefix)
                and inspect.isclass(obj)
                and obj.__module__ == module.__name__
                and getattr(obj, "__test__", True)
            ):
                continue
            container = self.collect_container(obj, name, outer)
            if container.units:
                containers.append(container)

        return TestModule(
            name=name,
            path=path,
            module=module,
            containers=tuple(containers),
            setup=getattr(module, "setup_module", None),
            teardown=getattr(module, "teardown_module", None),
            skips=module_skips,
        )

    def collect_container(
        self, cls: type, module_name: str, outer: UnitMetadata
    ) -> TestContainer:
        """Build the container for a test class.

        Test methods are collected base class first, in definition order; an
        override keeps the position of the method it overrides.
        """
        scope_id = f"{module_name}::{cls.__name__}"
        class_skips, class_metadata = split_scope_skips(marks_of(cls))
        metadata = outer.merged(class_metadata)

        names: list[str] = []
        for klass in reversed(cls.__mro__):
            for attr_name in vars(klass):
                if attr_name in names or not attr_name.startswith(self.function_prefix):
                    continue
                names.append(attr_name)

        units: list[TestUnit] = []
        for attr_name in names:
            func = inspect.getattr_static(cls, attr_name)
            if not inspect.isfunction(func) or not getattr(func, "__test__", True):
                continue
            units.append(self._make_unit(func, f"{scope_id}::{attr_name}", metadata))

        return TestContainer(
            name=cls.__name__,
            scope_id=scope_id,
            cls=cls,
            units=tuple(units),
            setup=_class_fixture(cls, "setup_class"),
            teardown=_class_fixture(cls, "teardown_class"),
            skips=class_skips,
        )

    def _make_unit(
        self, func: Callable[..., object], unit_id: str, outer: UnitMetadata
    ) -> TestUnit:
        return TestUnit(
            name=func.__name__,
            unit_id=unit_id,
            func=func,
            metadata=outer.merged(marks_of(func)),
        )
