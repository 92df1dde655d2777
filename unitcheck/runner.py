"""Test runner coordinating fixtures and unit execution across modules."""

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from unitcheck.engine import (
    call_with_context,
    check_skip,
    execute_unit,
    outcome_from_exception,
)
from unitcheck.errors import SetupError, UnhandledError
from unitcheck.fixtures import FixtureManager, FixtureScope
from unitcheck.models.config import RunConfig
from unitcheck.models.outcome import Outcome, ReportEntry
from unitcheck.models.report import RunReport, TeardownFailure
from unitcheck.models.tree import (
    ConditionalSkip,
    DiscoveryResult,
    LoadFailure,
    Skip,
    TestContainer,
    TestModule,
    TestUnit,
    UnitMetadata,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ModuleRun:
    """Entries and teardown failures produced by one module worker."""

    module: str
    entries: Sequence[ReportEntry]
    teardown_failures: Sequence[TeardownFailure] = ()


def _entry(
    module: TestModule, container: TestContainer, unit: TestUnit, outcome: Outcome
) -> ReportEntry:
    return ReportEntry(
        unit_id=unit.unit_id,
        outcome=outcome,
        module=module.name,
        container=container.name or None,
        name=unit.name,
    )


def load_failure_entry(failure: LoadFailure) -> ReportEntry:
    """Report entry attributed to a module that could not be loaded."""
    if failure.error is not None:
        cause = UnhandledError(failure.error.cause)
        outcome = outcome_from_exception(
            "error", failure.error, message=f"Failed to import {failure.name}: {cause}"
        )
    else:
        outcome = Outcome(kind="skip", message=failure.skip_reason or "")
    return ReportEntry(
        unit_id=failure.name,
        outcome=outcome,
        module=failure.name,
        name=failure.name,
    )


@dataclass(frozen=True, kw_only=True)
class TestRunner:
    """Runs discovered modules and accumulates the run report.

    With one job, modules run one after another on the calling thread. With
    more, each module runs on its own worker thread with its own fixture
    manager; results are merged back in discovery order so the report does
    not depend on scheduling.
    """

    __test__ = False

    jobs: int = 1
    timeout: float | None = None

    @classmethod
    def from_config(cls, config: RunConfig) -> "TestRunner":
        """Create a runner using the execution settings of ``config``."""
        return cls(jobs=config.jobs, timeout=config.timeout)

    async def run(self, discovered: DiscoveryResult) -> RunReport:
        """Run every unit in ``discovered`` and return the report.

        Args:
            discovered: Selected modules and load failures

        Returns:
            Report with exactly one entry per unit and per load failure

        """
        start = time.perf_counter()
        deadline = time.monotonic() + self.timeout if self.timeout is not None else None

        report = RunReport()
        report.extend(load_failure_entry(failure) for failure in discovered.failures)

        modules = discovered.modules
        if not modules:
            log.info("No modules to run")
        elif self.jobs == 1:
            log.info("Running %d module(s) sequentially", len(modules))
            results = [self._run_module_guarded(module, deadline) for module in modules]
            self._collect(report, modules, results)
        else:
            log.info(
                "Running %d module(s) on up to %d workers", len(modules), self.jobs
            )
            semaphore = asyncio.Semaphore(self.jobs)
            tasks = [
                self._run_module_on_worker(module, semaphore, deadline)
                for module in modules
            ]
            results = await asyncio.gather(*tasks, return_exceptions=True)
            self._collect(report, modules, results)

        report.elapsed = time.perf_counter() - start
        log.info("Run completed: %d unit(s) in %.2fs", report.total, report.elapsed)
        return report

    def _run_module_guarded(
        self, module: TestModule, deadline: float | None
    ) -> ModuleRun | BaseException:
        try:
            return self.run_module(module, deadline)
        except KeyboardInterrupt:
            raise
        except BaseException as exc:
            return exc

    async def _run_module_on_worker(
        self, module: TestModule, semaphore: asyncio.Semaphore, deadline: float | None
    ) -> ModuleRun | BaseException:
        async with semaphore:
            return await asyncio.to_thread(self._run_module_guarded, module, deadline)

    def _collect(
        self,
        report: RunReport,
        modules: Sequence[TestModule],
        results: Sequence[ModuleRun | BaseException],
    ) -> None:
        """Append module results to the report, handling worker exceptions."""
        for module, result in zip(modules, results, strict=True):
            if isinstance(result, ModuleRun):
                for entry in result.entries:
                    log.debug(
                        "Unit completed: id=%s outcome=%s duration=%.3fs",
                        entry.unit_id,
                        entry.outcome.kind,
                        entry.outcome.duration,
                    )
                report.extend(result.entries)
                report.add_teardown_failures(result.teardown_failures)
            elif isinstance(result, KeyboardInterrupt):
                raise result
            else:
                log.error(
                    "Worker for module %s failed: %s",
                    module.name,
                    result,
                    exc_info=result,
                )
                outcome = outcome_from_exception(
                    "error",
                    result,
                    message=(
                        "Internal error while running module: "
                        f"{UnhandledError(result)}"
                    ),
                )
                report.extend(
                    _entry(module, container, unit, outcome)
                    for container in module.containers
                    for unit in container.units
                )

    def _expired(self, deadline: float | None) -> bool:
        return deadline is not None and time.monotonic() >= deadline

    def _timeout_outcome(self) -> Outcome:
        return Outcome(
            kind="skip", message=f"Run timeout of {self.timeout:g}s exceeded"
        )

    def run_module(
        self, module: TestModule, deadline: float | None = None
    ) -> ModuleRun:
        """Run one module synchronously with a fresh fixture manager."""
        manager = FixtureManager()
        entries: list[ReportEntry] = []
        scope = manager.open_scope(
            module.name, "module", setup=module.setup, teardown=module.teardown
        )

        skipped = self._check_scope_skips(manager, scope, module.skips)
        if skipped is not None:
            entries.extend(
                _entry(module, container, unit, skipped)
                for container in module.containers
                for unit in container.units
            )
        elif self._expired(deadline):
            outcome = self._timeout_outcome()
            entries.extend(
                _entry(module, container, unit, outcome)
                for container in module.containers
                for unit in container.units
            )
        elif not manager.enter(scope):
            entries.extend(self._blocked(module, module.containers, scope))
        else:
            try:
                for container in module.containers:
                    entries.extend(
                        self._run_container(module, container, scope, manager, deadline)
                    )
            finally:
                manager.exit(scope)

        return ModuleRun(
            module=module.name,
            entries=entries,
            teardown_failures=tuple(manager.teardown_failures),
        )

    def _blocked(
        self,
        module: TestModule,
        containers: Iterable[TestContainer],
        scope: FixtureScope,
    ) -> list[ReportEntry]:
        outcome = scope.blocked_outcome()
        return [
            _entry(module, container, unit, outcome)
            for container in containers
            for unit in container.units
        ]

    def _check_scope_skips(
        self,
        manager: FixtureManager,
        scope: FixtureScope,
        skips: tuple[Skip | ConditionalSkip, ...],
    ) -> Outcome | None:
        """Decide scope skips before setup; return the outcome for every unit.

        A skip that holds moves the scope straight to DONE. A skip condition
        that raises leaves the scope unstarted and blocks its units with the
        error.
        """
        outcome = check_skip(UnitMetadata(decorations=skips))
        if outcome is not None and outcome.kind == "skip":
            manager.skip(scope, outcome.message or "")
        return outcome

    def _run_container(
        self,
        module: TestModule,
        container: TestContainer,
        module_scope: FixtureScope,
        manager: FixtureManager,
        deadline: float | None,
    ) -> list[ReportEntry]:
        if self._expired(deadline):
            outcome = self._timeout_outcome()
            return [
                _entry(module, container, unit, outcome) for unit in container.units
            ]

        scope = manager.open_scope(
            container.scope_id,
            "class",
            setup=container.setup,
            teardown=container.teardown,
            parent=module_scope,
        )
        skipped = self._check_scope_skips(manager, scope, container.skips)
        if skipped is not None:
            return [
                _entry(module, container, unit, skipped) for unit in container.units
            ]
        if not manager.enter(scope):
            return self._blocked(module, [container], scope)

        try:
            return [
                _entry(
                    module,
                    container,
                    unit,
                    self._run_unit(container, unit, scope, manager, deadline),
                )
                for unit in container.units
            ]
        finally:
            manager.exit(scope)

    def _run_unit(
        self,
        container: TestContainer,
        unit: TestUnit,
        class_scope: FixtureScope,
        manager: FixtureManager,
        deadline: float | None,
    ) -> Outcome:
        if self._expired(deadline):
            return self._timeout_outcome()
        if (skipped := check_skip(unit.metadata)) is not None:
            return skipped

        try:
            instance = container.instantiate()
        except KeyboardInterrupt:
            raise
        except BaseException as exc:
            error = SetupError(unit.unit_id, exc)
            return outcome_from_exception(
                "error", error, message=f"Could not create test instance: {error}"
            )

        setup, teardown = container.instance_fixtures(instance)
        scope = manager.open_scope(
            unit.unit_id, "instance", setup=setup, teardown=teardown, parent=class_scope
        )
        if not manager.enter(scope):
            return scope.blocked_outcome()

        try:
            body = container.bind(unit, instance)
            return execute_unit(unit, lambda: call_with_context(body, scope.context))
        finally:
            manager.exit(scope)
