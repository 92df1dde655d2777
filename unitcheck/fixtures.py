"""Fixture lifecycle for module, class and instance scopes.

Each scope walks a small state machine::

    NOT_STARTED -> SETUP_RUNNING -> ACTIVE -> TEARDOWN_RUNNING -> DONE
                   SETUP_RUNNING -> SETUP_FAILED

A skipped scope goes straight from NOT_STARTED to DONE. Teardown only runs
for scopes that reached ACTIVE.
"""

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from unitcheck.engine import (
    call_with_context,
    describe_exception,
    outcome_from_exception,
)
from unitcheck.errors import SetupError, SkipRequest, TeardownError
from unitcheck.models.outcome import Outcome
from unitcheck.models.report import TeardownFailure
from unitcheck.models.tree import Fixture

log = logging.getLogger(__name__)

type ScopeLevel = Literal["module", "class", "instance"]


class ScopeState(enum.Enum):
    """Lifecycle state of one fixture scope."""

    NOT_STARTED = "not_started"
    SETUP_RUNNING = "setup_running"
    ACTIVE = "active"
    TEARDOWN_RUNNING = "teardown_running"
    DONE = "done"
    SETUP_FAILED = "setup_failed"


TRANSITIONS: Mapping[ScopeState, frozenset[ScopeState]] = {
    ScopeState.NOT_STARTED: frozenset({ScopeState.SETUP_RUNNING, ScopeState.DONE}),
    ScopeState.SETUP_RUNNING: frozenset(
        {ScopeState.ACTIVE, ScopeState.SETUP_FAILED, ScopeState.DONE}
    ),
    ScopeState.ACTIVE: frozenset({ScopeState.TEARDOWN_RUNNING}),
    ScopeState.TEARDOWN_RUNNING: frozenset({ScopeState.DONE}),
    ScopeState.DONE: frozenset(),
    ScopeState.SETUP_FAILED: frozenset(),
}


class ScopeContext:
    """Attribute bag owned by one scope.

    Fixtures store shared state on it; reads fall back to the enclosing
    scope's context, writes always land on this one.
    """

    def __init__(self, scope_id: str, parent: "ScopeContext | None" = None) -> None:
        self._scope_id = scope_id
        self._parent = parent

    def __getattr__(self, name: str) -> Any:
        parent = self.__dict__.get("_parent")
        if parent is not None:
            return getattr(parent, name)
        scope_id = self.__dict__.get("_scope_id")
        raise AttributeError(f"No fixture value {name!r} in scope {scope_id}")

    def __repr__(self) -> str:
        return f"ScopeContext({self._scope_id!r})"


@dataclass(kw_only=True, eq=False)
class FixtureScope:
    """One fixture scope and its current lifecycle state."""

    scope_id: str
    level: ScopeLevel
    context: ScopeContext
    setup: Fixture | None = field(default=None, repr=False)
    teardown: Fixture | None = field(default=None, repr=False)
    state: ScopeState = ScopeState.NOT_STARTED
    setup_error: SetupError | None = None
    skip_reason: str | None = None

    def transition(self, target: ScopeState) -> None:
        """Move to ``target``, refusing transitions the lifecycle forbids."""
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal transition for scope {self.scope_id}: "
                f"{self.state.value} -> {target.value}"
            )
        log.debug("Scope %s: %s -> %s", self.scope_id, self.state.value, target.value)
        self.state = target

    def blocked_outcome(self) -> Outcome:
        """Outcome for a unit that could not run because this scope did not activate."""
        if self.setup_error is not None:
            return outcome_from_exception(
                "error",
                self.setup_error,
                message=f"{self.level} setup failed: {self.setup_error}",
            )
        return Outcome(kind="skip", message=self.skip_reason or "")


@dataclass(kw_only=True)
class FixtureManager:
    """Runs setup and teardown for the scopes of one worker.

    A manager is never shared between workers. Teardown failures are kept on
    the manager and never change the outcome of a unit.
    """

    teardown_failures: list[TeardownFailure] = field(default_factory=list)

    def open_scope(
        self,
        scope_id: str,
        level: ScopeLevel,
        *,
        setup: Fixture | None = None,
        teardown: Fixture | None = None,
        parent: FixtureScope | None = None,
    ) -> FixtureScope:
        """Create a scope whose context falls back to ``parent``'s."""
        context = ScopeContext(scope_id, parent.context if parent is not None else None)
        return FixtureScope(
            scope_id=scope_id,
            level=level,
            context=context,
            setup=setup,
            teardown=teardown,
        )

    def skip(self, scope: FixtureScope, reason: str) -> None:
        """Skip a scope without running its setup or teardown."""
        scope.skip_reason = reason
        scope.transition(ScopeState.DONE)
        log.info("Skipped %s scope %s: %s", scope.level, scope.scope_id, reason)

    def enter(self, scope: FixtureScope) -> bool:
        """Run the scope's setup; return whether the scope became active."""
        scope.transition(ScopeState.SETUP_RUNNING)
        if scope.setup is not None:
            try:
                call_with_context(scope.setup, scope.context)
            except SkipRequest as exc:
                scope.skip_reason = exc.reason
                scope.transition(ScopeState.DONE)
                log.info("Setup of %s requested skip: %s", scope.scope_id, exc.reason)
                return False
            except KeyboardInterrupt:
                raise
            except BaseException as exc:
                scope.setup_error = SetupError(scope.scope_id, exc)
                scope.transition(ScopeState.SETUP_FAILED)
                log.warning(
                    "Setup of %s scope %s failed: %s", scope.level, scope.scope_id, exc
                )
                return False
        scope.transition(ScopeState.ACTIVE)
        return True

    def exit(self, scope: FixtureScope) -> None:
        """Run the scope's teardown if its setup succeeded.

        The scope reaches DONE whether or not the teardown raises.
        """
        if scope.state is not ScopeState.ACTIVE:
            return

        scope.transition(ScopeState.TEARDOWN_RUNNING)
        if scope.teardown is not None:
            try:
                call_with_context(scope.teardown, scope.context)
            except KeyboardInterrupt:
                raise
            except BaseException as exc:
                error = TeardownError(scope.scope_id, exc)
                detail, location = describe_exception(error)
                self.teardown_failures.append(
                    TeardownFailure(
                        scope_id=scope.scope_id,
                        message=str(error),
                        detail=detail,
                        location=location,
                    )
                )
                log.error(
                    "Teardown of %s scope %s failed: %s",
                    scope.level,
                    scope.scope_id,
                    exc,
                )
        scope.transition(ScopeState.DONE)
