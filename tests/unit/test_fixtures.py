"""Tests for the fixture lifecycle."""

import logging
from unittest.mock import Mock

import pytest

from unitcheck.errors import SetupError, SkipRequest
from unitcheck.fixtures import FixtureManager, ScopeContext, ScopeState


@pytest.fixture
def manager() -> FixtureManager:
    """Create a fresh fixture manager."""
    return FixtureManager()


def test_setup_and_teardown_walk_the_full_lifecycle(manager: FixtureManager) -> None:
    """A healthy scope goes NOT_STARTED -> ACTIVE -> DONE."""
    setup = Mock()
    teardown = Mock()
    scope = manager.open_scope("test_m.py", "module", setup=setup, teardown=teardown)

    assert scope.state is ScopeState.NOT_STARTED
    assert manager.enter(scope) is True
    assert scope.state is ScopeState.ACTIVE

    manager.exit(scope)

    assert scope.state is ScopeState.DONE
    setup.assert_called_once_with(scope.context)
    teardown.assert_called_once_with(scope.context)
    assert manager.teardown_failures == []


def test_fixtures_without_parameters_are_called_bare(manager: FixtureManager) -> None:
    """The context is only passed to fixtures that accept it."""
    calls = []

    def setup() -> None:
        calls.append("setup")

    scope = manager.open_scope("test_m.py::TestA", "class", setup=setup)

    assert manager.enter(scope) is True
    assert calls == ["setup"]


def test_setup_failure_is_terminal_and_skips_teardown(manager: FixtureManager) -> None:
    """A failed setup leaves the scope SETUP_FAILED and its teardown unrun."""
    teardown = Mock()
    scope = manager.open_scope(
        "test_m.py::TestA",
        "class",
        setup=Mock(side_effect=RuntimeError("db down")),
        teardown=teardown,
    )

    assert manager.enter(scope) is False
    manager.exit(scope)

    assert scope.state is ScopeState.SETUP_FAILED
    assert isinstance(scope.setup_error, SetupError)
    assert isinstance(scope.setup_error.cause, RuntimeError)
    teardown.assert_not_called()

    outcome = scope.blocked_outcome()
    assert outcome.kind == "error"
    assert outcome.message == "class setup failed: test_m.py::TestA: RuntimeError: db down"
    assert outcome.cause == "RuntimeError"
    assert outcome.detail is not None
    assert "RuntimeError: db down" in outcome.detail


def test_system_exit_in_setup_fails_the_scope(manager: FixtureManager) -> None:
    """SystemExit from a setup is a setup failure, not an exit."""
    scope = manager.open_scope(
        "test_m.py", "module", setup=Mock(side_effect=SystemExit(4))
    )

    assert manager.enter(scope) is False

    assert scope.state is ScopeState.SETUP_FAILED
    assert isinstance(scope.setup_error.cause, SystemExit)


def test_keyboard_interrupt_in_setup_propagates(manager: FixtureManager) -> None:
    """An interrupt while setting up stops the run."""
    scope = manager.open_scope(
        "test_m.py", "module", setup=Mock(side_effect=KeyboardInterrupt)
    )

    with pytest.raises(KeyboardInterrupt):
        manager.enter(scope)


def test_skip_request_in_setup_skips_the_scope(manager: FixtureManager) -> None:
    """skip_test() in a setup ends the scope as skipped without teardown."""
    teardown = Mock()
    scope = manager.open_scope(
        "test_m.py",
        "module",
        setup=Mock(side_effect=SkipRequest("no network")),
        teardown=teardown,
    )

    assert manager.enter(scope) is False
    manager.exit(scope)

    assert scope.state is ScopeState.DONE
    teardown.assert_not_called()
    outcome = scope.blocked_outcome()
    assert outcome.kind == "skip"
    assert outcome.message == "no network"


def test_skipped_scope_goes_straight_to_done(manager: FixtureManager) -> None:
    """A skip-marked scope never runs its fixtures."""
    setup = Mock()
    scope = manager.open_scope("test_m.py::TestA", "class", setup=setup)

    manager.skip(scope, "later")

    assert scope.state is ScopeState.DONE
    assert scope.blocked_outcome().message == "later"
    setup.assert_not_called()


def test_teardown_failure_is_recorded_and_logged(
    manager: FixtureManager, caplog: pytest.LogCaptureFixture
) -> None:
    """A raising teardown still reaches DONE and is kept on the manager."""
    scope = manager.open_scope(
        "test_m.py::TestA::test_x",
        "instance",
        teardown=Mock(side_effect=OSError("disk full")),
    )
    manager.enter(scope)

    with caplog.at_level(logging.ERROR):
        manager.exit(scope)

    assert scope.state is ScopeState.DONE
    assert len(manager.teardown_failures) == 1
    failure = manager.teardown_failures[0]
    assert failure.scope_id == "test_m.py::TestA::test_x"
    assert failure.message == "test_m.py::TestA::test_x: OSError: disk full"
    assert "Teardown of instance scope test_m.py::TestA::test_x failed" in caplog.text


def test_rejects_illegal_transitions(manager: FixtureManager) -> None:
    """Skipping lifecycle states is refused."""
    scope = manager.open_scope("test_m.py", "module")

    with pytest.raises(RuntimeError, match="Illegal transition"):
        scope.transition(ScopeState.ACTIVE)

    manager.enter(scope)
    with pytest.raises(RuntimeError, match="active -> setup_running"):
        scope.transition(ScopeState.SETUP_RUNNING)


def test_child_context_reads_fall_back_to_parent(manager: FixtureManager) -> None:
    """Values stored by an enclosing scope are visible to inner scopes."""
    module = manager.open_scope("test_m.py", "module")
    klass = manager.open_scope("test_m.py::TestA", "class", parent=module)
    module.context.db = "connection"
    klass.context.user = "alice"

    assert klass.context.db == "connection"
    assert klass.context.user == "alice"
    assert not hasattr(module.context, "user")


def test_missing_context_value_raises_attribute_error() -> None:
    """Unknown names are reported with the scope they were looked up in."""
    context = ScopeContext("test_m.py")

    with pytest.raises(AttributeError, match="No fixture value 'db' in scope test_m.py"):
        _ = context.db
