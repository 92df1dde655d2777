"""Error taxonomy shared by discovery, fixtures and execution."""


class UnitcheckError(Exception):
    """Base class for errors raised by the runner itself."""


class ScopeError(UnitcheckError):
    """An error attributed to a scope rather than to a single unit."""

    def __init__(self, scope_id: str, cause: BaseException) -> None:
        super().__init__(f"{scope_id}: {type(cause).__name__}: {cause}")
        self.scope_id = scope_id
        self.cause = cause


class DiscoveryError(ScopeError):
    """Raised when a test module cannot be imported."""


class SetupError(ScopeError):
    """Raised when a fixture setup fails; terminal for its scope."""


class TeardownError(ScopeError):
    """Raised when a fixture teardown fails; recorded, never terminal."""


class UnhandledError(UnitcheckError):
    """Wraps a non-assertion exception raised from a unit body."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.cause = cause


class AssertionFailure(AssertionError):
    """Raised by ``fail()``; any ``AssertionError`` is treated the same way."""


class SkipRequest(Exception):
    """Cooperative early exit: the unit or scope is reported as skipped."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


class SelectorError(UnitcheckError):
    """Raised when a selection expression cannot be compiled."""


class ConfigError(UnitcheckError):
    """Raised when the configuration file is malformed."""
