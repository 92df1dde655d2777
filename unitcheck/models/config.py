"""Run configuration model."""

from collections.abc import Mapping
from pathlib import Path

from pydantic import Field, field_validator

from unitcheck.models.base import Model
from unitcheck.models.outcome import OutcomeKind

DEFAULT_PATTERNS: tuple[str, ...] = ("test_*.py", "*_test.py")

EXCLUDED_DIRS: tuple[str, ...] = (
    ".git",
    ".venv",
    "venv",
    "__pycache__",
    "node_modules",
    ".pytest_cache",
    ".mypy_cache",
    "site-packages",
    "build",
    "dist",
)

DEFAULT_SYMBOLS: Mapping[OutcomeKind, str] = {
    "pass": ".",
    "fail": "F",
    "error": "E",
    "skip": "s",
    "expected_failure": "x",
    "unexpected_success": "u",
}


class RunConfig(Model):
    """Settings for one run, loaded from YAML and overridden by CLI flags."""

    patterns: tuple[str, ...] = Field(
        default=DEFAULT_PATTERNS, description="File name patterns of test modules"
    )
    function_prefix: str = Field(
        default="test", description="Prefix of test functions and methods"
    )
    class_prefix: str = Field(default="Test", description="Prefix of test classes")
    excluded_dirs: tuple[str, ...] = Field(
        default=EXCLUDED_DIRS, description="Directory names never searched"
    )
    select: tuple[str, ...] = Field(
        default=(), description="Selection expressions, any of which may match"
    )
    attributes: tuple[str, ...] = Field(
        default=(), description="Attribute constraint sets, any of which may match"
    )
    jobs: int = Field(default=1, description="Number of parallel module workers")
    timeout: float | None = Field(
        default=None, description="Run timeout in seconds, checked between units"
    )
    verbose: bool = Field(default=False, description="One line per unit")
    symbols: Mapping[OutcomeKind, str] = Field(
        default=DEFAULT_SYMBOLS, description="Progress symbol per outcome kind"
    )
    unexpected_success_is_failure: bool = Field(
        default=True, description="Whether unexpected successes fail the run"
    )
    json_report: Path | None = Field(default=None, description="JSON report path")
    junit_report: Path | None = Field(default=None, description="JUnit XML report path")

    @field_validator("jobs")
    @classmethod
    def validate_jobs(cls, v: int) -> int:
        """Ensure at least one worker."""
        if v < 1:
            raise ValueError("jobs must be at least 1")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Ensure the timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("symbols")
    @classmethod
    def validate_symbols(
        cls, v: Mapping[OutcomeKind, str]
    ) -> Mapping[OutcomeKind, str]:
        """Fill in missing kinds and ensure each symbol is one character."""
        symbols = {**DEFAULT_SYMBOLS, **v}
        for kind, symbol in symbols.items():
            if len(symbol) != 1:
                raise ValueError(f"symbol for {kind} must be a single character")
        return symbols
