"""Models for unit execution outcomes."""

from dataclasses import dataclass
from typing import Literal

type OutcomeKind = Literal[
    "pass",
    "fail",
    "error",
    "skip",
    "expected_failure",
    "unexpected_success",
]

OUTCOME_KINDS: tuple[OutcomeKind, ...] = (
    "pass",
    "fail",
    "error",
    "skip",
    "expected_failure",
    "unexpected_success",
)


@dataclass(frozen=True, kw_only=True)
class Outcome:
    """Result of a single unit execution.

    Contains only the execution outcome - the report entry carries the unit
    identity.
    """

    kind: OutcomeKind
    duration: float = 0.0
    message: str | None = None
    detail: str | None = None
    location: str | None = None
    cause: str | None = None

    @property
    def is_problem(self) -> bool:
        """Whether the outcome needs a detail block in reports."""
        return self.kind in {"fail", "error"}


@dataclass(frozen=True, kw_only=True)
class ReportEntry:
    """A unit identity paired with the outcome recorded for it."""

    unit_id: str
    outcome: Outcome
    module: str = ""
    container: str | None = None
    name: str = ""
