"""Run report accumulating outcomes in execution order."""

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from unitcheck.models.outcome import OUTCOME_KINDS, OutcomeKind, ReportEntry


@dataclass(frozen=True, kw_only=True)
class TeardownFailure:
    """A teardown error recorded against the scope it happened in."""

    scope_id: str
    message: str
    detail: str | None = None
    location: str | None = None


@dataclass(kw_only=True)
class RunReport:
    """Ordered sequence of report entries plus aggregate counts.

    The runner is the only writer. Entries are appended, never replaced.
    """

    entries: list[ReportEntry] = field(default_factory=list)
    teardown_failures: list[TeardownFailure] = field(default_factory=list)
    elapsed: float = 0.0
    _counts: Counter[OutcomeKind] = field(default_factory=Counter, repr=False)

    def append(self, entry: ReportEntry) -> None:
        """Record one entry and update the running counts."""
        self.entries.append(entry)
        self._counts[entry.outcome.kind] += 1

    def extend(self, entries: Iterable[ReportEntry]) -> None:
        """Record several entries in order."""
        for entry in entries:
            self.append(entry)

    def add_teardown_failures(self, failures: Sequence[TeardownFailure]) -> None:
        """Record teardown failures; they never change unit outcomes."""
        self.teardown_failures.extend(failures)

    @property
    def total(self) -> int:
        """Number of recorded entries."""
        return len(self.entries)

    @property
    def counts(self) -> Mapping[OutcomeKind, int]:
        """Count per outcome kind, including kinds that never occurred."""
        return {kind: self._counts[kind] for kind in OUTCOME_KINDS}

    def was_successful(self, *, unexpected_success_is_failure: bool = True) -> bool:
        """Whether the run should be considered green.

        Unexpected successes count against the run only under the default
        policy, since runners disagree on how to treat them.
        """
        counts = self.counts
        if counts["fail"] or counts["error"]:
            return False
        if unexpected_success_is_failure and counts["unexpected_success"]:
            return False
        return True
