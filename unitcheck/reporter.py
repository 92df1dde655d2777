"""Console reporting: progress stream, failure details and summary line."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TextIO

from unitcheck.models.config import DEFAULT_SYMBOLS
from unitcheck.models.outcome import OUTCOME_KINDS, OutcomeKind, ReportEntry
from unitcheck.models.report import RunReport

SEPARATOR = "=" * 70
RULE = "-" * 70

STATUS_WORDS: Mapping[OutcomeKind, str] = {
    "pass": "ok",
    "fail": "FAIL",
    "error": "ERROR",
    "skip": "skipped",
    "expected_failure": "expected failure",
    "unexpected_success": "unexpected success",
}

SUMMARY_LABELS: Mapping[OutcomeKind, str] = {
    "pass": "passed",
    "fail": "failed",
    "error": "errors",
    "skip": "skipped",
    "expected_failure": "expected failures",
    "unexpected_success": "unexpected successes",
}


def format_summary(report: RunReport, *, successful: bool) -> str:
    """Final line with the outcome of the run, every count and elapsed time."""
    counts = report.counts
    parts = ", ".join(
        f"{counts[kind]} {SUMMARY_LABELS[kind]}" for kind in OUTCOME_KINDS
    )
    status = "OK" if successful else "FAILED"
    return f"{status}: {parts} in {report.elapsed:.2f}s"


def _verbose_line(entry: ReportEntry) -> str:
    line = f"{entry.unit_id} ... {STATUS_WORDS[entry.outcome.kind]}"
    if entry.outcome.kind == "skip" and entry.outcome.message:
        line += f" ({entry.outcome.message})"
    return line


@dataclass(kw_only=True)
class ConsoleReporter:
    """Writes a run report to a text stream.

    The output depends only on the report, so the same outcomes always
    render the same text.
    """

    stream: TextIO
    symbols: Mapping[OutcomeKind, str] = field(
        default_factory=lambda: dict(DEFAULT_SYMBOLS)
    )
    verbose: bool = False
    unexpected_success_is_failure: bool = True

    def render(self, report: RunReport) -> str:
        """Render the full console report."""
        lines: list[str] = []

        if self.verbose:
            lines.extend(_verbose_line(entry) for entry in report.entries)
        elif report.entries:
            symbols = (self.symbols[entry.outcome.kind] for entry in report.entries)
            lines.append("".join(symbols))

        for entry in report.entries:
            if not entry.outcome.is_problem:
                continue
            lines.append(SEPARATOR)
            lines.append(f"{STATUS_WORDS[entry.outcome.kind]}: {entry.unit_id}")
            lines.append(RULE)
            if entry.outcome.location:
                lines.append(f"Location: {entry.outcome.location}")
            if entry.outcome.message:
                lines.append(entry.outcome.message)
            if entry.outcome.detail:
                lines.append(entry.outcome.detail.rstrip("\n"))

        for failure in report.teardown_failures:
            lines.append(SEPARATOR)
            lines.append(f"TEARDOWN ERROR: {failure.scope_id}")
            lines.append(RULE)
            if failure.location:
                lines.append(f"Location: {failure.location}")
            lines.append(failure.message)
            if failure.detail:
                lines.append(failure.detail.rstrip("\n"))

        if report.entries or report.teardown_failures:
            lines.append(RULE)
        successful = report.was_successful(
            unexpected_success_is_failure=self.unexpected_success_is_failure
        )
        lines.append(format_summary(report, successful=successful))
        return "\n".join(lines) + "\n"

    def report(self, report: RunReport) -> None:
        """Write the rendered report to the stream."""
        self.stream.write(self.render(report))
        self.stream.flush()


def log_results_summary(
    log: logging.Logger,
    report: RunReport,
    symbols: Mapping[OutcomeKind, str] = DEFAULT_SYMBOLS,
) -> None:
    """Log one line per unit with its outcome and duration."""
    log.info(SEPARATOR)
    log.info("Test Results Summary:")
    log.info(SEPARATOR)

    for entry in report.entries:
        log.info(
            "%s %s: %s (%.2fs)",
            symbols.get(entry.outcome.kind, "?"),
            entry.unit_id,
            entry.outcome.kind,
            entry.outcome.duration,
        )
        if entry.outcome.message:
            log.info("  Message: %s", entry.outcome.message)
        if entry.outcome.location:
            log.info("  Location: %s", entry.outcome.location)
