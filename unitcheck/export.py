"""Machine-readable run reports for CI publishers."""

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from unitcheck.models.outcome import ReportEntry
from unitcheck.models.report import RunReport

log = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'


def format_output(
    report: RunReport, *, unexpected_success_is_failure: bool = True
) -> dict[str, Any]:
    """Format a run report as a JSON-serialisable document."""
    counts = report.counts
    return {
        "successful": report.was_successful(
            unexpected_success_is_failure=unexpected_success_is_failure
        ),
        "total": report.total,
        "passed": counts["pass"],
        "failed": counts["fail"],
        "errors": counts["error"],
        "skipped": counts["skip"],
        "expected_failures": counts["expected_failure"],
        "unexpected_successes": counts["unexpected_success"],
        "duration": report.elapsed,
        "results": [
            {
                "id": entry.unit_id,
                "outcome": entry.outcome.kind,
                "duration": entry.outcome.duration,
                "message": entry.outcome.message,
                "detail": entry.outcome.detail,
                "location": entry.outcome.location,
            }
            for entry in report.entries
        ],
        "teardown_errors": [
            {
                "scope": failure.scope_id,
                "message": failure.message,
                "detail": failure.detail,
                "location": failure.location,
            }
            for failure in report.teardown_failures
        ],
    }


def write_json_report(
    report: RunReport, path: Path, *, unexpected_success_is_failure: bool = True
) -> None:
    """Write the JSON report to ``path``."""
    output = format_output(
        report, unexpected_success_is_failure=unexpected_success_is_failure
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(output, indent=2) + "\n", encoding="utf-8")
    log.info("Wrote JSON report to %s", path)


def _classname(entry: ReportEntry) -> str:
    module = entry.module.removesuffix(".py").replace("/", ".")
    return f"{module}.{entry.container}" if entry.container else module


def _scope_classname(scope_id: str) -> str:
    module, _, container = scope_id.partition("::")
    module = module.removesuffix(".py").replace("/", ".")
    return f"{module}.{container.replace('::', '.')}" if container else module


def _testcase(
    suite: ET.Element, entry: ReportEntry, unexpected_success_is_failure: bool
) -> None:
    outcome = entry.outcome
    case = ET.SubElement(
        suite,
        "testcase",
        classname=_classname(entry),
        name=entry.name or entry.unit_id,
        time=f"{outcome.duration:.3f}",
    )
    message = outcome.message or ""
    if outcome.kind == "fail":
        node = ET.SubElement(
            case, "failure", message=message, type=outcome.cause or "AssertionError"
        )
        node.text = outcome.detail
    elif outcome.kind == "error":
        node = ET.SubElement(
            case, "error", message=message, type=outcome.cause or "Exception"
        )
        node.text = outcome.detail
    elif outcome.kind == "skip":
        ET.SubElement(case, "skipped", message=message)
    elif outcome.kind == "expected_failure":
        ET.SubElement(case, "skipped", type="expected_failure", message=message)
    elif outcome.kind == "unexpected_success" and unexpected_success_is_failure:
        ET.SubElement(case, "failure", message=message, type="UnexpectedSuccess")


def format_junit(
    report: RunReport, *, unexpected_success_is_failure: bool = True
) -> str:
    """Format a run report as JUnit XML.

    Expected failures are reported as skipped. Teardown errors become extra
    ``teardown`` test cases carrying an ``error`` element.
    """
    counts = report.counts
    failures = counts["fail"]
    if unexpected_success_is_failure:
        failures += counts["unexpected_success"]

    root = ET.Element("testsuites")
    suite = ET.SubElement(
        root,
        "testsuite",
        name="unitcheck",
        tests=str(report.total + len(report.teardown_failures)),
        failures=str(failures),
        errors=str(counts["error"] + len(report.teardown_failures)),
        skipped=str(counts["skip"] + counts["expected_failure"]),
        time=f"{report.elapsed:.3f}",
    )
    for entry in report.entries:
        _testcase(suite, entry, unexpected_success_is_failure)

    for failure in report.teardown_failures:
        case = ET.SubElement(
            suite,
            "testcase",
            classname=_scope_classname(failure.scope_id),
            name="teardown",
            time="0.000",
        )
        node = ET.SubElement(
            case, "error", message=failure.message, type="TeardownError"
        )
        node.text = failure.detail

    ET.indent(root)
    return XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"


def write_junit_report(
    report: RunReport, path: Path, *, unexpected_success_is_failure: bool = True
) -> None:
    """Write the JUnit XML report to ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        format_junit(
            report, unexpected_success_is_failure=unexpected_success_is_failure
        ),
        encoding="utf-8",
    )
    log.info("Wrote JUnit XML report to %s", path)
