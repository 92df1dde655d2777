"""CLI entry point for the unitcheck test runner."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from unitcheck.config import load_config
from unitcheck.errors import ConfigError, SelectorError
from unitcheck.export import write_json_report, write_junit_report
from unitcheck.models.config import RunConfig
from unitcheck.models.tree import DiscoveryResult
from unitcheck.registry import Registry
from unitcheck.reporter import ConsoleReporter, log_results_summary
from unitcheck.runner import TestRunner
from unitcheck.selector import Selector

EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_USAGE_ERROR = 2


def print_collected(discovered: DiscoveryResult, stream: TextIO) -> None:
    """Print the identity of every selected unit and every load failure."""
    for failure in discovered.failures:
        status = "ERROR" if failure.error is not None else "SKIPPED"
        print(f"{failure.name} [{status}]", file=stream)
    for unit in discovered.iter_units():
        print(unit.unit_id, file=stream)
    print(f"{discovered.unit_count} item(s) collected", file=stream)


async def run(
    path: Path,
    config: RunConfig,
    *,
    collect_only: bool = False,
    stream: TextIO | None = None,
) -> int:
    """Discover, select, run and report; return the exit code."""
    log = logging.getLogger("unitcheck")
    out = stream if stream is not None else sys.stdout

    selector = Selector.compile(config.select, config.attributes)

    log.info("Discovering tests under %s", path)
    discovered = selector.select(Registry.from_config(config).discover(path))

    if collect_only:
        print_collected(discovered, out)
        return EXIT_OK

    report = await TestRunner.from_config(config).run(discovered)
    log_results_summary(log, report, config.symbols)

    ConsoleReporter(
        stream=out,
        symbols=config.symbols,
        verbose=config.verbose,
        unexpected_success_is_failure=config.unexpected_success_is_failure,
    ).report(report)

    policy = config.unexpected_success_is_failure
    if config.json_report is not None:
        write_json_report(
            report, config.json_report, unexpected_success_is_failure=policy
        )
    if config.junit_report is not None:
        write_junit_report(
            report, config.junit_report, unexpected_success_is_failure=policy
        )

    if report.was_successful(unexpected_success_is_failure=policy):
        return EXIT_OK
    return EXIT_TESTS_FAILED


def parse_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Config values given on the command line; unset flags are left out."""
    overrides: dict[str, Any] = {}
    if args.select:
        overrides["select"] = tuple(args.select)
    if args.attr:
        overrides["attributes"] = tuple(args.attr)
    if args.verbose:
        overrides["verbose"] = True
    if args.parallel is not None:
        overrides["jobs"] = args.parallel
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.json is not None:
        overrides["json_report"] = args.json
    if args.junit_xml is not None:
        overrides["junit_report"] = args.junit_xml
    if args.unexpected_success is not None:
        overrides["unexpected_success_is_failure"] = args.unexpected_success == "fail"
    return overrides


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="unitcheck", description="Discover and run unit tests"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run tests")
    run_parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=Path("."),
        help="Test file or directory to search (default: current directory)",
    )
    run_parser.add_argument(
        "--select",
        action="append",
        metavar="EXPR",
        help="Boolean expression over tags and attributes; repeat for alternatives",
    )
    run_parser.add_argument(
        "-a",
        "--attr",
        action="append",
        metavar="SPEC",
        help=(
            "Comma-separated attribute constraints (e.g. 'slow,!network'); "
            "repeat for alternatives"
        ),
    )
    run_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print one line per unit"
    )
    run_parser.add_argument(
        "--parallel", type=int, metavar="N", help="Run modules on N parallel workers"
    )
    run_parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Stop starting new units after this many seconds",
    )
    run_parser.add_argument(
        "--collect-only",
        action="store_true",
        help="List selected units without running them",
    )
    run_parser.add_argument(
        "--json", type=Path, metavar="PATH", help="Write a JSON report"
    )
    run_parser.add_argument(
        "--junit-xml", type=Path, metavar="PATH", help="Write a JUnit XML report"
    )
    run_parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="YAML config file (default: unitcheck.yaml)",
    )
    run_parser.add_argument(
        "--unexpected-success",
        choices=["fail", "pass"],
        help="Whether unexpected successes fail the run (default: fail)",
    )
    run_parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level for diagnostics on stderr",
    )
    return parser


def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config, parse_overrides(args))
        exit_code = asyncio.run(run(args.path, config, collect_only=args.collect_only))
    except (ConfigError, SelectorError, FileNotFoundError) as e:
        print(f"unitcheck: error: {e}", file=sys.stderr)
        exit_code = EXIT_USAGE_ERROR
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
