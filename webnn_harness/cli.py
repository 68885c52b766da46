"""CLI entry point for the WebNN conformance harness."""

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from webnn_harness.config import BrowserConfig, RunSettings
from webnn_harness.discovery import parse_index_ranges
from webnn_harness.errors import RelaunchError
from webnn_harness.models.result import UnitResult
from webnn_harness.orchestrator import SuiteReport, SuiteRunner
from webnn_harness.session.base import SessionLauncher

STATUS_SYMBOLS = {
    "PASS": "✅",
    "FAIL": "❌",
    "ERROR": "❗",
    "UNKNOWN": "❔",
}

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def log_results_summary(log: logging.Logger, report: SuiteReport) -> None:
    """Log a formatted summary of unit results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in report.results:
        symbol = STATUS_SYMBOLS.get(result.verdict, "?")
        log.info(
            "%s %s: %s %d/%d (%.2fs)",
            symbol,
            result.name,
            result.verdict,
            result.subcases.passed,
            result.subcases.total,
            result.execution_time,
        )
        if result.retried:
            log.info(
                "  Retries: %s",
                " -> ".join(snapshot.label for snapshot in result.retry_history),
            )
        if result.error:
            log.info("  Error: %s", result.error)
        for subtest in result.failed_subtests:
            log.info("  [%s] %s", subtest.status, subtest.name)

    summary = report.summary()
    log.info("=" * 80)
    log.info(
        "%d case(s): %d passed, %d failed, %d error(s), %d unknown",
        summary["cases"],
        summary["passed"],
        summary["failed"],
        summary["errors"],
        summary["unknown"],
    )
    log.info(
        "Subcases: %d/%d passed, %d retried case(s)",
        summary["subcases_passed"],
        summary["subcases_total"],
        summary["retried"],
    )
    log.info(
        "Wall time %.2fs, sum of test times %.2fs",
        report.wall_time,
        report.sum_of_test_times,
    )


def parse_list(value: str) -> Sequence[str]:
    """Parse a comma-separated list, dropping empty entries."""
    if not value.strip():
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def env_flag(environ: Mapping[str, str], name: str) -> bool:
    """Read a boolean environment variable."""
    return environ.get(name, "").strip().lower() in TRUE_VALUES


def format_result(result: UnitResult) -> dict[str, Any]:
    """Format one unit result for JSON output."""
    return {
        "name": result.name,
        "suite": result.suite,
        "verdict": result.verdict,
        "total": result.subcases.total,
        "passed": result.subcases.passed,
        "failed": result.subcases.failed,
        "execution_time": round(result.execution_time, 3),
        "target_url": result.target_url,
        "details": result.details,
        "error": result.error,
        "failed_subtests": [
            {"name": s.name, "status": s.status, "message": s.message}
            for s in result.failed_subtests
        ],
        "retry_history": [
            {
                "attempt": s.attempt_number,
                "verdict": s.verdict,
                "passed": s.passed,
                "failed": s.failed,
                "total": s.total,
                "launch_failed": s.launch_failed,
            }
            for s in result.retry_history
        ],
    }


def format_output(report: SuiteReport) -> dict[str, Any]:
    """Format a suite report for JSON output."""
    summary = report.summary()
    return {
        "total": summary["cases"],
        "passed": summary["passed"],
        "failed": summary["failed"],
        "errors": summary["errors"],
        "unknown": summary["unknown"],
        "wall_time": round(report.wall_time, 3),
        "results": [format_result(result) for result in report.results],
    }


async def run(settings: RunSettings, launcher: SessionLauncher | None = None) -> int:
    """Run the configured suites and return exit code."""
    log = logging.getLogger("webnn_harness")

    if launcher is None:
        from webnn_harness.session.playwright import PlaywrightSession

        launcher = PlaywrightSession.launcher(settings.browser)

    log.info(
        "Suites: %s, device: %s, jobs: %d, case: %s, range: %s",
        ", ".join(settings.suite),
        settings.device,
        settings.jobs,
        ", ".join(settings.cases) or "ALL",
        settings.index_ranges or "ALL",
    )

    try:
        report = await SuiteRunner(settings=settings, launcher=launcher).run()
    except RelaunchError as e:
        log.error("Unable to start a browser session: %s", e)
        print(json.dumps({"total": 0, "results": []}))
        return 1

    log_results_summary(log, report)

    output = format_output(report)
    print(json.dumps(output, indent=2))

    return report.exit_code


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    """Build the argument parser; defaults come from the environment."""
    parser = argparse.ArgumentParser(
        description="Run WebNN conformance tests and model demos in a browser"
    )
    parser.add_argument(
        "--suite",
        default=environ.get("TEST_SUITE", "wpt"),
        help="Comma-separated catalogue scenario names, or the demo groups "
        "sample and preview (default: wpt)",
    )
    parser.add_argument(
        "--wpt-case",
        default=environ.get("WPT_CASE", ""),
        help="Comma-separated test names to run, e.g. abs,add",
    )
    parser.add_argument(
        "--sample-case",
        default=environ.get("SAMPLE_CASE") or environ.get("DEMO_CASE", ""),
        help="Comma-separated demos of the sample suite to run, e.g. lenet,od",
    )
    parser.add_argument(
        "--preview-case",
        default=environ.get("PREVIEW_CASE") or environ.get("MODEL_CASE", ""),
        help="Comma-separated demos of the preview suite to run, e.g. ic,phi",
    )
    parser.add_argument(
        "--wpt-range",
        default=environ.get("WPT_RANGE", ""),
        help="0-based indices of selected tests, e.g. 0,3-5",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=environ.get("JOBS", "1"),
        help="Number of tests run concurrently",
    )
    parser.add_argument(
        "--device",
        choices=("cpu", "gpu", "npu"),
        default=environ.get("DEVICE", "cpu"),
        help="Device type passed to the test pages",
    )
    parser.add_argument(
        "--skip-retry",
        action="store_true",
        default=env_flag(environ, "SKIP_RETRY"),
        help="Do not retry failing tests",
    )
    parser.add_argument(
        "--retry-policy",
        choices=("quick", "strict"),
        default="quick",
        help="quick: accept the first PASS; strict: a PASS must repeat",
    )
    parser.add_argument(
        "--discovery",
        choices=("browser", "http"),
        default="browser",
        help="Read the test index in the browser or over plain HTTP",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Conformance test index address (default: the catalogue's)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Per-test time budget in seconds",
    )
    parser.add_argument(
        "--chrome-channel",
        default=environ.get("CHROME_CHANNEL", "chrome"),
        help="Browser channel, e.g. chrome, chrome-canary, msedge",
    )
    parser.add_argument(
        "--chrome-path",
        default=environ.get("CHROME_PATH") or None,
        help="Browser executable; overrides the channel",
    )
    parser.add_argument(
        "--user-data-dir",
        type=Path,
        default=None,
        help="Profile directory; launches a persistent context",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the browser headless",
    )
    parser.add_argument(
        "--force-kill",
        action="store_true",
        help="Terminate lingering browser processes before relaunching",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    """Build run settings from parsed arguments."""
    return RunSettings(
        suite=parse_list(args.suite) or ("wpt",),
        base_url=args.base_url,
        device=args.device,
        cases=parse_list(args.wpt_case),
        sample_cases=parse_list(args.sample_case),
        preview_cases=parse_list(args.preview_case),
        index_ranges=args.wpt_range,
        jobs=args.jobs,
        skip_retry=args.skip_retry,
        retry_policy=args.retry_policy,
        discovery=args.discovery,
        unit_timeout=args.timeout,
        force_kill=args.force_kill,
        browser=BrowserConfig(
            channel=args.chrome_channel,
            executable_path=args.chrome_path,
            headless=args.headless,
            user_data_dir=args.user_data_dir,
        ),
    )


def main() -> None:
    """CLI entry point."""
    parser = build_parser(os.environ)
    args = parser.parse_args()
    try:
        settings = settings_from_args(args)
        parse_index_ranges(settings.index_ranges)
    except ValueError as e:
        parser.error(str(e))

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(run(settings))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
