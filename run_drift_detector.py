#!/usr/bin/env python3
"""
Command-line interface for running the Atlantis drift detector locally.

Settings are read from the environment (or a .env file in the working
directory) exactly as in Lambda; the flags below override some of them.

Usage:
    python run_drift_detector.py
    python run_drift_detector.py --parallel-runs 4 --directory infra/terraform/database
    python run_drift_detector.py --checkout ~/src/infra --skip-workspace-check --log-level DEBUG
"""

import argparse
import json
import signal
import sys
from typing import Any, Dict

from src.config import load_config, load_env_file
from src.drifter import FatalOrchestrationError, RunContext
from src.main import build_drifter
from src.utils import setup_logging


def main() -> None:
    """Main entry point for the command-line drift detector."""
    parser = argparse.ArgumentParser(
        description="Run one Atlantis drift detection pass",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_drift_detector.py --parallel-runs 4
  python run_drift_detector.py --directory infra/terraform/database --output-format json
        """
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--parallel-runs",
        type=int,
        default=None,
        help="Number of plans to request concurrently (default: PARALLEL_RUNS or 1)"
    )

    parser.add_argument(
        "--directory",
        action="append",
        default=None,
        help="Only check directories starting with this prefix; may be repeated"
    )

    parser.add_argument(
        "--skip-workspace-check",
        action="store_true",
        help="Do not compare declared workspaces with the remote backends"
    )

    parser.add_argument(
        "--checkout",
        default=None,
        help="Use an existing checkout instead of cloning the repository"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the run after this many seconds"
    )

    parser.add_argument(
        "--output-format",
        choices=["json", "pretty"],
        default="pretty",
        help="Output format for the run report (default: pretty)"
    )

    args = parser.parse_args()

    load_env_file()
    try:
        config = load_config()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    if args.log_level:
        config.log_level = args.log_level
    if args.parallel_runs is not None:
        config.parallel_runs = args.parallel_runs
    if args.directory:
        config.directory_whitelist = args.directory
    if args.skip_workspace_check:
        config.skip_workspace_check = True

    logger = setup_logging(config.log_level)
    logger.info("Starting Atlantis drift detection from command line")

    drifter = build_drifter(config)
    if args.checkout:
        drifter.checkout_dir = args.checkout

    ctx = RunContext(timeout=args.timeout)
    signal.signal(signal.SIGINT, lambda *_: ctx.cancel("interrupted"))
    signal.signal(signal.SIGTERM, lambda *_: ctx.cancel("terminated"))

    try:
        result = drifter.drift(ctx)
    except FatalOrchestrationError as e:
        logger.error(f"Drift run aborted: {str(e)}")
        print(f"ERROR: {str(e)}", file=sys.stderr)
        sys.exit(2)

    if args.output_format == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_run_report(result.to_dict())

    # Exit with appropriate code
    if result.errors:
        logger.error("Drift run finished with errors. Exiting with code 2")
        sys.exit(2)
    if result.drifted:
        logger.warning("Drift detected! Exiting with code 1")
        sys.exit(1)
    logger.info("No drift detected. Exiting with code 0")
    sys.exit(0)


def print_run_report(report: Dict[str, Any]) -> None:
    """Print a human-readable run report."""
    print("\n" + "=" * 60)
    print("ATLANTIS DRIFT DETECTION REPORT")
    print("=" * 60)

    print(f"\nScheduled pairs: {report['scheduled']}")
    print(f"Skipped (recently processed): {report['skipped_cached']}")
    print(f"Skipped (locked): {report['skipped_locked']}")
    print(f"Clean: {report['no_drift']}")

    drifted = report.get("drifted_projects", [])
    print(f"\n=== Drifted Projects ({len(drifted)}) ===")
    if drifted:
        for project in drifted:
            print(f"❌ {project}")
    else:
        print("No drifted projects detected.")

    extra = report.get("extra_workspaces", [])
    missing = report.get("missing_workspaces", [])
    print(f"\n=== Workspace Mismatches ({len(extra) + len(missing)}) ===")
    for project in extra:
        print(f"➕ extra in remote: {project}")
    for project in missing:
        print(f"➖ missing in remote: {project}")
    if not extra and not missing:
        print("No workspace mismatches detected.")

    errors = report.get("errors", [])
    print(f"\n=== Errors ({len(errors)}) ===")
    if errors:
        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}")
    else:
        print("No errors.")

    notification_errors = report.get("notification_errors", [])
    if notification_errors:
        print(f"\n=== Notification Failures ({len(notification_errors)}) ===")
        for error in notification_errors:
            print(f"⚠️  {error}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
