"""
Command-line interface for cdbuild.

Usage:
    cdbuild --project my-project --name app
    cdbuild --project my-project --name app:v2 --source ./service
    cdbuild --project my-project --name app --timeout 1800 --metrics-file /tmp/cdbuild.prom
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from cdbuild import __version__
from cdbuild.builder import PollPolicy
from cdbuild.errors import (
    EXIT_FATAL,
    EXIT_INTERRUPTED,
    EXIT_USAGE,
    BillingNotEnabledError,
    BuildApiDisabledError,
    CdBuildError,
)
from cdbuild.pipeline import PipelineConfig, create_clients, run_pipeline
from cdbuild.utils.config import CdBuildSettings
from cdbuild.utils.logging import get_logger, setup_logging
from cdbuild.utils.metrics import CdBuildMetrics

logger = get_logger(__name__)


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value!r}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cdbuild",
        description="Build a Docker image from a local directory with Google Cloud Build",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build ./ into gcr.io/my-project/app
  %(prog)s --project my-project --name app

  # Tagged image from another directory
  %(prog)s --project my-project --name app:v2 --source ./service

  # Give up (and cancel the build) after 30 minutes
  %(prog)s --project my-project --name app --timeout 1800

Credentials come from the environment (application default credentials).
        """,
    )

    parser.add_argument("--project", required=True, help="Project ID. Required.")
    parser.add_argument(
        "--name",
        required=True,
        help="Image name, optionally name:tag. Required.",
    )
    parser.add_argument(
        "-s",
        "--source",
        type=Path,
        default=Path("."),
        help="Directory to build (default: current directory)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=_positive_float,
        help="Seconds to wait for the build before cancelling it (default: wait forever)",
    )
    parser.add_argument(
        "--poll-interval",
        type=_positive_float,
        help="Initial seconds between status polls (default: 1)",
    )
    parser.add_argument(
        "--poll-max-interval",
        type=_positive_float,
        help="Maximum seconds between status polls (default: 10)",
    )
    parser.add_argument(
        "--tolerate-cleanup-failure",
        action="store_true",
        default=None,
        help="Warn instead of failing when the staged archive cannot be deleted",
    )
    parser.add_argument(
        "--orphan-log",
        type=Path,
        help="File recording staged archives that could not be deleted",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        help="Write Prometheus metrics to this file on exit",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when the build does not succeed",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def build_config(args: argparse.Namespace, settings: CdBuildSettings) -> PipelineConfig:
    """Merge command-line flags over environment settings."""
    timeout = args.timeout if args.timeout is not None else settings.timeout_seconds
    policy = PollPolicy(
        interval=args.poll_interval or settings.poll_interval,
        max_interval=args.poll_max_interval or settings.poll_max_interval,
        multiplier=settings.poll_multiplier,
        timeout=timeout,
    )
    tolerate = (
        args.tolerate_cleanup_failure
        if args.tolerate_cleanup_failure is not None
        else settings.tolerate_cleanup_failure
    )
    return PipelineConfig(
        project=args.project,
        name=args.name,
        source_dir=args.source,
        builder_image=settings.builder_image,
        poll_policy=policy,
        tolerate_cleanup_failure=tolerate,
        orphan_log_path=args.orphan_log or settings.orphan_log_path,
    )


def _write_metrics(metrics: CdBuildMetrics, path: Path) -> None:
    try:
        metrics.write_textfile(path)
    except OSError as error:
        # The run's own exit code stands
        logger.error(f"Could not write metrics to {path}: {error}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the cdbuild CLI."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exit_:
        # argparse exits 2 for missing flags, 0 for --help/--version
        return EXIT_USAGE if exit_.code else 0

    try:
        settings = CdBuildSettings.from_env()
    except ValueError as error:
        print(f"Configuration error: {error}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(level="DEBUG" if args.verbose else settings.log_level)
    config = build_config(args, settings)
    metrics = CdBuildMetrics()

    try:
        with create_clients(config.project) as clients:
            outcome = run_pipeline(config, clients, metrics=metrics)
    except (BuildApiDisabledError, BillingNotEnabledError) as error:
        logger.error(str(error))
        return error.exit_code
    except CdBuildError as error:
        logger.error(f"{type(error).__name__}: {error}")
        return error.exit_code
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED
    finally:
        if args.metrics_file:
            _write_metrics(metrics, args.metrics_file)

    if args.strict and not outcome.succeeded:
        return EXIT_FATAL
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
