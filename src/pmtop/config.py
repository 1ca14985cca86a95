"""Command-line parsing and logging setup for pmtop."""

import argparse
import logging
from collections.abc import Sequence

from textual.logging import TextualHandler

from pmtop.models import SamplingConfig

PALETTE_SIZE = 9
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def _palette_index(value: str) -> int:
    number = int(value)
    if not 0 <= number < PALETTE_SIZE:
        raise argparse.ArgumentTypeError(f"must be between 0 and {PALETTE_SIZE - 1}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pmtop",
        description="Apple Silicon power and utilization monitor built on powermetrics",
    )
    parser.add_argument(
        "--interval",
        type=_positive_int,
        default=1,
        metavar="SECONDS",
        help="Display interval and sampling interval for powermetrics (seconds)",
    )
    parser.add_argument(
        "--color",
        type=_palette_index,
        default=2,
        help="Display color palette (0-8)",
    )
    parser.add_argument(
        "--avg",
        type=_non_negative_int,
        default=30,
        metavar="SECONDS",
        help="Interval for averaged power values (seconds)",
    )
    parser.add_argument(
        "--show-cores",
        action="store_true",
        help="Show per-core utilization and frequency",
    )
    parser.add_argument(
        "--max-count",
        type=_non_negative_int,
        default=0,
        metavar="COUNT",
        help="Restart powermetrics after this many samples (0 = never)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        metavar="PATH",
        help="Write log records to PATH instead of the Textual console",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Minimum log level (default: WARNING)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> SamplingConfig:
    return SamplingConfig(
        interval_seconds=args.interval,
        averaging_window_seconds=args.avg,
        show_per_core=args.show_cores,
        restart_after_samples=args.max_count,
        palette=args.color,
    )


def parse_config(argv: Sequence[str] | None = None) -> tuple[SamplingConfig, argparse.Namespace]:
    """Parse ``argv`` into a ``SamplingConfig`` plus the raw namespace."""
    args = build_parser().parse_args(argv)
    return config_from_args(args), args


def configure_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """
    Route pmtop log records to a file or to the Textual devtools console.

    The dashboard owns the terminal, so records never go to stderr.
    """
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = TextualHandler()

    logger = logging.getLogger("pmtop")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(handler)
