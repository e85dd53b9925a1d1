"""Main CLI entry point for policyscan.

Provides commands: scan
"""

import argparse
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from policyscan.cli.scan import scan_command

logger = logging.getLogger("policyscan.cli")


def _limit_value(value: str) -> int:
    """Parse an integer in the 1-65535 range accepted by limit options."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if not 1 <= number <= 65535:
        raise argparse.ArgumentTypeError(f"{number} is outside 1-65535")
    return number


def setup_logging(
    verbose: bool = False,
    console: Optional[Console] = None,
    log_file: Optional[str] = None,
) -> None:
    """Setup logging configuration with Rich integration.

    Args:
        verbose: Enable verbose logging.
        console: Rich Console instance for coordinated output (optional).
        log_file: Also write log records to this file (optional).
    """
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    # Create RichHandler for coordinated output with progress display
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        log_time_format="[%H:%M:%S]",
    )
    handlers: list = [handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(name)s] [%(levelname)s] %(message)s")
        )
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        format="[%(name)s] [%(levelname)s] %(message)s",
        handlers=handlers,
    )
    handler.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        description="Policyscan - Group Policy query tool for many hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser(
        "scan",
        help="Query hosts for their effective Group Policy",
        epilog=(
            "Exit codes: 0 all hosts succeeded, 1 fatal error, "
            "2 batch finished with failed hosts."
        ),
    )
    scan_parser.add_argument(
        "targets",
        nargs="*",
        help="Hostnames or addresses to query",
    )
    scan_parser.add_argument(
        "-f",
        "--targets-file",
        help="File with one target per line ('#' starts a comment)",
    )
    scan_parser.add_argument(
        "-t",
        "--throttle-limit",
        type=_limit_value,
        help="Maximum hosts queried at once, 1-65535 (default: 32)",
    )
    scan_parser.add_argument(
        "--timeout",
        type=_limit_value,
        help="Seconds per host before the query is abandoned, 1-65535 (default: 120)",
    )
    scan_parser.add_argument(
        "--show-progress",
        action="store_true",
        help="Display a progress bar while hosts are queried",
    )
    scan_parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between checks for finished hosts (default: 0.2)",
    )
    scan_parser.add_argument(
        "--max-outstanding",
        type=int,
        help=(
            "Hold back submission while this many hosts are queued or running "
            "(default: no limit)"
        ),
    )
    scan_parser.add_argument(
        "--scope",
        choices=["computer", "user"],
        help="gpresult scope (default: computer)",
    )
    scan_parser.add_argument(
        "-m",
        "--marker",
        action="append",
        help="Policy name fragment to flag per host (repeatable, case-insensitive)",
    )
    scan_parser.add_argument(
        "-u",
        "--username",
        help="Alternate credential user for remote hosts (DOMAIN\\user)",
    )
    scan_parser.add_argument(
        "--password-env",
        help="Read the alternate credential password from this environment variable",
    )
    scan_parser.add_argument(
        "--gpresult",
        help="Path to the gpresult executable (default: gpresult on PATH)",
    )
    scan_parser.add_argument(
        "-c",
        "--config",
        help=(
            "Optional settings file (TOML/JSON) or inline TOML/JSON string. "
            "Command-line options override its values."
        ),
    )
    scan_parser.add_argument(
        "-o",
        "--output",
        help="Write a JSON report to this file",
    )
    scan_parser.add_argument(
        "--log-file",
        help="Output log to file (optional). When specified, logs are written to this file in addition to console.",
    )

    return parser


def main() -> int:
    """Main CLI entry point.

    Returns:
        int: Exit code.
    """
    parser = build_parser()
    args = parser.parse_args()

    # Setup logging
    setup_logging(args.verbose, log_file=getattr(args, "log_file", None))

    # Dispatch to subcommand
    if args.command == "scan":
        return scan_command(args)
    else:
        parser.print_help()
        return 1


def cli_entry() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    sys.exit(main())
