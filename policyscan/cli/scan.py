"""Scan command implementation."""

# CLI must gracefully handle unexpected failures to present user-friendly errors.


import getpass
import logging
import os
import sys
import time
import traceback
from typing import List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from policyscan.export.report import write_report
from policyscan.query.gpresult import GpresultQuery
from policyscan.query.markers import evaluate_markers, hosts_matching_all
from policyscan.runtime.config_loader import load_scan_settings
from policyscan.runtime.dispatcher import Dispatcher
from policyscan.runtime.errors import ConfigError
from policyscan.runtime.job_types import Credential, TargetResult
from policyscan.runtime.progress import ProgressManager
from policyscan.utils.targets import normalize_targets, read_targets

logger = logging.getLogger("policyscan.cli.scan")

# Exit code when the batch ran but at least one host failed
EXIT_PARTIAL_FAILURE = 2

RECOVERABLE_SCAN_ERRORS = (
    OSError,
    RuntimeError,
    TypeError,
    ValueError,
)


def scan_command(args) -> int:
    """Execute scan command.

    Args:
        args: Parsed command-line arguments.

    Returns:
        int: Exit code.
    """
    try:
        return _scan_command_impl(args)
    except ConfigError as e:
        logger.error("%s", e)
        return 1
    except RECOVERABLE_SCAN_ERRORS as e:
        # Print to stderr directly to ensure it's visible even if logging is broken
        print(f"\n{'=' * 70}", file=sys.stderr)
        print("FATAL ERROR in scan_command:", file=sys.stderr)
        print(f"{'=' * 70}", file=sys.stderr)
        print(f"Exception: {e}", file=sys.stderr)
        print("\nTraceback:", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        print(f"{'=' * 70}\n", file=sys.stderr)
        return 1


def collect_targets(args) -> List[str]:
    """Merge positional targets with the optional targets file."""
    targets: List[str] = list(getattr(args, "targets", None) or [])
    targets_file = getattr(args, "targets_file", None)
    if targets_file:
        targets.extend(read_targets(targets_file))
    return normalize_targets(targets)


def resolve_credential(args) -> Optional[Credential]:
    """Build the alternate credential from CLI options, if requested."""
    username = getattr(args, "username", None)
    if not username:
        return None

    password_env = getattr(args, "password_env", None)
    if password_env:
        password = os.environ.get(password_env)
        if password is None:
            raise ConfigError(f"Environment variable {password_env} is not set")
    else:
        password = getpass.getpass(f"Password for {username}: ")
    return Credential(username=username, password=password)


def _settings_overrides(args) -> dict:
    return {
        "throttle_limit": getattr(args, "throttle_limit", None),
        "timeout": getattr(args, "timeout", None),
        "show_progress": True if getattr(args, "show_progress", False) else None,
        "poll_interval": getattr(args, "poll_interval", None),
        "max_outstanding": getattr(args, "max_outstanding", None),
        "scope": getattr(args, "scope", None),
        "markers": getattr(args, "marker", None) or None,
    }


def render_results(
    results: Sequence[TargetResult],
    markers: Sequence[str],
    console: Console,
) -> None:
    """Print a summary table of the batch."""
    table = Table(title="Policy scan results")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Policies", justify="right")
    for marker in markers:
        table.add_column(marker)
    table.add_column("Detail", style="dim")

    for result in sorted(results, key=lambda r: r.target.lower()):
        if result.success:
            status = "[green]ok[/green]"
            applied = getattr(result.value, "applied_policies", ())
            count = str(len(applied))
            detail = f"{result.execution_time:.1f}s"
        else:
            status = f"[red]{result.failure.value if result.failure else 'failed'}[/red]"
            count = "-"
            detail = result.error or ""
        flags = evaluate_markers(result, markers)
        table.add_row(
            result.target,
            status,
            count,
            *("yes" if flags[m] else "no" for m in markers),
            detail,
        )

    console.print(table)


def _scan_command_impl(args) -> int:
    """Internal implementation of scan command.

    Args:
        args: Parsed command-line arguments.

    Returns:
        int: Exit code.
    """
    settings = load_scan_settings(getattr(args, "config", None), _settings_overrides(args))
    targets = collect_targets(args)
    if not targets:
        logger.error("No targets given; pass hostnames or --targets-file")
        return 1

    logger.debug("=== Policy Scan ===")
    logger.debug("Targets: %d", len(targets))
    logger.debug("Throttle limit: %d", settings.throttle_limit)
    logger.debug("Timeout (s): %d", settings.timeout)
    logger.debug("Scope: %s", settings.scope)

    credential = resolve_credential(args)
    query = GpresultQuery(
        scope=settings.scope,
        executable=getattr(args, "gpresult", None) or "gpresult",
    )
    progress = ProgressManager(enabled=settings.show_progress)
    dispatcher = Dispatcher(
        settings.to_pool_config(),
        query,
        credential=credential,
        observer=progress if settings.show_progress else None,
    )

    start_time = time.time()
    results: List[TargetResult] = []
    with progress.live_display():
        for result in dispatcher.run_batch(targets):
            results.append(result)
            if result.success:
                logger.info("%s: ok", result.target)

    elapsed = time.time() - start_time
    failed = sum(1 for r in results if not r.success)
    logger.info(
        "Scanned %d host(s) in %.2fs (%d failed)", len(results), elapsed, failed
    )

    render_results(results, settings.markers, Console())

    if settings.markers:
        matching = hosts_matching_all(results, settings.markers)
        logger.info(
            "%d host(s) match all markers: %s",
            len(matching),
            ", ".join(matching) or "-",
        )

    output = getattr(args, "output", None)
    if output:
        write_report(results, output, settings.markers)

    return EXIT_PARTIAL_FAILURE if failed else 0
