"""JSON report export for batch results."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Sequence, Union

from policyscan.query.markers import evaluate_markers
from policyscan.runtime.job_types import TargetResult

logger = logging.getLogger("policyscan.export.report")


def results_to_dict(
    results: Iterable[TargetResult],
    markers: Sequence[str] = (),
) -> Dict[str, Any]:
    """Build the report document for a batch.

    Args:
        results: Terminal results, in any order.
        markers: Marker fragments evaluated per host.

    Returns:
        Dict with a ``summary`` block and one ``hosts`` entry per result,
        sorted by target.
    """
    hosts = []
    succeeded = 0
    for result in sorted(results, key=lambda r: r.target.lower()):
        entry = result.to_dict()
        if markers:
            entry["markers"] = evaluate_markers(result, markers)
        if result.success:
            succeeded += 1
        hosts.append(entry)

    return {
        "summary": {
            "total": len(hosts),
            "succeeded": succeeded,
            "failed": len(hosts) - succeeded,
            "markers": list(markers),
        },
        "hosts": hosts,
    }


def write_report(
    results: Iterable[TargetResult],
    path: Union[str, Path],
    markers: Sequence[str] = (),
) -> Path:
    """Write the batch report as JSON.

    Returns:
        Path: The written file.
    """
    output = Path(path)
    if output.parent and not output.parent.exists():
        output.parent.mkdir(parents=True, exist_ok=True)
    document = results_to_dict(results, markers)
    output.write_text(json.dumps(document, indent=2), encoding="utf-8")
    logger.info("Wrote report for %d host(s) to %s", document["summary"]["total"], output)
    return output
