"""Marker evaluation over policy query results.

A marker is a policy-name fragment. Each marker becomes a boolean per host:
True when any applied policy name contains it, compared case-insensitively.
Downstream workflows use the flags to decide which hosts need action.
"""

from typing import Dict, Iterable, List, Sequence

from policyscan.runtime.job_types import PolicyReport, TargetResult


def policy_names(result: TargetResult) -> List[str]:
    """Return the names of applied policies in a successful result."""
    if not result.success or not isinstance(result.value, PolicyReport):
        return []
    return [policy.name for policy in result.value.applied_policies]


def evaluate_markers(result: TargetResult, markers: Sequence[str]) -> Dict[str, bool]:
    """Evaluate every marker against one result.

    Args:
        result: Terminal result for a host.
        markers: Policy-name fragments.

    Returns:
        Dict[str, bool]: Marker -> whether an applied policy matched.
            Failed results map every marker to False.
    """
    names = [name.lower() for name in policy_names(result)]
    return {
        marker: any(marker.lower() in name for name in names)
        for marker in markers
    }


def hosts_matching_all(results: Iterable[TargetResult], markers: Sequence[str]) -> List[str]:
    """Return targets whose results match every marker, in result order."""
    if not markers:
        return []
    return [
        result.target
        for result in results
        if all(evaluate_markers(result, markers).values())
    ]
