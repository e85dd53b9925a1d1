"""Query functions and result consumers.

- GpresultQuery: Runs ``gpresult /R`` against a host
- evaluate_markers: Flags hosts whose applied policies match name fragments
"""

from policyscan.query.gpresult import GpresultQuery, parse_gpresult
from policyscan.query.markers import evaluate_markers, hosts_matching_all, policy_names

__all__ = [
    "GpresultQuery",
    "parse_gpresult",
    "evaluate_markers",
    "hosts_matching_all",
    "policy_names",
]
