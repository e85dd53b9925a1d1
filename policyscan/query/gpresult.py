"""Group Policy query backed by the Windows ``gpresult`` command.

GpresultQuery is a query function for the dispatcher: it runs
``gpresult /R`` against one host and parses the summary report into a
PolicyReport. The process is killed when the job is cancelled; the
reaper alone decides when a job has timed out.
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import List, Optional, Tuple

from policyscan.runtime.errors import QueryFailure
from policyscan.runtime.identity import LOOPBACK_NAMES
from policyscan.runtime.job_types import PolicyRecord, PolicyReport, QueryContext

logger = logging.getLogger("policyscan.query.gpresult")

APPLIED_HEADER = "applied group policy objects"
FILTERED_HEADER = "the following gpos were not applied because they were filtered out"

# Seconds to collect output after killing gpresult
KILL_GRACE_SECONDS = 2.0

_KEY_VALUE_RE = re.compile(r"^\s*(?P<key>[^:]+?):\s+(?P<value>.*\S)\s*$")
_RULE_RE = re.compile(r"^\s*-{3,}\s*$")
_FILTERING_RE = re.compile(r"^\s*Filtering:\s*(?P<reason>.+?)\s*$", re.IGNORECASE)

_FIELD_KEYS = {
    "group policy was applied from": "applied_from",
    "domain name": "domain",
    "last time group policy was applied": "last_applied",
}


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _read_section(lines: List[str], start: int, header_indent: int) -> Tuple[List[str], int]:
    """Collect the block indented under a section header.

    The block ends at the first non-blank line indented no deeper than the
    header. Returns the non-blank lines of the block and the index after it.
    """
    i = start
    if i < len(lines) and _RULE_RE.match(lines[i]):
        i += 1
    block: List[str] = []
    while i < len(lines):
        line = lines[i]
        if line.strip():
            if _indent(line) <= header_indent:
                break
            block.append(line)
        i += 1
    return block, i


def _parse_filtered(block: List[str]) -> List[PolicyRecord]:
    records: List[PolicyRecord] = []
    base = min((_indent(line) for line in block), default=0)
    name: Optional[str] = None
    for line in block:
        match = _FILTERING_RE.match(line)
        if match and name is not None:
            records.append(PolicyRecord(name=name, applied=False, reason=match.group("reason")))
            name = None
            continue
        if _indent(line) == base:
            if name is not None:
                records.append(PolicyRecord(name=name, applied=False))
            name = line.strip()
    if name is not None:
        records.append(PolicyRecord(name=name, applied=False))
    return records


def parse_gpresult(text: str, target: str) -> PolicyReport:
    """Parse ``gpresult /R`` output into a PolicyReport.

    Args:
        text: Standard output of gpresult.
        target: Host the report belongs to.

    Returns:
        PolicyReport: Policies in report order, applied ones first.
    """
    lines = text.splitlines()
    fields = {}
    subject_dn: Optional[str] = None
    applied: List[PolicyRecord] = []
    filtered: List[PolicyRecord] = []

    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        lowered = stripped.lower()

        if lowered == APPLIED_HEADER:
            block, i = _read_section(lines, i + 1, _indent(line))
            applied.extend(PolicyRecord(name=entry.strip()) for entry in block)
            continue

        if lowered == FILTERED_HEADER:
            block, i = _read_section(lines, i + 1, _indent(line))
            filtered.extend(_parse_filtered(block))
            continue

        if subject_dn is None and stripped.upper().startswith("CN="):
            subject_dn = stripped
        else:
            match = _KEY_VALUE_RE.match(line)
            if match:
                key = _FIELD_KEYS.get(match.group("key").strip().lower())
                if key and key not in fields:
                    fields[key] = match.group("value")
        i += 1

    return PolicyReport(
        target=target,
        subject_dn=subject_dn,
        policies=tuple(applied + filtered),
        **fields,
    )


class GpresultQuery:
    """Query function running ``gpresult /R`` against a host.

    Attributes:
        scope: ``computer`` or ``user``.
        executable: gpresult executable name or path.
        poll_interval: Seconds between cancellation checks.
    """

    def __init__(
        self,
        scope: str = "computer",
        executable: str = "gpresult",
        poll_interval: float = 0.1,
    ) -> None:
        self.scope = scope
        self.executable = executable
        self.poll_interval = poll_interval

    def build_command(self, target: str, context: QueryContext) -> List[str]:
        """Build the gpresult argument list for ``target``."""
        command = [self.executable, "/R", "/SCOPE", self.scope.upper()]
        if target.strip().lower() not in LOOPBACK_NAMES:
            command += ["/S", target]
        if context.credential is not None:
            command += ["/U", context.credential.username, "/P", context.credential.password]
        return command

    def __call__(self, target: str, context: QueryContext) -> PolicyReport:
        command = self.build_command(target, context)
        logger.debug("Running %s for %s", self.executable, target)

        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise QueryFailure(target, f"{self.executable} not found: {e}") from e
        except OSError as e:
            raise QueryFailure(target, f"Failed to start {self.executable}: {e}") from e

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if context.cancelled:
                    self._kill(proc)
                    raise QueryFailure(target, f"{self.executable} cancelled")

        if proc.returncode != 0:
            message = (stderr or stdout or "").strip() or f"exit code {proc.returncode}"
            raise QueryFailure(
                target,
                f"{self.executable} failed with exit code {proc.returncode}: {message}",
                exit_code=proc.returncode,
            )

        return parse_gpresult(stdout, target)

    def _kill(self, proc: subprocess.Popen) -> None:
        """Kill the process without waiting on pipes held open by its children."""
        proc.kill()
        try:
            proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.debug("%s output still open after kill, closing pipes", self.executable)
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
