"""Target list helpers."""

import logging
from pathlib import Path
from typing import Iterable, List, Union

logger = logging.getLogger("policyscan.utils.targets")


def normalize_targets(targets: Iterable[str]) -> List[str]:
    """Strip whitespace and drop blanks, comments and duplicates.

    Duplicates are detected case-insensitively; the first spelling wins and
    input order is preserved.
    """
    seen = set()
    result: List[str] = []
    for raw in targets:
        target = raw.split("#", 1)[0].strip()
        if not target:
            continue
        key = target.lower()
        if key in seen:
            logger.warning("Skipping duplicate target %s (already listed)", target)
            continue
        seen.add(key)
        result.append(target)
    return result


def read_targets(path: Union[str, Path]) -> List[str]:
    """Read one target per line from a text file.

    Args:
        path: File with hostnames or addresses. ``#`` starts a comment.

    Returns:
        List[str]: Targets in file order.
    """
    text = Path(path).read_text(encoding="utf-8-sig")
    targets = normalize_targets(text.splitlines())
    logger.info("Read %d target(s) from %s", len(targets), path)
    return targets
