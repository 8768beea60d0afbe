"""
Ordering and batch selection of listed entries.
"""

from __future__ import annotations

from datetime import datetime, timezone
from itertools import islice
from typing import Iterable, List, Tuple

from .models import RemoteEntry

_UNKNOWN_TIME = datetime.min


def _natural_key(entry: RemoteEntry) -> Tuple[datetime, str]:
    modified = entry.modified_at or _UNKNOWN_TIME
    if modified.tzinfo is not None:
        # naive listing times are taken as UTC
        modified = modified.astimezone(timezone.utc).replace(tzinfo=None)
    return (modified, entry.path)


def select_batch(
    entries: Iterable[RemoteEntry], max_selects: int, natural_ordering: bool
) -> List[RemoteEntry]:
    """
    Pick the entries to transfer in this poll.

    Args:
        entries: Candidate entries in listing order
        max_selects: Maximum number of entries to return
        natural_ordering: Sort oldest first (ties by path) before truncating

    Returns:
        At most ``max_selects`` entries in transfer order
    """
    if max_selects < 1:
        raise ValueError("max_selects must be at least 1")

    if natural_ordering:
        return sorted(entries, key=_natural_key)[:max_selects]
    return list(islice(entries, max_selects))
