"""
Seen-file tracking for duplicate-free polling.

The remote server has no notion of a consumed file, so each poller keeps a
map of (directory, filename) to the modification time that was last
retrieved. A file is handed out again only when that timestamp moves
forward.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, Optional

from .models import EntryKey

logger = logging.getLogger(__name__)


class SeenFileTracker:
    """
    In-memory record of files already retrieved by one poller.

    Only the thread or task running the owning poller mutates the tracker,
    so no locking is done here.
    """

    def __init__(self) -> None:
        self._records: Dict[EntryKey, Optional[datetime]] = {}

    def is_new(self, key: EntryKey, modified_at: Optional[datetime]) -> bool:
        """
        Check whether a file should be retrieved.

        Args:
            key: (directory, filename) of the remote file
            modified_at: Modification time reported by the current listing

        Returns:
            True if no record exists or the recorded time is strictly older
        """
        if key not in self._records:
            return True
        recorded = self._records[key]
        if modified_at is None:
            return False
        if recorded is None:
            return True
        return recorded < modified_at

    def record(self, key: EntryKey, modified_at: Optional[datetime]) -> None:
        """Remember a completed retrieval."""
        self._records[key] = modified_at
        logger.debug("Recorded %s/%s at %s", key[0], key[1], modified_at)

    def forget(self, key: EntryKey) -> None:
        """Drop a record so the file is retrieved on the next poll."""
        self._records.pop(key, None)

    def clear(self) -> None:
        self._records.clear()

    def snapshot(self) -> Dict[EntryKey, Optional[datetime]]:
        """Copy of all records, for callers that persist state themselves."""
        return dict(self._records)

    def restore(self, records: Dict[EntryKey, Optional[datetime]]) -> None:
        """Replace all records with a previously taken snapshot."""
        self._records = dict(records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[EntryKey]:
        return iter(self._records)
