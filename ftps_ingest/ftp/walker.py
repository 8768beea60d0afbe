"""
Remote directory traversal with filter and symlink policy.

The walker lists one directory per round-trip and descends depth-first.
Only the current page of each open directory level is held in memory, so
memory grows with depth rather than with the number of remote files.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import AsyncIterator, List, Optional, Pattern, Set

from ..exceptions import FTPFileNotFoundError, FTPPermissionError
from .connection import TransferSession
from .models import FilteredEntry, FilterReason, PollConfig, RemoteEntry

logger = logging.getLogger(__name__)

# Failures that only concern the directory or link being looked at
_LOCAL_FAILURES = (FTPFileNotFoundError, FTPPermissionError)


def _compile(pattern: Optional[str]) -> Optional[Pattern[str]]:
    return re.compile(pattern) if pattern is not None else None


class RemoteListingWalker:
    """
    Lazily walks a remote root and yields candidate file entries.

    A walker is single-use: call :meth:`walk` once and read
    :attr:`filtered` and :attr:`warnings` afterwards. A new walk re-lists the
    server from scratch.
    """

    def __init__(self, session: TransferSession, config: PollConfig):
        self.session = session
        self.config = config
        self.filtered: List[FilteredEntry] = []
        self.warnings: List[str] = []
        self._file_pattern = _compile(config.file_filter)
        self._path_pattern = _compile(config.path_filter)
        self._visited: Set[str] = set()
        self._root = config.remote_path

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def _drop(self, entry: RemoteEntry, reason: FilterReason) -> None:
        logger.debug("Filtered %s (%s)", entry.path, reason.value)
        self.filtered.append(FilteredEntry(entry, reason))

    def _is_dotted(self, entry: RemoteEntry) -> bool:
        return self.config.ignore_dotted_files and entry.filename.startswith(
            self.config.ignore_marker
        )

    def _relative_directory(self, directory: str) -> str:
        root = PurePosixPath(self._root)
        path = PurePosixPath(directory)
        if path == root:
            return ""
        if str(root) == ".":
            return str(path)
        try:
            return str(path.relative_to(root))
        except ValueError:
            return str(path)

    def _filter_reason(self, entry: RemoteEntry) -> Optional[FilterReason]:
        if self._file_pattern is not None and not self._file_pattern.fullmatch(
            entry.filename
        ):
            return FilterReason.FILE_FILTER
        if self._path_pattern is not None:
            relative = self._relative_directory(entry.directory)
            if relative and not self._path_pattern.fullmatch(relative):
                return FilterReason.PATH_FILTER
        return None

    async def _identity(self, directory: str) -> str:
        if not self.config.follow_symlinks:
            # without links every path names a distinct directory
            return directory
        return await self.session.canonical_path(directory)

    async def walk(self) -> AsyncIterator[RemoteEntry]:
        """
        Yield accepted file entries depth-first.

        Raises:
            FTPError: When the root cannot be listed, or when the session
                breaks while listing any directory
        """
        if self._visited:
            raise RuntimeError("RemoteListingWalker instances are single-use")
        root_identity = await self._identity(self._root)
        self._visited.add(root_identity)
        async for entry in self._walk_directory(self._root, depth=0):
            yield entry

    async def _walk_directory(self, directory: str, depth: int) -> AsyncIterator[RemoteEntry]:
        page = await self.session.list_directory(
            directory, self.config.remote_poll_batch_size
        )
        if page.dropped:
            self._warn(
                f"Listing of {directory} truncated to "
                f"{self.config.remote_poll_batch_size} entries ({page.dropped} not seen)"
            )

        for entry in page.entries:
            if self._is_dotted(entry):
                self._drop(entry, FilterReason.DOTTED)
                continue

            if entry.is_symlink:
                async for candidate in self._handle_symlink(entry, depth):
                    yield candidate
                continue

            if entry.is_directory:
                if self.config.recursive:
                    async for candidate in self._descend(entry.path, None, depth):
                        yield candidate
                continue

            reason = self._filter_reason(entry)
            if reason is not None:
                self._drop(entry, reason)
                continue
            yield entry

    async def _handle_symlink(
        self, entry: RemoteEntry, depth: int
    ) -> AsyncIterator[RemoteEntry]:
        if not self.config.follow_symlinks:
            self._drop(entry, FilterReason.SYMLINK)
            return

        try:
            target = await self.session.canonical_path(entry.path)
        except _LOCAL_FAILURES:
            # not a directory, so the link stands for a file
            reason = self._filter_reason(entry)
            if reason is not None:
                self._drop(entry, reason)
                return
            yield entry
            return

        if not self.config.recursive:
            # a directory link is only useful when descending
            self._drop(entry, FilterReason.SYMLINK)
            return
        async for candidate in self._descend(entry.path, target, depth):
            yield candidate

    async def _descend(
        self, path: str, identity: Optional[str], depth: int
    ) -> AsyncIterator[RemoteEntry]:
        if depth + 1 > self.config.max_depth:
            self._warn(f"Max directory depth {self.config.max_depth} reached at {path}")
            return

        if identity is None:
            try:
                identity = await self._identity(path)
            except _LOCAL_FAILURES as e:
                self._warn(f"Skipping {path}: {e}")
                return

        if identity in self._visited:
            self._warn(f"Directory {path} already visited as {identity}; skipping subtree")
            return
        self._visited.add(identity)

        try:
            async for candidate in self._walk_directory(path, depth + 1):
                yield candidate
        except _LOCAL_FAILURES as e:
            self._warn(f"Skipping subtree {path}: {e}")
