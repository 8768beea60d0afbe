"""
Local destinations for retrieved bytes.

A sink receives the content of exactly one remote file. The poller calls
``discard()`` when a transfer fails so the sink can drop partial content.
"""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Optional

import aiofiles

from .models import RemoteEntry

logger = logging.getLogger(__name__)


class FileSink(ABC):
    """Destination for the bytes of one remote file."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Append a chunk."""

    async def close(self) -> None:
        """Flush and release resources after a complete transfer."""

    async def discard(self) -> None:
        """Drop whatever was written; called after a failed transfer."""


class MemorySink(FileSink):
    """Collects the content in memory."""

    def __init__(self, entry: Optional[RemoteEntry] = None) -> None:
        self.entry = entry
        self._buffer = io.BytesIO()
        self.discarded = False

    async def write(self, data: bytes) -> None:
        self._buffer.write(data)

    async def discard(self) -> None:
        self._buffer = io.BytesIO()
        self.discarded = True

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


class LocalFileSink(FileSink):
    """
    Writes the content below a local directory, mirroring the remote layout.

    Data goes to a ``.part`` file that is renamed into place on close, so a
    failed transfer never leaves a complete-looking file behind.
    """

    def __init__(self, base_dir: Path, entry: RemoteEntry, remote_root: str = ".") -> None:
        self.base_dir = Path(base_dir)
        self.entry = entry
        self.target = self.base_dir / self._relative_path(entry, remote_root)
        self.partial = self.target.with_name(self.target.name + ".part")
        self._file: Any = None

    @staticmethod
    def _relative_path(entry: RemoteEntry, remote_root: str) -> Path:
        path = PurePosixPath(entry.path)
        try:
            relative = path.relative_to(remote_root)
        except ValueError:
            relative = path
        # never escape base_dir, whatever names the server reports
        return Path(*[p for p in relative.parts if p not in ("/", "..", ".")])

    async def write(self, data: bytes) -> None:
        if self._file is None:
            self.partial.parent.mkdir(parents=True, exist_ok=True)
            self._file = await aiofiles.open(self.partial, "wb")
        await self._file.write(data)

    async def close(self) -> None:
        if self._file is None:
            # empty remote file
            self.partial.parent.mkdir(parents=True, exist_ok=True)
            self._file = await aiofiles.open(self.partial, "wb")
        await self._file.close()
        self._file = None
        self.partial.replace(self.target)
        logger.debug("Stored %s at %s", self.entry.path, self.target)

    async def discard(self) -> None:
        if self._file is not None:
            await self._file.close()
            self._file = None
        if self.partial.exists():
            self.partial.unlink()
