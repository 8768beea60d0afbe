"""
Fetch-and-finalize pipeline for single remote files.

This module copies one remote file into a sink, verifies the byte count,
records the retrieval in the seen-file tracker and optionally deletes the
remote original.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from ..exceptions import ErrorHandler, FTPVerificationError, IngestError, SinkError
from .connection import TransferSession
from .models import (
    ConnectionConfig,
    FTPTransferMode,
    PollConfig,
    RemoteEntry,
    TransferOutcome,
    TransferStatus,
)
from .sinks import FileSink
from .tracker import SeenFileTracker

logger = logging.getLogger(__name__)


class LineEndingTranslator:
    """
    Converts CRLF network line endings to LF across chunk boundaries.

    Works on the byte level, so it assumes an ASCII-compatible encoding.
    """

    def __init__(self) -> None:
        self._pending_cr = False

    def feed(self, chunk: bytes) -> bytes:
        if self._pending_cr:
            chunk = b"\r" + chunk
            self._pending_cr = False
        if chunk.endswith(b"\r"):
            chunk = chunk[:-1]
            self._pending_cr = True
        return chunk.replace(b"\r\n", b"\n")

    def flush(self) -> bytes:
        if self._pending_cr:
            self._pending_cr = False
            return b"\r"
        return b""


@dataclass
class _CopyProgress:
    received: int = 0


class FetchPipeline:
    """
    Streams remote files into sinks and finalizes successful transfers.
    """

    def __init__(
        self,
        connection_config: ConnectionConfig,
        poll_config: PollConfig,
        tracker: SeenFileTracker,
    ):
        self.connection_config = connection_config
        self.poll_config = poll_config
        self.tracker = tracker

    async def _copy(
        self,
        session: TransferSession,
        entry: RemoteEntry,
        sink: FileSink,
        progress: _CopyProgress,
    ) -> None:
        """Copy the remote bytes into the sink, counting what the server sent."""
        buffer_size = self.connection_config.buffer_size
        translator = (
            LineEndingTranslator()
            if self.connection_config.transfer_mode == FTPTransferMode.ASCII
            else None
        )
        async with session.open_read_stream(entry.path) as stream:
            while True:
                chunk = await stream.read(buffer_size)
                if not chunk:
                    break
                progress.received += len(chunk)
                data = translator.feed(chunk) if translator else chunk
                if data:
                    await self._write(sink, entry, data)
            if translator:
                tail = translator.flush()
                if tail:
                    await self._write(sink, entry, tail)

    @staticmethod
    async def _write(sink: FileSink, entry: RemoteEntry, data: bytes) -> None:
        try:
            await sink.write(data)
        except OSError as e:
            raise SinkError(
                f"Could not write {entry.path} locally: {e}", path=entry.path
            ) from e

    @staticmethod
    async def _close(sink: FileSink, entry: RemoteEntry) -> None:
        try:
            await sink.close()
        except OSError as e:
            raise SinkError(
                f"Could not finish {entry.path} locally: {e}", path=entry.path
            ) from e

    @staticmethod
    def _verify(entry: RemoteEntry, received: int) -> None:
        if entry.size is not None and received != entry.size:
            raise FTPVerificationError(
                f"Size mismatch for {entry.path}: expected {entry.size}, got {received}",
                path=entry.path,
                expected_size=entry.size,
                actual_size=received,
            )

    async def fetch(
        self, session: TransferSession, entry: RemoteEntry, sink: FileSink
    ) -> TransferOutcome:
        """
        Retrieve one file.

        The tracker is updated only after the copy completed, the byte count
        matched and the sink was closed. A failing delete afterwards is
        reported on the outcome but leaves the status at retrieved.

        Args:
            session: Open session to read from
            entry: Remote file to retrieve
            sink: Destination for the content

        Returns:
            TransferOutcome describing what happened
        """
        start_time = time.time()
        progress = _CopyProgress()
        try:
            await self._copy(session, entry, sink, progress)
            self._verify(entry, progress.received)
            await self._close(sink, entry)
        except Exception as e:
            error = (
                e
                if isinstance(e, IngestError)
                else ErrorHandler.handle_ftp_error(e, entry.path, "fetch")
            )
            logger.error("Failed to retrieve %s: %s", entry.path, error.message)
            return TransferOutcome(
                entry=entry,
                status=TransferStatus.FAILED,
                bytes_transferred=progress.received,
                error=error.message,
                error_kind=error.kind,
            )

        received = progress.received
        self.tracker.record(entry.key, entry.modified_at)
        outcome = TransferOutcome(
            entry=entry,
            status=TransferStatus.RETRIEVED,
            bytes_transferred=received,
        )
        logger.info(
            "Retrieved %s (%d bytes in %.2fs)", entry.path, received, time.time() - start_time
        )

        if self.poll_config.delete_original:
            try:
                await session.delete(entry.path)
            except Exception as e:
                outcome.delete_failed = True
                outcome.delete_error = str(e)
                logger.warning("Retrieved %s but could not delete it: %s", entry.path, e)

        return outcome
