"""
Poll orchestration for one configured FTPS remote root.

FTPSPoller runs a single poll cycle at a time: connect, list, select,
transfer file by file, finalize. It owns the seen-file tracker of its root,
so one poller instance must be kept for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from contextlib import aclosing
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from ..exceptions import ErrorHandler, IngestError
from .connection import TransferSession, open_session
from .models import (
    ConnectionConfig,
    PollConfig,
    PollSummary,
    RemoteEntry,
    RetrievedFile,
    TransferOutcome,
    TransferStatus,
)
from .pipeline import FetchPipeline
from .selector import select_batch
from .sinks import FileSink, MemorySink
from .tracker import SeenFileTracker
from .walker import RemoteListingWalker

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ConnectionConfig], Awaitable[TransferSession]]
SinkFactory = Callable[[RemoteEntry], FileSink]
RetrievedCallback = Callable[[RetrievedFile], Any]


class PollState(str, Enum):
    """Poll cycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LISTING = "listing"
    SELECTING = "selecting"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    ERROR = "error"


class FTPSPoller:
    """
    Polls one remote root and delivers each new file once.

    Example:
        ```python
        poller = FTPSPoller(
            ConnectionConfig(host="ftp.example.com", username="u", password="p"),
            PollConfig(remote_path="/outbox", recursive=True, natural_ordering=True),
            sink_factory=lambda entry: LocalFileSink(Path("inbox"), entry, "/outbox"),
        )
        summary = await poller.poll()
        print(summary.retrieved, summary.failed)
        ```
    """

    def __init__(
        self,
        connection_config: ConnectionConfig,
        poll_config: PollConfig,
        sink_factory: Optional[SinkFactory] = None,
        on_retrieved: Optional[RetrievedCallback] = None,
        session_factory: SessionFactory = open_session,
        tracker: Optional[SeenFileTracker] = None,
    ):
        self.connection_config = connection_config
        self.poll_config = poll_config
        self.sink_factory: SinkFactory = sink_factory or MemorySink
        self.on_retrieved = on_retrieved
        self.session_factory = session_factory
        self.tracker = tracker if tracker is not None else SeenFileTracker()
        self.pipeline = FetchPipeline(connection_config, poll_config, self.tracker)

        self.state = PollState.IDLE
        self.transitions: List[PollState] = []
        self._session: Optional[TransferSession] = None
        self._cancel_requested = False
        self._last_listing: Optional[float] = None

    def _set_state(self, state: PollState) -> None:
        logger.debug(
            "Poll of %s: %s -> %s",
            self.poll_config.remote_path,
            self.state.value,
            state.value,
        )
        self.state = state
        self.transitions.append(state)

    def cancel(self) -> None:
        """Stop the running cycle before its next file transfer."""
        self._cancel_requested = True

    def is_due(self, now: Optional[float] = None) -> bool:
        """Whether the polling interval has elapsed since the last listing."""
        if self._last_listing is None:
            return True
        now = time.monotonic() if now is None else now
        return now - self._last_listing >= self.poll_config.polling_interval

    async def poll(self) -> PollSummary:
        """
        Run one poll cycle.

        Returns:
            PollSummary with per-file outcomes. Connection and listing
            failures are reported in ``summary.error`` instead of raised.
        """
        if self.state != PollState.IDLE:
            raise RuntimeError("A poll cycle is already running")

        summary = PollSummary(
            remote_path=self.poll_config.remote_path, started_at=datetime.now()
        )
        if not self.is_due():
            summary.listing_skipped = True
            summary.finished_at = datetime.now()
            return summary

        self._cancel_requested = False
        self.transitions = []
        try:
            session = await self._connect(summary)
            if session is None:
                return summary
            batch = await self._list(session, summary)
            if batch is None:
                return summary
            await self._transfer(batch, summary)
        finally:
            await self._finalize(summary)
        return summary

    def _fail(self, summary: PollSummary, error: Exception, what: str) -> None:
        converted = ErrorHandler.handle_ftp_error(error, self.poll_config.remote_path, what)
        summary.error = converted.message
        summary.error_kind = converted.kind
        self._set_state(PollState.ERROR)
        logger.error(
            "Poll of %s aborted during %s (%s): %s",
            self.poll_config.remote_path,
            what,
            converted.kind.value,
            converted.message,
        )

    async def _open(self) -> TransferSession:
        session = await self.session_factory(self.connection_config)
        self._session = session
        return session

    async def _connect(self, summary: PollSummary) -> Optional[TransferSession]:
        self._set_state(PollState.CONNECTING)
        session = self._session
        if session is not None and session.usable:
            try:
                await session.noop()
                return session
            except IngestError as e:
                logger.info("Reused session failed health check: %s", e)
        await self._drop_session()

        try:
            return await self._open()
        except Exception as e:
            self._fail(summary, e, "connect")
            return None

    async def _list(
        self, session: TransferSession, summary: PollSummary
    ) -> Optional[List[RemoteEntry]]:
        self._set_state(PollState.LISTING)
        walker = RemoteListingWalker(session, self.poll_config)
        # unordered polls can stop listing once a batch is full
        limit = None if self.poll_config.natural_ordering else self.poll_config.max_selects
        candidates: List[RemoteEntry] = []
        try:
            async with aclosing(walker.walk()) as entries:
                async for entry in entries:
                    if not self.tracker.is_new(entry.key, entry.modified_at):
                        summary.outcomes.append(
                            TransferOutcome(entry=entry, status=TransferStatus.SKIPPED_DUPLICATE)
                        )
                        continue
                    candidates.append(entry)
                    if limit is not None and len(candidates) >= limit:
                        break
        except Exception as e:
            summary.filtered.extend(walker.filtered)
            summary.warnings.extend(walker.warnings)
            self._fail(summary, e, "listing")
            return None

        summary.filtered.extend(walker.filtered)
        summary.warnings.extend(walker.warnings)
        self._last_listing = time.monotonic()

        self._set_state(PollState.SELECTING)
        batch = select_batch(
            candidates, self.poll_config.max_selects, self.poll_config.natural_ordering
        )
        logger.info(
            "Listed %s: %d new, %d already seen, %d filtered, %d selected",
            self.poll_config.remote_path,
            len(candidates),
            summary.skipped_duplicate,
            len(walker.filtered),
            len(batch),
        )
        return batch

    async def _transfer(self, batch: Sequence[RemoteEntry], summary: PollSummary) -> None:
        self._set_state(PollState.TRANSFERRING)
        for index, entry in enumerate(batch):
            if self._cancel_requested:
                summary.cancelled = True
                logger.info(
                    "Poll of %s cancelled with %d files left",
                    self.poll_config.remote_path,
                    len(batch) - index,
                )
                break

            session = self._session
            if session is None or not session.usable:
                await self._drop_session()
                try:
                    session = await self._open()
                except Exception as e:
                    self._fail(summary, e, "reconnect")
                    return

            sink = self.sink_factory(entry)
            outcome = await self.pipeline.fetch(session, entry, sink)
            summary.outcomes.append(outcome)

            if outcome.is_success:
                await self._emit(RetrievedFile(entry, outcome.bytes_transferred, sink), summary)
            else:
                await self._discard(sink, entry, summary)

    async def _emit(self, retrieved: RetrievedFile, summary: PollSummary) -> None:
        if self.on_retrieved is None:
            return
        try:
            result = self.on_retrieved(retrieved)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            # the file is already recorded as retrieved; report, do not undo
            message = f"on_retrieved failed for {retrieved.absolute_path}: {e}"
            logger.exception(message)
            summary.warnings.append(message)

    async def _discard(self, sink: FileSink, entry: RemoteEntry, summary: PollSummary) -> None:
        try:
            await sink.discard()
        except Exception as e:
            message = f"Could not discard partial content of {entry.path}: {e}"
            logger.warning(message)
            summary.warnings.append(message)

    async def _drop_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()

    async def _finalize(self, summary: PollSummary) -> None:
        if self.state != PollState.ERROR:
            self._set_state(PollState.FINALIZING)
        session = self._session
        if session is not None and not (
            self.connection_config.reuse_session and session.usable
        ):
            await self._drop_session()

        summary.finished_at = datetime.now()
        logger.info(
            "Poll of %s finished: %d retrieved, %d skipped, %d failed%s",
            self.poll_config.remote_path,
            summary.retrieved,
            summary.skipped,
            summary.failed,
            f" (aborted: {summary.error})" if summary.error else "",
        )
        self._set_state(PollState.IDLE)

    async def close(self) -> None:
        """Close a session kept open for reuse."""
        await self._drop_session()

    async def __aenter__(self) -> "FTPSPoller":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def poll_many(pollers: Sequence[FTPSPoller]) -> List[PollSummary]:
    """
    Run one cycle on several pollers concurrently.

    Each poller has its own session and tracker, so cycles share no state.
    """
    return list(await asyncio.gather(*(poller.poll() for poller in pollers)))
