"""
FTPS polling components for ftps_ingest.

This package provides the session layer over aioftp, the remote listing
walker, seen-file tracking, batch selection, the fetch pipeline and the
poll orchestrator that ties them together.
"""

from .connection import (
    FTPSSession,
    ListingPage,
    ReadStream,
    TransferSession,
    build_ssl_context,
    entry_from_listing,
    open_session,
)
from .models import (
    ConnectionConfig,
    EntryKey,
    FilteredEntry,
    FilterReason,
    FTPMode,
    FTPTransferMode,
    PollConfig,
    PollSummary,
    RemoteEntry,
    RetrievedFile,
    TLSMode,
    TransferOutcome,
    TransferStatus,
)
from .pipeline import FetchPipeline, LineEndingTranslator
from .poller import FTPSPoller, PollState, poll_many
from .selector import select_batch
from .sinks import FileSink, LocalFileSink, MemorySink
from .tracker import SeenFileTracker
from .walker import RemoteListingWalker

__all__ = [
    # Session layer
    "TransferSession",
    "FTPSSession",
    "ReadStream",
    "ListingPage",
    "open_session",
    "build_ssl_context",
    "entry_from_listing",
    # Models
    "ConnectionConfig",
    "PollConfig",
    "FTPMode",
    "FTPTransferMode",
    "TLSMode",
    "EntryKey",
    "RemoteEntry",
    "FilteredEntry",
    "FilterReason",
    "TransferOutcome",
    "TransferStatus",
    "PollSummary",
    "RetrievedFile",
    # Engine
    "RemoteListingWalker",
    "SeenFileTracker",
    "select_batch",
    "FetchPipeline",
    "LineEndingTranslator",
    "FileSink",
    "MemorySink",
    "LocalFileSink",
    "FTPSPoller",
    "PollState",
    "poll_many",
]
