"""
ftps_ingest - Poll FTPS servers and retrieve new files exactly once.

This library connects to FTP-over-TLS servers, lists a remote root
(optionally recursively), picks files that have not been retrieved yet,
streams them into caller-supplied sinks and optionally deletes the remote
originals. Each poller remembers what it has retrieved so unchanged files
are not fetched twice.

Features:
- Implicit and explicit TLS via aioftp
- Regex filters on file names and relative directories
- Symlink following with cycle protection
- Oldest-first ordering and per-poll batch limits
- Size verification of every transfer
- YAML/JSON/environment configuration and an ``ftps-ingest`` CLI
"""

from .exceptions import (
    ConfigurationError,
    ErrorHandler,
    ErrorKind,
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPFileNotFoundError,
    FTPPermissionError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTLSError,
    FTPTransferError,
    FTPVerificationError,
    IngestError,
    SinkError,
)
from .ftp import (
    ConnectionConfig,
    FetchPipeline,
    FilteredEntry,
    FilterReason,
    FTPMode,
    FTPSPoller,
    FTPSSession,
    FTPTransferMode,
    LocalFileSink,
    MemorySink,
    PollConfig,
    PollState,
    PollSummary,
    RemoteEntry,
    RemoteListingWalker,
    RetrievedFile,
    SeenFileTracker,
    TLSMode,
    TransferOutcome,
    TransferSession,
    TransferStatus,
    open_session,
    poll_many,
    select_batch,
)

__version__ = "0.1.0"

__all__ = [
    # Poller
    "FTPSPoller",
    "PollState",
    "poll_many",
    # Session layer
    "TransferSession",
    "FTPSSession",
    "open_session",
    # Engine components
    "RemoteListingWalker",
    "SeenFileTracker",
    "select_batch",
    "FetchPipeline",
    "MemorySink",
    "LocalFileSink",
    # Models
    "ConnectionConfig",
    "PollConfig",
    "FTPMode",
    "FTPTransferMode",
    "TLSMode",
    "RemoteEntry",
    "FilteredEntry",
    "FilterReason",
    "TransferOutcome",
    "TransferStatus",
    "PollSummary",
    "RetrievedFile",
    # Exceptions
    "IngestError",
    "ConfigurationError",
    "SinkError",
    "FTPError",
    "FTPConnectionError",
    "FTPAuthenticationError",
    "FTPTLSError",
    "FTPTimeoutError",
    "FTPTransferError",
    "FTPFileNotFoundError",
    "FTPPermissionError",
    "FTPProtocolError",
    "FTPVerificationError",
    "ErrorHandler",
    "ErrorKind",
]
