"""
FTPS-specific data models and configuration classes for ftps_ingest.

This module defines the connection and poll configuration models, the
transient remote entry value object and the per-file and per-cycle result
types reported by the poll orchestrator.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from ..exceptions import ErrorKind


EntryKey = Tuple[str, str]


class FTPMode(str, Enum):
    """FTP connection modes."""

    ACTIVE = "active"
    PASSIVE = "passive"


class FTPTransferMode(str, Enum):
    """FTP transfer modes."""

    BINARY = "binary"
    ASCII = "ascii"


class TLSMode(str, Enum):
    """How TLS is negotiated on the control connection."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"


class ConnectionConfig(BaseModel):
    """Configuration model for an FTPS connection."""

    host: str = Field(min_length=1, description="FTPS server hostname")
    port: int = Field(default=21, ge=1, le=65535, description="FTPS server port")
    username: str = Field(default="anonymous", description="Username for authentication")
    password: SecretStr = Field(
        default=SecretStr(""), description="Password for authentication"
    )

    tls_mode: TLSMode = Field(default=TLSMode.EXPLICIT, description="TLS negotiation")
    connection_mode: FTPMode = Field(
        default=FTPMode.PASSIVE, description="FTP connection mode"
    )
    transfer_mode: FTPTransferMode = Field(
        default=FTPTransferMode.BINARY, description="Transfer mode"
    )

    connection_timeout: float = Field(
        default=30.0, gt=0, description="Connection timeout in seconds"
    )
    data_timeout: float = Field(
        default=30.0, gt=0, description="Data transfer timeout in seconds"
    )
    buffer_size: int = Field(
        default=16 * 1024, gt=0, description="Read buffer size in bytes"
    )
    encoding: str = Field(default="utf-8", description="Control channel encoding")
    allow_self_signed: bool = Field(
        default=False, description="Skip certificate chain validation"
    )
    reuse_session: bool = Field(
        default=False, description="Keep the session open between poll cycles"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Reject encodings Python cannot look up."""
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"Unknown encoding: {v}")
        return v

    @property
    def display_url(self) -> str:
        """Credential-free URL of the server, for logs and diagnostics."""
        return f"ftps://{self.username}@{self.host}:{self.port}"


class PollConfig(BaseModel):
    """Configuration model for one polled remote root."""

    remote_path: str = Field(default=".", min_length=1, description="Remote root path")
    file_filter: Optional[str] = Field(
        default=None, description="Regex the file name must fully match"
    )
    path_filter: Optional[str] = Field(
        default=None, description="Regex the relative directory must fully match"
    )
    recursive: bool = Field(default=False, description="Search subdirectories")
    follow_symlinks: bool = Field(default=False, description="Follow symbolic links")
    ignore_dotted_files: bool = Field(default=True, description="Skip dotted entries")
    ignore_marker: str = Field(default=".", min_length=1, description="Dotted prefix")
    delete_original: bool = Field(
        default=True, description="Delete remote file after a successful fetch"
    )
    polling_interval: float = Field(
        default=0.0, ge=0, description="Minimum seconds between listings (0 disables)"
    )
    max_selects: int = Field(default=100, ge=1, description="Max files per poll")
    remote_poll_batch_size: int = Field(
        default=5000, ge=1, description="Max entries read per listing request"
    )
    natural_ordering: bool = Field(
        default=False, description="Order by modification time, oldest first"
    )
    max_depth: int = Field(default=100, ge=1, description="Max recursion depth")

    model_config = ConfigDict(frozen=True)

    @field_validator("file_filter", "path_filter")
    @classmethod
    def validate_regex(cls, v: Optional[str]) -> Optional[str]:
        """Ensure filter patterns compile."""
        if v is None:
            return v
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}")
        return v


@dataclass(frozen=True)
class RemoteEntry:
    """A file or directory seen in one listing of the remote server."""

    path: str
    filename: str
    directory: str
    size: Optional[int] = None
    modified_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    permissions: Optional[str] = None
    is_symlink: bool = False
    is_directory: bool = False

    @property
    def key(self) -> EntryKey:
        """Seen-file tracker key."""
        return (self.directory, self.filename)


class TransferStatus(str, Enum):
    """Per-entry result of a poll cycle."""

    RETRIEVED = "retrieved"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    SKIPPED_FILTERED = "skipped_filtered"
    FAILED = "failed"


class FilterReason(str, Enum):
    """Why the walker dropped an entry."""

    DOTTED = "dotted"
    FILE_FILTER = "file_filter"
    PATH_FILTER = "path_filter"
    SYMLINK = "symlink"


@dataclass
class FilteredEntry:
    """An entry dropped by listing policy."""

    entry: RemoteEntry
    reason: FilterReason

    @property
    def status(self) -> TransferStatus:
        return TransferStatus.SKIPPED_FILTERED


@dataclass
class TransferOutcome:
    """Result of handling a single remote entry."""

    entry: RemoteEntry
    status: TransferStatus
    bytes_transferred: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    delete_failed: bool = False
    delete_error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        """Check if the file was delivered."""
        return self.status == TransferStatus.RETRIEVED


@dataclass
class PollSummary:
    """Aggregated result of one poll cycle."""

    remote_path: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[TransferOutcome] = field(default_factory=list)
    filtered: List[FilteredEntry] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    cancelled: bool = False
    listing_skipped: bool = False

    def _count(self, status: TransferStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def retrieved(self) -> int:
        return self._count(TransferStatus.RETRIEVED)

    @property
    def skipped_duplicate(self) -> int:
        return self._count(TransferStatus.SKIPPED_DUPLICATE)

    @property
    def skipped_filtered(self) -> int:
        return len(self.filtered)

    @property
    def skipped(self) -> int:
        return self.skipped_duplicate + self.skipped_filtered

    @property
    def failed(self) -> int:
        return self._count(TransferStatus.FAILED)

    @property
    def bytes_transferred(self) -> int:
        return sum(o.bytes_transferred for o in self.outcomes)

    @property
    def aborted(self) -> bool:
        """True when a connection or listing error ended the cycle early."""
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for logs and CLI output."""
        return {
            "remote_path": self.remote_path,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "retrieved": self.retrieved,
            "skipped_duplicate": self.skipped_duplicate,
            "skipped_filtered": self.skipped_filtered,
            "failed": self.failed,
            "bytes_transferred": self.bytes_transferred,
            "cancelled": self.cancelled,
            "listing_skipped": self.listing_skipped,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "warnings": list(self.warnings),
            "outcomes": [
                {
                    "path": o.entry.path,
                    "status": o.status.value,
                    "bytes": o.bytes_transferred,
                    "error": o.error,
                    "delete_failed": o.delete_failed,
                }
                for o in self.outcomes
            ],
            "filtered": [
                {"path": f.entry.path, "status": f.status.value, "reason": f.reason.value}
                for f in self.filtered
            ],
        }


@dataclass
class RetrievedFile:
    """Event surfaced to the caller for every delivered file."""

    entry: RemoteEntry
    bytes_transferred: int
    sink: Any

    @property
    def filename(self) -> str:
        return self.entry.filename

    @property
    def directory(self) -> str:
        return self.entry.directory

    @property
    def absolute_path(self) -> str:
        return self.entry.path

    def attributes(self) -> Dict[str, str]:
        """Attribute map in the shape host adapters expect."""
        attrs = {
            "filename": self.entry.filename,
            "path": self.entry.directory,
            "absolute.path": self.entry.path,
        }
        if self.entry.modified_at is not None:
            attrs["file.lastModifiedTime"] = self.entry.modified_at.isoformat()
        if self.entry.accessed_at is not None:
            attrs["file.lastAccessTime"] = self.entry.accessed_at.isoformat()
        if self.entry.owner is not None:
            attrs["file.owner"] = self.entry.owner
        if self.entry.group is not None:
            attrs["file.group"] = self.entry.group
        if self.entry.permissions is not None:
            attrs["file.permissions"] = self.entry.permissions
        return attrs
