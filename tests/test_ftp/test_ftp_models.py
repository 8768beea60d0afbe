"""
Tests for the FTPS configuration and result models.
"""

from datetime import datetime

import pytest
from fakes import ts
from pydantic import ValidationError

from ftps_ingest.exceptions import ErrorKind
from ftps_ingest.ftp import (
    ConnectionConfig,
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


def entry(path: str = "/data/a.txt", **kwargs) -> RemoteEntry:
    directory, _, name = path.rpartition("/")
    return RemoteEntry(path=path, filename=name, directory=directory or "/", **kwargs)


class TestConnectionConfig:
    """Test connection configuration model."""

    def test_default_config(self):
        """Test default configuration values."""
        config = ConnectionConfig(host="ftp.example.com")

        assert config.port == 21
        assert config.username == "anonymous"
        assert config.tls_mode == TLSMode.EXPLICIT
        assert config.connection_mode == FTPMode.PASSIVE
        assert config.transfer_mode == FTPTransferMode.BINARY
        assert config.connection_timeout == 30.0
        assert config.data_timeout == 30.0
        assert config.buffer_size == 16 * 1024
        assert config.encoding == "utf-8"
        assert config.allow_self_signed is False
        assert config.reuse_session is False

    def test_password_is_hidden(self):
        """The password never shows up in reprs or the display URL."""
        config = ConnectionConfig(host="h", username="bob", password="hunter2")

        assert "hunter2" not in repr(config)
        assert "hunter2" not in config.display_url
        assert config.display_url == "ftps://bob@h:21"
        assert config.password.get_secret_value() == "hunter2"

    @pytest.mark.parametrize("port", [0, 65536])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError):
            ConnectionConfig(host="h", port=port)

    def test_unknown_encoding_rejected(self):
        with pytest.raises(ValidationError, match="Unknown encoding"):
            ConnectionConfig(host="h", encoding="no-such-codec")

    def test_empty_host_rejected(self):
        with pytest.raises(ValidationError):
            ConnectionConfig(host="")

    def test_config_is_frozen(self):
        config = ConnectionConfig(host="h")
        with pytest.raises(ValidationError):
            config.port = 990


class TestPollConfig:
    """Test poll configuration model."""

    def test_default_config(self):
        config = PollConfig()

        assert config.remote_path == "."
        assert config.recursive is False
        assert config.follow_symlinks is False
        assert config.ignore_dotted_files is True
        assert config.delete_original is True
        assert config.polling_interval == 0.0
        assert config.max_selects == 100
        assert config.remote_poll_batch_size == 5000
        assert config.natural_ordering is False
        assert config.max_depth == 100

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValidationError, match="Invalid regular expression"):
            PollConfig(file_filter="[unclosed")

    def test_zero_max_selects_rejected(self):
        with pytest.raises(ValidationError):
            PollConfig(max_selects=0)

    def test_zero_batch_size_rejected(self):
        with pytest.raises(ValidationError):
            PollConfig(remote_poll_batch_size=0)


class TestRemoteEntry:
    def test_key_is_directory_and_name(self):
        assert entry("/data/sub/b.txt").key == ("/data/sub", "b.txt")

    def test_entries_are_hashable(self):
        assert len({entry(), entry()}) == 1


class TestPollSummary:
    """Test summary counters and serialization."""

    def make_summary(self) -> PollSummary:
        summary = PollSummary(remote_path="/data", started_at=datetime(2024, 1, 1))
        summary.outcomes = [
            TransferOutcome(entry("/data/a"), TransferStatus.RETRIEVED, bytes_transferred=3),
            TransferOutcome(entry("/data/b"), TransferStatus.RETRIEVED, bytes_transferred=4),
            TransferOutcome(entry("/data/c"), TransferStatus.SKIPPED_DUPLICATE),
            TransferOutcome(
                entry("/data/d"),
                TransferStatus.FAILED,
                bytes_transferred=1,
                error="boom",
                error_kind=ErrorKind.RETRYABLE,
            ),
        ]
        summary.filtered = [FilteredEntry(entry("/data/.x"), FilterReason.DOTTED)]
        return summary

    def test_counters(self):
        summary = self.make_summary()

        assert summary.retrieved == 2
        assert summary.skipped_duplicate == 1
        assert summary.skipped_filtered == 1
        assert summary.skipped == 2
        assert summary.failed == 1
        assert summary.bytes_transferred == 8
        assert summary.aborted is False

    def test_to_dict(self):
        summary = self.make_summary()
        summary.error = "listing failed"
        summary.error_kind = ErrorKind.RETRYABLE

        data = summary.to_dict()

        assert data["retrieved"] == 2
        assert data["error_kind"] == "retryable"
        assert data["finished_at"] is None
        assert [o["status"] for o in data["outcomes"]] == [
            "retrieved",
            "retrieved",
            "skipped_duplicate",
            "failed",
        ]
        assert data["filtered"] == [
            {"path": "/data/.x", "status": "skipped_filtered", "reason": "dotted"}
        ]
        assert summary.aborted is True


class TestRetrievedFile:
    def test_attributes(self):
        retrieved = RetrievedFile(
            entry(
                "/data/a.txt",
                modified_at=ts(0),
                owner="ftp",
                group="users",
                permissions="rw-r--r--",
            ),
            bytes_transferred=5,
            sink=None,
        )

        attrs = retrieved.attributes()

        assert attrs["filename"] == "a.txt"
        assert attrs["path"] == "/data"
        assert attrs["absolute.path"] == "/data/a.txt"
        assert attrs["file.lastModifiedTime"] == ts(0).isoformat()
        assert attrs["file.owner"] == "ftp"
        assert attrs["file.group"] == "users"
        assert attrs["file.permissions"] == "rw-r--r--"
        assert "file.lastAccessTime" not in attrs

    def test_unknown_metadata_is_omitted(self):
        attrs = RetrievedFile(entry(), 0, None).attributes()

        assert set(attrs) == {"filename", "path", "absolute.path"}
