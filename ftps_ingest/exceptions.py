"""
Exception hierarchy and error classification for ftps_ingest.

This module provides custom exceptions for FTPS polling and the ErrorHandler
utility that converts aioftp, ssl and socket exceptions into that hierarchy
and sorts them into the fatal/retryable/integrity taxonomy used by the
poll orchestrator.
"""

from __future__ import annotations

import asyncio
import socket
import ssl
from enum import Enum
from typing import Any, Optional

import aioftp


class ErrorKind(str, Enum):
    """How an error affects the current and following poll cycles."""

    FATAL = "fatal"
    RETRYABLE = "retryable"
    INTEGRITY = "integrity"
    FILTERED = "filtered"


class IngestError(Exception):
    """
    Base exception for all ingestion operations.

    Attributes:
        message: Human-readable error message
        path: Remote path that caused the error (if applicable)
        details: Additional error details as keyword arguments
    """

    kind: ErrorKind = ErrorKind.RETRYABLE

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.details = kwargs


class ConfigurationError(IngestError):
    """Raised when configuration cannot be loaded or validated."""

    kind = ErrorKind.FATAL


class SinkError(IngestError):
    """Raised when retrieved bytes cannot be written to the local sink."""

    pass


# FTP-specific exceptions


class FTPError(IngestError):
    """Base exception for FTP operations."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        ftp_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, path, **kwargs)
        self.ftp_code = ftp_code


class FTPConnectionError(FTPError):
    """Raised when the FTP control or data connection fails."""

    pass


class FTPAuthenticationError(FTPError):
    """Raised for FTP authentication failures."""

    kind = ErrorKind.FATAL


class FTPTLSError(FTPError):
    """Raised when TLS negotiation or certificate validation fails."""

    kind = ErrorKind.FATAL


class FTPTimeoutError(FTPError):
    """Raised when FTP operations time out."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, path, **kwargs)
        self.operation = operation
        self.timeout = timeout


class FTPTransferError(FTPError):
    """Raised when a file transfer breaks off."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        bytes_transferred: int = 0,
        total_bytes: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, path, **kwargs)
        self.bytes_transferred = bytes_transferred
        self.total_bytes = total_bytes


class FTPFileNotFoundError(FTPError):
    """Raised when FTP file or directory is not found."""

    pass


class FTPPermissionError(FTPError):
    """Raised when FTP operation lacks permissions."""

    pass


class FTPProtocolError(FTPError):
    """Raised for FTP protocol-related errors."""

    pass


class FTPVerificationError(FTPError):
    """Raised when a completed transfer fails verification."""

    kind = ErrorKind.INTEGRITY

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        expected_size: Optional[int] = None,
        actual_size: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, path, **kwargs)
        self.expected_size = expected_size
        self.actual_size = actual_size


def _status_codes(error: aioftp.StatusCodeError) -> str:
    received = getattr(error, "received_codes", ()) or ()
    return " ".join(str(code) for code in received)


class ErrorHandler:
    """
    Utility class for converting and classifying FTP errors.
    """

    @staticmethod
    def handle_ftp_error(
        error: Exception, path: Optional[str] = None, operation: Optional[str] = None
    ) -> FTPError:
        """
        Convert FTP library exceptions to custom FTPError subclasses.

        Args:
            error: The original exception
            path: The remote path that caused the error
            operation: The FTP operation being performed

        Returns:
            Appropriate FTPError subclass
        """
        if isinstance(error, FTPError):
            return error

        error_msg = str(error) or type(error).__name__

        if isinstance(error, aioftp.StatusCodeError):
            codes = _status_codes(error)
            if "530" in codes or "332" in codes:
                return FTPAuthenticationError(
                    f"FTP authentication failed: {error_msg}", path=path, ftp_code=530
                )
            if "534" in codes or "431" in codes:
                return FTPTLSError(
                    f"FTP server refused TLS negotiation: {error_msg}", path=path
                )
            if "550" in codes:
                return FTPFileNotFoundError(
                    f"FTP file not found: {error_msg}", path=path, ftp_code=550
                )
            if "553" in codes or "450" in codes:
                return FTPPermissionError(
                    f"FTP permission denied: {error_msg}", path=path
                )
            if codes.startswith("4"):
                # 4xx replies are transient by definition
                return FTPTransferError(f"FTP temporary error: {error_msg}", path=path)
            return FTPProtocolError(f"FTP protocol error: {error_msg}", path=path)

        if isinstance(error, (ssl.SSLCertVerificationError, ssl.SSLError)):
            return FTPTLSError(f"TLS negotiation failed: {error_msg}", path=path)

        if isinstance(error, (asyncio.TimeoutError, socket.timeout, TimeoutError)):
            return FTPTimeoutError(
                f"FTP operation timed out: {error_msg}", path=path, operation=operation
            )

        if isinstance(error, (ConnectionError, OSError, asyncio.IncompleteReadError)):
            return FTPConnectionError(f"FTP connection error: {error_msg}", path=path)

        return FTPError(f"Unexpected FTP error: {error_msg}", path=path)

    @staticmethod
    def classify(error: BaseException) -> ErrorKind:
        """Return the taxonomy bucket an error belongs to."""
        if isinstance(error, IngestError):
            return error.kind
        if isinstance(error, Exception):
            return ErrorHandler.handle_ftp_error(error).kind
        return ErrorKind.FATAL

    @staticmethod
    def is_retryable_ftp_error(error: Exception) -> bool:
        """
        Determine if an FTP error is safe to retry on the next poll.

        Args:
            error: The FTP exception to check

        Returns:
            True if the error should be retried, False otherwise
        """
        return ErrorHandler.classify(error) == ErrorKind.RETRYABLE

    @staticmethod
    def breaks_session(error: Exception) -> bool:
        """Whether the control connection can no longer be trusted after error."""
        return isinstance(
            ErrorHandler.handle_ftp_error(error),
            (FTPConnectionError, FTPTimeoutError, FTPTLSError),
        )
