"""
Secure FTP session management for ftps_ingest.

This module provides the TransferSession contract the rest of the engine
talks to and FTPSSession, its aioftp-backed implementation with implicit or
explicit TLS, timeout bounding and error conversion.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import stat
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Tuple, TypeVar

import aioftp

from ..exceptions import ErrorHandler, FTPTimeoutError
from .models import ConnectionConfig, FTPMode, RemoteEntry, TLSMode

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SKIPPED_NAMES = {".", ".."}
_SKIPPED_TYPES = {"cdir", "pdir"}


class ReadStream(ABC):
    """Byte stream of one remote file."""

    @abstractmethod
    async def read(self, count: int) -> bytes:
        """Read up to ``count`` bytes; an empty result means end of file."""


class ListingPage:
    """Entries returned by one directory listing round-trip."""

    def __init__(self, directory: str, entries: List[RemoteEntry], dropped: int = 0):
        self.directory = directory
        self.entries = entries
        self.dropped = dropped


class TransferSession(ABC):
    """
    Operations the poll engine needs from a connected file server.

    Implementations must mark themselves unusable after any error that
    leaves the control connection in an unknown state.
    """

    @property
    @abstractmethod
    def usable(self) -> bool:
        """Whether further commands can be sent on this session."""

    @abstractmethod
    async def list_directory(self, path: str, limit: int) -> ListingPage:
        """List ``path`` keeping at most ``limit`` entries."""

    @abstractmethod
    async def canonical_path(self, path: str) -> str:
        """Resolve a directory path to the server's canonical form."""

    @abstractmethod
    def open_read_stream(self, path: str) -> Any:
        """Async context manager yielding a ReadStream for ``path``."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove a remote file."""

    @abstractmethod
    async def noop(self) -> None:
        """Round-trip a no-op command to check the connection."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""

    async def __aenter__(self) -> "TransferSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class _SymlinkAwareClient(aioftp.Client):
    """aioftp client that keeps the symlink marker found in LIST output."""

    def parse_list_line_unix(self, b: bytes) -> Tuple[PurePosixPath, Dict[str, Any]]:
        path, info = super().parse_list_line_unix(b)
        if b[:1] == b"l":
            info["symlink"] = True
        return path, info


def build_ssl_context(config: ConnectionConfig) -> ssl.SSLContext:
    """
    Create the TLS context for control and data connections.

    Chain and hostname validation stay on unless self-signed certificates
    are explicitly allowed.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if config.allow_self_signed:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _parse_modify(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    text = str(value).strip()
    try:
        return datetime.strptime(text[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_mode(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 8)
    except ValueError:
        return None


def _parse_size(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def entry_from_listing(directory: str, name: str, info: Dict[str, Any]) -> RemoteEntry:
    """
    Build a RemoteEntry from an aioftp listing info dict.

    Handles both MLSD facts and parsed LIST lines; fact names are matched
    case-insensitively.
    """
    facts = {str(k).lower(): v for k, v in info.items()}
    kind = str(facts.get("type", "file")).lower()
    is_symlink = bool(facts.get("symlink")) or kind.startswith(
        ("os.unix=symlink", "os.unix=slink", "link")
    )
    mode = _parse_mode(facts.get("unix.mode"))
    return RemoteEntry(
        path=str(PurePosixPath(directory) / name),
        filename=name,
        directory=directory,
        size=_parse_size(facts.get("size", facts.get("sizd"))),
        modified_at=_parse_modify(facts.get("modify")),
        owner=facts.get("unix.owner", facts.get("unix.uid")),
        group=facts.get("unix.group", facts.get("unix.gid")),
        permissions=stat.filemode(mode)[1:] if mode is not None else None,
        is_symlink=is_symlink,
        is_directory=kind == "dir",
    )


class _AioftpReadStream(ReadStream):
    def __init__(self, session: "FTPSSession", stream: Any, path: str) -> None:
        self._session = session
        self._stream = stream
        self._path = path

    async def read(self, count: int) -> bytes:
        return await self._session._guard(self._stream.read(count), self._path, "read")


class FTPSSession(TransferSession):
    """
    One authenticated FTPS control connection.

    Use :func:`open_session` or ``await session.open()`` before issuing
    commands. Every command is bounded by the configured data timeout; a
    timeout or broken connection makes the session unusable.
    """

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self._client: Optional[aioftp.Client] = None
        self._usable = False

    @property
    def usable(self) -> bool:
        return self._client is not None and self._usable

    def _create_client(self, context: ssl.SSLContext) -> aioftp.Client:
        return _SymlinkAwareClient(
            socket_timeout=self.config.data_timeout,
            connection_timeout=self.config.connection_timeout,
            path_timeout=self.config.data_timeout,
            encoding=self.config.encoding,
            ssl=context if self.config.tls_mode == TLSMode.IMPLICIT else None,
        )

    async def open(self) -> "FTPSSession":
        """Connect, negotiate TLS and authenticate."""
        config = self.config
        context = build_ssl_context(config)

        if config.connection_mode == FTPMode.ACTIVE:
            # aioftp only implements passive data connections
            logger.warning(
                "Active mode requested for %s; continuing in passive mode",
                config.display_url,
            )

        client = self._create_client(context)
        try:
            await asyncio.wait_for(
                self._handshake(client, context), timeout=config.connection_timeout
            )
        except asyncio.TimeoutError as e:
            client.close()
            raise FTPTimeoutError(
                f"Connecting to {config.host}:{config.port} timed out",
                operation="connect",
                timeout=config.connection_timeout,
            ) from e
        except Exception as e:
            client.close()
            raise ErrorHandler.handle_ftp_error(e, operation="connect") from e

        self._client = client
        self._usable = True
        logger.info("Connected to %s (%s TLS)", config.display_url, config.tls_mode.value)
        return self

    async def _handshake(self, client: aioftp.Client, context: ssl.SSLContext) -> None:
        config = self.config
        await client.connect(config.host, config.port)
        if config.tls_mode == TLSMode.EXPLICIT:
            await client.upgrade_to_tls(sslcontext=context)
        await client.login(config.username, config.password.get_secret_value())
        if config.tls_mode == TLSMode.IMPLICIT:
            # upgrade_to_tls sends these in explicit mode; data channels are
            # wrapped in TLS either way, so the server must expect it
            await client.command("PBSZ 0", "200")
            await client.command("PROT P", "200")
        # aioftp issues TYPE I before every data stream; ASCII line endings
        # are translated by the fetch pipeline instead.

    async def _guard(self, awaitable: Awaitable[T], path: Optional[str], operation: str) -> T:
        """Run one command under the data timeout, converting errors."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.data_timeout)
        except asyncio.TimeoutError as e:
            self._usable = False
            raise FTPTimeoutError(
                f"{operation} timed out after {self.config.data_timeout}s",
                path=path,
                operation=operation,
                timeout=self.config.data_timeout,
            ) from e
        except Exception as e:
            error = ErrorHandler.handle_ftp_error(e, path, operation)
            if ErrorHandler.breaks_session(error):
                self._usable = False
            raise error from e

    def _require_client(self) -> aioftp.Client:
        if self._client is None:
            raise RuntimeError("Session is not open")
        return self._client

    async def list_directory(self, path: str, limit: int) -> ListingPage:
        client = self._require_client()
        entries: List[RemoteEntry] = []
        dropped = 0
        listed = PurePosixPath(path)

        async def collect() -> None:
            nonlocal dropped
            # the listing must be drained so the control connection stays in sync
            async for child, info in client.list(path):
                child_path = PurePosixPath(str(child))
                name = child_path.name
                if (
                    not name
                    or name in _SKIPPED_NAMES
                    or child_path in (listed, listed.parent)
                    or str(info.get("type", "")).lower() in _SKIPPED_TYPES
                ):
                    continue
                if len(entries) >= limit:
                    dropped += 1
                    continue
                entries.append(entry_from_listing(path, name, info))

        await self._guard(collect(), path, "list")
        if dropped:
            logger.warning(
                "Listing of %s capped at %d entries, %d dropped", path, limit, dropped
            )
        return ListingPage(path, entries, dropped)

    async def canonical_path(self, path: str) -> str:
        client = self._require_client()

        async def resolve() -> str:
            current = await client.get_current_directory()
            await client.change_directory(path)
            try:
                return str(await client.get_current_directory())
            finally:
                await client.change_directory(current)

        return await self._guard(resolve(), path, "resolve")

    @asynccontextmanager
    async def open_read_stream(self, path: str) -> AsyncIterator[ReadStream]:
        client = self._require_client()
        stream = await self._guard(client.download_stream(path), path, "retrieve")
        try:
            yield _AioftpReadStream(self, stream, path)
        except BaseException:
            # an abandoned data stream leaves the control reply unread
            self._usable = False
            stream.close()
            raise
        await self._guard(stream.finish(), path, "retrieve")

    async def delete(self, path: str) -> None:
        client = self._require_client()
        await self._guard(client.remove_file(path), path, "delete")

    async def noop(self) -> None:
        client = self._require_client()
        await self._guard(client.command("NOOP", "200"), None, "noop")

    async def close(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        try:
            if self._usable:
                await asyncio.wait_for(client.quit(), timeout=self.config.connection_timeout)
        except Exception as e:
            logger.debug("QUIT failed for %s: %s", self.config.display_url, e)
        finally:
            self._usable = False
            client.close()
        logger.debug("Closed session to %s", self.config.display_url)


async def open_session(config: ConnectionConfig) -> FTPSSession:
    """Open an authenticated FTPS session."""
    session = FTPSSession(config)
    return await session.open()
