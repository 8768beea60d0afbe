"""
Shared test fixtures and configuration for the ftps_ingest test suite.
"""

from typing import Any, Callable, Optional

import pytest
from fakes import FakeServer

from ftps_ingest.ftp import ConnectionConfig, FTPSPoller, PollConfig


@pytest.fixture
def server() -> FakeServer:
    """Empty in-memory remote tree."""
    return FakeServer()


@pytest.fixture
def connection_config() -> ConnectionConfig:
    """Connection settings pointing at a test host."""
    return ConnectionConfig(host="ftp.example.com", username="user", password="secret")


@pytest.fixture
def make_poller(
    server: FakeServer, connection_config: ConnectionConfig
) -> Callable[..., FTPSPoller]:
    """Build a poller over the fake server; keyword args go to PollConfig."""

    def factory(
        connection: Optional[ConnectionConfig] = None, **poll_kwargs: Any
    ) -> FTPSPoller:
        return FTPSPoller(
            connection or connection_config,
            PollConfig(**poll_kwargs),
            session_factory=server.connect,
        )

    return factory
