"""
Shared fixtures: a mock server on an ephemeral port and a factory for
ConnectionManager instances with short timing windows.
"""

import asyncio
import socket

import pytest

from pulseclient.connection.connection_manager import ConnectionManager
from pulseclient.testing.mock_server import MockServer
from pulseclient.utils.logger import SessionLog

# Timing used by integration tests; heartbeats arrive three times per window
FAST_TIMING = {
    "heartbeat_window": 0.3,
    "request_timeout": 0.5,
    "ready_retry_interval": 0.1,
    "ready_retry_attempts": 5,
    "reconnect_delay": 0.05,
    "max_reconnect_delay": 0.2,
    "max_reconnect_attempts": 3,
    "connect_timeout": 1.0,
}


@pytest.fixture
async def mock_server():
    server = MockServer(heartbeat_interval=0.1)
    await server.start()
    yield server
    await server.stop()


@pytest.fixture
def session_log():
    return SessionLog(name="TestSessionLog")


@pytest.fixture
async def make_client(mock_server, session_log):
    clients = []

    def _make(**overrides):
        options = dict(FAST_TIMING)
        options.update(
            host=mock_server.host,
            port=mock_server.port,
            session_log=session_log,
        )
        options.update(overrides)
        client = ConnectionManager(**options)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.logout()


@pytest.fixture
def wait_until():
    async def _wait_until(predicate, timeout=3.0, interval=0.02):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait_until


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
