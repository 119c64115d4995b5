"""
Pytest fixtures - app with injected health state and fake connectors (TDD/BDD support).
Challenge: Endpoint tests must not need a live PostgreSQL or Redis.
"""

import asyncio
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from koronet.config import Settings
from koronet.core.health import HealthState
from koronet.lifecycle import Lifecycle
from koronet.main import create_app


class FakeConnector:
    """Stands in for DatabaseConnector / CacheConnector in lifecycle tests."""

    def __init__(self, connect_result: bool = True, close_error: Exception | None = None):
        self.connect_result = connect_result
        self.close_error = close_error
        self.connect_calls: list[tuple[int, float]] = []
        self.closed = False

    async def connect(self, max_retries: int = 5, retry_delay: float = 5.0) -> bool:
        self.connect_calls.append((max_retries, retry_delay))
        return self.connect_result

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="test", database_url="sqlite+aiosqlite:///./test.db")


@pytest.fixture
def health() -> HealthState:
    return HealthState()


@pytest.fixture
def app(settings: Settings, health: HealthState):
    lifecycle = Lifecycle(FakeConnector(), FakeConnector(), max_retries=1, retry_delay=0)
    return create_app(settings=settings, health=health, lifecycle=lifecycle)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class RespServer:
    """Loopback RESP2 server with just enough PING/SET/GET for a real redis client."""

    def __init__(self, corrupt_get: bool = False):
        self.corrupt_get = corrupt_get
        self.data: dict[str, str] = {}
        self.writers: set = set()
        self.port: int | None = None
        self._server = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", self.port or 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        """Close the listener and drop every client socket (a Redis outage)."""
        self._server.close()
        for writer in list(self.writers):
            writer.close()
        await self._server.wait_closed()

    async def _handle(self, reader, writer) -> None:
        self.writers.add(writer)
        try:
            while True:
                command = await self._read_command(reader)
                if command is None:
                    break
                writer.write(self._reply(command))
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            self.writers.discard(writer)
            writer.close()

    @staticmethod
    async def _read_command(reader) -> list[str] | None:
        header = await reader.readline()
        if not header:
            return None
        args = []
        for _ in range(int(header[1:])):
            length = int((await reader.readline())[1:])
            args.append((await reader.readexactly(length + 2))[:-2].decode())
        return args

    def _reply(self, args: list[str]) -> bytes:
        name = args[0].upper()
        if name == "PING":
            return b"+PONG\r\n"
        if name == "SET":
            self.data[args[1]] = args[2]
            return b"+OK\r\n"
        if name == "GET":
            value = "garbage" if self.corrupt_get else self.data.get(args[1])
            if value is None:
                return b"$-1\r\n"
            raw = value.encode()
            return b"$%d\r\n%s\r\n" % (len(raw), raw)
        # Handshake commands (CLIENT SETINFO, ...) just need an OK
        return b"+OK\r\n"


async def wait_until(predicate, timeout: float = 5.0) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest_asyncio.fixture
async def resp_server() -> AsyncGenerator[RespServer, None]:
    server = RespServer()
    await server.start()
    yield server
    if server._server.is_serving():
        await server.stop()
