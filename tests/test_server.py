"""
Termination-source tests for the uvicorn runner.
The serve() cases bind a loopback port and signal the test process itself.
"""

import asyncio
import gc
import logging
import os
import signal
import socket

import httpx
import pytest
import uvicorn

from koronet.config import Settings
from koronet.lifecycle import Lifecycle
from koronet.main import create_app
from koronet.server import GracefulServer, serve

from conftest import FakeConnector


def make_server() -> GracefulServer:
    return GracefulServer(uvicorn.Config(app=None))


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_signal_starts_shutdown_once():
    server = make_server()
    server.handle_exit(signal.SIGTERM, None)
    assert server.should_exit
    assert server.exit_reason == "SIGTERM"
    assert not server.force_exit

    server.handle_exit(signal.SIGINT, None)
    assert server.exit_reason == "SIGTERM"


def test_second_sigint_forces_exit():
    server = make_server()
    server.handle_exit(signal.SIGINT, None)
    assert not server.force_exit
    server.handle_exit(signal.SIGINT, None)
    assert server.force_exit


def test_loop_exception_triggers_shutdown():
    server = make_server()
    loop = asyncio.new_event_loop()
    try:
        server.on_loop_exception(loop, {"message": "Task exception was never retrieved", "exception": RuntimeError("x")})
    finally:
        loop.close()
    assert server.should_exit
    assert server.exit_reason == "UNHANDLED_REJECTION"


async def wait_for_http(port: int, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    async with httpx.AsyncClient() as client:
        while True:
            try:
                response = await client.get(f"http://127.0.0.1:{port}/")
                if response.status_code == 200:
                    return
            except httpx.TransportError:
                pass
            if loop.time() > deadline:
                raise AssertionError("server did not start")
            await asyncio.sleep(0.05)


def make_app(port: int, cache_close_error: Exception | None = None):
    settings = Settings(host="127.0.0.1", port=port)
    database, cache = FakeConnector(), FakeConnector(close_error=cache_close_error)
    app = create_app(settings=settings, lifecycle=Lifecycle(database, cache, max_retries=1, retry_delay=0))
    return app, settings, database, cache


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("close_error", "expected"),
    [(None, 0), (RuntimeError("quit failed"), 1)],
)
async def test_sigterm_exit_code_follows_shutdown(close_error, expected):
    port = free_port()
    app, settings, database, cache = make_app(port, close_error)
    task = asyncio.create_task(serve(app, settings))
    await wait_for_http(port)
    assert database.connect_calls and cache.connect_calls

    os.kill(os.getpid(), signal.SIGTERM)
    code = await asyncio.wait_for(task, timeout=10)

    assert code == expected
    assert database.closed and cache.closed


@pytest.mark.asyncio
async def test_unretrieved_task_error_shuts_down_cleanly():
    port = free_port()
    app, settings, database, cache = make_app(port)
    task = asyncio.create_task(serve(app, settings))
    await wait_for_http(port)

    async def explode():
        raise RuntimeError("background failure")

    failed = asyncio.ensure_future(explode())
    await asyncio.sleep(0.05)
    del failed  # dropped unobserved: the loop exception handler reports it
    gc.collect()

    code = await asyncio.wait_for(task, timeout=10)
    assert code == 0
    assert database.closed and cache.closed


@pytest.mark.asyncio
async def test_exception_escaping_server_still_closes(monkeypatch, caplog):
    port = free_port()
    app, settings, database, cache = make_app(port, RuntimeError("pool end failed"))

    async def broken_serve(self, sockets=None):
        raise RuntimeError("accept loop crashed")

    caplog.set_level(logging.INFO)
    monkeypatch.setattr(GracefulServer, "serve", broken_serve)
    code = await serve(app, settings)
    assert code == 1
    assert database.closed and cache.closed
    # Nothing was bound, so nothing may claim the port is being served
    assert "listening" not in caplog.text
    assert "UNCAUGHT_EXCEPTION" in caplog.text
