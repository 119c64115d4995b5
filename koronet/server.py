"""
Process entry point - runs uvicorn and funnels every termination source into one shutdown.
Sources: SIGINT/SIGTERM, an exception escaping the server, a failed task nobody awaited.
"""

import asyncio
import contextlib
import logging
import signal
import sys

import uvicorn
from fastapi import FastAPI

from koronet.config import Settings, get_settings
from koronet.core.logging import configure_logging

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GracefulServer(uvicorn.Server):
    """uvicorn server whose exit path is labelled and never re-raises the signal."""

    exit_reason: str | None = None

    @contextlib.contextmanager
    def capture_signals(self):
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, self.handle_exit, sig, None)
        try:
            yield
        finally:
            for sig in HANDLED_SIGNALS:
                loop.remove_signal_handler(sig)

    def handle_exit(self, sig, frame) -> None:
        if self.should_exit and sig == signal.SIGINT:
            # Second Ctrl+C: stop waiting for in-flight requests
            self.force_exit = True
        self.request_shutdown(signal.Signals(sig).name)

    def request_shutdown(self, reason: str) -> None:
        if self.exit_reason is None:
            self.exit_reason = reason
            logger.info("%s signal received: starting graceful shutdown", reason)
        self.should_exit = True

    def on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(
            "Unhandled Rejection: %s",
            context.get("message"),
            exc_info=context.get("exception"),
        )
        self.request_shutdown("UNHANDLED_REJECTION")


async def serve(app: FastAPI, settings: Settings) -> int:
    """Run until a termination source fires; return the process exit code."""
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None, lifespan="on")
    server = GracefulServer(config)
    asyncio.get_running_loop().set_exception_handler(server.on_loop_exception)
    try:
        await server.serve()
    except Exception:
        logger.exception("Uncaught Exception")
        server.request_shutdown("UNCAUGHT_EXCEPTION")
        # serve() bailed out before lifespan shutdown; release connections here
        await app.state.lifecycle.close()
    if not server.started and server.exit_reason is None:
        # Startup failed (e.g. port in use); uvicorn already logged why
        return 1
    return app.state.lifecycle.exit_code


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    from koronet.main import app

    sys.exit(asyncio.run(serve(app, settings)))


if __name__ == "__main__":
    main()
