"""
Lifecycle manager - starts connectors after the server is listening, releases them on shutdown.
Challenge: Readiness is eventually consistent; shutdown is best-effort and reports an exit code.
"""

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Connector(Protocol):
    async def connect(self, max_retries: int = 5, retry_delay: float = 5.0) -> bool: ...

    async def close(self) -> None: ...


class Lifecycle:
    """Owns the database and cache connectors for one application instance."""

    def __init__(
        self,
        database: Connector,
        cache: Connector,
        *,
        max_retries: int = 5,
        retry_delay: float = 5.0,
    ):
        self.database = database
        self.cache = cache
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.exit_code = 0
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        """Schedule both connectors without waiting for them."""
        for name, connector in (("database", self.database), ("cache", self.cache)):
            task = asyncio.create_task(
                connector.connect(self.max_retries, self.retry_delay),
                name=f"connect-{name}",
            )
            self._tasks.append(task)

    async def close(self) -> bool:
        """Close the pool and cache. Each step runs even if an earlier one failed."""
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        ok = True
        for name, connector in (("PostgreSQL", self.database), ("Redis", self.cache)):
            try:
                await connector.close()
            except Exception:
                logger.exception("Error during shutdown closing %s", name)
                ok = False
        if ok:
            logger.info("Graceful shutdown completed")
        self.exit_code = 0 if ok else 1
        return ok
