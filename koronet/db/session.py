"""
Async database connection management.
Challenge: Connection pooling, bounded retry at startup, pool errors reported as health status.
Design: Connector owns the engine; status goes out through a listener (no shared globals).
"""

import logging

from sqlalchemy import event, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from koronet.config import Settings
from koronet.core.health import Service, StatusListener
from koronet.core.retry import RetryExhausted, constant_delay, retry_async

logger = logging.getLogger(__name__)

# Works on PostgreSQL and SQLite
LIVENESS_QUERY = text("SELECT CURRENT_TIMESTAMP")


class DatabaseConnector:
    """Pooled connection to the relational store."""

    def __init__(self, url: URL | str, on_status: StatusListener, **engine_options):
        self.on_status = on_status
        # Async engine with connection pool (scalability)
        self.engine: AsyncEngine = create_async_engine(url, **engine_options)
        self._install_error_hooks()

    @classmethod
    def from_settings(cls, settings: Settings, on_status: StatusListener) -> "DatabaseConnector":
        url = settings.sqlalchemy_url()
        if make_url(url).get_backend_name() != "postgresql":
            # DATABASE_URL may point at another dialect; keep its pool defaults
            return cls(url, on_status)
        return cls(url, on_status, **settings.engine_options())

    def _install_error_hooks(self) -> None:
        sync_engine = self.engine.sync_engine

        @event.listens_for(sync_engine, "handle_error")
        def _on_handle_error(context):
            if context.is_disconnect:
                logger.error("Unexpected error on PostgreSQL connection: %s", context.original_exception)
                self.on_status(Service.DATABASE, False)

        @event.listens_for(sync_engine.pool, "invalidate")
        def _on_invalidate(dbapi_connection, connection_record, exception):
            # Explicit invalidation without an error (e.g. pool recycle) is not a failure
            if exception is not None:
                logger.error("Pooled PostgreSQL connection invalidated: %s", exception)
                self.on_status(Service.DATABASE, False)

    async def ping(self):
        """Acquire a pooled connection and run the liveness query. Returns server time."""
        async with self.engine.connect() as conn:
            result = await conn.execute(LIVENESS_QUERY)
            return result.scalar_one()

    async def connect(self, max_retries: int = 5, retry_delay: float = 5.0) -> bool:
        """Try to reach the database; never raises. Status goes down after the last attempt."""
        try:
            now = await retry_async(
                self.ping,
                attempts=max_retries,
                delay=constant_delay(retry_delay),
                label="Connecting to PostgreSQL",
            )
        except RetryExhausted as exc:
            logger.error("Could not connect to PostgreSQL after %d attempts", exc.attempts)
            self.on_status(Service.DATABASE, False)
            return False
        logger.info("Connected to PostgreSQL database")
        logger.info("PostgreSQL current time: %s", now)
        self.on_status(Service.DATABASE, True)
        return True

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("PostgreSQL pool closed")
