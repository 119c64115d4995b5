"""
Redis client - connection bootstrap and health reporting for the cache.
Challenge: Two retry layers. Transport reconnects are handled inside redis-py (capped backoff,
fixed budget); the startup loop retries the whole connect + demo round-trip.
Design: Status events go out through a listener. Every transport failure inside redis-py publishes
down, every new transport connection publishes up; a heartbeat keeps traffic on an idle client.
"""

import asyncio
import copy
import logging
from collections.abc import Callable

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import AbstractBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from koronet.config import Settings
from koronet.core.health import Service, StatusListener
from koronet.core.retry import RetryExhausted, constant_delay, retry_async

logger = logging.getLogger(__name__)

DEMO_KEY = "koronet:message"
DEMO_VALUE = "Hello from Redis!"


class CacheRoundTripError(RedisError):
    """Demo value read back does not match what was written."""


class CappedLinearBackoff(AbstractBackoff):
    """min(failures * step, cap) seconds between transport reconnects."""

    def __init__(self, step: float = 0.1, cap: float = 3.0):
        self._step = step
        self._cap = cap

    def compute(self, failures: int) -> float:
        return min(failures * self._step, self._cap)


class ReportingRetry(Retry):
    """Retry that reports each transport failure before backing off."""

    def __init__(self, backoff: AbstractBackoff, retries: int, on_failure: Callable[[Exception], None]):
        super().__init__(backoff, retries)
        self.on_failure = on_failure

    def __deepcopy__(self, memo):
        # redis-py copies the policy into each connection; the listener is shared, not cloned
        clone = ReportingRetry(copy.deepcopy(self._backoff, memo), self._retries, self.on_failure)
        clone._supported_errors = self._supported_errors
        return clone

    async def call_with_retry(self, do, fail, *args, **kwargs):
        async def report(error, *fail_args):
            self.on_failure(error)
            return await fail(error, *fail_args)

        return await super().call_with_retry(do, report, *args, **kwargs)


def reconnect_policy(on_failure: Callable[[Exception], None], attempts: int = 10) -> ReportingRetry:
    return ReportingRetry(CappedLinearBackoff(), attempts, on_failure)


class CacheConnector:
    """Redis connection with bounded startup retry and transport-level reconnect."""

    def __init__(
        self,
        url: str,
        on_status: StatusListener,
        *,
        heartbeat_interval: float = 5.0,
        reconnect_attempts: int | None = None,
        client_factory: Callable[..., Redis] = Redis.from_url,
        **client_options,
    ):
        self.url = url
        self.on_status = on_status
        self.heartbeat_interval = heartbeat_interval
        if reconnect_attempts is not None:
            client_options.setdefault("retry", reconnect_policy(self.handle_transport_error, reconnect_attempts))
            client_options.setdefault("retry_on_error", [RedisConnectionError, RedisTimeoutError])
        self.client = client_factory(
            url,
            encoding="utf-8",
            decode_responses=True,
            redis_connect_func=self.handle_connect,
            **client_options,
        )
        self.is_open = False
        self.given_up = False
        self._closing = False
        self._heartbeat: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Settings, on_status: StatusListener) -> "CacheConnector":
        return cls(
            settings.cache_url(),
            on_status,
            heartbeat_interval=settings.cache_heartbeat_interval,
            reconnect_attempts=settings.redis_reconnect_attempts,
            socket_connect_timeout=settings.redis_connect_timeout,
        )

    async def handle_connect(self, connection) -> None:
        """Runs for every new transport connection (initial and reconnects)."""
        await connection.on_connect()
        if self._closing or self.given_up:
            return
        logger.info("Connected to Redis!")
        self.on_status(Service.CACHE, True)

    def handle_transport_error(self, error: Exception) -> None:
        """Runs for every failed command or connect attempt, before redis-py backs off."""
        if self._closing or self.given_up:
            return
        logger.error("Redis Client Error: %s", error)
        self.on_status(Service.CACHE, False)

    async def _round_trip(self) -> str:
        await self.client.set(DEMO_KEY, DEMO_VALUE)
        message = await self.client.get(DEMO_KEY)
        if message != DEMO_VALUE:
            raise CacheRoundTripError(f"expected {DEMO_VALUE!r}, got {message!r}")
        return message

    async def connect(self, max_retries: int = 5, retry_delay: float = 5.0) -> bool:
        """Connect, validate with a write+read, then start the heartbeat. Never raises."""
        try:
            message = await retry_async(
                self._round_trip,
                attempts=max_retries,
                delay=constant_delay(retry_delay),
                label="Connecting to Redis",
            )
        except RetryExhausted as exc:
            logger.error("Could not connect to Redis after %d attempts", exc.attempts)
            self.on_status(Service.CACHE, False)
            return False
        logger.info("Message from Redis: %s", message)
        self.is_open = True
        self.on_status(Service.CACHE, True)
        if self.heartbeat_interval > 0:
            self._heartbeat = asyncio.create_task(self._watch(), name="redis-heartbeat")
        return True

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not await self.check():
                return

    async def check(self) -> bool:
        """
        One heartbeat. False means the client gave up: the transport retry budget
        ran out on a connection error, so no further reconnects are attempted.
        """
        try:
            await self.client.ping()
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error("Redis: Too many reconnection attempts (%s)", exc)
            self.given_up = True
            self.on_status(Service.CACHE, False)
            return False
        except RedisError as exc:
            logger.error("Redis Client Error: %s", exc)
            self.on_status(Service.CACHE, False)
        return True

    async def close(self) -> None:
        self._closing = True
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None
        # The transport may be connected even when the demo round-trip never succeeded
        await self.client.aclose()
        self.is_open = False
        logger.info("Redis connection closed")
