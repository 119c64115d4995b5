"""
Health state - up/down record for server, database and cache.
Challenge: Written by connectors running independently of the HTTP router, read per request.
Design: One instance per app (app.state.health), injected; no module-level globals.
Single event loop, so mutations never interleave and no lock is needed.
"""

import logging
import time
from collections.abc import Callable
from enum import Enum

from koronet.core.metrics import SERVICE_UP

logger = logging.getLogger(__name__)


class Service(str, Enum):
    SERVER = "server"
    DATABASE = "database"
    CACHE = "cache"


# Observer interface: connectors publish (service, up) events, HealthState subscribes
StatusListener = Callable[[Service, bool], None]


class HealthState:
    """Process-wide subsystem status, owned by the application."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._started = clock()
        self._status: dict[Service, bool] = {
            Service.SERVER: True,
            Service.DATABASE: False,
            Service.CACHE: False,
        }
        for service, up in self._status.items():
            SERVICE_UP.labels(service=service.value).set(int(up))

    def set_status(self, service: Service | str, up: bool) -> None:
        service = Service(service)
        previous = self._status[service]
        self._status[service] = up
        SERVICE_UP.labels(service=service.value).set(int(up))
        if previous != up:
            if up:
                logger.info("%s is up", service.value)
            else:
                logger.warning("%s is down", service.value)

    def snapshot(self) -> dict[str, bool]:
        return {service.value: up for service, up in self._status.items()}

    def is_healthy(self) -> bool:
        return all(self._status.values())

    def is_ready(self) -> bool:
        return self._status[Service.DATABASE] and self._status[Service.CACHE]

    def uptime(self) -> float:
        """Seconds since the state was created (process start for the app)."""
        return self._clock() - self._started
