"""
Prometheus metrics - exposed at /metrics (monitoring & observability).
"""

from prometheus_client import Gauge

SERVICE_UP = Gauge(
    "koronet_service_up",
    "1 when the subsystem is up, 0 when it is down.",
    ["service"],
)
