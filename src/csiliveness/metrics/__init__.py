"""Prometheus exposition of the plugin's liveness.

Example:
    >>> from prometheus_client import CollectorRegistry
    >>> from csiliveness.metrics import HealthGauge, MetricsServer
    >>>
    >>> registry = CollectorRegistry()
    >>> gauge = HealthGauge()
    >>> gauge.register(registry)
    >>> server = MetricsServer(config, registry)
    >>> server.start()
"""

from csiliveness.metrics.gauge import METRIC_NAME, HealthGauge, HealthState
from csiliveness.metrics.server import MetricsServer

__all__ = [
    "METRIC_NAME",
    "HealthGauge",
    "HealthState",
    "MetricsServer",
]
