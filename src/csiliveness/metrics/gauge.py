"""Health gauge shared by the probe loop and the metrics endpoint.

The gauge is the only mutable state shared between threads. The prober is
its single writer; scrapes and tests read it.
"""

import logging
import threading
from enum import Enum

from prometheus_client import CollectorRegistry, Gauge

from csiliveness.exceptions import MetricsRegistrationError

logger = logging.getLogger(__name__)

METRIC_NAME = "csi_liveness"


class HealthState(Enum):
    """Observable health values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

    @property
    def metric_value(self) -> int:
        """Value exported for this state."""
        return 1 if self is HealthState.HEALTHY else 0


class HealthGauge:
    """Lock-guarded health cell backed by the ``csi_liveness`` gauge.

    Starts as UNHEALTHY so a plugin that was never probed is not reported
    live.

    Example:
        >>> registry = CollectorRegistry()
        >>> gauge = HealthGauge()
        >>> gauge.register(registry)
        >>> gauge.set(HealthState.HEALTHY)
        >>> gauge.get()
        <HealthState.HEALTHY: 'healthy'>
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = HealthState.UNHEALTHY
        self._gauge = Gauge(
            name="liveness",
            namespace="csi",
            documentation="Liveness Probe",
            registry=None,
        )
        self._gauge.set(self._state.metric_value)

    def register(self, registry: CollectorRegistry) -> None:
        """Register the gauge with a collector registry.

        Raises:
            MetricsRegistrationError: If the registry already exports
                ``csi_liveness``.
        """
        try:
            registry.register(self._gauge)
        except ValueError as e:
            raise MetricsRegistrationError(METRIC_NAME, e) from e
        logger.debug(f"Registered metric {METRIC_NAME}")

    def unregister(self, registry: CollectorRegistry) -> None:
        """Remove the gauge from a collector registry."""
        registry.unregister(self._gauge)

    def set(self, state: HealthState) -> None:
        """Record the outcome of the most recently completed probe."""
        with self._lock:
            self._state = state
            self._gauge.set(state.metric_value)

    def get(self) -> HealthState:
        """Return the most recently recorded state."""
        with self._lock:
            return self._state

    @property
    def is_healthy(self) -> bool:
        return self.get() is HealthState.HEALTHY
