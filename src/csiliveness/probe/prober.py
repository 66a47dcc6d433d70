"""Single probe cycle against the CSI plugin."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import grpc

from csiliveness.exceptions import ConfigurationError
from csiliveness.metrics.gauge import HealthGauge, HealthState

logger = logging.getLogger(__name__)


class ProbeOutcome(Enum):
    """Outcome of one probe cycle."""

    READY = "ready"
    NOT_READY = "not-ready"
    ERROR = "error"

    @property
    def health_state(self) -> HealthState:
        return HealthState.HEALTHY if self is ProbeOutcome.READY else HealthState.UNHEALTHY


class ProbeClient(Protocol):
    """Anything that can ask the plugin whether it is ready."""

    def probe(self, timeout: float) -> bool: ...


@dataclass
class ProbeCycle:
    """One bounded probe attempt."""

    started: float
    deadline: float
    outcome: Optional[ProbeOutcome] = None
    finished: Optional[float] = None

    @property
    def duration(self) -> Optional[float]:
        if self.finished is None:
            return None
        return self.finished - self.started


class Prober:
    """Runs probe cycles and records their outcome in the health gauge.

    A cycle never retries and never raises: every failure is logged and
    recorded as UNHEALTHY, so the scheduling loop cannot be interrupted by
    the plugin.

    Example:
        >>> prober = Prober(IdentityClient(channel), gauge, timeout=3.0)
        >>> prober.run_cycle()
        <ProbeOutcome.READY: 'ready'>
    """

    def __init__(self, client: ProbeClient, gauge: HealthGauge, timeout: float) -> None:
        """Initialize prober.

        Args:
            client: Client issuing the probe call.
            gauge: Health gauge this prober writes.
            timeout: Per-cycle deadline in seconds.

        Raises:
            ConfigurationError: If timeout is not positive.
        """
        if timeout <= 0:
            raise ConfigurationError(f"Probe timeout must be positive: {timeout}")

        self.client = client
        self.gauge = gauge
        self.timeout = timeout
        self.last_cycle: Optional[ProbeCycle] = None

    def run_cycle(self) -> ProbeOutcome:
        """Probe the plugin once and update the gauge.

        Returns:
            Outcome of the cycle.
        """
        started = time.monotonic()
        cycle = ProbeCycle(started=started, deadline=started + self.timeout)

        logger.info("Sending probe request to CSI driver")
        cycle.outcome = self._probe()
        cycle.finished = time.monotonic()

        self.gauge.set(cycle.outcome.health_state)
        self.last_cycle = cycle
        return cycle.outcome

    def _probe(self) -> ProbeOutcome:
        try:
            ready = self.client.probe(timeout=self.timeout)
        except grpc.RpcError as e:
            if isinstance(e, grpc.Call):
                logger.error(f"Health check failed: {e.code().name}: {e.details()}")
            else:
                logger.error(f"Health check failed: {e}")
            return ProbeOutcome.ERROR
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return ProbeOutcome.ERROR

        if not ready:
            logger.error("Driver responded but is not ready")
            return ProbeOutcome.NOT_READY

        logger.info("Health check succeeded")
        return ProbeOutcome.READY
