"""Fixed-rate scheduler driving the prober on a dedicated thread."""

import logging
import threading
import time
from typing import Optional

from csiliveness.exceptions import ConfigurationError
from csiliveness.probe.prober import Prober

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs one probe cycle per tick until stopped.

    Ticks are ``interval`` seconds apart, the first one ``interval`` after
    the loop starts. A cycle is only started after the previous one returned;
    ticks missed by a slow cycle are dropped.

    Example:
        >>> scheduler = Scheduler(prober, interval=60.0)
        >>> scheduler.start()
        >>> # ... later, on shutdown
        >>> scheduler.stop()
    """

    def __init__(self, prober: Prober, interval: float) -> None:
        if interval <= 0:
            raise ConfigurationError(f"Poll interval must be positive: {interval}")

        self.prober = prober
        self.interval = interval
        self.cycles_completed = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run(self, stop_event: threading.Event) -> None:
        """Tick until ``stop_event`` is set.

        Blocks the calling thread. A probe in flight when the event is set
        finishes (bounded by the probe timeout) before the loop returns.
        """
        logger.info(f"Probing every {self.interval}s with a {self.prober.timeout}s timeout")
        next_tick = time.monotonic() + self.interval

        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            self.prober.run_cycle()
            self.cycles_completed += 1

            next_tick += self.interval
            now = time.monotonic()
            if next_tick <= now:
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval
                logger.warning(f"Probe cycle overran the poll interval, skipped {missed} tick(s)")

        logger.info("Probe loop stopped")

    def start(self) -> None:
        """Run the loop on a background thread."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run, args=(self._stop_event,), daemon=True, name="LivenessProbe"
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for it.

        Args:
            timeout: Seconds to wait for the thread. Defaults to the probe
                timeout plus one second.
        """
        self._stop_event.set()
        if self._thread is None:
            return

        if timeout is None:
            timeout = self.prober.timeout + 1.0
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"Probe loop did not stop within {timeout:.1f}s")
        else:
            self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
