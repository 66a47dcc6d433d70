"""Liveness service wiring the connection, probe loop and metrics endpoint.

Startup order:

1. connect to the CSI plugin (may wait indefinitely),
2. register the ``csi_liveness`` gauge,
3. bind the metrics server,
4. launch the probe loop,
5. serve scrapes on the calling thread.

Each failing step raises a ``StartupError`` and undoes the earlier steps, so
no probe cycle ever runs when startup fails.
"""

import logging
import threading
from typing import Callable, Optional

import grpc
from prometheus_client import CollectorRegistry

from csiliveness.config import LivenessConfig
from csiliveness.exceptions import StartupError
from csiliveness.metrics.gauge import HealthGauge
from csiliveness.metrics.server import MetricsServer
from csiliveness.probe.prober import ProbeClient, Prober
from csiliveness.probe.scheduler import Scheduler
from csiliveness.rpc.client import IdentityClient
from csiliveness.rpc.connection import connect

logger = logging.getLogger(__name__)

Connector = Callable[..., grpc.Channel]
ClientFactory = Callable[[grpc.Channel], ProbeClient]


class LivenessService:
    """The liveness sidecar.

    Example:
        >>> service = LivenessService(LivenessConfig(endpoint="unix:///csi/csi.sock"))
        >>> service.run()  # blocks until shutdown() or a signal
    """

    def __init__(
        self,
        config: LivenessConfig,
        registry: Optional[CollectorRegistry] = None,
        connector: Connector = connect,
        client_factory: ClientFactory = IdentityClient,
    ) -> None:
        """Initialize the service.

        Args:
            config: Liveness configuration.
            registry: Registry the gauge is exported from. A fresh one is
                created when omitted.
            connector: Opens the channel to the plugin.
            client_factory: Builds the probe client from the channel.
        """
        self.config = config
        self.registry = registry if registry is not None else CollectorRegistry()
        self.gauge = HealthGauge()
        self._connector = connector
        self._client_factory = client_factory
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._channel: Optional[grpc.Channel] = None
        self._server: Optional[MetricsServer] = None
        self._scheduler: Optional[Scheduler] = None
        self._registered = False

    def start(self) -> None:
        """Run the startup sequence up to and including the probe loop.

        Raises:
            ConfigurationError: If the configuration is invalid.
            StartupError: If connecting, registering the gauge or binding
                the metrics server fails.
        """
        self.config.validate()
        logger.info("Liveness running")

        if not self.config.bind_ip:
            logger.warning(
                f"Missing POD_IP env var, defaulting to {self.config.bind_host}"
            )

        channel = self._connector(
            self.config.endpoint,
            retry_interval=self.config.connect_retry_interval,
            stop_event=self._stop_event,
        )

        with self._lock:
            if self._stop_event.is_set():
                channel.close()
                raise StartupError(f"Connection to {self.config.endpoint} aborted")
            self._channel = channel

            try:
                self.gauge.register(self.registry)
                self._registered = True

                self._server = MetricsServer(self.config, self.registry)
                self._server.bind()
            except Exception:
                self._stop_event.set()
                self._teardown()
                raise

            prober = Prober(
                self._client_factory(self._channel), self.gauge, self.config.probe_timeout
            )
            self._scheduler = Scheduler(prober, self.config.poll_interval)
            self._scheduler.start()

    def serve_forever(self) -> None:
        """Serve scrapes on the calling thread until shutdown."""
        if self._server is None:
            raise RuntimeError("LivenessService not started")
        self._server.serve_forever()

    def run(self) -> None:
        """Start, serve until interrupted, then shut down."""
        self.start()
        try:
            if not self._stop_event.is_set():
                self.serve_forever()
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Stop the metrics server and probe loop and close the channel.

        Safe to call from another thread, also while ``start`` is still
        connecting; ``start`` then raises ``StartupError``.
        """
        self._stop_event.set()
        with self._lock:
            self._teardown()

    def _teardown(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None

        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

        if self._registered:
            self.gauge.unregister(self.registry)
            self._registered = False

        if self._channel is not None:
            self._channel.close()
            self._channel = None

    @property
    def metrics_server(self) -> Optional[MetricsServer]:
        return self._server

    @property
    def scheduler(self) -> Optional[Scheduler]:
        return self._scheduler
