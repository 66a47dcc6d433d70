"""Metrics HTTP server for the Prometheus endpoint.

This module provides an HTTP server that exposes the liveness gauge at the
configured path. Each request is handled on its own thread and only renders
the registry, so scrapes never wait on a probe in flight.
"""

import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Tuple
from urllib.parse import urlsplit

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from csiliveness.config import LivenessConfig
from csiliveness.exceptions import MetricsServerError

logger = logging.getLogger(__name__)


class _MetricsHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_port = False


class _MetricsHTTPServerV6(_MetricsHTTPServer):
    address_family = socket.AF_INET6


class MetricsHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the metrics endpoint."""

    def __init__(self, path: str, registry: CollectorRegistry, *args, **kwargs):
        """Initialize handler.

        Args:
            path: The only path served.
            registry: Registry holding the liveness gauge to render.
        """
        self.metrics_path = path
        self.registry = registry
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:
        """Serve the gauge on the configured path, 404 elsewhere."""
        if urlsplit(self.path).path != self.metrics_path:
            self.send_error(404, "Not Found")
            return

        try:
            metrics_output = generate_latest(self.registry)
        except Exception as e:
            logger.error(f"Failed to render liveness metrics: {e}")
            self.send_error(500, "Internal Server Error")
            return

        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.send_header("Content-Length", str(len(metrics_output)))
        self.end_headers()
        self.wfile.write(metrics_output)

    def log_message(self, format: str, *args) -> None:
        """Route access logs to Python logging."""
        logger.debug(f"{self.address_string()} - {format % args}")


class MetricsServer:
    """HTTP server exposing the liveness gauge.

    ``bind`` claims the socket, ``serve_forever`` blocks the calling thread.
    ``start`` serves from a background thread instead.

    Example:
        >>> server = MetricsServer(LivenessConfig(metrics_port=9808), registry)
        >>> server.bind()
        >>> server.serve_forever()  # blocks until shutdown()
    """

    def __init__(self, config: LivenessConfig, registry: CollectorRegistry):
        """Create an unbound server.

        Args:
            config: Liveness configuration (bind address, port and path).
            registry: Registry holding the liveness gauge.
        """
        self.config = config
        self.registry = registry
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._serving = False

    def bind(self) -> None:
        """Bind the listening socket.

        Raises:
            MetricsServerError: If the address cannot be bound.
        """
        if self._httpd is not None:
            return

        host = self.config.bind_host
        port = self.config.metrics_port

        def make_handler(*args, **kwargs):
            return MetricsHTTPHandler(self.config.metrics_path, self.registry, *args, **kwargs)

        server_class = _MetricsHTTPServerV6 if ":" in host else _MetricsHTTPServer
        try:
            self._httpd = server_class((host, port), make_handler)
        except (OSError, OverflowError) as e:
            logger.error(f"Cannot bind metrics endpoint {host}:{port}: {e}")
            raise MetricsServerError(host, port, e) from e

        logger.info(f"Metrics server listening on {self.url}")

    def serve_forever(self) -> None:
        """Serve scrape requests on the calling thread until shutdown."""
        self.bind()
        self._serving = True
        try:
            self._httpd.serve_forever()
        finally:
            self._serving = False

    def start(self) -> None:
        """Serve scrape requests from a background thread."""
        if self._serving:
            logger.warning("Metrics endpoint already serving")
            return

        self.bind()
        self._serving = True
        self._thread = threading.Thread(
            target=self._serve_in_background, daemon=True, name="LivenessMetrics"
        )
        self._thread.start()

    def shutdown(self) -> None:
        """Stop serving and release the port."""
        if self._httpd is None:
            return

        logger.info(f"Closing metrics endpoint {self.url}")
        if self._serving:
            self._httpd.shutdown()
        self._httpd.server_close()
        self._httpd = None

        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def _serve_in_background(self) -> None:
        """Thread target for ``start``."""
        try:
            self._httpd.serve_forever()
        except Exception as e:
            logger.error(f"Metrics endpoint stopped unexpectedly: {e}")
        finally:
            self._serving = False

    @property
    def is_running(self) -> bool:
        return self._serving

    @property
    def server_address(self) -> Tuple[str, int]:
        """Bound (host, port); the port is resolved when 0 was configured."""
        if self._httpd is None:
            return self.config.bind_host, self.config.metrics_port
        host, port = self._httpd.server_address[:2]
        return host, port

    @property
    def url(self) -> str:
        """Full URL of the metrics endpoint."""
        host, port = self.server_address
        if ":" in host:
            host = f"[{host}]"
        return f"http://{host}:{port}{self.config.metrics_path}"
