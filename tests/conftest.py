"""
Pytest configuration and fixtures for csiliveness tests.

Provides isolated Prometheus registries, free ports, a scripted probe client
and an in-process gRPC server implementing ``csi.v1.Identity/Probe``.
"""

import socket
import threading
import time
import urllib.error
import urllib.request
from concurrent import futures
from typing import Callable, Generator, List, Optional, Tuple

import grpc
import pytest
from prometheus_client import CollectorRegistry

from csiliveness.config import LivenessConfig
from csiliveness.metrics.gauge import HealthGauge
from csiliveness.rpc.messages import SERVICE_NAME, ProbeRequest, ProbeResponse, probe_response


# ============================================================================
# Helpers
# ============================================================================


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def scrape(url: str, timeout: float = 5.0) -> Tuple[int, str]:
    """GET ``url`` and return (status, body)."""
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            return response.status, response.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        return e.code, e.read().decode("utf-8")


class ScriptedProbeClient:
    """Probe client replaying scripted results.

    Each entry is True (ready), False (not ready) or an exception to raise.
    The last entry repeats once the script is exhausted.
    """

    def __init__(self, script: List[object], delay: float = 0.0) -> None:
        self.script = list(script)
        self.delay = delay
        self.calls = 0
        self.timeouts: List[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def probe(self, timeout: float) -> bool:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            index = min(self.calls, len(self.script) - 1)
            self.calls += 1
            self.timeouts.append(timeout)
        try:
            if self.delay:
                time.sleep(self.delay)
            result = self.script[index]
            if isinstance(result, BaseException):
                raise result
            return bool(result)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeIdentityBackend:
    """Scriptable implementation of the CSI Identity Probe RPC."""

    def __init__(self) -> None:
        self.ready: Optional[bool] = True
        self.error: Optional[grpc.StatusCode] = None
        self.hang = False
        self.release = threading.Event()
        self.calls = 0
        self.endpoint = ""
        self._lock = threading.Lock()

    def probe(self, request, context):
        with self._lock:
            self.calls += 1
        if self.hang:
            self.release.wait(timeout=10)
        if self.error is not None:
            context.abort(self.error, "injected failure")
        return probe_response(self.ready)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def isolated_registry() -> CollectorRegistry:
    """Fresh registry so tests never collide on csi_liveness."""
    return CollectorRegistry()


@pytest.fixture
def gauge(isolated_registry: CollectorRegistry) -> HealthGauge:
    """Health gauge registered with an isolated registry."""
    health_gauge = HealthGauge()
    health_gauge.register(isolated_registry)
    return health_gauge


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing.

    Returns:
        Available TCP port number.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        port = s.getsockname()[1]
    return port


@pytest.fixture
def identity_backend() -> Generator[FakeIdentityBackend, None, None]:
    """In-process gRPC server serving csi.v1.Identity/Probe on localhost."""
    backend = FakeIdentityBackend()
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=16))
    handler = grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            "Probe": grpc.unary_unary_rpc_method_handler(
                backend.probe,
                request_deserializer=ProbeRequest.FromString,
                response_serializer=ProbeResponse.SerializeToString,
            )
        },
    )
    server.add_generic_rpc_handlers((handler,))
    port = server.add_insecure_port("127.0.0.1:0")
    server.start()
    backend.endpoint = f"127.0.0.1:{port}"

    yield backend

    backend.release.set()
    server.stop(grace=None)


@pytest.fixture
def liveness_config(free_port: int, identity_backend: FakeIdentityBackend) -> LivenessConfig:
    """Fast-ticking configuration pointed at the fake backend."""
    return LivenessConfig(
        endpoint=identity_backend.endpoint,
        metrics_port=free_port,
        metrics_path="/metrics",
        poll_interval=0.05,
        probe_timeout=0.2,
        bind_ip="127.0.0.1",
        connect_retry_interval=0.1,
    )


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Polling helper: ``wait_until(predicate, timeout=5.0)``."""
    return wait_for


@pytest.fixture
def http_get() -> Callable[..., Tuple[int, str]]:
    """HTTP helper: ``http_get(url)`` returns (status, body)."""
    return scrape


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedProbeClient]:
    """Factory for ScriptedProbeClient instances."""
    return ScriptedProbeClient
