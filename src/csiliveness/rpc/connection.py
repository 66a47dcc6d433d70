"""Connection handle to the CSI plugin.

The channel is opened once at startup and kept for the process lifetime.
gRPC reconnects on its own, so ``connect`` only has to wait for the first
successful connection and reject endpoints that can never work.
"""

import logging
import threading
from typing import Optional, Sequence, Tuple

import grpc

from csiliveness.exceptions import ConnectionConfigError, StartupError

logger = logging.getLogger(__name__)

# gRPC name-resolver schemes accepted verbatim
_GRPC_SCHEMES = ("unix:", "unix-abstract:", "dns:", "ipv4:", "ipv6:")


def normalize_endpoint(endpoint: str) -> str:
    """Turn a CSI endpoint into a gRPC target.

    Args:
        endpoint: ``unix:///path``, a bare socket path, a gRPC target with a
            resolver scheme, or ``host:port``.

    Returns:
        The gRPC channel target.

    Raises:
        ConnectionConfigError: If the endpoint cannot name a gRPC target.

    Example:
        >>> normalize_endpoint("/csi/csi.sock")
        'unix:///csi/csi.sock'
    """
    target = (endpoint or "").strip()
    if not target:
        raise ConnectionConfigError(endpoint, "endpoint is empty")

    if target.startswith("/"):
        return f"unix://{target}"
    if target.startswith(_GRPC_SCHEMES):
        if target.split(":", 1)[1].strip("/") == "":
            raise ConnectionConfigError(endpoint, "missing address after scheme")
        return target
    if "://" in target:
        scheme = target.split("://", 1)[0]
        raise ConnectionConfigError(endpoint, f"unsupported scheme '{scheme}'")

    host, sep, port = target.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConnectionConfigError(endpoint, "expected unix:///path or host:port")
    return target


def connect(
    endpoint: str,
    retry_interval: float = 10.0,
    stop_event: Optional[threading.Event] = None,
    options: Optional[Sequence[Tuple[str, object]]] = None,
) -> grpc.Channel:
    """Open a channel to the CSI plugin and wait until it is connected.

    Waits indefinitely, logging progress every ``retry_interval`` seconds.
    A set ``stop_event`` aborts the wait at the next progress tick.

    Args:
        endpoint: CSI endpoint, see ``normalize_endpoint``.
        retry_interval: Seconds between progress messages.
        stop_event: Optional event that aborts the wait.
        options: Extra gRPC channel options.

    Returns:
        A connected gRPC channel.

    Raises:
        ConnectionConfigError: If the endpoint is misconfigured.
        StartupError: If the wait was aborted through ``stop_event``.
    """
    target = normalize_endpoint(endpoint)

    try:
        channel = grpc.insecure_channel(target, options=list(options or ()))
    except ValueError as e:
        raise ConnectionConfigError(endpoint, str(e)) from e

    logger.info(f"Connecting to CSI driver at {target}")
    ready = grpc.channel_ready_future(channel)
    while True:
        try:
            ready.result(timeout=retry_interval)
            break
        except grpc.FutureTimeoutError:
            if stop_event is not None and stop_event.is_set():
                ready.cancel()
                channel.close()
                raise StartupError(f"Connection to {target} aborted")
            logger.warning(f"Still connecting to {target}")

    logger.info(f"Connected to CSI driver at {target}")
    return channel
