"""Liveness sidecar for CSI plugins.

Probes a CSI plugin's Identity service on a fixed interval and exports the
result as the ``csi_liveness`` Prometheus gauge.

Example:
    >>> from csiliveness import LivenessConfig, LivenessService
    >>> service = LivenessService(LivenessConfig(endpoint="unix:///csi/csi.sock"))
    >>> service.run()
"""

from csiliveness.config import LivenessConfig, LoggingConfig, ServiceConfig
from csiliveness.service import LivenessService

__version__ = "0.1.0"

__all__ = [
    "LivenessConfig",
    "LivenessService",
    "LoggingConfig",
    "ServiceConfig",
]
