"""Exception hierarchy for the liveness sidecar.

Startup failures are raised to the caller instead of terminating the
process, so the command line layer decides the exit status.
"""

from typing import Optional


class LivenessError(Exception):
    """Base exception for all liveness sidecar errors."""

    pass


class ConfigurationError(LivenessError, ValueError):
    """Raised when a configuration value is invalid."""

    pass


class StartupError(LivenessError):
    """Raised when the startup sequence cannot complete."""

    pass


class ConnectionConfigError(StartupError):
    """Raised when the CSI endpoint cannot be turned into a channel."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"Invalid CSI endpoint {endpoint!r}: {message}")


class MetricsRegistrationError(StartupError):
    """Raised when the liveness gauge collides with an existing metric."""

    def __init__(self, metric_name: str, cause: Optional[Exception] = None):
        self.metric_name = metric_name
        self.cause = cause
        super().__init__(f"Failed to register metric {metric_name}: {cause}")


class MetricsServerError(StartupError):
    """Raised when the metrics HTTP server cannot bind its address."""

    def __init__(self, host: str, port: int, cause: Optional[Exception] = None):
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"Failed to bind metrics server on {host}:{port}: {cause}")
