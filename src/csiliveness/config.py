"""Liveness sidecar configuration module.

Configuration is immutable for the lifetime of the process. Values come from
built-in defaults, an optional YAML file, environment variables and finally
command line options, in increasing order of priority.
"""

import logging
import math
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import yaml

from csiliveness.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BIND_HOST = "0.0.0.0"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or Go-style duration strings as used by
    the CSI sidecar flags, e.g. ``"500ms"``, ``"3s"``, ``"1m"`` or ``"1h30m"``.

    Args:
        value: Duration as a number of seconds or a duration string.

    Returns:
        Duration in seconds.

    Raises:
        ConfigurationError: If the value cannot be parsed.

    Example:
        >>> parse_duration("1m30s")
        90.0
        >>> parse_duration(2)
        2.0
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        raise ConfigurationError("Invalid duration: empty string")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ConfigurationError(f"Invalid duration: {value!r}")
        return seconds

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    return total


@dataclass(frozen=True)
class LivenessConfig:
    """Configuration for the probe loop and the metrics endpoint."""

    endpoint: str = "unix:///csi/csi.sock"
    metrics_port: int = 8080
    metrics_path: str = "/metrics"
    poll_interval: float = 60.0  # seconds
    probe_timeout: float = 3.0  # seconds
    bind_ip: str = ""  # empty binds all interfaces
    connect_retry_interval: float = 10.0  # seconds

    @classmethod
    def from_env(cls) -> "LivenessConfig":
        """Create configuration from environment variables."""
        return cls(**_from_environ(_LIVENESS_ENV))

    @property
    def bind_host(self) -> str:
        """Address the metrics server binds to."""
        return self.bind_ip or DEFAULT_BIND_HOST

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if not self.endpoint:
            raise ConfigurationError("CSI endpoint must not be empty")
        if not (1 <= self.metrics_port <= 65535):
            raise ConfigurationError(f"Invalid metrics port: {self.metrics_port}")
        if not self.metrics_path.startswith("/"):
            raise ConfigurationError(f"Metrics path must start with /: {self.metrics_path}")
        if self.poll_interval <= 0:
            raise ConfigurationError(f"Poll interval must be positive: {self.poll_interval}")
        if self.probe_timeout <= 0:
            raise ConfigurationError(f"Probe timeout must be positive: {self.probe_timeout}")
        if self.connect_retry_interval <= 0:
            raise ConfigurationError(
                f"Connect retry interval must be positive: {self.connect_retry_interval}"
            )

        if self.probe_timeout > self.poll_interval:
            logger.warning(
                f"Probe timeout {self.probe_timeout}s exceeds poll interval "
                f"{self.poll_interval}s, ticks will be skipped while a probe is pending"
            )


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for diagnostic logging."""

    level: str = "INFO"
    format: str = "text"  # or "json"
    output_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        return cls(**_from_environ(_LOGGING_ENV))

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ConfigurationError(
                f"Invalid log level: {self.level}. Must be one of {valid_levels}"
            )
        if self.format not in ("json", "text"):
            raise ConfigurationError(
                f"Invalid log format: {self.format}. Must be 'json' or 'text'"
            )


@dataclass(frozen=True)
class ServiceConfig:
    """Complete sidecar configuration.

    Example:
        >>> config = ServiceConfig.from_env()
        >>> config.validate()
        >>> print(config.liveness.endpoint)
        unix:///csi/csi.sock

    A YAML file mirrors the dataclass layout::

        liveness:
          endpoint: unix:///csi/csi.sock
          metrics_port: 9808
          poll_interval: 30s
          probe_timeout: 3s
        logging:
          level: INFO
          format: json
    """

    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Create complete configuration from environment variables.

        Environment Variables:
            CSI_LIVENESS_ENDPOINT: CSI endpoint (default: unix:///csi/csi.sock)
            CSI_LIVENESS_METRICS_PORT: Metrics HTTP port (default: 8080)
            CSI_LIVENESS_METRICS_PATH: Metrics path (default: /metrics)
            CSI_LIVENESS_POLL_TIME: Probe interval (default: 60s)
            CSI_LIVENESS_TIMEOUT: Per-probe deadline (default: 3s)
            CSI_LIVENESS_CONNECT_RETRY: Connection progress log interval (default: 10s)
            CSI_LIVENESS_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
            CSI_LIVENESS_LOG_FORMAT: json or text (default: text)
            CSI_LIVENESS_LOG_FILE: Log file path (optional, defaults to stderr)
            POD_IP: Metrics bind address (optional, defaults to 0.0.0.0)
        """
        return cls(liveness=LivenessConfig.from_env(), logging=LoggingConfig.from_env())

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ServiceConfig":
        """Load configuration from a YAML file.

        Environment variables (see ``from_env``) take precedence over the
        file. Keys set in neither keep their defaults.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {path} must be a mapping")

        liveness_data = _section(data, "liveness")
        logging_data = _section(data, "logging")

        for key in ("poll_interval", "probe_timeout", "connect_retry_interval"):
            if key in liveness_data:
                liveness_data[key] = parse_duration(liveness_data[key])
        if "level" in logging_data:
            logging_data["level"] = str(logging_data["level"]).upper()

        liveness_data.update(_from_environ(_LIVENESS_ENV))
        logging_data.update(_from_environ(_LOGGING_ENV))

        try:
            return cls(
                liveness=LivenessConfig(**liveness_data),
                logging=LoggingConfig(**logging_data),
            )
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key in {path}: {e}") from e

    def override(self, **liveness_overrides: Any) -> "ServiceConfig":
        """Return a copy with the given non-None liveness values replaced."""
        changes = {k: v for k, v in liveness_overrides.items() if v is not None}
        return replace(self, liveness=replace(self.liveness, **changes))

    def validate(self) -> None:
        """Validate all sub-configurations."""
        self.liveness.validate()
        self.logging.validate()


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid integer: {value!r}") from e


# field name -> (environment variable, converter)
_LIVENESS_ENV: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "endpoint": ("CSI_LIVENESS_ENDPOINT", str),
    "metrics_port": ("CSI_LIVENESS_METRICS_PORT", _parse_int),
    "metrics_path": ("CSI_LIVENESS_METRICS_PATH", str),
    "poll_interval": ("CSI_LIVENESS_POLL_TIME", parse_duration),
    "probe_timeout": ("CSI_LIVENESS_TIMEOUT", parse_duration),
    "bind_ip": ("POD_IP", str),
    "connect_retry_interval": ("CSI_LIVENESS_CONNECT_RETRY", parse_duration),
}
_LOGGING_ENV: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "level": ("CSI_LIVENESS_LOG_LEVEL", str.upper),
    "format": ("CSI_LIVENESS_LOG_FORMAT", str.lower),
    "output_file": ("CSI_LIVENESS_LOG_FILE", str),
}


def _from_environ(table: Dict[str, Tuple[str, Callable[[str], Any]]]) -> Dict[str, Any]:
    """Values for the fields whose environment variable is set."""
    values = {}
    for field_name, (env_name, convert) in table.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            values[field_name] = convert(raw)
        except ConfigurationError as e:
            raise ConfigurationError(f"{env_name}: {e}") from e
    return values


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return dict(section)
