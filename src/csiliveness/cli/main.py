"""Command line entry point for the liveness sidecar.

Example:
    $ csi-liveness --endpoint unix:///csi/csi.sock --metricsport 9808 --polltime 30s

Environment Variables:
    CSI_LIVENESS_ENDPOINT, CSI_LIVENESS_METRICS_PORT, CSI_LIVENESS_METRICS_PATH,
    CSI_LIVENESS_POLL_TIME, CSI_LIVENESS_TIMEOUT, CSI_LIVENESS_CONFIG,
    CSI_LIVENESS_LOG_LEVEL, CSI_LIVENESS_LOG_FORMAT, POD_IP
"""

import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import click

from csiliveness.config import ServiceConfig, parse_duration
from csiliveness.exceptions import ConfigurationError, StartupError
from csiliveness.logging import LoggerManager
from csiliveness.service import LivenessService

logger = logging.getLogger(__name__)


class DurationType(click.ParamType):
    """Click parameter accepting seconds or Go-style durations (``3s``, ``1m``)."""

    name = "duration"

    def convert(self, value: Any, param: Optional[click.Parameter], ctx: Optional[click.Context]) -> float:
        if isinstance(value, float):
            return value
        try:
            return parse_duration(value)
        except ConfigurationError as e:
            self.fail(str(e), param, ctx)


DURATION = DurationType()


@click.command()
@click.option(
    "--endpoint",
    envvar="CSI_LIVENESS_ENDPOINT",
    help="CSI endpoint, e.g. unix:///csi/csi.sock (default: unix:///csi/csi.sock)",
)
@click.option(
    "--metricsport",
    "metrics_port",
    type=int,
    envvar="CSI_LIVENESS_METRICS_PORT",
    help="TCP port for the liveness metrics endpoint (default: 8080)",
)
@click.option(
    "--metricspath",
    "metrics_path",
    envvar="CSI_LIVENESS_METRICS_PATH",
    help="Path of the liveness metrics endpoint (default: /metrics)",
)
@click.option(
    "--polltime",
    "poll_interval",
    type=DURATION,
    envvar="CSI_LIVENESS_POLL_TIME",
    help="Time between probes, e.g. 60s (default: 60s)",
)
@click.option(
    "--timeout",
    "probe_timeout",
    type=DURATION,
    envvar="CSI_LIVENESS_TIMEOUT",
    help="Deadline of a single probe, e.g. 3s (default: 3s)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="CSI_LIVENESS_CONFIG",
    help="Path to a YAML configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="CSI_LIVENESS_LOG_LEVEL",
    help="Log level (default: INFO)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"]),
    envvar="CSI_LIVENESS_LOG_FORMAT",
    help="Log output format (default: text)",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(
    endpoint: Optional[str],
    metrics_port: Optional[int],
    metrics_path: Optional[str],
    poll_interval: Optional[float],
    probe_timeout: Optional[float],
    config_path: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
    debug: bool,
) -> None:
    """Probe a CSI plugin and export its liveness as a Prometheus gauge.

    Calls the plugin's Identity Probe RPC every --polltime and serves the
    result as csi_liveness (1 = ready, 0 = not ready or unreachable) on
    --metricsport at --metricspath.

    Configuration Priority (highest to lowest):
        1. CLI options
        2. Environment variables
        3. Configuration file (--config)
        4. Built-in defaults
    """
    try:
        config = ServiceConfig.from_yaml(config_path) if config_path else ServiceConfig.from_env()
        config = config.override(
            endpoint=endpoint,
            metrics_port=metrics_port,
            metrics_path=metrics_path,
            poll_interval=poll_interval,
            probe_timeout=probe_timeout,
        )
        if debug:
            log_level = "DEBUG"
        logging_changes = {"level": log_level.upper() if log_level else None, "format": log_format}
        config = replace(
            config,
            logging=replace(
                config.logging, **{k: v for k, v in logging_changes.items() if v is not None}
            ),
        )
        config.validate()
    except ConfigurationError as e:
        click.echo(click.style(f"Configuration error: {e}", fg="red"), err=True)
        sys.exit(1)

    logger_manager = LoggerManager(config.logging)
    logger_manager.configure()
    logger_manager.add_extra_field("component", "csi-liveness")

    service = LivenessService(config.liveness)

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        sys.exit(0)

    previous_handlers = {
        sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    try:
        service.run()
    except StartupError as e:
        logger.error(str(e))
        click.echo(click.style(f"Failed to start: {e}", fg="red"), err=True)
        sys.exit(1)
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)
        logger_manager.shutdown()
