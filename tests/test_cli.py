"""Tests for the csi-liveness command line."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from csiliveness.cli import cli
from csiliveness.exceptions import MetricsServerError

ENV_VARS = (
    "CSI_LIVENESS_ENDPOINT",
    "CSI_LIVENESS_METRICS_PORT",
    "CSI_LIVENESS_METRICS_PATH",
    "CSI_LIVENESS_POLL_TIME",
    "CSI_LIVENESS_TIMEOUT",
    "CSI_LIVENESS_CONNECT_RETRY",
    "CSI_LIVENESS_CONFIG",
    "CSI_LIVENESS_LOG_LEVEL",
    "CSI_LIVENESS_LOG_FORMAT",
    "CSI_LIVENESS_LOG_FILE",
    "POD_IP",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def service_cls():
    """Replace the service so no sockets are opened."""
    with patch("csiliveness.cli.main.LivenessService") as mock_cls:
        yield mock_cls


def started_config(service_cls):
    service_cls.assert_called_once()
    return service_cls.call_args[0][0]


class TestOptions:
    """Option and environment handling."""

    def test_defaults(self, runner, service_cls):
        """Without options the built-in defaults apply."""
        result = runner.invoke(cli, [])

        assert result.exit_code == 0, result.output
        config = started_config(service_cls)
        assert config.endpoint == "unix:///csi/csi.sock"
        assert config.metrics_port == 8080
        assert config.metrics_path == "/metrics"
        assert config.poll_interval == 60.0
        assert config.probe_timeout == 3.0
        service_cls.return_value.run.assert_called_once()

    def test_command_line_options(self, runner, service_cls):
        """Flags map onto the liveness configuration."""
        result = runner.invoke(
            cli,
            [
                "--endpoint", "unix:///plugin/csi.sock",
                "--metricsport", "9808",
                "--metricspath", "/healthz",
                "--polltime", "30s",
                "--timeout", "500ms",
            ],
        )

        assert result.exit_code == 0, result.output
        config = started_config(service_cls)
        assert config.endpoint == "unix:///plugin/csi.sock"
        assert config.metrics_port == 9808
        assert config.metrics_path == "/healthz"
        assert config.poll_interval == 30.0
        assert config.probe_timeout == pytest.approx(0.5)

    def test_environment_variables(self, runner, service_cls, monkeypatch):
        """Environment variables feed the same options."""
        monkeypatch.setenv("CSI_LIVENESS_ENDPOINT", "10.0.0.5:9000")
        monkeypatch.setenv("CSI_LIVENESS_POLL_TIME", "1m")
        monkeypatch.setenv("POD_IP", "10.0.0.7")

        result = runner.invoke(cli, [])

        assert result.exit_code == 0, result.output
        config = started_config(service_cls)
        assert config.endpoint == "10.0.0.5:9000"
        assert config.poll_interval == 60.0
        assert config.bind_ip == "10.0.0.7"

    def test_options_override_config_file(self, runner, service_cls, tmp_path):
        """Flags win over values from --config."""
        config_file = tmp_path / "liveness.yaml"
        config_file.write_text(
            "liveness:\n"
            "  endpoint: unix:///from/file.sock\n"
            "  metrics_port: 9100\n"
            "  poll_interval: 10s\n"
        )

        result = runner.invoke(cli, ["-c", str(config_file), "--metricsport", "9200"])

        assert result.exit_code == 0, result.output
        config = started_config(service_cls)
        assert config.endpoint == "unix:///from/file.sock"
        assert config.metrics_port == 9200
        assert config.poll_interval == 10.0

    def test_environment_applies_with_config_file(self, runner, service_cls, tmp_path, monkeypatch):
        """Variables without a flag still override the config file."""
        config_file = tmp_path / "liveness.yaml"
        config_file.write_text("liveness:\n  poll_interval: 10s\n")
        log_file = tmp_path / "liveness.log"
        monkeypatch.setenv("CSI_LIVENESS_CONNECT_RETRY", "2s")
        monkeypatch.setenv("CSI_LIVENESS_LOG_FILE", str(log_file))

        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 0, result.output
        config = started_config(service_cls)
        assert config.poll_interval == 10.0
        assert config.connect_retry_interval == 2.0
        assert log_file.exists()

    def test_invalid_duration(self, runner, service_cls):
        """Unparseable durations are usage errors."""
        result = runner.invoke(cli, ["--polltime", "soon"])

        assert result.exit_code == 2
        assert "Invalid duration" in result.output
        service_cls.assert_not_called()


class TestErrors:
    """Exit codes on failure."""

    def test_invalid_configuration(self, runner, service_cls):
        """Validation failures exit with status 1."""
        result = runner.invoke(cli, ["--metricspath", "metrics"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        service_cls.assert_not_called()

    def test_bad_config_file(self, runner, service_cls, tmp_path):
        """Unknown keys in the YAML file are rejected."""
        config_file = tmp_path / "liveness.yaml"
        config_file.write_text("liveness:\n  pollinterval: 10s\n")

        result = runner.invoke(cli, ["--config", str(config_file)])

        assert result.exit_code == 1
        assert "Unknown configuration key" in result.output

    def test_startup_failure(self, runner, service_cls):
        """Startup errors are reported and exit with status 1."""
        service_cls.return_value.run.side_effect = MetricsServerError(
            "0.0.0.0", 8080, OSError("Address already in use")
        )

        result = runner.invoke(cli, [])

        assert result.exit_code == 1
        assert "Failed to start" in result.output
