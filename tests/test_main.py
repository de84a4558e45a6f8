"""Unit tests for the main entry point.

Tests the main() function including:
- CLI argument parsing and mutually exclusive modes
- Log level priority (CLI > env > config)
- Database initialization and shutdown
- Exit code handling
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from alert_engine.config.environment import EnvironmentConfig
from alert_engine.config.exceptions import ConfigurationError
from alert_engine.config.models import AppConfig, LoggingConfig
from alert_engine.engine import EventOutcome, RescanResult
from alert_engine.main import build_parser, load_runtime_config, main


@pytest.fixture
def configs():
    app_config = AppConfig(logging=LoggingConfig(level="WARNING"))
    env_config = EnvironmentConfig(database_url="sqlite:///:memory:")
    return app_config, env_config


@pytest.fixture
def runtime(configs):
    """Patch everything main() wires up and yield the mocks."""
    with patch("alert_engine.main.load_config", return_value=configs) as load, patch(
        "alert_engine.main.configure_logging"
    ) as configure, patch("alert_engine.main.init_database") as init_db, patch(
        "alert_engine.main.close_database"
    ) as close_db, patch("alert_engine.main.AlertEngineService") as service_class:
        service = MagicMock()
        service_class.return_value = service
        yield {
            "load_config": load,
            "configure_logging": configure,
            "init_database": init_db,
            "close_database": close_db,
            "service_class": service_class,
            "service": service,
        }


class TestLoadRuntimeConfig:
    """Test suite for load_runtime_config."""

    def test_config_level_used_by_default(self, configs):
        with patch("alert_engine.main.load_config", return_value=configs):
            _, env_config = load_runtime_config(Path("config.yaml"), None)

        assert env_config.log_level == "WARNING"

    def test_env_level_beats_config(self, configs):
        configs[1].log_level = "ERROR"
        with patch("alert_engine.main.load_config", return_value=configs):
            _, env_config = load_runtime_config(Path("config.yaml"), None)

        assert env_config.log_level == "ERROR"

    def test_cli_level_beats_env(self, configs):
        configs[1].log_level = "ERROR"
        with patch("alert_engine.main.load_config", return_value=configs):
            _, env_config = load_runtime_config(Path("config.yaml"), "DEBUG")

        assert env_config.log_level == "DEBUG"


class TestParser:
    """Tests for CLI argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config == Path("config.yaml")
        assert not (args.manual_run or args.rescan_now or args.redrive_dead_letters)
        assert args.log_level is None

    def test_modes_are_mutually_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--manual-run", "--rescan-now"])

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])


class TestMain:
    """Test suite for main()."""

    def test_manual_run_success(self, runtime):
        runtime["service"].run_once.return_value = [
            EventOutcome(event_id="e-1", listing_id="ad-1", claimed=["c-1"])
        ]

        exit_code = main(["--manual-run", "--config", "custom.yaml"])

        assert exit_code == 0
        runtime["load_config"].assert_called_once_with(Path("custom.yaml"))
        runtime["configure_logging"].assert_called_once_with(
            level="WARNING", format_type="key-value", environment="local"
        )
        runtime["init_database"].assert_called_once_with("sqlite:///:memory:", busy_timeout_seconds=5.0)
        runtime["service"].run_once.assert_called_once_with()
        runtime["service"].stop.assert_called_once_with()
        runtime["close_database"].assert_called_once_with()

    def test_manual_run_with_failures(self, runtime):
        runtime["service"].run_once.return_value = [
            EventOutcome(event_id="e-1", listing_id="ad-1", error="database is locked", requeued=True)
        ]

        assert main(["--manual-run"]) == 1

    def test_rescan_now(self, runtime):
        runtime["service"].rescan_now.return_value = RescanResult(listings_scanned=3, claimed=1)

        assert main(["--rescan-now"]) == 0
        runtime["service"].rescan_now.assert_called_once_with()

    def test_rescan_with_errors(self, runtime):
        runtime["service"].rescan_now.return_value = RescanResult(errors=2)

        assert main(["--rescan-now"]) == 1

    def test_redrive_drains_queue(self, runtime):
        runtime["service"].redrive_dead_letters.return_value = 2
        runtime["service"].drain_queue.return_value = [
            EventOutcome(event_id="e-1", listing_id="ad-1"),
            EventOutcome(event_id="e-2", listing_id="ad-2"),
        ]

        assert main(["--redrive-dead-letters"]) == 0
        runtime["service"].drain_queue.assert_called_once_with()

    def test_daemon_mode_waits_for_shutdown(self, runtime):
        service = runtime["service"]
        service.shutdown_event.wait.return_value = True

        with patch("alert_engine.main.signal.signal") as signal_mock:
            exit_code = main([])

        assert exit_code == 0
        assert signal_mock.call_count == 2
        service.start.assert_called_once_with()
        service.shutdown_event.wait.assert_called_once_with()
        assert service.stop.call_count >= 1

    def test_configuration_error(self, runtime, capsys):
        runtime["load_config"].side_effect = ConfigurationError("Configuration file not found")

        assert main(["--manual-run"]) == 1
        assert "Configuration Error" in capsys.readouterr().err
        runtime["init_database"].assert_not_called()

    def test_fatal_error_closes_database(self, runtime):
        runtime["service"].run_once.side_effect = RuntimeError("boom")

        assert main(["--manual-run"]) == 1
        runtime["service"].stop.assert_called_once_with()
        runtime["close_database"].assert_called_once_with()
