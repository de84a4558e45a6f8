"""Tests for configuration loading and validation."""

import pytest

from alert_engine.config import (
    AppConfig,
    ConfigurationError,
    OverflowPolicy,
    build_app_config,
    load_config,
)
from alert_engine.config.duration import DurationParseError, parse_duration, validate_duration_range
from alert_engine.config.environment import DEFAULT_DATABASE_URL, load_environment_config
from alert_engine.config.validators import check_for_warnings

ENV_VARS = (
    "DATABASE_URL",
    "LOG_LEVEL",
    "ENVIRONMENT",
    "LISTING_FEED_TOKEN",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_SENDER",
    "SMTP_SENDER_NAME",
)

VALID_CONFIG = """
listing_feed:
  url: https://listings.example.com/api/changes
  poll_interval: 1m
engine:
  workers: 8
  overflow_policy: block
  storage_retry:
    max_attempts: 3
rescan:
  interval: PT2H
  window: 3d
delivery:
  max_retries: 2
logging:
  level: DEBUG
  format: json
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, tmp_path):
        app_config, env_config = load_config(write_config(tmp_path, VALID_CONFIG))

        assert app_config.listing_feed.enabled is True
        assert app_config.listing_feed.poll_interval_seconds == 60
        assert app_config.engine.workers == 8
        assert app_config.engine.overflow_policy == "block"
        assert app_config.engine.storage_retry.max_attempts == 3
        assert app_config.rescan.interval_seconds == 7200
        assert app_config.rescan.window_seconds == 3 * 86400
        assert app_config.delivery.max_retries == 2
        assert app_config.logging.format == "json"
        assert env_config.database_url == DEFAULT_DATABASE_URL

    def test_defaults(self):
        app_config = AppConfig()

        assert app_config.listing_feed.enabled is False
        assert app_config.engine.workers == 4
        assert app_config.engine.queue_capacity == 1000
        assert app_config.engine.overflow_policy == OverflowPolicy.BLOCK.value
        assert app_config.rescan.window_seconds == 7 * 86400
        assert app_config.delivery.max_retries == 3
        assert app_config.delivery.email.enabled is False

    def test_config_file_not_found(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_empty_config(self, tmp_path):
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(tmp_path, ""))

    def test_invalid_yaml_syntax(self, tmp_path):
        with pytest.raises(ConfigurationError, match="parse YAML"):
            load_config(write_config(tmp_path, "engine: [workers: 4"))

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(write_config(tmp_path, "- a\n- b\n"))

    def test_email_channel_requires_smtp(self, tmp_path):
        config = (
            "delivery:\n"
            "  email:\n"
            "    enabled: true\n"
            "    recipients:\n"
            "      user-1: alice@example.com\n"
        )
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(write_config(tmp_path, config))

        assert "SMTP_HOST" in str(exc_info.value)

    def test_warnings_are_emitted(self, tmp_path):
        config = "listing_feed:\n  enabled: false\nengine:\n  overflow_policy: drop_oldest\n"

        with pytest.warns(UserWarning, match="drop_oldest"):
            load_config(write_config(tmp_path, config))


class TestConfigurationValidation:
    """Test schema validation errors."""

    def test_enabled_feed_requires_url(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"listing_feed": {"enabled": True}})

        assert "listing_feed.url is required" in str(exc_info.value)

    def test_feed_url_scheme(self):
        with pytest.raises(ConfigurationError):
            build_app_config({"listing_feed": {"url": "ftp://listings.example.com"}})

    def test_invalid_overflow_policy(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"engine": {"overflow_policy": "drop_newest"}})

        assert "overflow_policy" in str(exc_info.value)

    def test_invalid_worker_count(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"engine": {"workers": 0}})

        assert "engine -> workers" in str(exc_info.value)

    def test_invalid_type(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"engine": {"workers": [4]}})

        assert "Invalid type for 'engine -> workers'" in str(exc_info.value)

    def test_poll_interval_too_short(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"listing_feed": {"url": "https://x.example.com", "poll_interval": "2s"}})

        assert "too short" in str(exc_info.value)

    def test_rescan_window_too_long(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_app_config({"rescan": {"window": "120d"}})

        assert "too long" in str(exc_info.value)

    def test_webhook_requires_url(self):
        with pytest.raises(ConfigurationError):
            build_app_config({"delivery": {"webhook": {"enabled": True}}})


class TestWarnings:
    """Tests for non-fatal configuration warnings."""

    def test_no_warnings_for_defaults(self):
        assert check_for_warnings({"listing_feed": {"url": "https://x.example.com"}}) == []

    def test_email_without_recipients(self):
        warnings = check_for_warnings({"delivery": {"email": {"enabled": True}}})

        assert any("no recipients" in w for w in warnings)

    def test_rescan_disabled(self):
        warnings = check_for_warnings({"rescan": {"enabled": False}})

        assert any("rescan is disabled" in w for w in warnings)


class TestDurationParsing:
    """Test duration parsing utilities."""

    @pytest.mark.parametrize(
        "value,expected",
        [("30s", 30), ("15m", 900), ("1h30m", 5400), ("7d", 604800), ("PT15M", 900), ("P1D", 86400)],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "invalid", "15x", "0s", "PT"])
    def test_parse_invalid(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_validate_duration_range(self):
        validate_duration_range(900, min_seconds=300, max_seconds=86400)

        with pytest.raises(DurationParseError, match="too short"):
            validate_duration_range(120, min_seconds=300, max_seconds=86400)
        with pytest.raises(DurationParseError, match="too long"):
            validate_duration_range(172800, min_seconds=300, max_seconds=86400)


class TestEnvironmentVariables:
    """Test environment variable loading and validation."""

    def test_defaults_without_variables(self):
        env_config = load_environment_config()

        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.environment == "local"
        assert env_config.smtp_configured is False

    def test_smtp_required_when_email_enabled(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config(require_smtp=True)

        message = str(exc_info.value)
        assert "SMTP_HOST" in message
        assert "SMTP_PORT" in message
        assert "SMTP_SENDER" in message

    def test_full_smtp_settings(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_PORT", "587")
        monkeypatch.setenv("SMTP_SENDER", "alerts@example.com")
        monkeypatch.setenv("SMTP_USER", "alerts")
        monkeypatch.setenv("SMTP_PASS", "secret")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LISTING_FEED_TOKEN", "token")

        env_config = load_environment_config(require_smtp=True)

        assert env_config.smtp_port == 587
        assert env_config.smtp_configured is True
        assert env_config.log_level == "DEBUG"
        assert env_config.listing_feed_token == "token"
        assert env_config.smtp_sender_name == "Listing Alerts"

    @pytest.mark.parametrize("port", ["invalid", "70000"])
    def test_invalid_smtp_port(self, monkeypatch, port):
        monkeypatch.setenv("SMTP_PORT", port)

        with pytest.raises(ConfigurationError, match="SMTP_PORT"):
            load_environment_config()

    def test_invalid_sender(self, monkeypatch):
        monkeypatch.setenv("SMTP_SENDER", "not-an-email")

        with pytest.raises(ConfigurationError, match="SMTP_SENDER"):
            load_environment_config()

    def test_user_without_password(self, monkeypatch):
        monkeypatch.setenv("SMTP_USER", "alerts")

        with pytest.raises(ConfigurationError, match="SMTP_PASS"):
            load_environment_config()

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            load_environment_config()
