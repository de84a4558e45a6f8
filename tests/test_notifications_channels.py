"""Unit tests for delivery channels."""

from unittest.mock import Mock

import pytest
import requests

from alert_engine.config.environment import EnvironmentConfig
from alert_engine.domain.models import DeliveryOutcome, Notification
from alert_engine.notifications import EmailChannel, InAppChannel, WebhookChannel
from alert_engine.notifications.models import SMTPDeliveryError


@pytest.fixture
def notification():
    return Notification(
        id="n-1",
        criteria_id="c-1",
        listing_id="ad-1",
        owner_id="user-1",
        title="New match for 'Cheap iPhones'",
        message="iPhone 13, 550 USD, 1.4 km away (matched your watchlist)",
        action_url="/ad/ad-1",
    )


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        smtp_host="smtp.example.com", smtp_port=587, smtp_sender="alerts@example.com"
    )


class TestInAppChannel:
    def test_always_succeeds(self, notification):
        result = InAppChannel().deliver(notification)

        assert result.is_success()
        assert InAppChannel.name == "in_app"


class TestEmailChannel:
    """Tests for EmailChannel."""

    def test_sends_plain_text_email(self, notification, env_config):
        smtp_client = Mock()
        channel = EmailChannel(
            env_config,
            {"user-1": "alice@example.com"},
            smtp_client=smtp_client,
            base_url="https://market.example.com/",
        )

        result = channel.deliver(notification)

        assert result.outcome == DeliveryOutcome.SUCCESS
        message, sent_env, use_tls = smtp_client.send.call_args[0]
        assert sent_env is env_config
        assert use_tls is True
        assert message["To"] == "alice@example.com"
        assert message["Subject"] == "New match for 'Cheap iPhones'"
        assert message["From"] == "Listing Alerts <alerts@example.com>"
        body = message.get_content()
        assert "iPhone 13, 550 USD" in body
        assert "View listing: https://market.example.com/ad/ad-1" in body

    def test_missing_recipient_is_permanent(self, notification, env_config):
        smtp_client = Mock()
        channel = EmailChannel(env_config, {}, smtp_client=smtp_client)

        result = channel.deliver(notification)

        assert result.outcome == DeliveryOutcome.PERMANENT_FAILURE
        assert "user-1" in result.error
        smtp_client.send.assert_not_called()

    def test_invalid_recipient_is_permanent(self, notification, env_config):
        channel = EmailChannel(env_config, {"user-1": "nope"}, smtp_client=Mock())

        assert channel.deliver(notification).outcome == DeliveryOutcome.PERMANENT_FAILURE

    def test_retryable_smtp_error(self, notification, env_config):
        smtp_client = Mock()
        smtp_client.send.side_effect = SMTPDeliveryError("Network error", retryable=True)
        channel = EmailChannel(env_config, {"user-1": "alice@example.com"}, smtp_client=smtp_client)

        result = channel.deliver(notification)

        assert result.outcome == DeliveryOutcome.RETRYABLE_FAILURE
        assert result.error == "Network error"

    def test_permanent_smtp_error(self, notification, env_config):
        smtp_client = Mock()
        smtp_client.send.side_effect = SMTPDeliveryError("Recipient refused", retryable=False)
        channel = EmailChannel(env_config, {"user-1": "alice@example.com"}, smtp_client=smtp_client)

        assert channel.deliver(notification).outcome == DeliveryOutcome.PERMANENT_FAILURE


class TestWebhookChannel:
    """Tests for WebhookChannel."""

    def make_channel(self, status_code=200, side_effect=None):
        session = Mock()
        session.headers = {}
        if side_effect is not None:
            session.post.side_effect = side_effect
        else:
            session.post.return_value = Mock(status_code=status_code)
        return WebhookChannel("https://hooks.example.com/alerts", timeout=5, session=session), session

    def test_posts_notification_json(self, notification):
        channel, session = self.make_channel(204)

        result = channel.deliver(notification)

        assert result.is_success()
        args, kwargs = session.post.call_args
        assert args == ("https://hooks.example.com/alerts",)
        assert kwargs["timeout"] == 5
        assert kwargs["json"]["id"] == "n-1"
        assert kwargs["json"]["kind"] == "watchlist"
        assert isinstance(kwargs["json"]["created_at"], str)
        assert session.headers["User-Agent"] == "ListingAlertEngine/1.0"

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_server_errors_are_retryable(self, notification, status):
        channel, _ = self.make_channel(status)

        assert channel.deliver(notification).outcome == DeliveryOutcome.RETRYABLE_FAILURE

    @pytest.mark.parametrize("status", [400, 404, 410])
    def test_client_errors_are_permanent(self, notification, status):
        channel, _ = self.make_channel(status)

        result = channel.deliver(notification)

        assert result.outcome == DeliveryOutcome.PERMANENT_FAILURE
        assert str(status) in result.error

    def test_timeout_is_retryable(self, notification):
        channel, _ = self.make_channel(side_effect=requests.exceptions.Timeout("slow"))

        assert channel.deliver(notification).outcome == DeliveryOutcome.RETRYABLE_FAILURE

    def test_connection_error_is_retryable(self, notification):
        channel, _ = self.make_channel(side_effect=requests.exceptions.ConnectionError("down"))

        assert channel.deliver(notification).outcome == DeliveryOutcome.RETRYABLE_FAILURE

    def test_invalid_url_is_permanent(self, notification):
        channel, _ = self.make_channel(side_effect=requests.exceptions.InvalidURL("bad"))

        assert channel.deliver(notification).outcome == DeliveryOutcome.PERMANENT_FAILURE
