"""Delivery channel adapters.

Each channel delivers an already persisted notification and reports one of
three outcomes. Channels never touch the notification row. Retries and
failure records are handled by the notifier and its retry queue.
"""

import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Dict, Optional

import requests

from alert_engine.config.environment import EnvironmentConfig
from alert_engine.domain.models import Notification

from .models import DeliveryError, DeliveryResult
from .smtp_client import SMTPClient, build_sender_address, normalize_recipient

logger = logging.getLogger(__name__)


class DeliveryChannel(ABC):
    """Outbound interface: deliver(notification) -> DeliveryResult."""

    name: str = "channel"

    @abstractmethod
    def deliver(self, notification: Notification) -> DeliveryResult:
        """Attempt delivery once. Must not raise for expected failures."""


class InAppChannel(DeliveryChannel):
    """The persisted notification row is the in-app feed, so delivery is a no-op."""

    name = "in_app"

    def deliver(self, notification: Notification) -> DeliveryResult:
        return DeliveryResult.success()


class EmailChannel(DeliveryChannel):
    """Sends a plain-text email to the owner's configured address."""

    name = "email"

    def __init__(
        self,
        env_config: EnvironmentConfig,
        recipients: Dict[str, str],
        use_tls: bool = True,
        smtp_client: Optional[SMTPClient] = None,
        base_url: str = "",
    ):
        """
        Args:
            env_config: SMTP connection settings
            recipients: owner_id -> email address
            use_tls: Whether to use STARTTLS
            smtp_client: SMTP client (creates default if None)
            base_url: Prefix for the notification's relative action link
        """
        self.env_config = env_config
        self.recipients = recipients
        self.use_tls = use_tls
        self.smtp_client = smtp_client or SMTPClient()
        self.base_url = base_url.rstrip("/")

    def deliver(self, notification: Notification) -> DeliveryResult:
        address = self.recipients.get(notification.owner_id)
        if not address:
            return DeliveryResult.permanent(
                f"No email address configured for owner {notification.owner_id}"
            )
        try:
            recipient = normalize_recipient(address)
        except ValueError as e:
            return DeliveryResult.permanent(str(e))

        message = self.build_message(notification, recipient)
        try:
            self.smtp_client.send(message, self.env_config, self.use_tls)
        except DeliveryError as e:
            return DeliveryResult.from_error(e)
        return DeliveryResult.success()

    def build_message(self, notification: Notification, recipient: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = notification.title
        message["From"] = build_sender_address(self.env_config)
        message["To"] = recipient

        body = [notification.message]
        if notification.action_url:
            body.append("")
            body.append(f"View listing: {self.base_url}{notification.action_url}")
        message.set_content("\n".join(body))
        return message


class WebhookChannel(DeliveryChannel):
    """POSTs the notification as JSON, e.g. to a push relay.

    5xx, 429, timeouts and connection errors are retryable. Other 4xx replies
    are permanent (410 Gone means the push subscription was revoked).
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
        user_agent: str = "ListingAlertEngine/1.0",
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def deliver(self, notification: Notification) -> DeliveryResult:
        payload = notification.model_dump(mode="json")
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            return DeliveryResult.retryable(f"Webhook timed out after {self.timeout}s: {e}")
        except requests.exceptions.ConnectionError as e:
            return DeliveryResult.retryable(f"Webhook connection failed: {e}")
        except requests.exceptions.RequestException as e:
            return DeliveryResult.permanent(f"Webhook request could not be sent: {e}")

        status = response.status_code
        if 200 <= status < 300:
            return DeliveryResult.success()
        if status >= 500 or status == 429:
            return DeliveryResult.retryable(f"Webhook returned HTTP {status}")
        return DeliveryResult.permanent(f"Webhook rejected notification with HTTP {status}")
