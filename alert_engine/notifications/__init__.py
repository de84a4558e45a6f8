"""Notification creation, delivery and read API.

This module provides:
- Notifier: persists notifications for claimed matches and delivers them
- DeliveryChannel implementations: InAppChannel, EmailChannel, WebhookChannel
- DeliveryRetryQueue / RetryPolicy: delayed retries for retryable failures
- NotificationInbox: list, mark read, unread count and stats per owner
"""

from .channels import DeliveryChannel, EmailChannel, InAppChannel, WebhookChannel
from .inbox import NotificationInbox
from .messages import build_message, build_title, format_price, listing_url
from .models import (
    DeliveryError,
    DeliveryReport,
    DeliveryResult,
    NotificationError,
    NotificationNotFoundError,
    NotificationStats,
    SMTPDeliveryError,
)
from .retry import DeliveryRetryQueue, RetryPolicy
from .service import Notifier
from .smtp_client import SMTPClient, build_sender_address, normalize_recipient

__all__ = [
    "Notifier",
    "NotificationInbox",
    "DeliveryChannel",
    "InAppChannel",
    "EmailChannel",
    "WebhookChannel",
    "DeliveryRetryQueue",
    "RetryPolicy",
    "SMTPClient",
    "build_sender_address",
    "normalize_recipient",
    "build_title",
    "build_message",
    "format_price",
    "listing_url",
    "DeliveryResult",
    "DeliveryReport",
    "NotificationStats",
    "NotificationError",
    "NotificationNotFoundError",
    "DeliveryError",
    "SMTPDeliveryError",
]
