"""Data models and exceptions for notification creation and delivery."""

from dataclasses import dataclass, field
from typing import Dict, Optional

from alert_engine.domain.models import DeliveryOutcome


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class DeliveryError(NotificationError):
    """Raised by channel transports; retryable tells the caller whether to retry."""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class SMTPDeliveryError(DeliveryError):
    """Raised when an SMTP conversation fails."""

    pass


class NotificationNotFoundError(NotificationError):
    """Raised when a notification does not exist or belongs to another owner."""

    pass


@dataclass(frozen=True)
class DeliveryResult:
    """What a channel reports for one delivery attempt.

    Attributes:
        outcome: success, retryable_failure or permanent_failure
        error: Failure description, None on success
    """

    outcome: DeliveryOutcome
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(DeliveryOutcome.SUCCESS)

    @classmethod
    def retryable(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryOutcome.RETRYABLE_FAILURE, error)

    @classmethod
    def permanent(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryOutcome.PERMANENT_FAILURE, error)

    @classmethod
    def from_error(cls, error: DeliveryError) -> "DeliveryResult":
        if error.retryable:
            return cls.retryable(str(error))
        return cls.permanent(str(error))

    def is_success(self) -> bool:
        return self.outcome == DeliveryOutcome.SUCCESS


@dataclass
class DeliveryReport:
    """Delivery outcome of one notification on one channel, for logging and stats."""

    notification_id: str
    channel: str
    outcome: DeliveryOutcome
    attempt: int
    error: Optional[str] = None
    retry_scheduled: bool = False


@dataclass
class NotificationStats:
    """Per-owner notification counters, derived from the notifications table."""

    total: int = 0
    unread: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
