"""Notifier: turns an admitted match into a notification and delivers it.

The notification row is written inside the caller's transaction, next to
the dispatch ledger claim that authorized it, so a committed claim always
has its notification. Delivery runs only after that commit. A failing
channel is retried through the DeliveryRetryQueue and never rolls back or
re-creates the notification.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from alert_engine.domain.models import (
    Criteria,
    CriteriaKind,
    DeliveryFailure,
    DeliveryOutcome,
    ListingSnapshot,
    MatchEvent,
    Notification,
)
from alert_engine.logging import get_logger
from alert_engine.logging.context import log_context
from alert_engine.persistence import (
    DeliveryFailureRepository,
    NotificationRepository,
    PersistenceError,
    get_session,
)

from .channels import DeliveryChannel, InAppChannel
from .messages import build_message, build_title, listing_url
from .models import DeliveryReport
from .retry import DeliveryRetryQueue

logger = get_logger(__name__, component="notification")


class Notifier:
    """Creates notification rows and hands them to delivery channels."""

    def __init__(
        self,
        channels: Optional[Sequence[DeliveryChannel]] = None,
        retry_queue: Optional[DeliveryRetryQueue] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """
        Args:
            channels: Delivery channels (defaults to in-app only)
            retry_queue: Queue for retryable failures. Without one, retryable
                failures are recorded immediately.
            logger_instance: Logger instance (uses module logger if None)
        """
        self.channels: List[DeliveryChannel] = list(channels) if channels else [InAppChannel()]
        self.retry_queue = retry_queue
        self.logger = logger_instance or logger

    def create_notification(
        self,
        session: Session,
        criteria: Criteria,
        listing: ListingSnapshot,
        match: MatchEvent,
    ) -> Notification:
        """Persist the notification for a claimed match in the caller's transaction.

        Raises:
            DataIntegrityError: If the pair already has a notification
            TransientStorageError: If the write timed out
        """
        notification = Notification(
            criteria_id=criteria.id,
            listing_id=listing.id,
            owner_id=criteria.owner_id,
            kind=CriteriaKind(criteria.kind),
            title=build_title(criteria),
            message=build_message(criteria, listing, match),
            action_url=listing_url(listing.id),
        )
        stored = NotificationRepository(session).add(notification)

        self.logger.info(
            f"Notification created for owner {criteria.owner_id}",
            extra={
                "event": "notification.created",
                "notification_id": stored.id,
                "criteria_id": criteria.id,
                "listing_id": listing.id,
                "owner_id": criteria.owner_id,
            },
        )
        return stored

    def deliver(self, notification: Notification) -> List[DeliveryReport]:
        """Deliver a committed notification on every channel (first attempt)."""
        reports = []
        with log_context(notification_id=notification.id):
            for channel in self.channels:
                if self.retry_queue is not None:
                    reports.append(self.retry_queue.attempt(channel, notification, 1))
                    continue

                result = channel.deliver(notification)
                report = DeliveryReport(
                    notification_id=notification.id,
                    channel=channel.name,
                    outcome=result.outcome,
                    attempt=1,
                    error=result.error,
                )
                if not result.is_success():
                    self.record_failure(
                        notification,
                        channel.name,
                        result.error or "unknown error",
                        1,
                        result.outcome == DeliveryOutcome.PERMANENT_FAILURE,
                    )
                reports.append(report)
        return reports

    def record_failure(
        self,
        notification: Notification,
        channel: str,
        reason: str,
        attempts: int,
        permanent: bool,
    ) -> None:
        """Store a delivery failure for the settings layer.

        Storage errors are logged rather than raised: the notification is
        already committed and delivery bookkeeping must not disturb the caller.
        """
        failure = DeliveryFailure(
            notification_id=notification.id,
            owner_id=notification.owner_id,
            channel=channel,
            reason=reason,
            attempts=max(attempts, 1),
            permanent=permanent,
        )
        try:
            with get_session() as session:
                DeliveryFailureRepository(session).add(failure)
        except PersistenceError as e:
            self.logger.error(
                f"Could not record delivery failure for notification {notification.id}: {e}",
                exc_info=True,
                extra={"event": "delivery.failure.record_failed", "channel": channel},
            )
            return

        self.logger.warning(
            f"Delivery via {channel} recorded as failed after {attempts} attempt(s)",
            extra={
                "event": "delivery.failure.recorded",
                "notification_id": notification.id,
                "channel": channel,
                "permanent": permanent,
                "attempts": attempts,
            },
        )
