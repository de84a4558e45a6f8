"""Notification read API for the UI.

Unread counts and stats are always computed from the notifications table;
nothing here caches state.
"""

from typing import List, Optional

from alert_engine.domain.models import DeliveryFailure, Notification
from alert_engine.logging import get_logger
from alert_engine.persistence import (
    DeliveryFailureRepository,
    NotificationRepository,
    get_session,
)
from alert_engine.utils.timestamps import utc_now

from .models import NotificationNotFoundError, NotificationStats

logger = get_logger(__name__, component="inbox")


class NotificationInbox:
    """Per-owner notification listing and read-state changes."""

    def list_for_owner(
        self,
        owner_id: str,
        limit: Optional[int] = 50,
        offset: int = 0,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Notifications for owner_id, newest first."""
        with get_session() as session:
            return NotificationRepository(session).list_for_owner(
                owner_id, limit=limit, offset=offset, unread_only=unread_only
            )

    def mark_read(self, notification_id: str, owner_id: str) -> None:
        """Mark one notification read. Idempotent.

        Raises:
            NotificationNotFoundError: If missing or owned by someone else
        """
        with get_session() as session:
            found = NotificationRepository(session).mark_read(notification_id, owner_id, utc_now())
        if not found:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        logger.debug(
            "Notification marked read",
            extra={"event": "notification.read", "notification_id": notification_id},
        )

    def mark_all_read(self, owner_id: str) -> int:
        """Mark every unread notification of owner_id read; returns how many changed."""
        with get_session() as session:
            count = NotificationRepository(session).mark_all_read(owner_id, utc_now())
        logger.info(
            f"Marked {count} notifications read",
            extra={"event": "notification.read_all", "owner_id": owner_id, "count": count},
        )
        return count

    def unread_count(self, owner_id: str) -> int:
        with get_session() as session:
            return NotificationRepository(session).count_for_owner(owner_id, unread_only=True)

    def stats(self, owner_id: str) -> NotificationStats:
        with get_session() as session:
            repo = NotificationRepository(session)
            return NotificationStats(
                total=repo.count_for_owner(owner_id),
                unread=repo.count_for_owner(owner_id, unread_only=True),
                by_kind=repo.count_by_kind(owner_id),
            )

    def delivery_failures(self, owner_id: str) -> List[DeliveryFailure]:
        """Channel failures for owner_id, for the notification settings page."""
        with get_session() as session:
            return DeliveryFailureRepository(session).list_for_owner(owner_id)
