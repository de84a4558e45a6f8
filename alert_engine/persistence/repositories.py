"""Data access layer (repositories) for persistence operations.

Repositories wrap a session, return domain models rather than ORM rows, and
translate SQLAlchemy errors into the persistence exception hierarchy.
OperationalError (locks, busy timeouts, dropped connections) becomes
TransientStorageError so callers can retry it.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from alert_engine.domain.models import (
    Criteria,
    DeadLetter,
    DeliveryFailure,
    DispatchRecord,
    FeedStatus,
    ListingSnapshot,
    Notification,
)

from .exceptions import (
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    TransientStorageError,
)
from .schema import (
    CriteriaModel,
    DeadLetterModel,
    DeliveryFailureModel,
    DispatchRecordModel,
    FeedStatusModel,
    ListingSnapshotModel,
    NotificationModel,
    _format_datetime,
)

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Map SQLAlchemy exceptions raised inside the block to persistence errors."""
    try:
        yield
    except IntegrityError as e:
        raise DataIntegrityError(f"Failed to {action} due to constraint violation: {e}") from e
    except OperationalError as e:
        logger.warning(f"Transient storage error while trying to {action}: {e}")
        raise TransientStorageError(f"Failed to {action}: {e}") from e
    except SQLAlchemyError as e:
        logger.error(f"Error while trying to {action}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to {action}: {e}") from e


class CriteriaRepository:
    """Repository for criteria (standing query) operations."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, criteria: Criteria) -> Criteria:
        """Insert a new criterion.

        Raises:
            DataIntegrityError: If a criterion with the same id exists
            PersistenceError: If database error occurs
        """
        with _translate_errors(f"insert criteria {criteria.id}"):
            model = CriteriaModel.from_domain(criteria)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

    def get(self, criteria_id: str) -> Optional[Criteria]:
        """Retrieve a criterion by id, or None."""
        with _translate_errors(f"retrieve criteria {criteria_id}"):
            model = self.session.get(CriteriaModel, criteria_id)
            return model.to_domain() if model else None

    def get_for_owner(self, criteria_id: str, owner_id: str) -> Optional[Criteria]:
        """Retrieve a criterion only if it belongs to owner_id."""
        criteria = self.get(criteria_id)
        if criteria is None or criteria.owner_id != owner_id:
            return None
        return criteria

    def list_for_owner(self, owner_id: str) -> List[Criteria]:
        """All criteria of one owner, newest first."""
        with _translate_errors(f"list criteria for owner {owner_id}"):
            stmt = (
                select(CriteriaModel)
                .where(CriteriaModel.owner_id == owner_id)
                .order_by(CriteriaModel.created_at.desc(), CriteriaModel.id)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

    def list_active(self) -> List[Criteria]:
        """Snapshot read of every active criterion, across all owners."""
        with _translate_errors("list active criteria"):
            stmt = (
                select(CriteriaModel)
                .where(CriteriaModel.is_active.is_(True))
                .order_by(CriteriaModel.created_at, CriteriaModel.id)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

    def update(self, criteria: Criteria) -> Criteria:
        """Overwrite a stored criterion with the given state.

        Raises:
            RecordNotFoundError: If the criterion does not exist
        """
        with _translate_errors(f"update criteria {criteria.id}"):
            model = self.session.get(CriteriaModel, criteria.id)
            if model is None:
                raise RecordNotFoundError(f"Criteria {criteria.id} not found")
            model.apply(criteria)
            self.session.flush()
            return model.to_domain()

    def delete(self, criteria_id: str) -> bool:
        """Delete a criterion. Returns False if it did not exist."""
        with _translate_errors(f"delete criteria {criteria_id}"):
            model = self.session.get(CriteriaModel, criteria_id)
            if model is None:
                return False
            self.session.delete(model)
            self.session.flush()
            return True


class ListingSnapshotRepository:
    """Repository for the engine's projection of evaluated listings."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, listing_id: str) -> Optional[ListingSnapshot]:
        with _translate_errors(f"retrieve listing snapshot {listing_id}"):
            model = self.session.get(ListingSnapshotModel, listing_id)
            return model.to_domain() if model else None

    def get_fingerprint(self, listing_id: str) -> Optional[str]:
        """Fingerprint of the last evaluated snapshot, or None if never seen."""
        with _translate_errors(f"retrieve fingerprint for listing {listing_id}"):
            stmt = select(ListingSnapshotModel.fingerprint).where(
                ListingSnapshotModel.listing_id == listing_id
            )
            return self.session.execute(stmt).scalar_one_or_none()

    def upsert(self, snapshot: ListingSnapshot, evaluated_at: datetime) -> None:
        """Record the snapshot as the last one evaluated for its listing.

        Raises:
            DataIntegrityError: If a concurrent session inserted the same
                listing first (the caller may simply upsert again)
        """
        with _translate_errors(f"upsert listing snapshot {snapshot.id}"):
            model = self.session.get(ListingSnapshotModel, snapshot.id)
            if model is None:
                model = ListingSnapshotModel(listing_id=snapshot.id)
                self.session.add(model)
            model.apply(snapshot, evaluated_at)
            self.session.flush()

    def list_visible_since(self, cutoff: datetime) -> List[ListingSnapshot]:
        """Visible listings created at or after cutoff, oldest first."""
        with _translate_errors("list recent listing snapshots"):
            stmt = (
                select(ListingSnapshotModel)
                .where(
                    ListingSnapshotModel.created_at >= _format_datetime(cutoff),
                    ListingSnapshotModel.is_active.is_(True),
                )
                .order_by(ListingSnapshotModel.created_at, ListingSnapshotModel.listing_id)
            )
            snapshots = [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
            return [s for s in snapshots if s.is_visible]


class DispatchRecordRepository:
    """Repository for dispatch ledger rows."""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, criteria_id: str, listing_id: str) -> bool:
        with _translate_errors(f"check dispatch record {criteria_id}/{listing_id}"):
            key = {"criteria_id": criteria_id, "listing_id": listing_id}
            return self.session.get(DispatchRecordModel, key) is not None

    def insert(self, record: DispatchRecord) -> DispatchRecord:
        """Insert a dispatch record.

        Raises:
            DataIntegrityError: If the pair is already recorded
            TransientStorageError: If the write timed out waiting for a lock
        """
        with _translate_errors(f"insert dispatch record {record.criteria_id}/{record.listing_id}"):
            model = DispatchRecordModel.from_domain(record)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

    def count(self, criteria_id: Optional[str] = None, listing_id: Optional[str] = None) -> int:
        with _translate_errors("count dispatch records"):
            stmt = select(func.count()).select_from(DispatchRecordModel)
            if criteria_id is not None:
                stmt = stmt.where(DispatchRecordModel.criteria_id == criteria_id)
            if listing_id is not None:
                stmt = stmt.where(DispatchRecordModel.listing_id == listing_id)
            return self.session.execute(stmt).scalar_one()


class NotificationRepository:
    """Repository for user-visible notifications."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, notification: Notification) -> Notification:
        """Insert a notification.

        Raises:
            DataIntegrityError: If the (criteria, listing) pair already has one
        """
        with _translate_errors(f"insert notification {notification.id}"):
            model = NotificationModel.from_domain(notification)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

    def get(self, notification_id: str) -> Optional[Notification]:
        with _translate_errors(f"retrieve notification {notification_id}"):
            model = self.session.get(NotificationModel, notification_id)
            return model.to_domain() if model else None

    def get_by_pair(self, criteria_id: str, listing_id: str) -> Optional[Notification]:
        with _translate_errors(f"retrieve notification for {criteria_id}/{listing_id}"):
            stmt = select(NotificationModel).where(
                NotificationModel.criteria_id == criteria_id,
                NotificationModel.listing_id == listing_id,
            )
            model = self.session.execute(stmt).scalar_one_or_none()
            return model.to_domain() if model else None

    def list_for_owner(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Notifications of one owner, newest first."""
        with _translate_errors(f"list notifications for owner {owner_id}"):
            stmt = select(NotificationModel).where(NotificationModel.owner_id == owner_id)
            if unread_only:
                stmt = stmt.where(NotificationModel.is_read.is_(False))
            stmt = stmt.order_by(
                NotificationModel.created_at.desc(), NotificationModel.id.desc()
            ).offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

    def mark_read(self, notification_id: str, owner_id: str, read_at: datetime) -> bool:
        """Set is_read on one of owner_id's notifications.

        Returns:
            False if no such notification exists for the owner
        """
        with _translate_errors(f"mark notification {notification_id} read"):
            model = self.session.get(NotificationModel, notification_id)
            if model is None or model.owner_id != owner_id:
                return False
            if not model.is_read:
                model.is_read = True
                model.read_at = _format_datetime(read_at)
                self.session.flush()
            return True

    def mark_all_read(self, owner_id: str, read_at: datetime) -> int:
        """Mark every unread notification of owner_id read; returns the count."""
        with _translate_errors(f"mark all notifications read for owner {owner_id}"):
            stmt = (
                update(NotificationModel)
                .where(
                    NotificationModel.owner_id == owner_id,
                    NotificationModel.is_read.is_(False),
                )
                .values(is_read=True, read_at=_format_datetime(read_at))
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount

    def count_for_owner(self, owner_id: str, unread_only: bool = False) -> int:
        with _translate_errors(f"count notifications for owner {owner_id}"):
            stmt = (
                select(func.count())
                .select_from(NotificationModel)
                .where(NotificationModel.owner_id == owner_id)
            )
            if unread_only:
                stmt = stmt.where(NotificationModel.is_read.is_(False))
            return self.session.execute(stmt).scalar_one()

    def count_by_kind(self, owner_id: str) -> Dict[str, int]:
        with _translate_errors(f"count notifications by kind for owner {owner_id}"):
            stmt = (
                select(NotificationModel.kind, func.count())
                .where(NotificationModel.owner_id == owner_id)
                .group_by(NotificationModel.kind)
            )
            return {kind: count for kind, count in self.session.execute(stmt).all()}

    def count_for_pair(self, criteria_id: str, listing_id: str) -> int:
        with _translate_errors(f"count notifications for {criteria_id}/{listing_id}"):
            stmt = (
                select(func.count())
                .select_from(NotificationModel)
                .where(
                    NotificationModel.criteria_id == criteria_id,
                    NotificationModel.listing_id == listing_id,
                )
            )
            return self.session.execute(stmt).scalar_one()

    def count_all(self) -> int:
        with _translate_errors("count notifications"):
            return self.session.execute(
                select(func.count()).select_from(NotificationModel)
            ).scalar_one()


class DeliveryFailureRepository:
    """Repository for delivery failures surfaced to the settings layer."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, failure: DeliveryFailure) -> DeliveryFailure:
        with _translate_errors(f"record delivery failure for {failure.notification_id}"):
            model = DeliveryFailureModel.from_domain(failure)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

    def list_for_owner(self, owner_id: str) -> List[DeliveryFailure]:
        with _translate_errors(f"list delivery failures for owner {owner_id}"):
            stmt = (
                select(DeliveryFailureModel)
                .where(DeliveryFailureModel.owner_id == owner_id)
                .order_by(DeliveryFailureModel.failed_at.desc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

    def list_for_notification(self, notification_id: str) -> List[DeliveryFailure]:
        with _translate_errors(f"list delivery failures for {notification_id}"):
            stmt = (
                select(DeliveryFailureModel)
                .where(DeliveryFailureModel.notification_id == notification_id)
                .order_by(DeliveryFailureModel.failed_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]


class DeadLetterRepository:
    """Repository for dead-lettered listing events."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, letter: DeadLetter) -> DeadLetter:
        with _translate_errors(f"dead-letter event {letter.event_id}"):
            model = DeadLetterModel.from_domain(letter)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

    def list_pending(self, limit: Optional[int] = None) -> List[DeadLetter]:
        """Dead letters not yet re-driven, oldest first."""
        with _translate_errors("list pending dead letters"):
            stmt = (
                select(DeadLetterModel)
                .where(DeadLetterModel.redriven_at.is_(None))
                .order_by(DeadLetterModel.created_at, DeadLetterModel.id)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

    def mark_redriven(self, letter_id: str, redriven_at: datetime) -> None:
        """
        Raises:
            RecordNotFoundError: If the dead letter does not exist
        """
        with _translate_errors(f"mark dead letter {letter_id} re-driven"):
            model = self.session.get(DeadLetterModel, letter_id)
            if model is None:
                raise RecordNotFoundError(f"Dead letter {letter_id} not found")
            model.redriven_at = _format_datetime(redriven_at)
            self.session.flush()

    def count_pending(self) -> int:
        with _translate_errors("count pending dead letters"):
            stmt = (
                select(func.count())
                .select_from(DeadLetterModel)
                .where(DeadLetterModel.redriven_at.is_(None))
            )
            return self.session.execute(stmt).scalar_one()


class FeedStatusRepository:
    """Repository for listing feed cursor and health tracking."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, feed_name: str) -> Optional[FeedStatus]:
        with _translate_errors(f"retrieve feed status {feed_name}"):
            model = self.session.get(FeedStatusModel, feed_name)
            return model.to_domain() if model else None

    def get_cursor(self, feed_name: str) -> Optional[str]:
        status = self.get(feed_name)
        return status.cursor if status else None

    def _get_or_create(self, feed_name: str) -> FeedStatusModel:
        model = self.session.get(FeedStatusModel, feed_name)
        if model is None:
            model = FeedStatusModel(feed_name=feed_name)
            self.session.add(model)
        return model

    def update_success(self, feed_name: str, timestamp: datetime, cursor: Optional[str]) -> None:
        """Store the new cursor and last_success_at; keeps the last error for reference."""
        with _translate_errors(f"update feed status success for {feed_name}"):
            model = self._get_or_create(feed_name)
            model.last_success_at = _format_datetime(timestamp)
            if cursor is not None:
                model.cursor = cursor
            self.session.flush()

    def update_error(self, feed_name: str, timestamp: datetime, error_message: str) -> None:
        """Store last_error_at and error_message; the cursor is left unchanged."""
        with _translate_errors(f"update feed status error for {feed_name}"):
            model = self._get_or_create(feed_name)
            model.last_error_at = _format_datetime(timestamp)
            model.error_message = error_message
            self.session.flush()
