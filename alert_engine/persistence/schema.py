"""Database schema definition and ORM models.

ORM models mirror the domain models and convert in both directions with
to_domain()/from_domain(). Timestamps are stored as ISO 8601 UTC strings.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from alert_engine.domain.models import (
    ChangeKind,
    Criteria,
    CriteriaKind,
    DeadLetter,
    DeliveryFailure,
    DispatchRecord,
    FeedStatus,
    ListingSnapshot,
    Notification,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class CriteriaModel(Base):
    """ORM model for the criteria table (standing queries)."""

    __tablename__ = "criteria"

    id = Column(String(64), primary_key=True, nullable=False)
    owner_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    kind = Column(String(32), nullable=False)

    # Keywords stored space-joined, already lowercased
    keywords = Column(Text, nullable=False, default="")
    category_id = Column(String(255), nullable=True)
    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    location = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    radius_km = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_criteria_owner", "owner_id", "created_at"),
        Index("idx_criteria_active_category", "is_active", "category_id"),
    )

    def to_domain(self) -> Criteria:
        # model_construct skips validation so that a corrupted row still loads
        # and is reported by the matcher instead of failing the whole query
        return Criteria.model_construct(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            kind=CriteriaKind(self.kind),
            keywords=self.keywords.split() if self.keywords else [],
            category_id=self.category_id,
            min_price=self.min_price,
            max_price=self.max_price,
            location=self.location,
            latitude=self.latitude,
            longitude=self.longitude,
            radius_km=self.radius_km,
            is_active=bool(self.is_active),
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, criteria: Criteria) -> "CriteriaModel":
        model = cls(id=criteria.id)
        model.apply(criteria)
        return model

    def apply(self, criteria: Criteria) -> None:
        """Copy every mutable field from a domain object onto this row."""
        self.owner_id = criteria.owner_id
        self.name = criteria.name
        self.kind = CriteriaKind(criteria.kind).value
        self.keywords = " ".join(criteria.keywords)
        self.category_id = criteria.category_id
        self.min_price = criteria.min_price
        self.max_price = criteria.max_price
        self.location = criteria.location
        self.latitude = criteria.latitude
        self.longitude = criteria.longitude
        self.radius_km = criteria.radius_km
        self.is_active = criteria.is_active
        self.created_at = _format_datetime(criteria.created_at)
        self.updated_at = _format_datetime(criteria.updated_at)


class ListingSnapshotModel(Base):
    """ORM model for listing_snapshots.

    The engine's own projection of the last snapshot it evaluated for each
    listing. Used for change detection and as the re-scan working set.
    """

    __tablename__ = "listing_snapshots"

    listing_id = Column(String(255), primary_key=True, nullable=False)
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    category_id = Column(String(255), nullable=True)
    price = Column(Float, nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False)
    status = Column(String(32), nullable=False)
    created_at = Column(String(50), nullable=False)

    fingerprint = Column(String(64), nullable=False)
    evaluated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_listing_snapshots_created", "created_at"),)

    def to_domain(self) -> ListingSnapshot:
        return ListingSnapshot(
            id=self.listing_id,
            title=self.title,
            description=self.description,
            category_id=self.category_id,
            price=self.price,
            currency=self.currency,
            latitude=self.latitude,
            longitude=self.longitude,
            created_at=_parse_datetime(self.created_at),
            is_active=bool(self.is_active),
            status=self.status,
        )

    def apply(self, snapshot: ListingSnapshot, evaluated_at: datetime) -> None:
        self.title = snapshot.title
        self.description = snapshot.description
        self.category_id = snapshot.category_id
        self.price = snapshot.price
        self.currency = snapshot.currency
        self.latitude = snapshot.latitude
        self.longitude = snapshot.longitude
        self.is_active = snapshot.is_active
        self.status = snapshot.status
        self.created_at = _format_datetime(snapshot.created_at)
        self.fingerprint = snapshot.fingerprint()
        self.evaluated_at = _format_datetime(evaluated_at)


class DispatchRecordModel(Base):
    """ORM model for dispatch_records.

    The composite primary key is the at-most-once guarantee: a second insert
    for the same pair fails with an integrity error.
    """

    __tablename__ = "dispatch_records"

    criteria_id = Column(String(64), primary_key=True, nullable=False)
    listing_id = Column(String(255), primary_key=True, nullable=False)
    dispatched_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_dispatch_records_listing", "listing_id"),)

    def to_domain(self) -> DispatchRecord:
        return DispatchRecord(
            criteria_id=self.criteria_id,
            listing_id=self.listing_id,
            dispatched_at=_parse_datetime(self.dispatched_at),
        )

    @classmethod
    def from_domain(cls, record: DispatchRecord) -> "DispatchRecordModel":
        return cls(
            criteria_id=record.criteria_id,
            listing_id=record.listing_id,
            dispatched_at=_format_datetime(record.dispatched_at),
        )


class NotificationModel(Base):
    """ORM model for notifications (the in-app feed)."""

    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, nullable=False)
    criteria_id = Column(String(64), nullable=False)
    listing_id = Column(String(255), nullable=False)
    owner_id = Column(String(255), nullable=False)
    kind = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False, default="")
    message = Column(Text, nullable=False, default="")
    action_url = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(String(50), nullable=False)
    read_at = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("criteria_id", "listing_id", name="uq_notifications_pair"),
        Index("idx_notifications_owner_created", "owner_id", "created_at"),
        Index("idx_notifications_owner_unread", "owner_id", "is_read"),
    )

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            criteria_id=self.criteria_id,
            listing_id=self.listing_id,
            owner_id=self.owner_id,
            kind=CriteriaKind(self.kind),
            title=self.title,
            message=self.message,
            action_url=self.action_url,
            is_read=bool(self.is_read),
            created_at=_parse_datetime(self.created_at),
            read_at=_parse_datetime(self.read_at),
        )

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationModel":
        return cls(
            id=notification.id,
            criteria_id=notification.criteria_id,
            listing_id=notification.listing_id,
            owner_id=notification.owner_id,
            kind=CriteriaKind(notification.kind).value,
            title=notification.title,
            message=notification.message,
            action_url=notification.action_url,
            is_read=notification.is_read,
            created_at=_format_datetime(notification.created_at),
            read_at=_format_datetime(notification.read_at),
        )


class DeliveryFailureModel(Base):
    """ORM model for delivery_failures (surfaced to the user-settings layer)."""

    __tablename__ = "delivery_failures"

    id = Column(String(64), primary_key=True, nullable=False)
    notification_id = Column(String(64), nullable=False)
    owner_id = Column(String(255), nullable=False)
    channel = Column(String(32), nullable=False)
    reason = Column(Text, nullable=False)
    attempts = Column(Integer, nullable=False, default=1)
    permanent = Column(Boolean, nullable=False, default=True)
    failed_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_delivery_failures_owner", "owner_id", "failed_at"),)

    def to_domain(self) -> DeliveryFailure:
        return DeliveryFailure(
            id=self.id,
            notification_id=self.notification_id,
            owner_id=self.owner_id,
            channel=self.channel,
            reason=self.reason,
            attempts=self.attempts,
            permanent=bool(self.permanent),
            failed_at=_parse_datetime(self.failed_at),
        )

    @classmethod
    def from_domain(cls, failure: DeliveryFailure) -> "DeliveryFailureModel":
        return cls(
            id=failure.id,
            notification_id=failure.notification_id,
            owner_id=failure.owner_id,
            channel=failure.channel,
            reason=failure.reason,
            attempts=failure.attempts,
            permanent=failure.permanent,
            failed_at=_format_datetime(failure.failed_at),
        )


class DeadLetterModel(Base):
    """ORM model for dead_letters (events that exhausted their retries)."""

    __tablename__ = "dead_letters"

    id = Column(String(64), primary_key=True, nullable=False)
    event_id = Column(String(64), nullable=False)
    listing_id = Column(String(255), nullable=False)
    change_kind = Column(String(32), nullable=False)
    snapshot_json = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    attempts = Column(Integer, nullable=False)
    created_at = Column(String(50), nullable=False)
    redriven_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_dead_letters_pending", "redriven_at", "created_at"),)

    def to_domain(self) -> DeadLetter:
        return DeadLetter(
            id=self.id,
            event_id=self.event_id,
            listing_id=self.listing_id,
            change_kind=ChangeKind(self.change_kind),
            snapshot=ListingSnapshot.model_validate_json(self.snapshot_json),
            reason=self.reason,
            attempts=self.attempts,
            created_at=_parse_datetime(self.created_at),
            redriven_at=_parse_datetime(self.redriven_at),
        )

    @classmethod
    def from_domain(cls, letter: DeadLetter) -> "DeadLetterModel":
        return cls(
            id=letter.id,
            event_id=letter.event_id,
            listing_id=letter.listing_id,
            change_kind=ChangeKind(letter.change_kind).value,
            snapshot_json=letter.snapshot.model_dump_json(),
            reason=letter.reason,
            attempts=letter.attempts,
            created_at=_format_datetime(letter.created_at),
            redriven_at=_format_datetime(letter.redriven_at),
        )


class FeedStatusModel(Base):
    """ORM model for feed_status (cursor + health per listing feed)."""

    __tablename__ = "feed_status"

    feed_name = Column(String(255), primary_key=True, nullable=False)
    cursor = Column(Text, nullable=True)
    last_success_at = Column(String(50), nullable=True)
    last_error_at = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)

    def to_domain(self) -> FeedStatus:
        return FeedStatus(
            feed_name=self.feed_name,
            cursor=self.cursor,
            last_success_at=_parse_datetime(self.last_success_at),
            last_error_at=_parse_datetime(self.last_error_at),
            error_message=self.error_message,
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Microseconds are always included so that string ordering matches
    chronological ordering.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back to a UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
