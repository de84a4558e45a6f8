"""Domain models shared across the engine."""

from .models import (
    ChangeKind,
    ClaimResult,
    Criteria,
    CriteriaKind,
    DeadLetter,
    DeliveryFailure,
    DeliveryOutcome,
    DispatchRecord,
    FeedStatus,
    ListingEvent,
    ListingSnapshot,
    MatchEvent,
    Notification,
    new_id,
    normalize_keywords,
)

__all__ = [
    "ChangeKind",
    "ClaimResult",
    "Criteria",
    "CriteriaKind",
    "DeadLetter",
    "DeliveryFailure",
    "DeliveryOutcome",
    "DispatchRecord",
    "FeedStatus",
    "ListingEvent",
    "ListingSnapshot",
    "MatchEvent",
    "Notification",
    "new_id",
    "normalize_keywords",
]
