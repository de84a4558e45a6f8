"""Core domain models for criteria, listings, dispatch and notifications.

This module defines the data structures shared by every engine component:
- Criteria: a user's standing query (watchlist, saved search, nearby alert)
- ListingSnapshot / ListingEvent: read-only listing projection and its change
- MatchEvent: ephemeral matcher output for one (criteria, listing) pair
- DispatchRecord: ledger entry proving a pair was admitted for notification
- Notification: the persisted, user-visible record of a match
- DeliveryFailure / DeadLetter / FeedStatus: operational records
"""

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from alert_engine.utils.hashing import compute_listing_fingerprint
from alert_engine.utils.timestamps import ensure_utc, utc_now

VISIBLE_LISTING_STATUS = "active"


def new_id() -> str:
    """Generate an opaque identifier."""
    return uuid.uuid4().hex


def normalize_keywords(value: Any) -> List[str]:
    """Split, lowercase and de-duplicate keywords, preserving first-seen order.

    Accepts either a free-text string ("iPhone  Pro") or a sequence of
    strings. Each entry is split on whitespace.

    Example:
        >>> normalize_keywords("iPhone pro IPHONE")
        ['iphone', 'pro']
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw_terms = value.split()
    else:
        raw_terms = []
        for item in value:
            if item is None:
                continue
            raw_terms.extend(str(item).split())

    tokens: List[str] = []
    for term in raw_terms:
        token = term.strip().lower()
        if token and token not in tokens:
            tokens.append(token)
    return tokens


class CriteriaKind(str, Enum):
    """UI surface a criterion was created from. Does not affect matching."""

    WATCHLIST = "watchlist"
    SAVED_SEARCH = "saved_search"
    NEARBY_ALERT = "nearby_alert"


class ChangeKind(str, Enum):
    """Listing changes that can newly satisfy a criterion."""

    CREATED = "created"
    REACTIVATED = "reactivated"
    PRICE_CHANGED = "price_changed"
    CATEGORY_CHANGED = "category_changed"
    LOCATION_CHANGED = "location_changed"


class ClaimResult(str, Enum):
    """Outcome of a dispatch ledger claim."""

    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


class DeliveryOutcome(str, Enum):
    """Outcome reported by a delivery channel."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    PERMANENT_FAILURE = "permanent_failure"


class Criteria(BaseModel):
    """A user's standing query.

    Field normalization happens here (keywords lowercased and split, labels
    stripped). Cross-field invariants are reported by invariant_violations()
    so that the write path can reject them and the matcher can fail fast on
    a record that bypassed validation.
    """

    id: str = Field(default_factory=new_id, description="Opaque criteria identifier")
    owner_id: str = Field(..., description="Owning user")
    name: str = Field(..., description="Display name")
    kind: CriteriaKind = Field(CriteriaKind.WATCHLIST, description="Originating UI surface")
    keywords: List[str] = Field(default_factory=list, description="Lowercase AND tokens")
    category_id: Optional[str] = Field(None, description="Exact category constraint")
    min_price: Optional[float] = Field(None, description="Inclusive lower price bound")
    max_price: Optional[float] = Field(None, description="Inclusive upper price bound")
    location: Optional[str] = Field(None, description="Free-text location label (display only)")
    latitude: Optional[float] = Field(None, description="Anchor latitude")
    longitude: Optional[float] = Field(None, description="Anchor longitude")
    radius_km: Optional[float] = Field(None, description="Distance bound from the anchor")
    is_active: bool = Field(True, description="Inactive criteria are never matched")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("keywords", mode="before")
    @classmethod
    def split_keywords(cls, v: Any) -> List[str]:
        return normalize_keywords(v)

    @field_validator("name", "owner_id")
    @classmethod
    def strip_required(cls, v: str) -> str:
        return v.strip()

    @field_validator("category_id", "location")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def has_anchor(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_price_bounds(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    def invariant_violations(self) -> List[str]:
        """Return human-readable descriptions of every broken invariant."""
        problems = []
        if not self.name:
            problems.append("name: must not be empty")
        if not self.owner_id:
            problems.append("owner_id: must not be empty")

        for label, value in (("min_price", self.min_price), ("max_price", self.max_price)):
            if value is not None and (math.isnan(value) or value < 0):
                problems.append(f"{label}: must be a non-negative number")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            problems.append(
                f"min_price: {self.min_price:g} is greater than max_price {self.max_price:g}"
            )

        if self.radius_km is not None and not self.radius_km > 0:
            problems.append("radius_km: must be greater than 0")

        if (self.latitude is None) != (self.longitude is None):
            problems.append("latitude/longitude: both must be set or both omitted")
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            problems.append(f"latitude: must be between -90 and 90, got {self.latitude}")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            problems.append(f"longitude: must be between -180 and 180, got {self.longitude}")
        return problems

    model_config = {"json_schema_extra": {"example": {
        "owner_id": "user-1",
        "name": "Cheap iPhones nearby",
        "kind": "watchlist",
        "keywords": ["iphone"],
        "max_price": 600,
        "location": "San Francisco",
        "latitude": 37.77,
        "longitude": -122.41,
        "radius_km": 25,
    }}}


class ListingSnapshot(BaseModel):
    """Read-only projection of a listing owned by the external listing store."""

    id: str = Field(..., min_length=1, description="Listing identifier")
    title: str = Field("", description="Listing title")
    description: str = Field("", description="Listing description")
    category_id: Optional[str] = Field(None, description="Listing category")
    price: Optional[float] = Field(None, description="Asking price, None if unpriced")
    currency: str = Field("USD", description="ISO currency code")
    latitude: Optional[float] = Field(None, description="Listing latitude")
    longitude: Optional[float] = Field(None, description="Listing longitude")
    created_at: datetime = Field(default_factory=utc_now)
    is_active: bool = Field(True, description="Active flag from the listing store")
    status: str = Field(VISIBLE_LISTING_STATUS, description="Moderation/lifecycle status")

    @field_validator("title", "description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Optional[str]) -> str:
        return v or ""

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_visible(self) -> bool:
        """Only active listings in the active status are ever matched."""
        return self.is_active and (self.status or "").lower() == VISIBLE_LISTING_STATUS

    def fingerprint(self) -> str:
        """Hash of the fields that can change a match decision."""
        return compute_listing_fingerprint(
            price=self.price,
            category_id=self.category_id,
            latitude=self.latitude,
            longitude=self.longitude,
            is_active=self.is_active,
            status=self.status,
        )


class ListingEvent(BaseModel):
    """A listing became visible or changed in a way that may newly match."""

    event_id: str = Field(default_factory=new_id)
    listing_id: str = Field(..., min_length=1)
    change_kind: ChangeKind
    snapshot: ListingSnapshot
    received_at: datetime = Field(default_factory=utc_now)
    attempt: int = Field(1, ge=1, description="Processing attempt, incremented on requeue")

    @model_validator(mode="after")
    def check_listing_id(self):
        if self.snapshot.id != self.listing_id:
            raise ValueError(
                f"listing_id {self.listing_id!r} does not match snapshot id {self.snapshot.id!r}"
            )
        return self

    @field_validator("received_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def next_attempt(self) -> "ListingEvent":
        return self.model_copy(update={"attempt": self.attempt + 1})


class MatchEvent(BaseModel):
    """Matcher result for one criterion satisfied by one listing."""

    criteria_id: str
    listing_id: str
    matched_at: datetime = Field(default_factory=utc_now)
    distance_km: Optional[float] = Field(None, description="Set when geo-constrained")


class DispatchRecord(BaseModel):
    """Proof that a (criteria, listing) pair has been admitted for notification."""

    criteria_id: str
    listing_id: str
    dispatched_at: datetime = Field(default_factory=utc_now)

    @field_validator("dispatched_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Notification(BaseModel):
    """A persisted, user-visible record that a listing matched a criterion.

    Created by the notifier; afterwards only the is_read flag changes.
    """

    id: str = Field(default_factory=new_id)
    criteria_id: str
    listing_id: str
    owner_id: str
    kind: CriteriaKind = CriteriaKind.WATCHLIST
    title: str = ""
    message: str = ""
    action_url: Optional[str] = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    read_at: Optional[datetime] = None

    @field_validator("created_at", "read_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class DeliveryFailure(BaseModel):
    """A notification that a channel could not deliver (surfaced to settings)."""

    id: str = Field(default_factory=new_id)
    notification_id: str
    owner_id: str
    channel: str
    reason: str
    attempts: int = 1
    permanent: bool = True
    failed_at: datetime = Field(default_factory=utc_now)


class DeadLetter(BaseModel):
    """A listing event that exhausted its retries, kept for re-drive."""

    id: str = Field(default_factory=new_id)
    event_id: str
    listing_id: str
    change_kind: ChangeKind
    snapshot: ListingSnapshot
    reason: str
    attempts: int
    created_at: datetime = Field(default_factory=utc_now)
    redriven_at: Optional[datetime] = None

    def to_event(self) -> ListingEvent:
        """Rebuild a fresh event (attempt counter reset) for re-drive."""
        return ListingEvent(
            event_id=self.event_id,
            listing_id=self.listing_id,
            change_kind=self.change_kind,
            snapshot=self.snapshot,
        )


class FeedStatus(BaseModel):
    """Cursor and health for a polled listing feed."""

    feed_name: str
    cursor: Optional[str] = None
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @field_validator("last_success_at", "last_error_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
