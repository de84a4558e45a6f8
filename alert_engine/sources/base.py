"""Base class and shared parsing for listing event sources.

A source yields ListingEvents: (listing_id, snapshot, change_kind). The
engine does not own listing storage. It only consumes this feed.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from alert_engine.domain.models import ChangeKind, ListingEvent, ListingSnapshot
from alert_engine.logging import get_logger

logger = get_logger(__name__, component="source")


class BaseListingSource(ABC):
    """Base class for listing change feeds.

    poll() returns the next batch of events. acknowledge() is called once the
    batch has been handed to the engine so a cursor-based source can advance
    durably; a batch that is never acknowledged is served again.
    """

    name: str = "listings"

    @abstractmethod
    def poll(self) -> List[ListingEvent]:
        """Fetch the next batch of listing change events.

        Raises:
            ListingSourceError: On transport or payload failures
        """

    def acknowledge(self) -> None:
        """Confirm the last polled batch was accepted."""
        return None


def parse_event(raw: Dict[str, Any]) -> Optional[ListingEvent]:
    """Convert one feed record into a ListingEvent.

    Expected shape::

        {"listing_id": "ad-1", "change_kind": "created",
         "listing": {"title": ..., "price": ..., "latitude": ..., ...}}

    Returns:
        The event, or None if the record is malformed (a warning is logged)
    """
    if not isinstance(raw, dict):
        logger.warning(
            "Skipping malformed listing event (not an object)",
            extra={"event": "source.event.malformed", "reason": type(raw).__name__},
        )
        return None

    listing = raw.get("listing") or {}
    if not isinstance(listing, dict):
        listing = {}
    listing_id = raw.get("listing_id") or listing.get("id")
    try:
        change_kind = ChangeKind(str(raw.get("change_kind", "")).strip().lower())
        # Absent and null fields both fall back to the snapshot defaults
        snapshot_fields = {key: value for key, value in listing.items() if value is not None}
        snapshot_fields["id"] = str(listing_id) if listing_id is not None else None
        snapshot = ListingSnapshot.model_validate(snapshot_fields)
        return ListingEvent(
            listing_id=snapshot.id,
            change_kind=change_kind,
            snapshot=snapshot,
        )
    except (ValueError, ValidationError) as e:
        logger.warning(
            f"Skipping malformed listing event for listing {listing_id}: {e}",
            extra={"event": "source.event.malformed", "listing_id": listing_id},
        )
        return None
