"""Builders for domain objects used across the test suite."""

from typing import Any

from alert_engine.domain.models import ChangeKind, Criteria, ListingEvent, ListingSnapshot

SF_ANCHOR = (37.77, -122.41)
SF_LISTING = (37.76, -122.42)


def make_criteria(**overrides: Any) -> Criteria:
    fields = {
        "owner_id": "user-1",
        "name": "Cheap iPhones",
        "keywords": "iphone",
    }
    fields.update(overrides)
    return Criteria(**fields)


def make_listing(listing_id: str = "ad-1", **overrides: Any) -> ListingSnapshot:
    fields = {
        "id": listing_id,
        "title": "iPhone 14 Pro 128GB",
        "description": "Barely used, with box",
        "category_id": "phones",
        "price": 550,
        "latitude": SF_LISTING[0],
        "longitude": SF_LISTING[1],
    }
    fields.update(overrides)
    return ListingSnapshot(**fields)


def make_event(snapshot: ListingSnapshot = None, change_kind=ChangeKind.CREATED, **overrides: Any) -> ListingEvent:
    snapshot = snapshot or make_listing()
    return ListingEvent(
        listing_id=snapshot.id,
        change_kind=change_kind,
        snapshot=snapshot,
        **overrides,
    )
