"""Unit tests for domain models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from alert_engine.domain.models import (
    ChangeKind,
    Criteria,
    CriteriaKind,
    DeadLetter,
    ListingEvent,
    ListingSnapshot,
    normalize_keywords,
)

from tests.helpers import make_criteria, make_event, make_listing


class TestNormalizeKeywords:
    """Tests for keyword normalization."""

    def test_free_text_is_split_and_lowercased(self):
        assert normalize_keywords("iPhone  14 Pro") == ["iphone", "14", "pro"]

    def test_duplicates_removed_keeping_order(self):
        assert normalize_keywords("Pro iphone PRO") == ["pro", "iphone"]

    def test_sequence_entries_are_split(self):
        assert normalize_keywords(["Road Bike", None, "carbon"]) == ["road", "bike", "carbon"]

    def test_none_and_blank(self):
        assert normalize_keywords(None) == []
        assert normalize_keywords("   ") == []


class TestCriteria:
    """Tests for the Criteria model and its invariants."""

    def test_defaults(self):
        criteria = make_criteria()

        assert criteria.kind == CriteriaKind.WATCHLIST
        assert criteria.keywords == ["iphone"]
        assert criteria.is_active is True
        assert criteria.has_anchor is False
        assert criteria.has_price_bounds is False
        assert len(criteria.id) == 32

    def test_labels_are_stripped(self):
        criteria = make_criteria(name="  Phones  ", category_id="  ", location=" SF ")

        assert criteria.name == "Phones"
        assert criteria.category_id is None
        assert criteria.location == "SF"

    def test_valid_criteria_has_no_violations(self):
        criteria = make_criteria(
            min_price=500, max_price=900, latitude=37.77, longitude=-122.41, radius_km=25
        )

        assert criteria.invariant_violations() == []

    def test_min_greater_than_max(self):
        problems = make_criteria(min_price=900, max_price=500).invariant_violations()

        assert problems == ["min_price: 900 is greater than max_price 500"]

    def test_equal_price_bounds_are_valid(self):
        assert make_criteria(min_price=500, max_price=500).invariant_violations() == []

    def test_negative_price(self):
        problems = make_criteria(max_price=-1).invariant_violations()

        assert problems == ["max_price: must be a non-negative number"]

    def test_nan_price(self):
        problems = make_criteria(min_price=float("nan")).invariant_violations()

        assert problems == ["min_price: must be a non-negative number"]

    @pytest.mark.parametrize("radius", [0, -5])
    def test_non_positive_radius(self, radius):
        problems = make_criteria(radius_km=radius).invariant_violations()

        assert problems == ["radius_km: must be greater than 0"]

    def test_half_anchor(self):
        problems = make_criteria(latitude=37.77).invariant_violations()

        assert problems == ["latitude/longitude: both must be set or both omitted"]

    def test_out_of_range_anchor(self):
        problems = make_criteria(latitude=95, longitude=-200).invariant_violations()

        assert len(problems) == 2
        assert problems[0].startswith("latitude:")
        assert problems[1].startswith("longitude:")

    def test_empty_name(self):
        problems = make_criteria(name="   ").invariant_violations()

        assert problems == ["name: must not be empty"]

    def test_radius_without_anchor_is_not_a_violation(self):
        # Allowed at write time; the geo rule simply never holds
        assert make_criteria(radius_km=10).invariant_violations() == []


class TestListingSnapshot:
    """Tests for the ListingSnapshot model."""

    def test_visibility(self):
        assert make_listing().is_visible is True
        assert make_listing(is_active=False).is_visible is False
        assert make_listing(status="pending").is_visible is False
        assert make_listing(status="ACTIVE").is_visible is True

    def test_has_coordinates(self):
        assert make_listing().has_coordinates is True
        assert make_listing(latitude=None).has_coordinates is False

    def test_none_text_becomes_empty(self):
        listing = ListingSnapshot(id="ad-1", title=None, description=None)

        assert listing.title == ""
        assert listing.description == ""

    def test_fingerprint_ignores_text_fields(self):
        a = make_listing(title="iPhone 13")
        b = make_listing(title="iPhone 13 - price drop!")

        assert a.fingerprint() == b.fingerprint()

    def test_fingerprint_tracks_price(self):
        assert make_listing(price=550).fingerprint() != make_listing(price=500).fingerprint()

    def test_naive_created_at_is_utc(self):
        listing = make_listing(created_at=datetime(2026, 10, 1, 12, 0))

        assert listing.created_at.tzinfo == timezone.utc


class TestListingEvent:
    """Tests for the ListingEvent model."""

    def test_listing_id_must_match_snapshot(self):
        with pytest.raises(ValidationError, match="does not match snapshot id"):
            ListingEvent(
                listing_id="ad-2",
                change_kind=ChangeKind.CREATED,
                snapshot=make_listing("ad-1"),
            )

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValidationError):
            make_event(attempt=0)

    def test_next_attempt_keeps_identity(self):
        event = make_event()
        retried = event.next_attempt()

        assert retried.attempt == 2
        assert retried.event_id == event.event_id
        assert retried.snapshot == event.snapshot
        assert event.attempt == 1

    def test_change_kind_parsed_from_string(self):
        event = ListingEvent(listing_id="ad-1", change_kind="price_changed", snapshot=make_listing())

        assert event.change_kind == ChangeKind.PRICE_CHANGED


class TestDeadLetter:
    """Tests for the DeadLetter model."""

    def test_to_event_resets_attempt(self):
        event = make_event(attempt=5)
        letter = DeadLetter(
            event_id=event.event_id,
            listing_id=event.listing_id,
            change_kind=event.change_kind,
            snapshot=event.snapshot,
            reason="retries exhausted",
            attempts=event.attempt,
        )

        rebuilt = letter.to_event()

        assert rebuilt.attempt == 1
        assert rebuilt.event_id == event.event_id
        assert rebuilt.snapshot == event.snapshot

    def test_received_at_is_recent(self):
        letter_event = make_event()

        assert datetime.now(timezone.utc) - letter_event.received_at < timedelta(seconds=5)
