"""Test helper utilities for Listing Alert Engine tests."""

from .factories import SF_ANCHOR, SF_LISTING, make_criteria, make_event, make_listing
from .fixture_source import FixtureListingSource, ListListingSource, load_fixture_events

__all__ = [
    "FixtureListingSource",
    "ListListingSource",
    "load_fixture_events",
    "make_criteria",
    "make_event",
    "make_listing",
    "SF_ANCHOR",
    "SF_LISTING",
]
