"""Listing event sources."""

from .base import BaseListingSource, parse_event
from .exceptions import (
    ListingSourceError,
    ListingSourceHTTPError,
    ListingSourceResponseError,
    ListingSourceTimeoutError,
)
from .http_feed import HttpListingFeed

__all__ = [
    "BaseListingSource",
    "HttpListingFeed",
    "parse_event",
    "ListingSourceError",
    "ListingSourceHTTPError",
    "ListingSourceTimeoutError",
    "ListingSourceResponseError",
]
