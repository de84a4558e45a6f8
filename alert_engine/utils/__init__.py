"""Shared helpers for timestamps and fingerprints."""

from .hashing import compute_listing_fingerprint
from .timestamps import ensure_utc, utc_now

__all__ = [
    "compute_listing_fingerprint",
    "ensure_utc",
    "utc_now",
]
