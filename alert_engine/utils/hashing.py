"""Fingerprinting of the listing fields that can change a match decision."""

import hashlib
from typing import Optional


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    # repr() round-trips floats, so 550 and 550.0 hash the same
    return repr(float(value))


def compute_listing_fingerprint(
    price: Optional[float],
    category_id: Optional[str],
    latitude: Optional[float],
    longitude: Optional[float],
    is_active: bool,
    status: Optional[str],
) -> str:
    """Compute a SHA256 fingerprint of a listing's match-relevant fields.

    Only price, category, location and the active/status pair participate.
    Two snapshots with the same fingerprint cannot produce different match
    decisions for price, category or radius constraints, so the engine skips
    re-evaluating them.

    Returns:
        Hexadecimal SHA256 digest (64 characters)

    Example:
        >>> a = compute_listing_fingerprint(550, "phones", 37.76, -122.42, True, "active")
        >>> b = compute_listing_fingerprint(550.0, "phones", 37.76, -122.42, True, "active")
        >>> a == b
        True
    """
    parts = [
        _format_number(price),
        (category_id or "").strip(),
        _format_number(latitude),
        _format_number(longitude),
        "1" if is_active else "0",
        (status or "").strip().lower(),
    ]
    composite = "|".join(parts)
    return hashlib.sha256(composite.encode("utf-8")).hexdigest()
