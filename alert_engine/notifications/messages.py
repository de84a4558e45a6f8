"""In-app notification content (title, message, action link)."""

from typing import Optional

from alert_engine.domain.models import Criteria, CriteriaKind, ListingSnapshot, MatchEvent

_KIND_LABELS = {
    CriteriaKind.WATCHLIST: "watchlist",
    CriteriaKind.SAVED_SEARCH: "saved search",
    CriteriaKind.NEARBY_ALERT: "nearby alert",
}

MAX_TITLE_LENGTH = 255


def listing_url(listing_id: str) -> str:
    """Relative link to a listing's detail page."""
    return f"/ad/{listing_id}"


def format_price(price: Optional[float], currency: str) -> str:
    """Format a price for display, e.g. 550.0, "USD" -> "550 USD".

    Example:
        >>> format_price(12.5, "EUR")
        '12.50 EUR'
        >>> format_price(None, "USD")
        'no price'
    """
    if price is None:
        return "no price"
    if float(price).is_integer():
        amount = f"{int(price):,}"
    else:
        amount = f"{price:,.2f}"
    return f"{amount} {currency}".strip()


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{int(round(distance_km * 1000))} m away"
    return f"{distance_km:.1f} km away"


def build_title(criteria: Criteria) -> str:
    title = f"New match for '{criteria.name}'"
    return title[:MAX_TITLE_LENGTH]


def build_message(criteria: Criteria, listing: ListingSnapshot, match: MatchEvent) -> str:
    """One-line summary: listing title, price and, when geo-constrained, distance."""
    parts = [
        listing.title.strip() or f"Listing {listing.id}",
        format_price(listing.price, listing.currency),
    ]
    if match.distance_km is not None:
        parts.append(format_distance(match.distance_km))
    kind_label = _KIND_LABELS.get(CriteriaKind(criteria.kind), "alert")
    return f"{', '.join(parts)} (matched your {kind_label})"
