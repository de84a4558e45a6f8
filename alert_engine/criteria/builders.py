"""Thin builders turning each UI surface's payload into one criteria shape.

Watchlists, saved searches and nearby alerts all produce a CriteriaDraft, so
the matcher only ever sees a single criteria model.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from alert_engine.domain.models import CriteriaKind, normalize_keywords

from .exceptions import CriteriaValidationError

DEFAULT_NEARBY_RADIUS_KM = 25.0
DEFAULT_NEARBY_LABEL = "Current location"


class CriteriaDraft(BaseModel):
    """Owner-independent criteria fields, as submitted by a form."""

    name: str
    kind: CriteriaKind = CriteriaKind.WATCHLIST
    keywords: List[str] = Field(default_factory=list)
    category_id: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    is_active: bool = True

    @field_validator("keywords", mode="before")
    @classmethod
    def split_keywords(cls, v: Any) -> List[str]:
        return normalize_keywords(v)


def validation_messages(error: ValidationError) -> List[str]:
    """Flatten a pydantic error into "field: message" strings."""
    messages = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "criteria"
        messages.append(f"{field}: {item['msg']}")
    return messages


def build_draft(**fields: Any) -> CriteriaDraft:
    """Construct a draft, reporting type errors as CriteriaValidationError."""
    try:
        return CriteriaDraft(**fields)
    except ValidationError as e:
        raise CriteriaValidationError("Invalid criteria", errors=validation_messages(e)) from e


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def watchlist_draft(name: str, criteria: Dict[str, Any], is_active: bool = True) -> CriteriaDraft:
    """Build a draft from a watchlist form.

    Args:
        name: Watchlist name
        criteria: Mapping with optional keys keywords (free text), category_id,
            min_price, max_price, location, radius, latitude, longitude
        is_active: Initial active flag
    """
    return build_draft(
        name=name,
        kind=CriteriaKind.WATCHLIST,
        keywords=criteria.get("keywords"),
        category_id=_blank_to_none(criteria.get("category_id")),
        min_price=_blank_to_none(criteria.get("min_price")),
        max_price=_blank_to_none(criteria.get("max_price")),
        location=_blank_to_none(criteria.get("location")),
        latitude=criteria.get("latitude"),
        longitude=criteria.get("longitude"),
        radius_km=_blank_to_none(criteria.get("radius")),
        is_active=is_active,
    )


def saved_search_draft(
    name: str,
    search_query: str,
    filters: Optional[Dict[str, Any]] = None,
    category_ids: Optional[List[str]] = None,
    notification_enabled: bool = True,
) -> CriteriaDraft:
    """Build a draft from a saved search (query text plus search filters).

    filters follows the search page shape: {"priceRange": {"min", "max"},
    "location": str}. Only one category can be constrained.

    Raises:
        CriteriaValidationError: If more than one category is selected
    """
    filters = filters or {}
    price_range = filters.get("priceRange") or {}
    categories = [c for c in (category_ids or []) if c]
    if len(categories) > 1:
        raise CriteriaValidationError(
            "Invalid saved search",
            errors=["category_id: only a single category can be watched"],
        )

    return build_draft(
        name=name,
        kind=CriteriaKind.SAVED_SEARCH,
        keywords=search_query,
        category_id=categories[0] if categories else None,
        min_price=price_range.get("min"),
        max_price=price_range.get("max"),
        location=_blank_to_none(filters.get("location")),
        is_active=notification_enabled,
    )


def nearby_alert_draft(
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_NEARBY_RADIUS_KM,
    location_name: Optional[str] = None,
    keywords: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    category_id: Optional[str] = None,
    is_enabled: bool = True,
    name: Optional[str] = None,
) -> CriteriaDraft:
    """Build a draft for a nearby alert anchored at a coordinate."""
    label = (location_name or "").strip() or DEFAULT_NEARBY_LABEL
    return build_draft(
        name=name or f"Nearby: {label}",
        kind=CriteriaKind.NEARBY_ALERT,
        keywords=keywords,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        location=label,
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        is_active=is_enabled,
    )


def quick_nearby_alert_draft(
    latitude: float, longitude: float, address: Optional[str] = None
) -> CriteriaDraft:
    """Default nearby alert from the device location.

    The label is the first comma-separated part of the address, e.g.
    "Mission District, San Francisco, CA" -> "Mission District".
    """
    label = address.split(",")[0].strip() if address else None
    return nearby_alert_draft(
        latitude=latitude,
        longitude=longitude,
        radius_km=DEFAULT_NEARBY_RADIUS_KM,
        location_name=label,
    )
