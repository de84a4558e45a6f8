"""Standing query (criteria) management."""

from .builders import (
    DEFAULT_NEARBY_LABEL,
    DEFAULT_NEARBY_RADIUS_KM,
    CriteriaDraft,
    nearby_alert_draft,
    quick_nearby_alert_draft,
    saved_search_draft,
    watchlist_draft,
)
from .exceptions import CriteriaError, CriteriaNotFoundError, CriteriaValidationError
from .service import CriteriaService, validate_criteria

__all__ = [
    "CriteriaService",
    "CriteriaDraft",
    "validate_criteria",
    "watchlist_draft",
    "saved_search_draft",
    "nearby_alert_draft",
    "quick_nearby_alert_draft",
    "DEFAULT_NEARBY_RADIUS_KM",
    "DEFAULT_NEARBY_LABEL",
    "CriteriaError",
    "CriteriaValidationError",
    "CriteriaNotFoundError",
]
