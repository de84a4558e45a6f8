"""Geographic helpers (great-circle distance)."""

from .distance import EARTH_RADIUS_KM, InvalidCoordinateError, distance_km, validate_coordinate

__all__ = [
    "EARTH_RADIUS_KM",
    "InvalidCoordinateError",
    "distance_km",
    "validate_coordinate",
]
