"""Haversine distance between two coordinates."""

import math

EARTH_RADIUS_KM = 6371.0


class InvalidCoordinateError(ValueError):
    """Raised when a latitude or longitude is outside its valid range."""

    pass


def validate_coordinate(latitude: float, longitude: float) -> None:
    """Check that a coordinate pair is within range.

    Args:
        latitude: Degrees, must be in [-90, 90]
        longitude: Degrees, must be in [-180, 180]

    Raises:
        InvalidCoordinateError: If either value is out of range or not finite
    """
    for label, value, bound in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if value is None or isinstance(value, bool):
            raise InvalidCoordinateError(f"{label} must be a number, got: {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidCoordinateError(f"{label} must be a number, got: {value!r}") from e
        if math.isnan(number) or not -bound <= number <= bound:
            raise InvalidCoordinateError(f"{label} must be between -{bound:g} and {bound:g}, got: {value}")


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers using the haversine formula.

    Uses a mean Earth radius of 6371 km.

    Args:
        lat1: Latitude of the first point in degrees
        lon1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lon2: Longitude of the second point in degrees

    Returns:
        Distance in kilometers

    Raises:
        InvalidCoordinateError: If any coordinate is out of range

    Example:
        >>> round(distance_km(40.7128, -74.0060, 40.73, -73.99), 1)
        2.3
    """
    validate_coordinate(lat1, lon1)
    validate_coordinate(lat2, lon2)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # Clamp against floating point drift for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.asin(math.sqrt(a))
    return EARTH_RADIUS_KM * c
