"""Great-circle distance and proximity validation for EVV check-ins"""
import math
from enum import Enum
from typing import Optional, Union

from evv_service.geo.models import Coordinate, ProximityResult

EARTH_RADIUS_METERS = 6_371_000


class InvalidCoordinateError(ValueError):
    """Raised when a coordinate cannot be used for distance math"""


class ProximityTier(str, Enum):
    """Distance threshold tiers, chosen per deployment context"""
    STRICT = "strict"    # high-security environments
    NORMAL = "normal"    # standard home care
    RELAXED = "relaxed"  # rural areas or GPS-challenging locations


DISTANCE_THRESHOLDS = {
    ProximityTier.STRICT: 50,
    ProximityTier.NORMAL: 100,
    ProximityTier.RELAXED: 200,
}

DEFAULT_PROXIMITY_TIER = ProximityTier.NORMAL


def resolve_threshold(tier: Union[ProximityTier, str, None] = None) -> float:
    """
    Map a tier (enum, its name, or None for the default) to meters.

    Raises:
        ValueError: Unknown tier name
    """
    if tier is None:
        tier = DEFAULT_PROXIMITY_TIER
    return DISTANCE_THRESHOLDS[ProximityTier(tier)]


def _require_resolvable(point, label: str) -> Coordinate:
    coordinate = Coordinate(
        latitude=getattr(point, "latitude", None),
        longitude=getattr(point, "longitude", None),
    )
    if not coordinate.is_resolvable:
        raise InvalidCoordinateError(
            f"{label} coordinate is missing or out of range "
            f"({coordinate.latitude}, {coordinate.longitude})"
        )
    return coordinate


def calculate_distance(a, b) -> float:
    """
    Haversine distance in meters between two points.

    Accepts anything with ``latitude``/``longitude`` attributes.

    Raises:
        InvalidCoordinateError: Either point is unresolvable or the result is not finite
    """
    start = _require_resolvable(a, "First")
    end = _require_resolvable(b, "Second")

    start_lat = math.radians(float(start.latitude))
    end_lat = math.radians(float(end.latitude))
    delta_lat = math.radians(float(end.latitude) - float(start.latitude))
    delta_lng = math.radians(float(end.longitude) - float(start.longitude))

    a_term = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(start_lat) * math.cos(end_lat) * math.sin(delta_lng / 2) ** 2
    )
    # rounding can push a_term a hair past 1 for antipodal points
    a_term = min(1.0, max(0.0, a_term))
    c = 2 * math.atan2(math.sqrt(a_term), math.sqrt(1 - a_term))
    distance = EARTH_RADIUS_METERS * c

    if not math.isfinite(distance):
        raise InvalidCoordinateError("Distance calculation produced a non-finite result")
    return distance


def validate_proximity(current, target, threshold_meters: Optional[float] = None) -> ProximityResult:
    """
    Check whether ``current`` lies within ``threshold_meters`` of ``target``.

    Never raises: input problems come back as an invalid result with a
    displayable message. Threshold defaults to the normal tier.
    """
    if threshold_meters is None:
        threshold_meters = resolve_threshold(DEFAULT_PROXIMITY_TIER)

    threshold = None
    try:
        threshold = float(threshold_meters)
        if not math.isfinite(threshold):
            threshold = None
            raise InvalidCoordinateError(f"threshold must be a finite number, got {threshold_meters}")
        if threshold < 0:
            raise InvalidCoordinateError(f"threshold must be a non-negative number, got {threshold_meters}")
        distance = calculate_distance(current, target)
    except (InvalidCoordinateError, TypeError, ValueError) as e:
        return ProximityResult(
            is_valid=False,
            distance_meters=None,
            threshold_meters=threshold,
            message=f"Unable to validate location: {e}",
        )

    is_valid = distance <= threshold
    if is_valid:
        message = "Location verified"
    else:
        message = (
            f"Location is {round(distance)}m away from appointment address. "
            f"Maximum allowed: {threshold:g}m"
        )
    return ProximityResult(
        is_valid=is_valid,
        distance_meters=distance,
        threshold_meters=threshold,
        message=message,
    )
