"""Geolocation building blocks for EVV: distance math, location providers, geocoding."""
from evv_service.geo.distance import (
    DISTANCE_THRESHOLDS,
    InvalidCoordinateError,
    ProximityTier,
    calculate_distance,
    resolve_threshold,
    validate_proximity,
)
from evv_service.geo.geocoding import AddressResolver, CoordinateLabelResolver, NominatimAddressResolver
from evv_service.geo.location import (
    ACCURACY_LEVELS,
    DeviceLocationProvider,
    LocationAccuracy,
    LocationError,
    LocationOptions,
    LocationProvider,
    ReportedLocationProvider,
    WatchSubscription,
)
from evv_service.geo.models import Coordinate, LocationReading, ProximityResult

__all__ = [
    "Coordinate",
    "LocationReading",
    "ProximityResult",
    "ProximityTier",
    "DISTANCE_THRESHOLDS",
    "InvalidCoordinateError",
    "calculate_distance",
    "resolve_threshold",
    "validate_proximity",
    "LocationAccuracy",
    "LocationOptions",
    "ACCURACY_LEVELS",
    "LocationError",
    "LocationProvider",
    "DeviceLocationProvider",
    "ReportedLocationProvider",
    "WatchSubscription",
    "AddressResolver",
    "CoordinateLabelResolver",
    "NominatimAddressResolver",
]
