import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Coordinate:
    latitude: Optional[float]
    longitude: Optional[float]

    @property
    def is_resolvable(self) -> bool:
        """True when both values are present, finite and within range."""
        if self.latitude is None or self.longitude is None:
            return False
        try:
            lat = float(self.latitude)
            lon = float(self.longitude)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


@dataclass(frozen=True)
class LocationReading:
    """A single position fix reported by a location provider."""
    latitude: float
    longitude: float
    accuracy_meters: float
    captured_at: datetime

    def __post_init__(self):
        if self.accuracy_meters is None or self.accuracy_meters < 0:
            raise ValueError("accuracy_meters must be >= 0")

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


@dataclass(frozen=True)
class ProximityResult:
    is_valid: bool
    distance_meters: Optional[float]
    threshold_meters: Optional[float]
    message: str

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "distance_meters": self.distance_meters,
            "threshold_meters": self.threshold_meters,
            "message": self.message,
        }
