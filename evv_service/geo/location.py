"""
Location providers for EVV check-in/check-out.

A provider yields one ``LocationReading`` per request or a stream of readings
through a cancellable ``WatchSubscription``. Failures are normalized into the
``LocationError`` taxonomy so callers only ever see displayable messages.
Providers never retry; retry policy belongs to the caller.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from evv_service.geo.models import LocationReading
from evv_service.utils.timezone import isoformat_utc, to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class LocationError(Exception):
    """Base class for location acquisition failures"""
    reason = "unknown"
    default_message = "Unknown geolocation error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LocationUnsupportedError(LocationError):
    reason = "unsupported"
    default_message = "Geolocation is not supported by this device"


class LocationPermissionDeniedError(LocationError):
    reason = "permission_denied"
    default_message = "Location access denied by user"


class LocationUnavailableError(LocationError):
    reason = "unavailable"
    default_message = "Location information unavailable"


class LocationTimeoutError(LocationError):
    reason = "timeout"
    default_message = "Location request timed out"


LOCATION_ERRORS = {
    cls.reason: cls
    for cls in (
        LocationUnsupportedError,
        LocationPermissionDeniedError,
        LocationUnavailableError,
        LocationTimeoutError,
    )
}

# Browser Geolocation API PositionError codes
PLATFORM_ERROR_CODES = {
    1: LocationPermissionDeniedError,
    2: LocationUnavailableError,
    3: LocationTimeoutError,
}


def location_error_for(code: Union[int, str, None], message: Optional[str] = None) -> LocationError:
    """Translate a platform error code (numeric or named) into a LocationError."""
    if isinstance(code, str) and code.isdigit():
        code = int(code)
    if isinstance(code, int):
        error_cls = PLATFORM_ERROR_CODES.get(code, LocationUnavailableError)
    else:
        error_cls = LOCATION_ERRORS.get(code, LocationUnavailableError)
    return error_cls(message)


@dataclass(frozen=True)
class LocationOptions:
    high_accuracy: bool = True
    timeout_ms: int = 10_000
    max_cached_age_ms: int = 30_000


class LocationAccuracy(str, Enum):
    """Location read presets"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


ACCURACY_LEVELS = {
    LocationAccuracy.HIGH: LocationOptions(high_accuracy=True, timeout_ms=10_000, max_cached_age_ms=30_000),
    LocationAccuracy.MEDIUM: LocationOptions(high_accuracy=False, timeout_ms=15_000, max_cached_age_ms=300_000),
    LocationAccuracy.LOW: LocationOptions(high_accuracy=False, timeout_ms=20_000, max_cached_age_ms=600_000),
}

DEFAULT_LOCATION_OPTIONS = ACCURACY_LEVELS[LocationAccuracy.HIGH]


def resolve_location_options(accuracy: Union[LocationAccuracy, str, None] = None) -> LocationOptions:
    if accuracy is None:
        return DEFAULT_LOCATION_OPTIONS
    return ACCURACY_LEVELS[LocationAccuracy(accuracy)]


# device clocks run slightly ahead of the server
MAX_CLOCK_SKEW = timedelta(seconds=5)

ReadingCallback = Callable[[LocationReading], Any]
ErrorCallback = Callable[[LocationError], Any]


class WatchSubscription:
    """Handle for a continuous location watch; the owner must cancel it."""

    def __init__(self, task: Optional["asyncio.Task"] = None):
        self._task = task
        self._cancelled = False

    @property
    def active(self) -> bool:
        if self._cancelled:
            return False
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Stop receiving updates. Safe to call more than once."""
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def __aenter__(self) -> "WatchSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class LocationProvider(ABC):
    """Positioning capability injected into the visit service"""

    @abstractmethod
    async def get_current_location(self, options: Optional[LocationOptions] = None) -> LocationReading:
        """
        Acquire a single fix.

        Raises:
            LocationError: Unsupported, permission denied, unavailable or timed out
        """

    @abstractmethod
    def watch_location(
        self,
        on_reading: ReadingCallback,
        on_error: ErrorCallback,
        options: Optional[LocationOptions] = None,
    ) -> WatchSubscription:
        """Start delivering readings until the returned subscription is cancelled."""


async def _deliver(callback: Callable, value) -> None:
    result = callback(value)
    if asyncio.iscoroutine(result):
        await result


async def _notify(callback: Callable, value) -> None:
    """Deliver to a watch callback; a failing callback must not end the watch."""
    try:
        await _deliver(callback, value)
    except Exception:
        logger.exception(f"Location watch callback {getattr(callback, '__name__', callback)} failed")


class DeviceLocationProvider(LocationProvider):
    """
    Wraps a positioning platform.

    The platform exposes ``async get_position(high_accuracy) -> (lat, lon, accuracy)``
    and signals failures by raising an exception with a ``code`` attribute
    (browser PositionError codes 1/2/3). ``platform=None`` means the device has no
    positioning capability.
    """

    def __init__(self, platform: Any = None, interval_seconds: float = 5.0):
        self.platform = platform
        self.interval_seconds = interval_seconds
        self._last_reading: Optional[LocationReading] = None

    def _cached(self, options: LocationOptions) -> Optional[LocationReading]:
        if self._last_reading is None or options.max_cached_age_ms <= 0:
            return None
        age = utcnow() - self._last_reading.captured_at
        if age <= timedelta(milliseconds=options.max_cached_age_ms):
            return self._last_reading
        return None

    async def _read_platform(self, options: LocationOptions) -> LocationReading:
        if self.platform is None:
            raise LocationUnsupportedError()

        try:
            latitude, longitude, accuracy = await asyncio.wait_for(
                self.platform.get_position(high_accuracy=options.high_accuracy),
                timeout=options.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise LocationTimeoutError()
        except LocationError:
            raise
        except Exception as e:
            code = getattr(e, "code", None)
            logger.warning(f"Positioning platform error (code={code}): {e}")
            raise location_error_for(code)

        try:
            return LocationReading(
                latitude=float(latitude),
                longitude=float(longitude),
                accuracy_meters=float(accuracy),
                captured_at=utcnow(),
            )
        except (TypeError, ValueError):
            raise LocationUnavailableError("Device reported an invalid position")

    async def get_current_location(self, options: Optional[LocationOptions] = None) -> LocationReading:
        options = options or DEFAULT_LOCATION_OPTIONS
        cached = self._cached(options)
        if cached is not None:
            return cached

        reading = await self._read_platform(options)
        self._last_reading = reading
        return reading

    def watch_location(
        self,
        on_reading: ReadingCallback,
        on_error: ErrorCallback,
        options: Optional[LocationOptions] = None,
    ) -> WatchSubscription:
        options = options or DEFAULT_LOCATION_OPTIONS

        if self.platform is None:
            task = asyncio.ensure_future(_notify(on_error, LocationUnsupportedError()))
            return WatchSubscription(task)

        async def _poll():
            while True:
                try:
                    reading = await self._read_platform(options)
                except LocationError as e:
                    await _notify(on_error, e)
                else:
                    self._last_reading = reading
                    await _notify(on_reading, reading)
                await asyncio.sleep(self.interval_seconds)

        return WatchSubscription(asyncio.ensure_future(_poll()))


class ReportedLocationProvider(LocationProvider):
    """
    Provider backed by the position a caregiver's device reported in a request.

    The device does the actual positioning; this turns its report (or its
    reported error) into a reading or a LocationError. A report captured
    longer ago than ``max_cached_age_ms`` is rejected like a stale cache entry.
    """

    def __init__(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        accuracy_meters: Optional[float] = None,
        captured_at: Optional[datetime] = None,
        error_code: Union[int, str, None] = None,
        error_message: Optional[str] = None,
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.accuracy_meters = accuracy_meters
        self.captured_at = captured_at
        self.error_code = error_code
        self.error_message = error_message

    @classmethod
    def from_report(cls, report: Optional[Dict[str, Any]]) -> "ReportedLocationProvider":
        if not report:
            return cls(error_code=LocationUnsupportedError.reason)
        return cls(
            latitude=report.get("latitude"),
            longitude=report.get("longitude"),
            accuracy_meters=report.get("accuracy_meters"),
            captured_at=report.get("captured_at"),
            error_code=report.get("error_code"),
            error_message=report.get("error_message"),
        )

    async def get_current_location(self, options: Optional[LocationOptions] = None) -> LocationReading:
        if self.error_code is not None:
            raise location_error_for(self.error_code, self.error_message)
        if self.latitude is None or self.longitude is None:
            raise LocationUnavailableError("Device did not report a position")

        options = options or DEFAULT_LOCATION_OPTIONS
        now = utcnow()
        captured_at = self.captured_at or now
        if captured_at.tzinfo is not None:
            captured_at = to_naive_utc(captured_at)

        age = now - captured_at
        if age > timedelta(milliseconds=options.max_cached_age_ms):
            raise LocationUnavailableError("Reported position is too old")
        if age < -MAX_CLOCK_SKEW:
            raise LocationUnavailableError("Reported position is timestamped in the future")

        try:
            return LocationReading(
                latitude=float(self.latitude),
                longitude=float(self.longitude),
                accuracy_meters=float(self.accuracy_meters or 0.0),
                captured_at=captured_at,
            )
        except (TypeError, ValueError):
            raise LocationUnavailableError("Device reported an invalid position")

    def watch_location(
        self,
        on_reading: ReadingCallback,
        on_error: ErrorCallback,
        options: Optional[LocationOptions] = None,
    ) -> WatchSubscription:
        async def _once():
            try:
                reading = await self.get_current_location(options)
            except LocationError as e:
                await _notify(on_error, e)
            else:
                await _notify(on_reading, reading)

        return WatchSubscription(asyncio.ensure_future(_once()))


def format_location_for_evv(
    reading: LocationReading,
    address: Optional[str] = None,
    source: str = "device",
) -> Dict[str, Any]:
    """Snapshot of a reading as stored on an EVV record"""
    return {
        "latitude": reading.latitude,
        "longitude": reading.longitude,
        "accuracy_meters": reading.accuracy_meters,
        "captured_at": isoformat_utc(reading.captured_at),
        "address": address or f"{reading.latitude:.4f}, {reading.longitude:.4f}",
        "source": source,
    }
