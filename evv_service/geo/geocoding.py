"""Reverse geocoding (coordinates -> address label)"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


def coordinate_label(latitude: float, longitude: float) -> str:
    """Fixed-precision "lat, lon" label (4 decimals, roughly 11m)."""
    return f"{latitude:.4f}, {longitude:.4f}"


class AddressResolver:
    """Resolves an address label for a coordinate. Never raises."""

    async def reverse_geocode(self, coordinate) -> str:
        return coordinate_label(coordinate.latitude, coordinate.longitude)


class CoordinateLabelResolver(AddressResolver):
    """Default resolver: returns the numeric label."""


class NominatimAddressResolver(AddressResolver):
    """
    Resolver backed by a Nominatim-compatible ``/reverse`` endpoint.

    Falls back to the numeric label on any error or empty answer.
    """

    def __init__(
        self,
        base_url: str,
        user_agent: str = "evv-service/1.0",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self._client = client

    async def _lookup(self, latitude: float, longitude: float) -> Optional[str]:
        params = {"lat": latitude, "lon": longitude, "format": "jsonv2"}
        headers = {"User-Agent": self.user_agent}
        url = f"{self.base_url}/reverse"

        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        return response.json().get("display_name")

    async def reverse_geocode(self, coordinate) -> str:
        try:
            label = await self._lookup(coordinate.latitude, coordinate.longitude)
        except Exception as e:
            logger.warning(
                f"Reverse geocoding failed for ({coordinate.latitude}, {coordinate.longitude}): {e}"
            )
            return coordinate_label(coordinate.latitude, coordinate.longitude)
        if not label:
            return coordinate_label(coordinate.latitude, coordinate.longitude)
        return label


def build_address_resolver(settings) -> AddressResolver:
    """Pick the resolver configured for this deployment."""
    if settings.geocoder_url:
        return NominatimAddressResolver(
            base_url=settings.geocoder_url,
            user_agent=settings.geocoder_user_agent,
            timeout=settings.geocoder_timeout_seconds,
        )
    return CoordinateLabelResolver()
