import httpx
import pytest
from evv_service.config import Settings
from evv_service.geo.geocoding import (
    CoordinateLabelResolver,
    NominatimAddressResolver,
    build_address_resolver,
    coordinate_label,
)
from evv_service.geo.models import Coordinate

POINT = Coordinate(latitude=39.78171234, longitude=-89.65012345)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_coordinate_label_uses_four_decimals():
    assert coordinate_label(39.78171234, -89.65012345) == "39.7817, -89.6501"


@pytest.mark.asyncio
async def test_default_resolver_returns_numeric_label():
    assert await CoordinateLabelResolver().reverse_geocode(POINT) == "39.7817, -89.6501"


@pytest.mark.asyncio
async def test_nominatim_resolver_returns_display_name():
    seen = {}

    def handler(request: httpx.Request):
        seen["params"] = dict(request.url.params)
        seen["user_agent"] = request.headers["User-Agent"]
        return httpx.Response(200, json={"display_name": "123 Main St, Springfield, IL"})

    async with _client(handler) as client:
        resolver = NominatimAddressResolver("https://geo.example/", user_agent="evv-test", client=client)
        label = await resolver.reverse_geocode(POINT)

    assert label == "123 Main St, Springfield, IL"
    assert seen["params"]["format"] == "jsonv2"
    assert seen["user_agent"] == "evv-test"


@pytest.mark.asyncio
async def test_nominatim_resolver_falls_back_on_http_error():
    async with _client(lambda request: httpx.Response(503)) as client:
        resolver = NominatimAddressResolver("https://geo.example", client=client)
        assert await resolver.reverse_geocode(POINT) == "39.7817, -89.6501"


@pytest.mark.asyncio
async def test_nominatim_resolver_falls_back_on_empty_answer():
    async with _client(lambda request: httpx.Response(200, json={"error": "Unable to geocode"})) as client:
        resolver = NominatimAddressResolver("https://geo.example", client=client)
        assert await resolver.reverse_geocode(POINT) == "39.7817, -89.6501"


@pytest.mark.asyncio
async def test_nominatim_resolver_falls_back_on_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    async with _client(handler) as client:
        resolver = NominatimAddressResolver("https://geo.example", client=client)
        assert await resolver.reverse_geocode(POINT) == "39.7817, -89.6501"


def test_build_address_resolver():
    assert isinstance(build_address_resolver(Settings(database_url="sqlite://")), CoordinateLabelResolver)
    resolver = build_address_resolver(Settings(database_url="sqlite://", geocoder_url="https://geo.example"))
    assert isinstance(resolver, NominatimAddressResolver)
    assert resolver.base_url == "https://geo.example"
