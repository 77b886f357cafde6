from __future__ import annotations

import httpx
import pytest
from pytest_httpx import HTTPXMock

from origin_router.location import (
    UNKNOWN_LOCATION,
    IpApiLocator,
    LocationLookupError,
    UserLocation,
)

pytestmark = pytest.mark.asyncio

_URL = "https://ipapi.co/json/"


async def test_locate_parses_payload(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=_URL,
        json={
            "ip": "203.0.113.9",
            "city": "Brisbane",
            "region": "Queensland",
            "country": "AU",
            "latitude": -27.47,
            "longitude": 153.02,
        },
    )

    async with httpx.AsyncClient() as client:
        location = await IpApiLocator(client=client, url=_URL).locate()

    assert location == UserLocation(
        country="AU",
        region="Queensland",
        city="Brisbane",
        latitude=-27.47,
        longitude=153.02,
        ip="203.0.113.9",
    )
    assert location.is_known


async def test_optional_fields_tolerate_bad_types(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=_URL,
        json={"region": "Bavaria", "country": "DE", "latitude": "n/a", "city": 5},
    )

    async with httpx.AsyncClient() as client:
        location = await IpApiLocator(client=client, url=_URL).locate()

    assert location.city is None
    assert location.latitude is None


@pytest.mark.parametrize(
    "payload",
    [
        {"error": True, "reason": "RateLimited"},
        {"region": "Queensland"},
        ["not", "an", "object"],
    ],
)
async def test_unusable_payload_raises(httpx_mock: HTTPXMock, payload: object) -> None:
    httpx_mock.add_response(url=_URL, json=payload)

    async with httpx.AsyncClient() as client:
        with pytest.raises(LocationLookupError):
            await IpApiLocator(client=client, url=_URL).locate()


async def test_http_error_raises(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=_URL, status_code=429)

    async with httpx.AsyncClient() as client:
        with pytest.raises(LocationLookupError, match="HTTPStatusError"):
            await IpApiLocator(client=client, url=_URL).locate()


async def test_invalid_json_raises(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=_URL, content=b"<html>")

    async with httpx.AsyncClient() as client:
        with pytest.raises(LocationLookupError, match="not valid JSON"):
            await IpApiLocator(client=client, url=_URL).locate()


async def test_timeout_raises(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectTimeout("slow"))

    async with httpx.AsyncClient() as client:
        with pytest.raises(LocationLookupError):
            await IpApiLocator(client=client, url=_URL, timeout_seconds=0.1).locate()


async def test_unknown_location_is_not_known() -> None:
    assert not UNKNOWN_LOCATION.is_known
    assert UserLocation(country="unknown", region="Queensland").is_known
