"""User geolocation port used by regional scoring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, cast

import httpx

UNKNOWN = "unknown"


@dataclass(frozen=True)
class UserLocation:
    """Approximate location of the process making outbound requests."""

    country: str
    region: str
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    ip: str | None = None

    @property
    def is_known(self) -> bool:
        return not (self.country == UNKNOWN and self.region == UNKNOWN)


UNKNOWN_LOCATION = UserLocation(country=UNKNOWN, region=UNKNOWN)


class LocationProvider(Protocol):
    """Geolocation lookup protocol."""

    async def locate(self) -> UserLocation:
        """Return the caller's location or raise on lookup failure."""


class LocationLookupError(RuntimeError):
    """Raised when a geolocation service returns an unusable answer."""


class IpApiLocator:
    """Look up the caller's location through an ipapi.co compatible endpoint."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str = "https://ipapi.co/json/",
        timeout_seconds: float = 5.0,
    ) -> None:
        self._client = client
        self._url = url
        self._timeout_seconds = timeout_seconds

    async def locate(self) -> UserLocation:
        try:
            response = await self._client.get(self._url, timeout=self._timeout_seconds)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise LocationLookupError(f"{exc.__class__.__name__}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LocationLookupError("Location response is not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise LocationLookupError("Location response is not a JSON object.")
        data = cast(dict[str, object], payload)
        if data.get("error"):
            raise LocationLookupError(f"Location lookup failed: {data.get('reason')}")

        country = data.get("country")
        region = data.get("region")
        if not isinstance(country, str) or not isinstance(region, str):
            raise LocationLookupError("Location response missing country or region.")

        return UserLocation(
            country=country,
            region=region,
            city=_optional_str(data.get("city")),
            latitude=_optional_float(data.get("latitude")),
            longitude=_optional_float(data.get("longitude")),
            ip=_optional_str(data.get("ip")),
        )


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _optional_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
