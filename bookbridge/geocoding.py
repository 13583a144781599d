import logging
from typing import Optional

import httpx

from bookbridge.config import settings

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """Raised when no provider could turn coordinates into an address."""


def _join_address(*parts: Optional[str]) -> str:
    return ", ".join(part.strip() for part in parts if part and part.strip())


def format_bigdatacloud(data: dict) -> str:
    return _join_address(
        data.get("city") or data.get("locality"),
        data.get("principalSubdivision"),
        data.get("countryName"),
    )


def format_nominatim(data: dict) -> str:
    address = data.get("address") or {}
    short = _join_address(
        address.get("city") or address.get("town") or address.get("village"),
        address.get("state"),
        address.get("country"),
    )
    return short or (data.get("display_name") or "").strip()


class ReverseGeocoder:
    """
    Coordinates-to-address lookup against two public providers.

    BigDataCloud is asked first and OpenStreetMap Nominatim second. Results
    are not cached and provider rate limits are not tracked.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.geocoding_timeout, connect=5.0),
            follow_redirects=True,
            headers={"User-Agent": settings.geocoding_user_agent},
        )

    async def _bigdatacloud(self, latitude: float, longitude: float) -> str:
        response = await self._client.get(
            settings.bigdatacloud_url,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "localityLanguage": "en",
            },
        )
        response.raise_for_status()
        return format_bigdatacloud(response.json())

    async def _nominatim(self, latitude: float, longitude: float) -> str:
        response = await self._client.get(
            settings.nominatim_url,
            params={"lat": latitude, "lon": longitude, "format": "jsonv2"},
        )
        response.raise_for_status()
        return format_nominatim(response.json())

    async def reverse(self, latitude: float, longitude: float) -> str:
        """
        Resolve coordinates to a "city, region, country" style address.

        Falls back to the rounded coordinates when a provider answered but
        had no address for the spot.

        Raises:
            GeocodingError: if every provider failed
        """
        answered = False
        for name, lookup in (
            ("bigdatacloud", self._bigdatacloud),
            ("nominatim", self._nominatim),
        ):
            try:
                address = await lookup(latitude, longitude)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Reverse geocoding via %s failed: %s", name, exc)
                continue
            if address:
                return address
            answered = True
            logger.warning("Reverse geocoding via %s returned no address", name)

        if answered:
            return f"{latitude:.4f}, {longitude:.4f}"
        raise GeocodingError(
            "Location detection failed. Please enter your location manually."
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


_geocoder: Optional[ReverseGeocoder] = None


def get_geocoder() -> ReverseGeocoder:
    """Dependency returning the shared geocoder, creating it on first use."""
    global _geocoder
    if _geocoder is None:
        _geocoder = ReverseGeocoder()
    return _geocoder


async def close_geocoder():
    global _geocoder
    if _geocoder is not None:
        await _geocoder.close()
        _geocoder = None
