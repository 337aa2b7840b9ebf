"""
Marinesia vessel reference-data client.

Used by the enrichment job to fill in identity and dimensions the AIS stream
has not delivered yet. Every response is wrapped in an envelope
{"error": bool, "message": str, "data": ...}; an envelope with error=true is
treated like a failed request.

API documentation: https://api.marinesia.com/swagger
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from coastwatch.framework.base_source import USER_AGENT, retry_after_seconds
from coastwatch.framework.errors import RateLimitedError, SourceFetchError
from coastwatch.framework.geo import BoundingBox

logger = logging.getLogger(__name__)

SOURCE_NAME = "Marinesia"


@dataclass(frozen=True)
class VesselProfile:
    mmsi: str
    name: Optional[str] = None
    imo: Optional[str] = None
    callsign: Optional[str] = None
    ship_type: Optional[str] = None
    country: Optional[str] = None
    dimension_a: Optional[float] = None
    dimension_b: Optional[float] = None
    dimension_c: Optional[float] = None
    dimension_d: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None

    @property
    def effective_length(self) -> Optional[float]:
        """Reported length, else bow + stern offsets."""
        if self.length:
            return self.length
        if self.dimension_a and self.dimension_b:
            return self.dimension_a + self.dimension_b
        return None

    @property
    def effective_width(self) -> Optional[float]:
        """Reported width, else port + starboard offsets."""
        if self.width:
            return self.width
        if self.dimension_c and self.dimension_d:
            return self.dimension_c + self.dimension_d
        return None


def _number(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> Optional[str]:
    if value in (None, "", 0):
        return None
    return str(value).strip() or None


def parse_profile(data: dict[str, Any]) -> VesselProfile:
    """Build a VesselProfile from a /profile payload or a /nearby item."""
    return VesselProfile(
        mmsi=str(data["mmsi"]),
        name=_text(data.get("name")),
        imo=_text(data.get("imo")),
        callsign=_text(data.get("callsign")),
        ship_type=_text(data.get("ship_type") or data.get("type")),
        country=_text(data.get("country") or data.get("flag")),
        dimension_a=_number(data.get("dimension_a")),
        dimension_b=_number(data.get("dimension_b")),
        dimension_c=_number(data.get("dimension_c")),
        dimension_d=_number(data.get("dimension_d")),
        length=_number(data.get("length")),
        width=_number(data.get("width")),
    )


class MarinesiaClient:
    """Thin async client for the Marinesia REST API."""

    BASE_URL = "https://api.marinesia.com/api/v1"
    TIMEOUT_SECONDS = 15.0

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.api_key = api_key
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        return self._client

    async def get_vessel_profile(self, mmsi: str) -> Optional[VesselProfile]:
        """
        Fetch one vessel's profile.

        Returns:
            The profile, or None when Marinesia does not know the vessel (404)

        Raises:
            RateLimitedError: On HTTP 429
            SourceFetchError: On any other failure
        """
        data = await self._request(f"/vessel/{mmsi}/profile")
        if not data:
            return None
        return parse_profile(data)

    async def get_vessels_nearby(self, bbox: BoundingBox) -> list[VesselProfile]:
        """List vessels currently inside (min_lat, min_lon, max_lat, max_lon)."""
        min_lat, min_lon, max_lat, max_lon = bbox
        data = await self._request(
            "/vessel/nearby",
            {"lat_min": min_lat, "lat_max": max_lat, "long_min": min_lon, "long_max": max_lon},
        )
        profiles: list[VesselProfile] = []
        for item in data or []:
            try:
                profiles.append(parse_profile(item))
            except (KeyError, TypeError) as exc:
                logger.debug("Marinesia skipping malformed vessel | error=%s", exc)
        return profiles

    async def _request(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        query = {"key": self.api_key, **(params or {})}
        try:
            response = await self.client.get(
                f"{self.BASE_URL}{path}", params=query, timeout=self.TIMEOUT_SECONDS
            )
        except httpx.HTTPError as exc:
            raise SourceFetchError(SOURCE_NAME, str(exc) or type(exc).__name__) from exc

        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise RateLimitedError(SOURCE_NAME, retry_after_seconds(response))
        if not response.is_success:
            raise SourceFetchError(SOURCE_NAME, f"HTTP {response.status_code} for {path}")

        try:
            envelope = response.json()
        except ValueError as exc:
            raise SourceFetchError(SOURCE_NAME, f"invalid JSON for {path}") from exc
        if envelope.get("error"):
            raise SourceFetchError(SOURCE_NAME, envelope.get("message") or "request failed")
        return envelope.get("data")

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
