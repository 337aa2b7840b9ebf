"""
JMA (Japan Meteorological Agency) earthquake list adapter.

Coverage: Japan, Western Pacific, East Asia. JMA does not document a stable
JSON schema for its quake list, so field lookup is tolerant: each attribute
is read from the first of several known aliases. Records without a usable
epicenter or origin time are skipped rather than guessed.

A non-2xx answer on the list endpoint means the feed is not currently
published; that is an empty result, not a source failure.
"""

import logging
from typing import Any, Optional

from coastwatch.framework.base_source import BaseSource, FetchOptions, parse_time
from coastwatch.framework.models import HazardEvent

logger = logging.getLogger(__name__)

_MAGNITUDE_KEYS = ("magnitude", "mag", "M")
_TIME_KEYS = ("time", "timestamp", "datetime")
_PLACE_KEYS = ("location", "place", "region", "epicenter")
_DEPTH_KEYS = ("depth", "dep")


def _first(item: dict[str, Any], keys: tuple[str, ...]) -> Optional[Any]:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


class JmaSource(BaseSource):
    """Reads JMA's multilingual quake_list.json."""

    name = "JMA"
    coverage = ("Japan", "Western Pacific", "East Asia")
    update_frequency_seconds = 60

    BASE_URL = "https://www.data.jma.go.jp/multi/quake"
    PROBE_URL = f"{BASE_URL}/"
    FETCH_TIMEOUT_SECONDS = 15.0
    DEFAULT_DEPTH_KM = 10.0

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        response = await self._get(
            f"{self.BASE_URL}/data/quake_list.json", headers={"Accept": "application/json"}
        )
        if response.status_code == 429:
            self._check(response)
        if not response.is_success:
            logger.warning("JMA quake list unavailable, returning no events | status=%d", response.status_code)
            return []

        payload = response.json()
        if not isinstance(payload, list):
            return []

        events: list[HazardEvent] = []
        for item in payload:
            try:
                events.append(self.normalize(item))
            except (KeyError, ValueError, TypeError, IndexError) as exc:
                logger.debug("JMA skipping malformed record | error=%s", exc)

        logger.info("JMA returned %d events", len(events))
        return options.apply(events)

    def normalize(self, item: dict[str, Any]) -> HazardEvent:
        magnitude = _first(item, _MAGNITUDE_KEYS)
        if magnitude is None:
            raise ValueError("missing magnitude")
        lon, lat = self._coordinates(item)
        raw_time = _first(item, _TIME_KEYS)
        if raw_time is None:
            raise ValueError("missing origin time")
        time = parse_time(raw_time)

        depth_raw = _first(item, _DEPTH_KEYS)
        try:
            depth = float(depth_raw) if depth_raw is not None else self.DEFAULT_DEPTH_KM
        except ValueError:
            depth = self.DEFAULT_DEPTH_KM

        source_id = item.get("id") or f"{time.isoformat()}_{lon}_{lat}"
        return HazardEvent(
            event_id=f"jma_{source_id}",
            source=self.name,
            magnitude=float(magnitude),
            latitude=lat,
            longitude=lon,
            depth_km=depth,
            time=time,
            place=str(_first(item, _PLACE_KEYS) or "Japan region"),
            url=f"{self.BASE_URL}/",
        )

    def _coordinates(self, item: dict[str, Any]) -> tuple[float, float]:
        """Return (lon, lat) from longitude/latitude, lon/lat, or a coordinates pair."""
        if item.get("longitude") is not None and item.get("latitude") is not None:
            return float(item["longitude"]), float(item["latitude"])
        if item.get("lon") is not None and item.get("lat") is not None:
            return float(item["lon"]), float(item["lat"])
        coords = item.get("coordinates")
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            return float(coords[0]), float(coords[1])
        raise ValueError("missing coordinates")
