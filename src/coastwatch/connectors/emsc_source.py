"""
EMSC (European-Mediterranean Seismological Centre) FDSN adapter.

Coverage: Europe, Mediterranean, Middle East, North Africa. Magnitude floor,
time window and bounding box are passed as native FDSN query parameters.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from coastwatch.framework.base_source import BaseSource, FetchOptions, parse_time
from coastwatch.framework.models import HazardEvent

logger = logging.getLogger(__name__)


class EmscSource(BaseSource):
    """Queries the seismicportal.eu FDSN event service in JSON format."""

    name = "EMSC"
    coverage = ("Europe", "Mediterranean", "Middle East", "North Africa")
    update_frequency_seconds = 120

    BASE_URL = "https://www.seismicportal.eu/fdsnws/event/1"
    PROBE_URL = f"{BASE_URL}/version"
    PROBE_METHOD = "GET"
    FETCH_TIMEOUT_SECONDS = 15.0

    DEFAULT_LIMIT = 100
    DEFAULT_WINDOW_HOURS = 24
    DEFAULT_DEPTH_KM = 10.0

    def build_params(self, options: FetchOptions) -> dict[str, Any]:
        window = options.time_window_hours or self.DEFAULT_WINDOW_HOURS
        start = datetime.now(timezone.utc) - timedelta(hours=window)
        params: dict[str, Any] = {
            "format": "json",
            "limit": options.limit or self.DEFAULT_LIMIT,
            "orderby": "time-desc",
            "starttime": start.strftime("%Y-%m-%dT%H:%M:%S"),
        }
        if options.min_magnitude:
            params["minmagnitude"] = options.min_magnitude
        if options.bounding_box:
            min_lat, min_lon, max_lat, max_lon = options.bounding_box
            params.update(
                minlatitude=min_lat,
                maxlatitude=max_lat,
                minlongitude=min_lon,
                maxlongitude=max_lon,
            )
        return params

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        response = await self._get(f"{self.BASE_URL}/query", params=self.build_params(options))
        if response.status_code == 204:
            return []
        payload = self._check(response).json()

        events: list[HazardEvent] = []
        for feature in payload.get("features") or []:
            try:
                events.append(self.normalize(feature))
            except (KeyError, ValueError, TypeError, IndexError) as exc:
                logger.debug("EMSC skipping malformed feature | id=%s | error=%s", feature.get("id"), exc)

        logger.info("EMSC returned %d events", len(events))
        return options.apply(events)

    def normalize(self, feature: dict[str, Any]) -> HazardEvent:
        """
        Map an EMSC feature to a HazardEvent.

        Place comes from flynn_region; depth defaults to 10 km when absent.
        """
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        lon = props.get("lon", coords[0] if len(coords) > 0 else None)
        lat = props.get("lat", coords[1] if len(coords) > 1 else None)
        depth = props.get("depth", coords[2] if len(coords) > 2 else None)
        magnitude = props.get("mag", props.get("magnitude"))
        if lat is None or lon is None or magnitude is None:
            raise ValueError("missing coordinates or magnitude")

        event_id = feature.get("id") or props.get("unid")
        return HazardEvent(
            event_id=f"emsc_{event_id}",
            source=self.name,
            magnitude=float(magnitude),
            latitude=float(lat),
            longitude=float(lon),
            depth_km=abs(float(depth)) if depth not in (None, "") else self.DEFAULT_DEPTH_KM,
            time=parse_time(props["time"]),
            place=props.get("flynn_region") or props.get("place") or "Unknown location",
            url=f"https://www.emsc-csem.org/Earthquake/earthquake.php?id={event_id}",
            magnitude_type=props.get("magtype") or props.get("magnitudetype"),
        )
