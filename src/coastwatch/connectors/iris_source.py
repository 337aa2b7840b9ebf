"""
IRIS DMC FDSN event adapter (text format).

Coverage: global, aggregated across many regional networks. The text format
is one pipe-delimited line per event:

    #EventID | Time | Latitude | Longitude | Depth/km | Author | Catalog |
     Contributor | ContributorID | MagType | Magnitude | MagAuthor | EventLocationName

204 and 404 are how FDSN services say "no events matched".
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from coastwatch.framework.base_source import BaseSource, FetchOptions, parse_time
from coastwatch.framework.models import HazardEvent

logger = logging.getLogger(__name__)

_FIELD_COUNT = 13


class IrisSource(BaseSource):
    """Queries service.iris.edu for recent events."""

    name = "IRIS"
    coverage = ("Global", "Multi-network aggregation")
    update_frequency_seconds = 60

    QUERY_URL = "https://service.iris.edu/fdsnws/event/1/query"
    PROBE_URL = "https://service.iris.edu/"
    FETCH_TIMEOUT_SECONDS = 10.0

    DEFAULT_WINDOW_HOURS = 12
    DEFAULT_MIN_MAGNITUDE = 4.0

    def build_params(self, options: FetchOptions) -> dict[str, Any]:
        window = (
            options.time_window_hours
            if options.time_window_hours is not None
            else self.DEFAULT_WINDOW_HOURS
        )
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=window)
        params: dict[str, Any] = {
            "format": "text",
            "orderby": "time",
            "starttime": start.strftime("%Y-%m-%dT%H:%M:%S"),
            "endtime": end.strftime("%Y-%m-%dT%H:%M:%S"),
            "minmagnitude": options.min_magnitude or self.DEFAULT_MIN_MAGNITUDE,
        }
        if options.bounding_box:
            min_lat, min_lon, max_lat, max_lon = options.bounding_box
            params.update(
                minlatitude=min_lat,
                minlongitude=min_lon,
                maxlatitude=max_lat,
                maxlongitude=max_lon,
            )
        return params

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        response = await self._get(
            self.QUERY_URL,
            params=self.build_params(options),
            headers={"Accept": "text/plain", "Cache-Control": "no-cache"},
        )
        if response.status_code in (204, 404):
            return []
        events = self.parse_text(self._check(response).text)
        logger.info("IRIS returned %d events", len(events))
        return options.apply(events)

    def parse_text(self, text: str) -> list[HazardEvent]:
        """Parse FDSN text output, skipping comments, blanks and malformed lines."""
        events: list[HazardEvent] = []
        for line in text.splitlines():
            if not line.strip() or line.startswith("#"):
                continue
            parts = [p.strip() for p in line.split("|")]
            if len(parts) < _FIELD_COUNT:
                continue
            try:
                events.append(self._normalize_parts(parts))
            except (ValueError, TypeError) as exc:
                logger.debug("IRIS skipping malformed line | line=%s | error=%s", line, exc)
        return events

    def _normalize_parts(self, parts: list[str]) -> HazardEvent:
        event_id, time_str, lat, lon, depth = parts[:5]
        mag_type, magnitude, location = parts[9], parts[10], parts[12]
        return HazardEvent(
            event_id=f"iris_{event_id}",
            source=self.name,
            magnitude=float(magnitude),
            latitude=float(lat),
            longitude=float(lon),
            depth_km=float(depth),
            time=parse_time(time_str),
            place=location or "Unknown location",
            url=f"{self.QUERY_URL}?eventid={event_id}",
            magnitude_type=mag_type or None,
        )
