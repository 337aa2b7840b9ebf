"""
USGS earthquake summary feed adapter.

USGS publishes pre-built GeoJSON summary feeds per time window rather than a
filterable query here, so the feed is picked from the requested window and
every FetchOptions filter is applied client-side.

Coverage: global, best in the Americas and Pacific. Updates every minute.
"""

import logging
from typing import Any

from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.models import HazardEvent, from_epoch_ms

logger = logging.getLogger(__name__)


class UsgsSource(BaseSource):
    """Polls the USGS all_{hour,day,week,month}.geojson summary feeds."""

    name = "USGS"
    coverage = ("Global", "Americas", "Pacific")
    update_frequency_seconds = 60

    BASE_URL = "https://earthquake.usgs.gov/earthquakes/feed/v1.0/summary"
    PROBE_URL = f"{BASE_URL}/all_hour.geojson"
    FETCH_TIMEOUT_SECONDS = 10.0

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        url = self.feed_url(options.time_window_hours or 1)
        response = self._check(await self._get(url))
        payload = response.json()

        events: list[HazardEvent] = []
        for feature in payload.get("features") or []:
            try:
                events.append(self.normalize(feature))
            except (KeyError, ValueError, TypeError, IndexError) as exc:
                logger.debug("USGS skipping malformed feature | id=%s | error=%s", feature.get("id"), exc)

        filtered = options.apply(events)
        logger.info("USGS returned %d events (%d after filters)", len(events), len(filtered))
        return filtered

    def feed_url(self, time_window_hours: float) -> str:
        """
        Pick the narrowest summary feed that covers the window.

        <=1h all_hour, <=24h all_day, <=168h all_week, otherwise all_month.
        """
        if time_window_hours <= 1:
            feed = "all_hour"
        elif time_window_hours <= 24:
            feed = "all_day"
        elif time_window_hours <= 168:
            feed = "all_week"
        else:
            feed = "all_month"
        return f"{self.BASE_URL}/{feed}.geojson"

    def normalize(self, feature: dict[str, Any]) -> HazardEvent:
        """
        Map a USGS GeoJSON feature to a HazardEvent.

        Coordinates are [lon, lat, depth]; time is epoch milliseconds.
        A null magnitude makes the feature malformed.
        """
        props = feature["properties"]
        lon, lat, depth = feature["geometry"]["coordinates"][:3]
        if props.get("mag") is None:
            raise ValueError("missing magnitude")
        return HazardEvent(
            event_id=f"usgs_{feature['id']}",
            source=self.name,
            magnitude=float(props["mag"]),
            latitude=float(lat),
            longitude=float(lon),
            depth_km=float(depth) if depth is not None else 10.0,
            time=from_epoch_ms(props["time"]),
            place=props.get("place") or "Unknown location",
            url=props.get("url"),
            magnitude_type=props.get("magType"),
        )
