"""
GeoNet (GNS Science, New Zealand) adapter.

Coverage: New Zealand, Southwest Pacific, Kermadec Islands.

Earthquakes come from the GeoNet quake API. Tsunami alerts are derived from
GeoNet's CAP (Common Alerting Protocol) documents: for the most recent
strong quakes the CAP document is fetched and, if it talks about a tsunami,
its severity / urgency fields are mapped onto an alert tier.

Data from GeoNet, GNS Science, New Zealand (CC BY 3.0 NZ; attribution required).
"""

import asyncio
import logging
import math
import xml.etree.ElementTree as ET
from datetime import timedelta
from typing import Any, Optional

import httpx

from coastwatch.framework.base_source import BaseSource, FetchOptions, parse_time
from coastwatch.framework.models import AlertCategory, HazardEvent, TsunamiAlert

logger = logging.getLogger(__name__)

DEFAULT_AREA = "New Zealand coastal areas"
ALERT_LIFETIME = timedelta(hours=24)

# CAP severity / urgency -> (category, severity, instructions)
_EXTREME = (
    AlertCategory.WARNING,
    5,
    "TSUNAMI WARNING: Evacuate coastal areas immediately. Move to high ground.",
)
_SEVERE = (
    AlertCategory.WARNING,
    4,
    "Tsunami warning in effect. Evacuate low-lying coastal areas.",
)
_EXPECTED = (
    AlertCategory.WATCH,
    3,
    "Tsunami possible. Stay away from beaches and harbors. Be prepared to evacuate.",
)
_INFORMATION = (
    AlertCategory.INFORMATION,
    2,
    "Monitor for updates. Tsunami assessment in progress.",
)


def _local(tag: str) -> str:
    """Strip an XML namespace: '{urn:oasis:...}severity' -> 'severity'."""
    return tag.rsplit("}", 1)[-1]


def _texts(root: ET.Element, name: str) -> list[str]:
    return [
        (el.text or "").strip()
        for el in root.iter()
        if _local(el.tag) == name and (el.text or "").strip()
    ]


class GeoNetSource(BaseSource):
    """GeoNet quake API plus CAP-derived tsunami alerts."""

    name = "GeoNet"
    coverage = ("New Zealand", "Southwest Pacific", "Kermadec Islands")
    update_frequency_seconds = 60
    supports_tsunami = True

    API_URL = "https://api.geonet.org.nz"
    PROBE_URL = API_URL
    FETCH_TIMEOUT_SECONDS = 10.0
    CAP_TIMEOUT_SECONDS = 5.0

    DEFAULT_MIN_MAGNITUDE = 4.0
    TSUNAMI_MIN_MAGNITUDE = 6.0
    MAX_CAP_LOOKUPS = 5

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        min_mag = options.min_magnitude or self.DEFAULT_MIN_MAGNITUDE
        response = await self._get(
            f"{self.API_URL}/quake",
            params={"MMI": math.floor(min_mag)},
            headers={"Accept": "application/vnd.geo+json;version=2"},
        )
        payload = self._check(response).json()

        events: list[HazardEvent] = []
        for feature in payload.get("features") or []:
            try:
                event = self.normalize(feature)
            except (KeyError, ValueError, TypeError, IndexError) as exc:
                logger.debug("GeoNet skipping malformed feature | error=%s", exc)
                continue
            if event.magnitude >= min_mag:
                events.append(event)

        logger.info("GeoNet returned %d events", len(events))
        return options.apply(events)

    def normalize(self, feature: dict[str, Any]) -> HazardEvent:
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        lon, lat = float(coords[0]), float(coords[1])
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValueError("non-finite coordinates")

        depth = props.get("depth")
        if depth is None and len(coords) > 2:
            depth = coords[2]
        magnitude = props.get("magnitude", props.get("mag"))
        if magnitude is None:
            raise ValueError("missing magnitude")

        public_id = props.get("publicID") or props.get("publicid") or feature.get("id")
        if not public_id:
            raise ValueError("missing publicID")
        return HazardEvent(
            event_id=f"geonet_{public_id}",
            source=self.name,
            magnitude=float(magnitude),
            latitude=lat,
            longitude=lon,
            depth_km=abs(float(depth)) if depth is not None else 0.0,
            time=parse_time(props.get("time") or props["origintime"]),
            place=props.get("locality") or "New Zealand region",
            url=f"https://www.geonet.org.nz/earthquake/{public_id}",
        )

    # ------------------------------------------------------------------
    # Tsunami (CAP)
    # ------------------------------------------------------------------

    async def _fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        quakes = await self._fetch_hazard_events(
            FetchOptions(min_magnitude=self.TSUNAMI_MIN_MAGNITUDE)
        )
        candidates = quakes[: self.MAX_CAP_LOOKUPS]
        results = await asyncio.gather(*[self._cap_alert(q) for q in candidates])
        alerts = [a for a in results if a is not None]
        logger.info("GeoNet CAP produced %d tsunami alerts from %d quakes", len(alerts), len(candidates))
        return alerts

    async def _cap_alert(self, quake: HazardEvent) -> Optional[TsunamiAlert]:
        public_id = quake.event_id.removeprefix("geonet_")
        url = f"{self.API_URL}/cap/1.2/GPA1.0/quake/{public_id}"
        try:
            response = await self._get(url, timeout=self.CAP_TIMEOUT_SECONDS)
            if not response.is_success:
                return None
            return self.parse_cap(response.text, quake)
        except (httpx.HTTPError, ET.ParseError) as exc:
            logger.debug("GeoNet CAP lookup failed | id=%s | error=%s", public_id, exc)
            return None

    def parse_cap(self, cap_xml: str, quake: HazardEvent) -> Optional[TsunamiAlert]:
        """
        Turn a CAP document into a TsunamiAlert.

        Returns None when the document does not mention a tsunami at all.
        """
        if "tsunami" not in cap_xml.lower():
            return None
        root = ET.fromstring(cap_xml)

        severities = _texts(root, "severity")
        urgencies = _texts(root, "urgency")
        if "Extreme" in severities:
            category, severity, instructions = _EXTREME
        elif "Severe" in severities:
            category, severity, instructions = _SEVERE
        elif "Expected" in urgencies:
            category, severity, instructions = _EXPECTED
        else:
            category, severity, instructions = _INFORMATION

        headlines = _texts(root, "headline")
        headline = headlines[0] if headlines else f"Tsunami assessment for {quake.place}"
        areas = tuple(_texts(root, "areaDesc")) or (DEFAULT_AREA,)

        public_id = quake.event_id.removeprefix("geonet_")
        return TsunamiAlert(
            alert_id=f"geonet_tsunami_{public_id}",
            source=self.name,
            title=headline,
            category=category,
            severity=severity,
            latitude=quake.latitude,
            longitude=quake.longitude,
            affected_regions=areas,
            issued_at=quake.time,
            expires_at=quake.time + ALERT_LIFETIME,
            description=f"Magnitude {quake.magnitude:.1f} earthquake {quake.place}. {instructions}",
            instructions=instructions,
            raw={"earthquake": quake.to_dict(), "cap_alert": True},
        )
