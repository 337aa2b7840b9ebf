"""
PTWC (Pacific Tsunami Warning Center) Atom feed adapter.

Coverage: Pacific basin plus Alaska / US West Coast. Polls two Atom feeds
(PHEB for the Pacific basin, PAAQ for Alaska and the West Coast). Each entry
is a bulletin; its HTML summary carries a "Category:" line that maps onto an
alert tier.

PTWC bulletins change rarely, so network polls are throttled to one per
TTL_SECONDS; calls inside the TTL return the last good result. After a
failed poll the next attempt is pushed back exponentially up to
MAX_BACKOFF_SECONDS.
"""

import logging
import re
import time
import xml.etree.ElementTree as ET
from datetime import timedelta
from typing import Optional

import httpx

from coastwatch.framework.base_source import BaseSource, FetchOptions, parse_time
from coastwatch.framework.errors import SourceFetchError
from coastwatch.framework.models import AlertCategory, HazardEvent, TsunamiAlert

logger = logging.getLogger(__name__)

ATOM_NS = "{http://www.w3.org/2005/Atom}"
GEO_NS = "{http://www.w3.org/2003/01/geo/wgs84_pos#}"
ALERT_LIFETIME = timedelta(hours=24)

_CATEGORY_RE = re.compile(
    r"<(?:\w+:)?strong[^>]*>\s*Category:\s*</(?:\w+:)?strong>\s*([^<]+)", re.IGNORECASE
)
_REGION_RE = re.compile(
    r"<(?:\w+:)?strong[^>]*>\s*Affected Region:\s*</(?:\w+:)?strong>\s*([^<]+)", re.IGNORECASE
)
_MAGNITUDE_RE = re.compile(r"Magnitude[^>]*>\s*([\d.]+)", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_ID_SAFE_RE = re.compile(r"[^a-zA-Z0-9]")


def map_category(ptwc_category: str) -> tuple[AlertCategory, int]:
    """Map a PTWC category label to (category, severity)."""
    label = ptwc_category.lower()
    if "warning" in label:
        return AlertCategory.WARNING, 4
    if "watch" in label:
        return AlertCategory.WATCH, 3
    if "advisory" in label:
        return AlertCategory.ADVISORY, 3
    return AlertCategory.INFORMATION, 2


def extract_instructions(summary: str) -> str:
    text = summary.lower()
    if "evacuate" in text:
        return "Evacuate coastal areas immediately and move to high ground."
    if "stay away" in text or "avoid" in text:
        return "Stay away from beaches, harbors, and coastal areas."
    if "no action" in text:
        return "No action required. Monitor for updates."
    return "Follow guidance from local emergency management officials."


def infer_region(lat: float, lon: float) -> str:
    """Coarse ocean-basin name from coordinates, used when the bulletin names none."""
    if -180 <= lon <= -60:
        return "North Pacific" if lat >= 0 else "South Pacific"
    if -60 <= lon <= 20:
        return "North Atlantic" if lat >= 0 else "South Atlantic"
    if 20 <= lon <= 180:
        return "Western Pacific" if lat >= 0 else "Indian Ocean"
    return "Pacific Ocean"


def clean_summary(summary: str, limit: int = 500) -> str:
    text = _WHITESPACE_RE.sub(" ", _HTML_TAG_RE.sub(" ", summary)).strip()
    return text[:limit]


class PtwcSource(BaseSource):
    """Tsunami bulletins from tsunami.gov Atom feeds."""

    name = "PTWC"
    coverage = ("Pacific Ocean", "Global Tsunami Monitoring")
    update_frequency_seconds = 300
    supports_tsunami = True

    PROBE_URL = "https://www.tsunami.gov"
    FEEDS = (
        "https://www.tsunami.gov/events/xml/PHEBAtom.xml",
        "https://www.tsunami.gov/events/xml/PAAQAtom.xml",
    )
    FETCH_TIMEOUT_SECONDS = 15.0
    TTL_SECONDS = 300.0
    INITIAL_BACKOFF_SECONDS = 60.0
    MAX_BACKOFF_SECONDS = 3600.0

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(client)
        self._cached: list[TsunamiAlert] = []
        self._next_fetch_at = 0.0
        self._backoff = 0.0

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        # Bulletins only; seismic parameters come from the earthquake feeds.
        return []

    async def _fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        now = time.monotonic()
        if now < self._next_fetch_at:
            return list(self._cached)

        alerts: list[TsunamiAlert] = []
        failures: list[str] = []
        for feed_url in self.FEEDS:
            try:
                response = self._check(
                    await self._get(
                        feed_url,
                        headers={"Accept": "application/atom+xml,application/xml,text/xml"},
                    )
                )
                alerts.extend(self.parse_feed(response.text))
            except (httpx.HTTPError, ET.ParseError, SourceFetchError) as exc:
                logger.warning("PTWC feed failed | url=%s | error=%s", feed_url, exc)
                failures.append(str(exc))

        if len(failures) == len(self.FEEDS):
            self._backoff = min(
                max(self._backoff * 2, self.INITIAL_BACKOFF_SECONDS), self.MAX_BACKOFF_SECONDS
            )
            self._next_fetch_at = now + self._backoff
            raise SourceFetchError(self.name, f"all feeds failed: {failures[-1]}")

        self._backoff = 0.0
        self._next_fetch_at = now + self.TTL_SECONDS
        self._cached = alerts
        logger.info("PTWC returned %d tsunami alerts", len(alerts))
        return list(alerts)

    def parse_feed(self, xml_text: str) -> list[TsunamiAlert]:
        """Parse every <entry> of an Atom document; malformed entries are skipped."""
        root = ET.fromstring(xml_text)
        alerts: list[TsunamiAlert] = []
        for entry in root.iter(f"{ATOM_NS}entry"):
            try:
                alert = self.parse_entry(entry)
            except (ValueError, TypeError) as exc:
                logger.debug("PTWC skipping malformed entry | error=%s", exc)
                continue
            if alert is not None:
                alerts.append(alert)
        return alerts

    def parse_entry(self, entry: ET.Element) -> Optional[TsunamiAlert]:
        """
        Build an alert from one Atom entry.

        Returns None for entries without title/updated, and for
        information-only bulletins that explicitly state there is no threat.
        """
        title = (entry.findtext(f"{ATOM_NS}title") or "").strip()
        updated = (entry.findtext(f"{ATOM_NS}updated") or "").strip()
        if not title or not updated:
            return None

        entry_id = (entry.findtext(f"{ATOM_NS}id") or "").strip()
        summary = self._inner_markup(entry.find(f"{ATOM_NS}summary"))
        lat = float(entry.findtext(f"{GEO_NS}lat") or 0)
        lon = float(entry.findtext(f"{GEO_NS}long") or 0)

        match = _CATEGORY_RE.search(summary)
        ptwc_category = match.group(1).strip() if match else "Information"
        lowered = summary.lower()
        no_threat = "no tsunami" in lowered or "no threat" in lowered
        if ptwc_category.lower() == "information" and no_threat:
            return None

        region_match = _REGION_RE.search(summary)
        region = region_match.group(1).strip() if region_match else infer_region(lat, lon)
        magnitude_match = _MAGNITUDE_RE.search(summary)

        category, severity = map_category(ptwc_category)
        issued = parse_time(updated)
        return TsunamiAlert(
            alert_id=f"ptwc_{_ID_SAFE_RE.sub('_', entry_id or title)}_{int(issued.timestamp())}",
            source=self.name,
            title=title,
            category=category,
            severity=severity,
            latitude=lat,
            longitude=lon,
            affected_regions=(region,),
            issued_at=issued,
            expires_at=issued + ALERT_LIFETIME,
            description=clean_summary(summary),
            instructions=extract_instructions(summary),
            raw={
                "category": ptwc_category,
                "magnitude": float(magnitude_match.group(1)) if magnitude_match else None,
                "no_threat": no_threat,
            },
        )

    @staticmethod
    def _inner_markup(element: Optional[ET.Element]) -> str:
        """Summary as markup: escaped HTML arrives as text, XHTML as child elements."""
        if element is None:
            return ""
        parts = [element.text or ""]
        parts.extend(ET.tostring(child, encoding="unicode") for child in element)
        return "".join(parts)
