"""
Tsunami alert fusion.

Alerts are collected from every tsunami-capable adapter. They are not merged
across sources: each stays an independent assertion. Two things are added:

- DART cross-validation: a non-DART alert issued near a DART detection (in
  space and time) gets a DartConfirmation and lists DART among its sources.
- Confidence on a 0-1 scale:

      0.40 base
    + source weight (PTWC 0.30, JMA 0.25, GeoNet 0.25, DART 0.30, other 0.15)
    + 0.30 when DART-confirmed
    + 0.05 when severity >= 4
    capped at 1.0
"""

import asyncio
import dataclasses
import logging
from typing import Optional, Sequence

from coastwatch.framework.base_source import BaseSource
from coastwatch.framework.geo import haversine_km
from coastwatch.framework.models import DartConfirmation, TsunamiAlert

logger = logging.getLogger(__name__)

DART_SOURCE = "DART"
CONFIRMATION_MAX_DISTANCE_KM = 500.0
CONFIRMATION_MAX_SECONDS = 2 * 3600

BASE_CONFIDENCE = 0.40
SOURCE_WEIGHTS: dict[str, float] = {"PTWC": 0.30, "JMA": 0.25, "GeoNet": 0.25, "DART": 0.30}
DEFAULT_SOURCE_WEIGHT = 0.15
DART_CONFIRMATION_BONUS = 0.30
HIGH_SEVERITY_BONUS = 0.05


def alert_confidence(alert: TsunamiAlert, confirmed: bool) -> float:
    score = BASE_CONFIDENCE + SOURCE_WEIGHTS.get(alert.source, DEFAULT_SOURCE_WEIGHT)
    if confirmed:
        score += DART_CONFIRMATION_BONUS
    if alert.severity >= 4:
        score += HIGH_SEVERITY_BONUS
    return round(min(1.0, score), 2)


def find_confirmation(
    alert: TsunamiAlert, detections: Sequence[TsunamiAlert]
) -> Optional[DartConfirmation]:
    """First DART detection strictly within 500 km and 2 h of the alert."""
    for detection in detections:
        distance = haversine_km(
            alert.latitude, alert.longitude, detection.latitude, detection.longitude
        )
        seconds_apart = abs((alert.issued_at - detection.issued_at).total_seconds())
        if distance < CONFIRMATION_MAX_DISTANCE_KM and seconds_apart < CONFIRMATION_MAX_SECONDS:
            raw = detection.raw or {}
            return DartConfirmation(
                station_id=str(raw.get("station", detection.alert_id)),
                station_name=str(raw.get("station_name", detection.title)),
                height_m=round(float(raw.get("pressure_change", 0.0)) / 100, 3),
                detected_at=detection.issued_at,
                region=detection.affected_regions[0] if detection.affected_regions else "",
            )
    return None


def cross_validate(alerts: Sequence[TsunamiAlert]) -> list[TsunamiAlert]:
    """Attach DART confirmations, sources and confidence. Input order is kept."""
    detections = [a for a in alerts if a.source == DART_SOURCE]
    fused: list[TsunamiAlert] = []
    for alert in alerts:
        confirmation = None
        if alert.source != DART_SOURCE:
            confirmation = find_confirmation(alert, detections)
        if confirmation is not None:
            logger.info(
                "Tsunami alert confirmed by DART | alert=%s | station=%s",
                alert.alert_id,
                confirmation.station_id,
            )
        fused.append(
            dataclasses.replace(
                alert,
                dart_confirmation=confirmation,
                sources=(alert.source, DART_SOURCE) if confirmation else (alert.source,),
                confidence=alert_confidence(alert, confirmation is not None),
            )
        )
    return fused


class TsunamiFusion:
    """
    Collects and cross-validates tsunami alerts from the injected adapters.

    Adapters without tsunami support are ignored.
    """

    def __init__(self, sources: Sequence[BaseSource]) -> None:
        self.sources = [s for s in sources if s.supports_tsunami]

    async def fetch_alerts(self) -> list[TsunamiAlert]:
        checks = await asyncio.gather(*[s.is_available() for s in self.sources])
        available = []
        for source, ok in zip(self.sources, checks):
            if ok:
                available.append(source)
            else:
                logger.warning("Skipping unavailable tsunami source | source=%s", source.name)

        results = await asyncio.gather(
            *[s.fetch_tsunami_alerts() for s in available], return_exceptions=True
        )
        alerts: list[TsunamiAlert] = []
        for source, result in zip(available, results):
            if isinstance(result, BaseException):
                logger.warning("Tsunami source contributed nothing | source=%s | error=%s", source.name, result)
                continue
            alerts.extend(result)

        fused = cross_validate(alerts)
        logger.info(
            "Tsunami fusion produced %d alerts | confirmed=%d",
            len(fused),
            sum(1 for a in fused if a.dart_confirmation is not None),
        )
        return fused
