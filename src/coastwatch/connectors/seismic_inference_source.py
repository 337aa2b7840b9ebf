"""
Tsunami potential inferred from earthquake parameters.

Wraps an earthquake source and turns its recent large shallow events into
provisional tsunami alerts using a simplified generation rule:

    M >= 7.5 and depth <= 70 km   -> WARNING  (rule confidence 0.7)
    M >= 7.0 and depth <= 100 km  -> WATCH    (rule confidence 0.6)
    M >= 6.5 and depth <= 50 km   -> ADVISORY (rule confidence 0.4)

These alerts are an inference, not an official bulletin; fusion scores them
below the warning centres.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.models import AlertCategory, HazardEvent, TsunamiAlert

logger = logging.getLogger(__name__)

ALERT_LIFETIME = timedelta(hours=6)


@dataclass(frozen=True)
class ThreatAssessment:
    category: AlertCategory
    severity: int
    confidence: float
    instructions: str


_RULES: tuple[tuple[float, float, ThreatAssessment], ...] = (
    (
        7.5,
        70.0,
        ThreatAssessment(
            AlertCategory.WARNING,
            4,
            0.7,
            "Potentially destructive tsunami possible. Move away from the coast and follow official guidance.",
        ),
    ),
    (
        7.0,
        100.0,
        ThreatAssessment(
            AlertCategory.WATCH,
            3,
            0.6,
            "Tsunami possible. Stay alert for official warnings and avoid the shoreline.",
        ),
    ),
    (
        6.5,
        50.0,
        ThreatAssessment(
            AlertCategory.ADVISORY,
            3,
            0.4,
            "Strong currents possible near the coast. Stay out of the water and away from beaches.",
        ),
    ),
)


def assess_tsunami_threat(magnitude: float, depth_km: float) -> Optional[ThreatAssessment]:
    """Apply the magnitude/depth rule. None means no tsunami threat inferred."""
    for min_magnitude, max_depth, assessment in _RULES:
        if magnitude >= min_magnitude and depth_km <= max_depth:
            return assessment
    return None


class SeismicInferenceSource(BaseSource):
    """Derives tsunami alerts from another source's earthquakes."""

    supports_tsunami = True
    update_frequency_seconds = 60

    MIN_MAGNITUDE = 6.5
    WINDOW_HOURS = 6

    def __init__(self, upstream: BaseSource) -> None:
        super().__init__()
        self.upstream = upstream
        self.name = f"{upstream.name}-Inference"
        self.coverage = upstream.coverage

    async def probe(self) -> None:
        await self.upstream.probe()

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        return []

    async def _fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        quakes = await self.upstream.fetch_hazard_events(
            FetchOptions(min_magnitude=self.MIN_MAGNITUDE, time_window_hours=self.WINDOW_HOURS)
        )
        alerts = [a for a in (self.infer(q) for q in quakes) if a is not None]
        logger.info("%s inferred %d tsunami alerts from %d quakes", self.name, len(alerts), len(quakes))
        return alerts

    def infer(self, quake: HazardEvent) -> Optional[TsunamiAlert]:
        assessment = assess_tsunami_threat(quake.magnitude, quake.depth_km)
        if assessment is None:
            return None
        return TsunamiAlert(
            alert_id=f"inferred_{quake.event_id}",
            source=self.name,
            title=f"Tsunami {assessment.category.value.title()} (inferred) - M {quake.magnitude:.1f} {quake.place}",
            category=assessment.category,
            severity=assessment.severity,
            latitude=quake.latitude,
            longitude=quake.longitude,
            affected_regions=(quake.place,),
            issued_at=quake.time,
            expires_at=quake.time + ALERT_LIFETIME,
            description=(
                f"Magnitude {quake.magnitude:.1f} earthquake at {quake.depth_km:.0f} km depth "
                f"{quake.place}. Tsunami potential inferred from earthquake parameters."
            ),
            instructions=assessment.instructions,
            raw={"earthquake": quake.to_dict(), "rule_confidence": assessment.confidence},
        )
