"""
Tsunami signature detection on DART bottom-pressure series.

A passing tsunami shows up as a rapid change in the water column above a
DART sensor: normal tides move it about 1 cm/min, a tsunami several tens of
centimetres within minutes. The detector looks at the most recent readings
of one station and classifies the swing into a tier:

    change > 50 within < 15 min  -> WARNING  / 5
    change > 20 within < 20 min  -> WARNING  / 4
    change > 10 within < 30 min  -> ADVISORY / 3
    change >  5 within < 30 min  -> WATCH    / 2

First match wins; the comparisons are strict. Readings whose newest sample
is older than MAX_AGE_MINUTES never produce a detection. The detector keeps
no state between calls.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from coastwatch.framework.models import AlertCategory

RECENT_WINDOW = 5
MIN_READINGS = 3
MAX_AGE_MINUTES = 30.0


@dataclass(frozen=True)
class PressureReading:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class DartTier:
    min_change: float
    max_span_minutes: float
    category: AlertCategory
    severity: int
    description: str
    instructions: str


@dataclass(frozen=True)
class DartDetection:
    category: AlertCategory
    severity: int
    change: float
    time_span_minutes: float
    description: str
    instructions: str
    observed_at: datetime


TIERS: tuple[DartTier, ...] = (
    DartTier(
        50.0,
        15.0,
        AlertCategory.WARNING,
        5,
        "a major tsunami wave with pressure change exceeding 50cm",
        "IMMEDIATE EVACUATION: Large tsunami wave confirmed in open ocean. "
        "Coastal areas in wave path should evacuate immediately to high ground.",
    ),
    DartTier(
        20.0,
        20.0,
        AlertCategory.WARNING,
        4,
        "a significant tsunami wave with pressure change exceeding 20cm",
        "TSUNAMI CONFIRMED: Ocean bottom pressure sensors confirm tsunami wave. "
        "Evacuate coastal areas along wave trajectory.",
    ),
    DartTier(
        10.0,
        30.0,
        AlertCategory.ADVISORY,
        3,
        "a moderate tsunami wave with measurable pressure changes",
        "Tsunami wave detected. Stay away from beaches, harbors, and low-lying "
        "coastal areas. Follow local emergency instructions.",
    ),
    DartTier(
        5.0,
        30.0,
        AlertCategory.WATCH,
        2,
        "minor pressure anomalies that may indicate tsunami activity",
        "Possible tsunami activity detected. Monitor updates and be prepared "
        "to move to higher ground if advised.",
    ),
)


def classify(change: float, time_span_minutes: float) -> Optional[DartTier]:
    """Return the first tier whose thresholds are strictly exceeded, else None."""
    for tier in TIERS:
        if change > tier.min_change and time_span_minutes < tier.max_span_minutes:
            return tier
    return None


def detect_anomaly(
    readings: Sequence[PressureReading], now: Optional[datetime] = None
) -> Optional[DartDetection]:
    """
    Classify the latest readings of one station.

    Args:
        readings: Chronologically ordered readings (oldest first), typically
                  the last ~10 rows of the station file.
        now: Reference time for the staleness check (defaults to utcnow).

    Returns:
        DartDetection, or None when there are too few readings, no tier
        matches, or the newest reading is stale.
    """
    if len(readings) < MIN_READINGS:
        return None

    recent = readings[-RECENT_WINDOW:]
    values = [r.value for r in recent]
    change = max(values) - min(values)
    span = (recent[-1].timestamp - recent[0].timestamp).total_seconds() / 60.0

    tier = classify(change, span)
    if tier is None:
        return None

    now = now or datetime.now(timezone.utc)
    age_minutes = (now - recent[-1].timestamp).total_seconds() / 60.0
    if age_minutes > MAX_AGE_MINUTES:
        return None

    return DartDetection(
        category=tier.category,
        severity=tier.severity,
        change=change,
        time_span_minutes=span,
        description=tier.description,
        instructions=tier.instructions,
        observed_at=recent[-1].timestamp,
    )
