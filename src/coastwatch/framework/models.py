"""
Canonical record shapes produced by the adapters and the fusion layer.

Every record is a frozen dataclass: a HazardEvent is immutable once parsed
from a feed, and fused records are rebuilt on every poll cycle rather than
updated in place. Times are timezone-aware UTC datetimes; to_dict() renders
them as ISO 8601 strings with a Z suffix for JSON transport.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Render a datetime as ISO 8601 UTC with Z suffix (None passes through)."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def from_epoch_ms(ms: float) -> datetime:
    """Convert milliseconds since epoch to an aware UTC datetime."""
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class AlertCategory(str, Enum):
    """Tsunami alert levels, lowest to highest."""

    INFORMATION = "INFORMATION"
    WATCH = "WATCH"
    ADVISORY = "ADVISORY"
    WARNING = "WARNING"


# ----------------------------------------------------------------------
# Seismic
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class HazardEvent:
    """A single report of a seismic event from one source."""

    event_id: str
    source: str
    magnitude: float
    latitude: float
    longitude: float
    depth_km: float
    time: datetime
    place: str
    url: Optional[str] = None
    magnitude_type: Optional[str] = None

    @property
    def time_ms(self) -> int:
        return int(self.time.timestamp() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class AggregatedHazardEvent:
    """
    A fused earthquake built from one or more HazardEvents.

    Created only by the aggregator's merge step. `sources` is ordered and
    distinct; `confidence` is min(1.0, len(sources) / 2).
    """

    event_id: str
    source: str
    magnitude: float
    latitude: float
    longitude: float
    depth_km: float
    time: datetime
    place: str
    sources: tuple[str, ...]
    primary_source: str
    confidence: float
    member_ids: tuple[str, ...] = ()
    correlation_id: str = ""
    url: Optional[str] = None
    magnitude_type: Optional[str] = None

    @property
    def title(self) -> str:
        return f"M {self.magnitude:.1f} - {self.place}"

    def to_dict(self) -> dict[str, Any]:
        data = _jsonable(asdict(self))
        data["title"] = self.title
        return data


# ----------------------------------------------------------------------
# Tsunami
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class DartConfirmation:
    """Physical confirmation of a tsunami alert by a nearby DART buoy."""

    station_id: str
    station_name: str
    height_m: float
    detected_at: datetime
    region: str


@dataclass(frozen=True)
class WaveTrain:
    number: int
    height_m: float
    eta: datetime
    is_strongest: bool = False


@dataclass(frozen=True)
class TsunamiAlert:
    """
    A tsunami alert as asserted by one source.

    confidence and sources are only populated once the alert has passed
    through TsunamiFusion; dart_confirmation only when a DART detection
    corroborates it.
    """

    alert_id: str
    source: str
    title: str
    category: AlertCategory
    severity: int
    latitude: float
    longitude: float
    affected_regions: tuple[str, ...]
    issued_at: datetime
    expires_at: Optional[datetime] = None
    description: str = ""
    instructions: str = ""
    raw: Optional[dict[str, Any]] = field(default=None, compare=False)
    dart_confirmation: Optional[DartConfirmation] = None
    confidence: Optional[float] = None
    sources: tuple[str, ...] = ()
    wave_trains: tuple[WaveTrain, ...] = ()

    def __post_init__(self) -> None:
        if not 1 <= self.severity <= 5:
            raise ValueError(f"severity must be in 1..5, got {self.severity}")
        if not isinstance(self.category, AlertCategory):
            object.__setattr__(self, "category", AlertCategory(self.category))

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


# ----------------------------------------------------------------------
# Operational
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class SourceHealthStatus:
    """Point-in-time health snapshot of one adapter. Process-local, never persisted."""

    is_healthy: bool
    last_successful_fetch: Optional[datetime]
    last_error: Optional[str]
    consecutive_failures: int
    average_response_time_ms: int

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


# ----------------------------------------------------------------------
# Maritime
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Vessel:
    """A vessel keyed by its mmsi."""

    mmsi: str
    name: str
    vessel_type: Optional[str] = None
    imo: Optional[str] = None
    callsign: Optional[str] = None
    length: Optional[float] = None
    width: Optional[float] = None
    draught: Optional[float] = None
    flag: Optional[str] = None
    last_seen: Optional[datetime] = None
    active: bool = True
    enriched_at: Optional[datetime] = None
    enrichment_source: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class VesselPosition:
    """One observed position. Append-only."""

    mmsi: str
    latitude: float
    longitude: float
    speed: Optional[float]
    course: Optional[float]
    heading: Optional[int]
    navigational_status: str
    timestamp: datetime
