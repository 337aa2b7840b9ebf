"""
DART (Deep-ocean Assessment and Reporting of Tsunamis) buoy adapter.

Unlike the other tsunami sources, DART does not publish alerts: NOAA NDBC
exposes the raw water-column series of each bottom pressure recorder. This
adapter downloads the latest readings for a fixed set of stations and runs
the DART anomaly detector on each one; a detection becomes a TsunamiAlert
located at the buoy.

Data from NOAA National Data Buoy Center (US public domain).
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from coastwatch.detectors.dart_anomaly import PressureReading, detect_anomaly
from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.errors import SourceFetchError
from coastwatch.framework.models import HazardEvent, TsunamiAlert

logger = logging.getLogger(__name__)

ALERT_LIFETIME = timedelta(hours=3)
READINGS_CONSIDERED = 10
MIN_VALUE, MAX_VALUE = 0.0, 20000.0


@dataclass(frozen=True)
class DartStation:
    station_id: str
    name: str
    latitude: float
    longitude: float
    region: str


STATIONS: tuple[DartStation, ...] = (
    DartStation("46404", "DART 46404", 50.871, -135.977, "Northeast Pacific"),
    DartStation("46407", "DART 46407", 52.649, -150.006, "Gulf of Alaska"),
    DartStation("46409", "DART 46409", 45.863, -128.768, "Northeast Pacific"),
    DartStation("51407", "DART 51407", 19.614, -156.517, "Hawaii"),
    DartStation("51425", "DART 51425", 23.482, -162.085, "Central Pacific"),
    DartStation("21413", "DART 21413", 30.516, 152.117, "Western Pacific"),
    DartStation("21415", "DART 21415", 28.790, 143.479, "Western Pacific"),
    DartStation("21418", "DART 21418", 49.292, 171.849, "Western Pacific"),
    DartStation("55012", "DART 55012", -8.480, -125.020, "Southeast Pacific"),
    DartStation("55015", "DART 55015", -19.621, -85.813, "Southeast Pacific"),
    DartStation("23227", "DART 23227", 6.024, 89.658, "Indian Ocean"),
    DartStation("23401", "DART 23401", -12.359, 96.832, "Indian Ocean"),
    DartStation("41421", "DART 41421", 16.013, -58.164, "Caribbean"),
)


def parse_readings(text: str) -> list[PressureReading]:
    """
    Parse an NDBC realtime2 .dart / .txt file into chronological readings.

    Each data row starts with `YY|YYYY MM DD hh mm` and carries the
    water-column value in its last column. Comment rows (#), short rows and
    values outside (0, 20000) are dropped. NDBC lists newest rows first, so
    the result is sorted and trimmed to the latest READINGS_CONSIDERED.
    """
    readings: list[PressureReading] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        parts = stripped.split()
        if len(parts) < 6:
            continue
        try:
            year = int(parts[0])
            if len(parts[0]) == 2:
                year += 2000
            timestamp = datetime(
                year, int(parts[1]), int(parts[2]), int(parts[3]), int(parts[4]), tzinfo=timezone.utc
            )
            value = float(parts[-1])
        except ValueError:
            continue
        if MIN_VALUE < value < MAX_VALUE:
            readings.append(PressureReading(timestamp=timestamp, value=value))

    readings.sort(key=lambda r: r.timestamp)
    return readings[-READINGS_CONSIDERED:]


class DartBuoySource(BaseSource):
    """Tsunami detections computed from NDBC DART bottom-pressure series."""

    name = "DART"
    coverage = ("Pacific Ocean", "Atlantic Ocean", "Indian Ocean", "Global")
    update_frequency_seconds = 300
    supports_tsunami = True

    BASE_URL = "https://www.ndbc.noaa.gov/data/realtime2/"
    PROBE_URL = "https://www.ndbc.noaa.gov/"
    FETCH_TIMEOUT_SECONDS = 8.0

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        stations: tuple[DartStation, ...] = STATIONS,
    ) -> None:
        super().__init__(client)
        self.stations = stations

    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        return []

    async def _fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        results = await asyncio.gather(
            *[self._station_alert(s) for s in self.stations], return_exceptions=True
        )
        alerts: list[TsunamiAlert] = []
        errors = 0
        for station, result in zip(self.stations, results):
            if isinstance(result, Exception):
                errors += 1
                logger.debug("DART station fetch failed | station=%s | error=%s", station.station_id, result)
            elif result is not None:
                alerts.append(result)

        if self.stations and errors == len(self.stations):
            raise SourceFetchError(self.name, "every station request failed")
        logger.info("DART returned %d detections from %d stations", len(alerts), len(self.stations))
        return alerts

    async def _station_alert(self, station: DartStation) -> Optional[TsunamiAlert]:
        text = await self._station_text(station)
        if text is None:
            return None
        return self.evaluate(station, parse_readings(text))

    async def _station_text(self, station: DartStation) -> Optional[str]:
        """Download {id}.dart, falling back to {id}.txt. None if neither exists."""
        for suffix in (".dart", ".txt"):
            response = await self._get(f"{self.BASE_URL}{station.station_id}{suffix}")
            if response.is_success:
                return response.text
        return None

    def evaluate(
        self,
        station: DartStation,
        readings: list[PressureReading],
        now: Optional[datetime] = None,
    ) -> Optional[TsunamiAlert]:
        """Run the detector on one station's readings and wrap a detection as an alert."""
        detection = detect_anomaly(readings, now=now)
        if detection is None:
            return None

        observed = detection.observed_at
        return TsunamiAlert(
            alert_id=f"dart_{station.station_id}_{int(observed.timestamp() * 1000)}",
            source=self.name,
            title=f"Tsunami Wave Detected - {station.name}",
            category=detection.category,
            severity=detection.severity,
            latitude=station.latitude,
            longitude=station.longitude,
            affected_regions=(station.region,),
            issued_at=observed,
            expires_at=observed + ALERT_LIFETIME,
            description=(
                f"DART buoy {station.name} has detected {detection.description}. "
                "This is a direct measurement of tsunami wave activity in the open ocean."
            ),
            instructions=detection.instructions,
            raw={
                "station": station.station_id,
                "station_name": station.name,
                "pressure_change": detection.change,
                "time_span_minutes": detection.time_span_minutes,
                "readings": [r.value for r in readings[-5:]],
            },
        )
