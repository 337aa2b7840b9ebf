"""
Unit tests for earthquake aggregation.

Tests cover:
- are_similar(): inclusive time / distance / magnitude bounds
- merge_group(): means, primary selection, distinct sources, confidence
- aggregate(): nearby reports minutes apart fuse into one event
- aggregate(): grouping independent of input order
- Aggregator: unavailable and failing sources contribute nothing
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from coastwatch.framework.base_source import BaseSource
from coastwatch.framework.models import HazardEvent
from coastwatch.fusion.aggregator import Aggregator, aggregate, are_similar, merge_group

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _event(
    source: str,
    magnitude: float = 6.1,
    lat: float = 35.0,
    lon: float = 139.0,
    offset_ms: int = 0,
    depth: float = 10.0,
    event_id: str = "",
) -> HazardEvent:
    return HazardEvent(
        event_id=event_id or f"{source.lower()}_{magnitude}_{offset_ms}",
        source=source,
        magnitude=magnitude,
        latitude=lat,
        longitude=lon,
        depth_km=depth,
        time=T0 + timedelta(milliseconds=offset_ms),
        place=f"{source} place",
        url=f"https://{source.lower()}.example/event",
    )


class FakeSource(BaseSource):
    def __init__(self, name, events=None, available=True, error=None) -> None:
        super().__init__()
        self.name = name
        self.events = events or []
        self.available = available
        self.error = error

    async def probe(self) -> None:
        if not self.available:
            raise ConnectionError("unreachable")

    async def _fetch_hazard_events(self, options):
        if self.error is not None:
            raise self.error
        return self.events


class TestAreSimilar:
    def test_identical(self) -> None:
        assert are_similar(_event("USGS"), _event("EMSC"))

    def test_time_bound_inclusive(self) -> None:
        assert are_similar(_event("USGS"), _event("EMSC", offset_ms=300_000))
        assert not are_similar(_event("USGS"), _event("EMSC", offset_ms=300_001))

    def test_distance_bound(self) -> None:
        # one degree of latitude is ~111.19 km
        assert are_similar(_event("USGS"), _event("EMSC", lat=35.44))
        assert not are_similar(_event("USGS"), _event("EMSC", lat=35.46))

    def test_magnitude_bound_inclusive(self) -> None:
        assert are_similar(_event("USGS", 6.1), _event("EMSC", 6.4))
        assert not are_similar(_event("USGS", 6.1), _event("EMSC", 6.41))


class TestMergeGroup:
    def test_two_sources(self) -> None:
        merged = merge_group([_event("USGS", 6.1), _event("EMSC", 6.3, lat=35.1, depth=20.0)])
        assert merged.magnitude == 6.2
        assert merged.latitude == 35.05
        assert merged.depth_km == 15.0
        assert merged.sources == ("USGS", "EMSC")
        assert merged.confidence == 1.0
        assert merged.primary_source == "USGS"
        assert merged.place == "USGS place"
        assert merged.time == T0

    def test_single_source_confidence(self) -> None:
        assert merge_group([_event("IRIS")]).confidence == 0.5

    def test_duplicate_source_counted_once(self) -> None:
        merged = merge_group([_event("USGS", 6.1), _event("USGS", 6.2, offset_ms=1000)])
        assert merged.sources == ("USGS",)
        assert merged.confidence == 0.5

    def test_primary_is_highest_priority(self) -> None:
        merged = merge_group([_event("EMSC", offset_ms=5000), _event("JMA"), _event("USGS")])
        assert merged.primary_source == "JMA"
        assert merged.event_id == "jma_6.1_0"

    def test_unranked_sources_keep_first(self) -> None:
        merged = merge_group([_event("IRIS"), _event("GeoNet")])
        assert merged.primary_source == "IRIS"

    def test_correlation_id_order_independent(self) -> None:
        a, b = _event("USGS"), _event("EMSC")
        assert merge_group([a, b]).correlation_id == merge_group([b, a]).correlation_id

    def test_empty_group(self) -> None:
        with pytest.raises(ValueError):
            merge_group([])


class TestAggregate:
    def test_end_to_end(self) -> None:
        fused = aggregate([_event("EMSC", 6.3), _event("USGS", 6.1)])
        assert len(fused) == 1
        event = fused[0]
        assert event.magnitude == 6.2
        assert event.sources == ("USGS", "EMSC")
        assert event.confidence == 1.0
        assert event.primary_source == "USGS"

    def test_nearby_reports_two_minutes_apart(self) -> None:
        first = _event("USGS", 6.1, lat=34.00, lon=-118.00, depth=8.0)
        second = _event("EMSC", 6.3, lat=34.02, lon=-118.01, offset_ms=120_000, depth=9.0)

        fused = aggregate([first, second])

        assert len(fused) == 1
        event = fused[0]
        assert event.magnitude == 6.2
        assert event.sources == ("USGS", "EMSC")
        assert event.confidence == 1.0
        assert event.latitude == pytest.approx(34.01)
        assert event.longitude == pytest.approx(-118.005)
        assert event.depth_km == 8.5
        assert event.time == T0

    def test_distinct_quakes_stay_apart(self) -> None:
        fused = aggregate([_event("USGS"), _event("EMSC", lat=-20.0, lon=-175.0)])
        assert len(fused) == 2

    def test_input_order_does_not_matter(self) -> None:
        events = [
            _event("EMSC", 6.0),
            _event("USGS", 6.2, offset_ms=200_000),
            _event("JMA", 6.4, offset_ms=400_000),
        ]
        forward = aggregate(events)
        backward = aggregate(list(reversed(events)))
        assert [e.member_ids for e in forward] == [e.member_ids for e in backward]


class TestAggregator:
    def test_failures_isolated(self) -> None:
        aggregator = Aggregator(
            [
                FakeSource("USGS", [_event("USGS", 6.1)]),
                FakeSource("EMSC", [_event("EMSC", 6.3)]),
                FakeSource("JMA", available=False),
                FakeSource("IRIS", error=RuntimeError("boom")),
            ]
        )
        fused = asyncio.run(aggregator.fetch_aggregated())
        assert len(fused) == 1
        assert fused[0].sources == ("USGS", "EMSC")

        health = aggregator.sources_health()
        assert health["JMA"]["health"]["consecutive_failures"] == 1
        assert health["IRIS"]["health"]["last_error"] == "boom"
        assert health["USGS"]["health"]["is_healthy"] is True

    def test_no_sources(self) -> None:
        assert asyncio.run(Aggregator([]).fetch_aggregated()) == []
