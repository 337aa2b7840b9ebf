"""
Unit tests for the earthquake adapters (USGS, EMSC, JMA, IRIS, GeoNet quakes).

Tests cover:
- normalization of each feed's record shape to HazardEvent
- malformed records skipped without failing the response
- native query parameters (EMSC, IRIS)
- "no data" status codes treated as empty results
- failures surfaced as SourceFetchError and recorded in health
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from coastwatch.connectors.emsc_source import EmscSource
from coastwatch.connectors.geonet_source import GeoNetSource
from coastwatch.connectors.iris_source import IrisSource
from coastwatch.connectors.jma_source import JmaSource
from coastwatch.connectors.usgs_source import UsgsSource
from coastwatch.framework.base_source import FetchOptions
from coastwatch.framework.errors import RateLimitedError, SourceFetchError

SAMPLE_USGS = {
    "type": "FeatureCollection",
    "features": [
        {
            "id": "us7000abcd",
            "properties": {
                "mag": 6.1,
                "place": "10 km SW of Somewhere, CA",
                "time": 1709294400000,
                "url": "https://earthquake.usgs.gov/earthquakes/eventpage/us7000abcd",
                "magType": "mww",
            },
            "geometry": {"type": "Point", "coordinates": [-118.0, 34.0, 8.0]},
        },
        {
            "id": "us7000nomag",
            "properties": {"mag": None, "place": "Nowhere", "time": 1709294400000},
            "geometry": {"type": "Point", "coordinates": [-118.0, 34.0, 8.0]},
        },
    ],
}

SAMPLE_EMSC = {
    "features": [
        {
            "id": "20240301_0000123",
            "properties": {
                "time": "2024-03-01T12:00:00.0Z",
                "lat": 38.1,
                "lon": 23.5,
                "depth": -12.0,
                "mag": 4.8,
                "magtype": "mb",
                "flynn_region": "GREECE",
            },
            "geometry": {"coordinates": [23.5, 38.1, -12.0]},
        }
    ]
}

SAMPLE_JMA = [
    {"id": "20240301120000", "mag": "5.2", "lat": 35.6, "lon": 139.7, "time": "2024-03-01T12:00:00+09:00", "place": "Tokyo Bay"},
    {"magnitude": 4.4, "coordinates": [141.0, 38.0], "timestamp": "2024-03-01T10:00:00Z", "depth": "40"},
    {"mag": 4.0, "place": "No coordinates", "time": "2024-03-01T09:00:00Z"},
    {"mag": 4.0, "lat": 35.0, "lon": 139.0},
]

SAMPLE_IRIS = """#EventID | Time | Latitude | Longitude | Depth/km | Author | Catalog | Contributor | ContributorID | MagType | Magnitude | MagAuthor | EventLocationName
11812345|2024-03-01T12:00:00.123|-20.5|-175.2|35.0|us|NEIC PDE|us|us7000abcd|Mww|6.4|us|TONGA ISLANDS
broken|line
11812346|not-a-time|10.0|10.0|10.0|us|NEIC PDE|us|x|mb|4.5|us|SOMEWHERE
"""

SAMPLE_GEONET = {
    "features": [
        {
            "geometry": {"coordinates": [176.2, -38.5]},
            "properties": {
                "publicID": "2024p123456",
                "time": "2024-03-01T12:00:00.000Z",
                "depth": 150.5,
                "magnitude": 5.1,
                "locality": "20 km north of Taupo",
            },
        },
        {
            "geometry": {"coordinates": [176.2, -38.5]},
            "properties": {
                "publicID": "2024p123457",
                "time": "2024-03-01T11:00:00.000Z",
                "depth": 10.0,
                "magnitude": 3.2,
                "locality": "Too small",
            },
        },
    ]
}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _json(payload, status: int = 200):
    return lambda request: httpx.Response(status, content=json.dumps(payload).encode())


class TestUsgsSource:
    def test_feed_url_by_window(self) -> None:
        source = UsgsSource()
        assert source.feed_url(1).endswith("all_hour.geojson")
        assert source.feed_url(24).endswith("all_day.geojson")
        assert source.feed_url(168).endswith("all_week.geojson")
        assert source.feed_url(169).endswith("all_month.geojson")

    def test_fetch_normalizes_and_skips_null_magnitude(self) -> None:
        source = UsgsSource(_client(_json(SAMPLE_USGS)))
        events = asyncio.run(source.fetch_hazard_events(FetchOptions()))

        assert len(events) == 1
        event = events[0]
        assert event.event_id == "usgs_us7000abcd"
        assert event.source == "USGS"
        assert (event.latitude, event.longitude, event.depth_km) == (34.0, -118.0, 8.0)
        assert event.time == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert event.magnitude_type == "mww"

    def test_null_depth_defaults_to_ten(self) -> None:
        feature = {**SAMPLE_USGS["features"][0], "geometry": {"coordinates": [-118.0, 34.0, None]}}
        assert UsgsSource().normalize(feature).depth_km == 10.0

    def test_http_error_becomes_source_fetch_error(self) -> None:
        source = UsgsSource(_client(lambda request: httpx.Response(500)))
        with pytest.raises(SourceFetchError):
            asyncio.run(source.fetch_hazard_events())
        assert source.health.consecutive_failures == 1

    def test_rate_limit(self) -> None:
        source = UsgsSource(_client(lambda request: httpx.Response(429, headers={"Retry-After": "5"})))
        with pytest.raises(RateLimitedError):
            asyncio.run(source.fetch_hazard_events())


class TestEmscSource:
    def test_build_params(self) -> None:
        params = EmscSource().build_params(
            FetchOptions(min_magnitude=4.5, bounding_box=(30.0, -10.0, 50.0, 40.0))
        )
        assert params["format"] == "json"
        assert params["limit"] == 100
        assert params["orderby"] == "time-desc"
        assert params["minmagnitude"] == 4.5
        assert params["minlatitude"] == 30.0
        assert params["maxlongitude"] == 40.0
        assert "starttime" in params

    def test_normalize(self) -> None:
        event = EmscSource().normalize(SAMPLE_EMSC["features"][0])
        assert event.event_id == "emsc_20240301_0000123"
        assert event.place == "GREECE"
        assert event.depth_km == 12.0
        assert event.url.endswith("id=20240301_0000123")

    def test_204_is_empty(self) -> None:
        source = EmscSource(_client(lambda request: httpx.Response(204)))
        assert asyncio.run(source.fetch_hazard_events()) == []
        assert source.health.consecutive_failures == 0

    def test_query_sent(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json={"features": []})

        asyncio.run(EmscSource(_client(handler)).fetch_hazard_events(FetchOptions(min_magnitude=5.0)))
        assert seen["url"].path.endswith("/query")
        assert seen["url"].params["minmagnitude"] == "5.0"


class TestJmaSource:
    def test_tolerant_fields_and_malformed_skipped(self) -> None:
        source = JmaSource(_client(_json(SAMPLE_JMA)))
        events = asyncio.run(source.fetch_hazard_events(FetchOptions()))

        assert len(events) == 2
        first, second = events
        assert first.event_id == "jma_20240301120000"
        assert first.magnitude == 5.2
        assert first.place == "Tokyo Bay"
        assert first.time == datetime(2024, 3, 1, 3, 0, tzinfo=timezone.utc)
        assert first.depth_km == 10.0
        assert (second.longitude, second.latitude) == (141.0, 38.0)
        assert second.depth_km == 40.0
        assert second.place == "Japan region"

    def test_non_2xx_is_empty_success(self) -> None:
        source = JmaSource(_client(lambda request: httpx.Response(404)))
        assert asyncio.run(source.fetch_hazard_events()) == []
        assert source.health.consecutive_failures == 0

    def test_429_still_rate_limited(self) -> None:
        source = JmaSource(_client(lambda request: httpx.Response(429)))
        with pytest.raises(RateLimitedError):
            asyncio.run(source.fetch_hazard_events())


class TestIrisSource:
    def test_build_params_defaults(self) -> None:
        params = IrisSource().build_params(FetchOptions())
        assert params["format"] == "text"
        assert params["orderby"] == "time"
        assert params["minmagnitude"] == 4.0

    def test_parse_text(self) -> None:
        events = IrisSource().parse_text(SAMPLE_IRIS)
        assert len(events) == 1
        event = events[0]
        assert event.event_id == "iris_11812345"
        assert event.magnitude == 6.4
        assert event.place == "TONGA ISLANDS"
        assert event.magnitude_type == "Mww"

    def test_no_content_statuses(self) -> None:
        for status in (204, 404):
            source = IrisSource(_client(lambda request, s=status: httpx.Response(s)))
            assert asyncio.run(source.fetch_hazard_events()) == []


class TestGeoNetQuakes:
    def test_fetch_filters_by_magnitude(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["mmi"] = request.url.params["MMI"]
            return httpx.Response(200, json=SAMPLE_GEONET)

        source = GeoNetSource(_client(handler))
        events = asyncio.run(source.fetch_hazard_events(FetchOptions(min_magnitude=4.5)))

        assert seen["mmi"] == "4"
        assert [e.event_id for e in events] == ["geonet_2024p123456"]
        assert events[0].depth_km == 150.5
        assert events[0].place == "20 km north of Taupo"
