"""
Unit tests for AisStreamConnector.

Tests cover:
- connect(): config validation (no network)
- subscription_message(): message type filter follows track_positions
- handle_message(): unseen vessel created from a position report
- handle_message(): position report for a known vessel counts as an update
- handle_message(): static data upserts identity and dimensions, idempotently
- position sampling and the 511 "no heading" value
- per-message errors counted, never raised
- stream(): reconnect budget exhausted -> on_fatal, stream() returns
- reconnect_delay(): capped exponential with jitter
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from coastwatch.connectors.aisstream_connector import (
    AisStreamConnector,
    ConnectionState,
    clean_name,
    parse_ais_time,
)
from coastwatch.framework.errors import ConfigError, StreamFatalError
from coastwatch.vessels.store import EngineConfig, SqlVesselStore

BOXES = [[[1.0, 103.5], [1.5, 104.5]]]

SAMPLE_POSITION = {
    "MessageType": "PositionReport",
    "MetaData": {
        "MMSI": 987654321,
        "ShipName": "Test Vessel        ",
        "time_utc": "2024-03-01 12:00:00.123456789 +0000 UTC",
    },
    "Message": {
        "PositionReport": {
            "UserID": 987654321,
            "Latitude": 1.25,
            "Longitude": 103.8,
            "Sog": 12.3,
            "Cog": 45.0,
            "TrueHeading": 44,
            "NavigationalStatus": 0,
        }
    },
}

SAMPLE_STATIC = {
    "MessageType": "ShipStaticData",
    "MetaData": {"MMSI": 563012345, "time_utc": "2024-03-01 12:05:00 +0000 UTC"},
    "Message": {
        "ShipStaticData": {
            "UserID": 563012345,
            "Name": "PACIFIC STAR@@@@",
            "CallSign": "9V1234 ",
            "ImoNumber": 9876543,
            "Type": 71,
            "Dimension": {"A": 150, "B": 50, "C": 16, "D": 16},
            "MaximumStaticDraught": 12.5,
        }
    },
}


def _store() -> SqlVesselStore:
    store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
    store.create_tables()
    return store


def _position(heading: int = 44, mmsi: int = 987654321) -> str:
    message = json.loads(json.dumps(SAMPLE_POSITION))
    message["Message"]["PositionReport"]["TrueHeading"] = heading
    message["Message"]["PositionReport"]["UserID"] = mmsi
    return json.dumps(message)


class TestConnect:
    def test_requires_api_key(self) -> None:
        with pytest.raises(ConfigError):
            AisStreamConnector(MagicMock(), "", BOXES).connect()

    def test_requires_bounding_box(self) -> None:
        with pytest.raises(ConfigError):
            AisStreamConnector(MagicMock(), "key", []).connect()

    def test_requires_positive_sample_rate(self) -> None:
        with pytest.raises(ConfigError):
            AisStreamConnector(MagicMock(), "key", BOXES, position_sample_rate=0).connect()

    def test_valid_config(self) -> None:
        connector = AisStreamConnector(MagicMock(), "key", BOXES)
        connector.connect()
        assert connector.state == ConnectionState.DISCONNECTED
        assert connector.health_check() is False

    def test_subscription_message(self) -> None:
        message = AisStreamConnector(MagicMock(), "key", BOXES).subscription_message()
        assert message == {
            "APIKey": "key",
            "BoundingBoxes": BOXES,
            "FilterMessageTypes": ["PositionReport", "ShipStaticData"],
        }

    def test_static_only_subscription(self) -> None:
        message = AisStreamConnector(MagicMock(), "key", BOXES, track_positions=False).subscription_message()
        assert message["FilterMessageTypes"] == ["ShipStaticData"]


class TestHelpers:
    def test_parse_ais_time(self) -> None:
        parsed = parse_ais_time("2024-03-01 12:00:00.123456789 +0000 UTC")
        assert parsed == datetime(2024, 3, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

    def test_parse_ais_time_default(self) -> None:
        default = datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert parse_ais_time("garbage", default) == default
        assert parse_ais_time(None, default) == default

    def test_clean_name(self) -> None:
        assert clean_name("PACIFIC STAR@@@@") == "PACIFIC STAR"
        assert clean_name("  ") == ""
        assert clean_name(None) == ""


class TestHandleMessage:
    def setup_method(self) -> None:
        self.store = _store()
        self.connector = AisStreamConnector(self.store, "key", BOXES, position_sample_rate=1)

    def test_unseen_vessel_created_from_position(self) -> None:
        async def scenario():
            await self.connector.handle_message(_position())
            vessel = await self.store.find_vessel("987654321")
            positions = await self.store.count_positions("987654321")
            return vessel, positions

        vessel, positions = asyncio.run(scenario())
        assert vessel is not None
        assert vessel.name == "Test Vessel"
        assert vessel.active is True
        assert vessel.vessel_type == "Unknown"
        assert vessel.last_seen == datetime(2024, 3, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert positions == 1
        assert self.connector.vessels_created == 1
        assert self.connector.vessels_updated == 0
        assert self.connector.positions_recorded == 1

    def test_known_vessel_not_recreated(self) -> None:
        async def scenario():
            await self.connector.handle_message(_position())
            await self.connector.handle_message(_position())
            return await self.store.count_positions()

        assert asyncio.run(scenario()) == 2
        assert self.connector.vessels_created == 1
        assert self.connector.vessels_updated == 1

    def test_heading_511_stored_as_null(self) -> None:
        self.connector.store = MagicMock()
        appended = []

        async def append(position):
            appended.append(position)

        async def upsert(*args, **kwargs):
            return MagicMock(), False

        self.connector.store.append_position = append
        self.connector.store.upsert_vessel = upsert
        asyncio.run(self.connector.handle_message(_position(heading=511)))
        assert appended[0].heading is None
        assert appended[0].navigational_status == "Under way using engine"

    def test_static_data(self) -> None:
        async def scenario():
            await self.connector.handle_message(json.dumps(SAMPLE_STATIC))
            return await self.store.find_vessel("563012345")

        vessel = asyncio.run(scenario())
        assert vessel.name == "PACIFIC STAR"
        assert vessel.callsign == "9V1234"
        assert vessel.imo == "9876543"
        assert vessel.vessel_type == "Cargo (hazardous category A)"
        assert vessel.length == 200.0
        assert vessel.width == 32.0
        assert vessel.draught == 12.5
        assert vessel.enrichment_source == "aisstream"
        assert self.connector.vessels_created == 1

    def test_static_data_idempotent(self) -> None:
        async def scenario():
            await self.connector.handle_message(json.dumps(SAMPLE_STATIC))
            first = await self.store.find_vessel("563012345")
            await self.connector.handle_message(json.dumps(SAMPLE_STATIC))
            second = await self.store.find_vessel("563012345")
            listed = await self.store.list_vessels(10)
            return first, second, listed

        first, second, listed = asyncio.run(scenario())
        assert first == second
        assert len(listed) == 1
        assert self.connector.vessels_created == 1
        assert self.connector.vessels_updated == 1

    def test_unknown_type_ignored_but_counted(self) -> None:
        asyncio.run(self.connector.handle_message(json.dumps({"MessageType": "AidsToNavigationReport"})))
        assert self.connector.messages_received == 1
        assert self.connector.errors == 0

    def test_bad_message_counted_not_raised(self) -> None:
        errors = []
        self.connector.on_error = errors.append
        asyncio.run(self.connector.handle_message("{not json"))
        assert self.connector.errors == 1
        assert len(errors) == 1

    def test_on_message_hook(self) -> None:
        seen = []
        self.connector.on_message = seen.append
        asyncio.run(self.connector.handle_message(json.dumps(SAMPLE_STATIC)))
        assert seen[0]["MessageType"] == "ShipStaticData"


class TestSampling:
    def test_every_nth_position_processed(self) -> None:
        store = _store()
        connector = AisStreamConnector(store, "key", BOXES, position_sample_rate=3)

        async def scenario():
            for _ in range(7):
                await connector.handle_message(_position())
            return await store.count_positions()

        assert asyncio.run(scenario()) == 2
        assert connector.position_reports == 7

    def test_positions_not_tracked(self) -> None:
        store = _store()
        connector = AisStreamConnector(store, "key", BOXES, track_positions=False, position_sample_rate=1)

        async def scenario():
            await connector.handle_message(_position())
            return await store.find_vessel("987654321")

        assert asyncio.run(scenario()) is None
        assert connector.position_reports == 1


class TestReconnect:
    def test_delay_bounds(self) -> None:
        connector = AisStreamConnector(
            MagicMock(), "key", BOXES, reconnect_delay_seconds=5, max_reconnect_delay_seconds=300
        )
        for attempt, ceiling in ((1, 5), (2, 10), (3, 20), (10, 300)):
            for _ in range(20):
                delay = connector.reconnect_delay(attempt)
                assert ceiling * 0.5 <= delay <= ceiling

    def test_gives_up_and_calls_on_fatal(self) -> None:
        fatal = []
        connector = AisStreamConnector(
            MagicMock(),
            "key",
            BOXES,
            max_reconnect_attempts=3,
            reconnect_delay_seconds=0,
            on_fatal=fatal.append,
        )
        calls = []

        async def failing_listen():
            calls.append(1)
            raise ConnectionRefusedError("refused")

        connector._listen_once = failing_listen
        asyncio.run(connector.stream())

        assert len(calls) == 4
        assert len(fatal) == 1
        assert isinstance(fatal[0], StreamFatalError)
        assert fatal[0].attempts == 3
        assert "refused" in fatal[0].last_error
        assert connector.state == ConnectionState.DISCONNECTED

    def test_shutdown_stops_stream(self) -> None:
        connector = AisStreamConnector(MagicMock(), "key", BOXES, reconnect_delay_seconds=0)

        async def listen_then_stop():
            connector.shutdown()

        connector._listen_once = listen_then_stop
        asyncio.run(connector.stream())
        assert connector.reconnect_attempts == 0
