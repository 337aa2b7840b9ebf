"""
Unit tests for SqlVesselStore against in-memory SQLite.

Tests cover:
- upsert_vessel(): created flag, create_defaults only applied on insert
- upsert_vessel(): concurrent upserts for one mmsi yield a single row
- update_vessel(): unknown mmsi returns None, unknown field rejected
- append_position(): requires an existing vessel
- list_vessels(): only_missing and mmsi_list filters
- enrichment_stats(): counts and score, placeholder types count as missing
"""

import asyncio
from datetime import datetime, timezone

import pytest

from coastwatch.framework.models import Vessel, VesselPosition
from coastwatch.vessels.store import EngineConfig, SqlVesselStore, create_engine_from_config

SEEN = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _position(mmsi: str) -> VesselPosition:
    return VesselPosition(
        mmsi=mmsi,
        latitude=1.25,
        longitude=103.8,
        speed=10.0,
        course=90.0,
        heading=None,
        navigational_status="Moored",
        timestamp=SEEN,
    )


class TestEngine:
    def test_memory_sqlite_uses_static_pool(self) -> None:
        engine = create_engine_from_config(EngineConfig(url="sqlite://"))
        assert type(engine.pool).__name__ == "StaticPool"

    def test_sqlite_store_serialized(self) -> None:
        store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
        assert store._executor._max_workers == 1


class TestUpsert:
    def setup_method(self) -> None:
        self.store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
        self.store.create_tables()

    def test_create_then_update(self) -> None:
        async def scenario():
            first = await self.store.upsert_vessel(
                "111", {"last_seen": SEEN}, create_defaults={"name": "First Name"}
            )
            second = await self.store.upsert_vessel(
                "111", {"imo": "9000001"}, create_defaults={"name": "Ignored"}
            )
            return first, second

        (vessel, created), (updated, created_again) = asyncio.run(scenario())
        assert created is True
        assert vessel.name == "First Name"
        assert vessel.last_seen == SEEN
        assert vessel.active is True
        assert created_again is False
        assert updated.name == "First Name"
        assert updated.imo == "9000001"
        assert updated.id == vessel.id

    def test_concurrent_upserts_create_one_vessel(self) -> None:
        async def scenario():
            results = await asyncio.gather(
                *(self.store.upsert_vessel("1", {"last_seen": SEEN}) for _ in range(20))
            )
            return results, await self.store.list_vessels(100)

        results, vessels = asyncio.run(scenario())
        assert sum(1 for _, created in results if created) == 1
        assert [v.mmsi for v in vessels] == ["1"]
        assert len({v.id for v, _ in results}) == 1

    def test_default_name(self) -> None:
        vessel, _ = asyncio.run(self.store.upsert_vessel("222", {}))
        assert vessel.name == "Vessel 222"

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValueError):
            asyncio.run(self.store.upsert_vessel("333", {"tonnage": 5}))

    def test_update_missing_vessel(self) -> None:
        assert asyncio.run(self.store.update_vessel("404", {"name": "x"})) is None

    def test_create_vessel(self) -> None:
        async def scenario():
            await self.store.create_vessel(Vessel(mmsi="555", name="Explicit", length=90.0))
            return await self.store.find_vessel("555")

        vessel = asyncio.run(scenario())
        assert vessel.name == "Explicit"
        assert vessel.length == 90.0


class TestPositions:
    def setup_method(self) -> None:
        self.store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
        self.store.create_tables()

    def test_append_and_count(self) -> None:
        async def scenario():
            await self.store.upsert_vessel("111", {})
            await self.store.upsert_vessel("222", {})
            await self.store.append_position(_position("111"))
            await self.store.append_position(_position("111"))
            await self.store.append_position(_position("222"))
            return await self.store.count_positions("111"), await self.store.count_positions()

        assert asyncio.run(scenario()) == (2, 3)

    def test_append_for_unknown_vessel(self) -> None:
        with pytest.raises(LookupError):
            asyncio.run(self.store.append_position(_position("999")))


class TestListAndStats:
    def setup_method(self) -> None:
        self.store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
        self.store.create_tables()

        async def seed():
            await self.store.upsert_vessel(
                "100",
                {"imo": "9000100", "vessel_type": "Cargo", "length": 200.0, "width": 30.0},
            )
            await self.store.upsert_vessel("200", {"vessel_type": "Unknown", "length": 50.0})
            await self.store.upsert_vessel("300", {"imo": "9000300", "vessel_type": "Unknown"})
            await self.store.upsert_vessel("400", {"imo": "9000400", "length": 30.0, "width": 8.0})

        asyncio.run(seed())

    def test_list_all_in_insertion_order(self) -> None:
        vessels = asyncio.run(self.store.list_vessels(10))
        assert [v.mmsi for v in vessels] == ["100", "200", "300", "400"]

    def test_only_missing(self) -> None:
        vessels = asyncio.run(self.store.list_vessels(10, only_missing=True))
        assert [v.mmsi for v in vessels] == ["200", "300"]

    def test_mmsi_list_overrides_only_missing(self) -> None:
        vessels = asyncio.run(self.store.list_vessels(10, only_missing=True, mmsi_list=["100"]))
        assert [v.mmsi for v in vessels] == ["100"]

    def test_limit(self) -> None:
        assert len(asyncio.run(self.store.list_vessels(2))) == 2

    def test_enrichment_stats(self) -> None:
        stats = asyncio.run(self.store.enrichment_stats())
        assert stats.total_vessels == 4
        assert stats.enriched_vessels == 1
        assert stats.missing_imo == 1
        assert stats.missing_type == 3
        assert stats.missing_dimensions == 2
        assert stats.enrichment_score == 25

    def test_empty_store_score(self) -> None:
        store = SqlVesselStore.from_config(EngineConfig(url="sqlite://"))
        store.create_tables()
        assert asyncio.run(store.enrichment_stats()).enrichment_score == 0
