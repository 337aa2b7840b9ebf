"""
Vessel persistence.

VesselStore is the async interface the ingestion service and the enrichment
job talk to. SqlVesselStore implements it with SQLAlchemy Core against
PostgreSQL or SQLite; the synchronous engine calls run on a small thread
pool so the event loop never blocks on the database.

Vessels are keyed by mmsi. upsert_vessel() is atomic on that key: the
INSERT ... ON CONFLICT (mmsi) DO NOTHING and the follow-up UPDATE share one
transaction, so two concurrent first sightings of the same vessel yield
exactly one row.
"""

import asyncio
import contextlib
import functools
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence, TypeVar

from sqlalchemy import and_, create_engine, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from coastwatch.framework.models import Vessel, VesselPosition
from coastwatch.vessels.ais_codes import UNKNOWN_VESSEL_TYPES
from coastwatch.vessels.tables import VESSEL_FIELDS, metadata, vessel_positions, vessels

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EngineConfig:
    """Engine settings read from the `database` config section."""

    url: str
    echo: bool = False
    pool_size: Optional[int] = None
    connect_args: Optional[Mapping[str, Any]] = None


def create_engine_from_config(config: EngineConfig) -> Engine:
    """
    Build a SQLAlchemy Engine from a simple config.

    SQLite connections are shared across the store's worker thread, so
    same-thread checking is turned off; an in-memory database additionally
    pins a single connection so every call sees the same data.
    """
    kwargs: dict[str, Any] = {"echo": config.echo}
    connect_args = dict(config.connect_args or {})
    if config.url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
        if config.url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    elif config.pool_size is not None:
        kwargs["pool_size"] = config.pool_size
    if connect_args:
        kwargs["connect_args"] = connect_args
    return create_engine(config.url, **kwargs)


@dataclass(frozen=True)
class EnrichmentStats:
    """Coverage of reference data across all stored vessels."""

    total_vessels: int
    enriched_vessels: int
    missing_imo: int
    missing_type: int
    missing_dimensions: int
    enrichment_score: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class VesselStore(ABC):
    """Async persistence interface for vessels and their position history."""

    @abstractmethod
    async def find_vessel(self, mmsi: str) -> Optional[Vessel]:
        ...

    @abstractmethod
    async def create_vessel(self, vessel: Vessel) -> Vessel:
        ...

    @abstractmethod
    async def update_vessel(self, mmsi: str, fields: Mapping[str, Any]) -> Optional[Vessel]:
        """Apply field updates; None if no vessel has this mmsi."""

    @abstractmethod
    async def upsert_vessel(
        self,
        mmsi: str,
        fields: Mapping[str, Any],
        create_defaults: Optional[Mapping[str, Any]] = None,
    ) -> tuple[Vessel, bool]:
        """
        Create-or-update a vessel atomically on mmsi.

        Args:
            mmsi: Vessel key
            fields: Values applied whether the vessel is new or not
            create_defaults: Values used only when the row is created

        Returns:
            (vessel, created)
        """

    @abstractmethod
    async def append_position(self, position: VesselPosition) -> None:
        ...

    @abstractmethod
    async def list_vessels(
        self,
        limit: int,
        only_missing: bool = False,
        mmsi_list: Optional[Sequence[str]] = None,
    ) -> list[Vessel]:
        ...

    @abstractmethod
    async def count_positions(self, mmsi: Optional[str] = None) -> int:
        ...

    @abstractmethod
    async def enrichment_stats(self) -> EnrichmentStats:
        ...

    async def close(self) -> None:
        """Release resources. Default: nothing to release."""


class SqlVesselStore(VesselStore):
    """SQLAlchemy Core implementation for PostgreSQL and SQLite."""

    def __init__(self, engine: Engine, max_workers: Optional[int] = None) -> None:
        self.engine = engine
        # SQLite allows one writer at a time; serialize on a single worker.
        if max_workers is None:
            max_workers = 1 if engine.dialect.name == "sqlite" else 4
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="vessel-store"
        )

    @classmethod
    def from_config(cls, config: EngineConfig) -> "SqlVesselStore":
        return cls(create_engine_from_config(config))

    def create_tables(self) -> None:
        metadata.create_all(self.engine)
        logger.info("Vessel tables ready | dialect=%s", self.engine.dialect.name)

    @contextlib.contextmanager
    def begin(self) -> Iterator[Connection]:
        """Provide a transactional connection."""
        with self.engine.begin() as conn:
            yield conn

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def _insert(self, conn: Connection):
        dialect = conn.dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise ValueError(f"Unsupported dialect for upsert: {dialect}")

    # ------------------------------------------------------------------
    # Async interface
    # ------------------------------------------------------------------

    async def find_vessel(self, mmsi: str) -> Optional[Vessel]:
        return await self._run(self._find_vessel, mmsi)

    async def create_vessel(self, vessel: Vessel) -> Vessel:
        return await self._run(self._create_vessel, vessel)

    async def update_vessel(self, mmsi: str, fields: Mapping[str, Any]) -> Optional[Vessel]:
        return await self._run(self._update_vessel, mmsi, dict(fields))

    async def upsert_vessel(
        self,
        mmsi: str,
        fields: Mapping[str, Any],
        create_defaults: Optional[Mapping[str, Any]] = None,
    ) -> tuple[Vessel, bool]:
        return await self._run(
            self._upsert_vessel, mmsi, dict(fields), dict(create_defaults or {})
        )

    async def append_position(self, position: VesselPosition) -> None:
        await self._run(self._append_position, position)

    async def list_vessels(
        self,
        limit: int,
        only_missing: bool = False,
        mmsi_list: Optional[Sequence[str]] = None,
    ) -> list[Vessel]:
        return await self._run(
            self._list_vessels, limit, only_missing, list(mmsi_list) if mmsi_list else None
        )

    async def count_positions(self, mmsi: Optional[str] = None) -> int:
        return await self._run(self._count_positions, mmsi)

    async def enrichment_stats(self) -> EnrichmentStats:
        return await self._run(self._enrichment_stats)

    async def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Synchronous implementations (run on the executor)
    # ------------------------------------------------------------------

    def _find_vessel(self, mmsi: str) -> Optional[Vessel]:
        with self.begin() as conn:
            return self._select_vessel(conn, mmsi)

    def _create_vessel(self, vessel: Vessel) -> Vessel:
        now = _utcnow()
        values = {k: v for k, v in asdict(vessel).items() if k in VESSEL_FIELDS}
        values.update(mmsi=vessel.mmsi, created_at=now, updated_at=now)
        with self.begin() as conn:
            conn.execute(vessels.insert().values(**values))
            return self._select_vessel(conn, vessel.mmsi)

    def _update_vessel(self, mmsi: str, fields: dict[str, Any]) -> Optional[Vessel]:
        _check_fields(fields)
        with self.begin() as conn:
            if fields:
                conn.execute(
                    update(vessels)
                    .where(vessels.c.mmsi == mmsi)
                    .values(**fields, updated_at=_utcnow())
                )
            return self._select_vessel(conn, mmsi)

    def _upsert_vessel(
        self, mmsi: str, fields: dict[str, Any], create_defaults: dict[str, Any]
    ) -> tuple[Vessel, bool]:
        _check_fields(fields)
        _check_fields(create_defaults)
        now = _utcnow()
        values: dict[str, Any] = {"name": f"Vessel {mmsi}", "active": True}
        values.update(create_defaults)
        values.update(fields)
        values.update(mmsi=mmsi, created_at=now, updated_at=now)

        with self.begin() as conn:
            insert = self._insert(conn)
            stmt = insert(vessels).values(**values).on_conflict_do_nothing(
                index_elements=[vessels.c.mmsi]
            )
            created = conn.execute(stmt).rowcount == 1
            if not created and fields:
                conn.execute(
                    update(vessels)
                    .where(vessels.c.mmsi == mmsi)
                    .values(**fields, updated_at=now)
                )
            vessel = self._select_vessel(conn, mmsi)

        if vessel is None:
            raise RuntimeError(f"vessel {mmsi} vanished during upsert")
        return vessel, created

    def _append_position(self, position: VesselPosition) -> None:
        with self.begin() as conn:
            vessel_id = conn.execute(
                select(vessels.c.id).where(vessels.c.mmsi == position.mmsi)
            ).scalar_one_or_none()
            if vessel_id is None:
                raise LookupError(f"no vessel with mmsi {position.mmsi}")
            conn.execute(
                vessel_positions.insert().values(
                    vessel_id=vessel_id,
                    latitude=position.latitude,
                    longitude=position.longitude,
                    speed=position.speed,
                    course=position.course,
                    heading=position.heading,
                    navigational_status=position.navigational_status,
                    timestamp=position.timestamp,
                )
            )

    def _list_vessels(
        self, limit: int, only_missing: bool, mmsi_list: Optional[list[str]]
    ) -> list[Vessel]:
        query = select(vessels).order_by(vessels.c.id)
        if mmsi_list:
            query = query.where(vessels.c.mmsi.in_(mmsi_list))
        elif only_missing:
            query = query.where(or_(vessels.c.imo.is_(None), vessels.c.length.is_(None)))
        query = query.limit(limit)
        with self.begin() as conn:
            return [_row_to_vessel(row) for row in conn.execute(query).mappings()]

    def _count_positions(self, mmsi: Optional[str]) -> int:
        query = select(func.count()).select_from(vessel_positions)
        if mmsi is not None:
            query = query.join(vessels, vessels.c.id == vessel_positions.c.vessel_id).where(
                vessels.c.mmsi == mmsi
            )
        with self.begin() as conn:
            return conn.execute(query).scalar_one()

    def _enrichment_stats(self) -> EnrichmentStats:
        def count(*conditions) -> Any:
            query = select(func.count()).select_from(vessels)
            for condition in conditions:
                query = query.where(condition)
            return query

        known_type = and_(
            vessels.c.vessel_type.is_not(None),
            vessels.c.vessel_type.not_in(UNKNOWN_VESSEL_TYPES),
        )

        with self.begin() as conn:
            total = conn.execute(count()).scalar_one()
            enriched = conn.execute(count(vessels.c.imo.is_not(None), known_type)).scalar_one()
            missing_imo = conn.execute(count(vessels.c.imo.is_(None))).scalar_one()
            missing_type = conn.execute(count(~known_type)).scalar_one()
            missing_dimensions = conn.execute(
                count(or_(vessels.c.length.is_(None), vessels.c.width.is_(None)))
            ).scalar_one()

        return EnrichmentStats(
            total_vessels=total,
            enriched_vessels=enriched,
            missing_imo=missing_imo,
            missing_type=missing_type,
            missing_dimensions=missing_dimensions,
            enrichment_score=round(enriched / total * 100) if total else 0,
        )

    @staticmethod
    def _select_vessel(conn: Connection, mmsi: str) -> Optional[Vessel]:
        row = conn.execute(select(vessels).where(vessels.c.mmsi == mmsi)).mappings().first()
        return _row_to_vessel(row) if row is not None else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - VESSEL_FIELDS
    if unknown:
        raise ValueError(f"unknown vessel fields: {sorted(unknown)}")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored time is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_vessel(row: Mapping[str, Any]) -> Vessel:
    return Vessel(
        id=row["id"],
        mmsi=row["mmsi"],
        name=row["name"],
        vessel_type=row["vessel_type"],
        imo=row["imo"],
        callsign=row["callsign"],
        length=row["length"],
        width=row["width"],
        draught=row["draught"],
        flag=row["flag"],
        last_seen=_aware(row["last_seen"]),
        active=bool(row["active"]),
        enriched_at=_aware(row["enriched_at"]),
        enrichment_source=row["enrichment_source"],
    )
