"""SQLAlchemy Core table definitions for vessels and their positions."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
)

metadata = MetaData()

vessels = Table(
    "vessels",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mmsi", String(16), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("vessel_type", String(128)),
    Column("imo", String(16)),
    Column("callsign", String(32)),
    Column("length", Float),
    Column("width", Float),
    Column("draught", Float),
    Column("flag", String(64)),
    Column("last_seen", DateTime(timezone=True)),
    Column("active", Boolean, nullable=False, default=True),
    Column("enriched_at", DateTime(timezone=True)),
    Column("enrichment_source", String(32)),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

vessel_positions = Table(
    "vessel_positions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("vessel_id", Integer, ForeignKey("vessels.id"), nullable=False),
    Column("latitude", Float, nullable=False),
    Column("longitude", Float, nullable=False),
    Column("speed", Float),
    Column("course", Float),
    Column("heading", Integer),
    Column("navigational_status", String(64)),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Index("ix_vessel_positions_vessel_time", "vessel_id", "timestamp"),
)

# Columns callers may set through update/upsert.
VESSEL_FIELDS = frozenset(
    {
        "name",
        "vessel_type",
        "imo",
        "callsign",
        "length",
        "width",
        "draught",
        "flag",
        "last_seen",
        "active",
        "enriched_at",
        "enrichment_source",
    }
)
