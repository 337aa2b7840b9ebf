"""
Provenance tracking for fused records.

Every record published downstream carries a LineageContext containing:
- correlation_id: deterministic ID derived from the contributing source event ids
- sources: every feed that reported the event, primary first
- member_ids: the individual source event ids that were fused
- config_hash: same hash means identical fusion thresholds
- pipeline version: git SHA for audit trail
"""

import hashlib
import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class LineageContext:
    """Embedded as `_lineage` in every published record."""

    correlation_id: str  # sha256(member ids)[:16]
    record_type: str  # "earthquake" or "tsunami"
    primary_source: str
    sources: list[str] = field(default_factory=list)
    member_ids: list[str] = field(default_factory=list)
    config_hash: str = ""
    processed_at: str = ""
    pipeline_version: str = "dev"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return asdict(self)


def generate_correlation_id(*parts: str) -> str:
    """
    Generate a deterministic correlation ID from record attributes.

    The same parts in the same order always produce the same ID, so a fused
    event rebuilt on the next poll cycle keeps its identity as long as the
    same source reports contribute to it.

    Args:
        *parts: Identifying strings, e.g. sorted member event ids.

    Returns:
        16-character hex string (sha256[:16])
    """
    combined = ":".join(parts)
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:16]


def hash_config(config: dict[str, Any]) -> str:
    """
    Hash a configuration dict for reproducibility tracking.

    Args:
        config: Configuration dict (e.g. the `hazards` section)

    Returns:
        64-character hex string (full sha256)
    """
    json_str = json.dumps(config, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()


def get_pipeline_version() -> str:
    """PIPELINE_VERSION env var (git SHA in CI/CD), defaulting to 'dev'."""
    return os.getenv("PIPELINE_VERSION", "dev")


def build_lineage(
    record_type: str,
    correlation_id: str,
    primary_source: str,
    sources: list[str],
    member_ids: list[str],
    config_hash: str,
) -> LineageContext:
    """Stamp a LineageContext with the current time and pipeline version."""
    return LineageContext(
        correlation_id=correlation_id,
        record_type=record_type,
        primary_source=primary_source,
        sources=list(sources),
        member_ids=list(member_ids),
        config_hash=config_hash,
        processed_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        pipeline_version=get_pipeline_version(),
    )
