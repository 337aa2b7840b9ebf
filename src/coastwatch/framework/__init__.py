"""
Framework for source integration, health tracking and provenance.

CoastWatch uses a plugin architecture where:
- BaseSource: Standardizes hazard feed integration (HTTP APIs, Atom, CAP, buoy files)
- HealthTracker: Rolling success / failure / latency bookkeeping per source
- ConfigLoader: Reads configuration from YAML + env + SSM
- models: Canonical HazardEvent / TsunamiAlert / Vessel records

Fused records include a LineageContext to track:
- correlation_id: Deterministic ID derived from the contributing source events
- sources / member_ids: Which feeds and which reports were fused
- config_hash: Same hash means identical fusion thresholds
- pipeline_version: Git SHA for audit trail
"""

from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.config_loader import ConfigLoader
from coastwatch.framework.errors import (
    CoastWatchError,
    ConfigError,
    RateLimitedError,
    SourceFetchError,
    StreamFatalError,
)
from coastwatch.framework.health import HealthTracker
from coastwatch.framework.lineage import (
    LineageContext,
    generate_correlation_id,
    get_pipeline_version,
    hash_config,
)
from coastwatch.framework.models import (
    AggregatedHazardEvent,
    AlertCategory,
    DartConfirmation,
    HazardEvent,
    SourceHealthStatus,
    TsunamiAlert,
    Vessel,
    VesselPosition,
    WaveTrain,
)

__all__ = [
    "AggregatedHazardEvent",
    "AlertCategory",
    "BaseSource",
    "CoastWatchError",
    "ConfigError",
    "ConfigLoader",
    "DartConfirmation",
    "FetchOptions",
    "HazardEvent",
    "HealthTracker",
    "LineageContext",
    "RateLimitedError",
    "SourceFetchError",
    "SourceHealthStatus",
    "StreamFatalError",
    "TsunamiAlert",
    "Vessel",
    "VesselPosition",
    "WaveTrain",
    "generate_correlation_id",
    "get_pipeline_version",
    "hash_config",
]
