"""
Vessel enrichment batch job.

Fills in reference data (IMO, type, dimensions, call sign, flag) for stored
vessels from the Marinesia API. Only fields the vessel does not have yet are
written; values that came from the live AIS stream are never overwritten.

Vessels are processed in batches of batch_size; the vessels of one batch are
looked up concurrently, and the job pauses between batches to stay under the
provider's rate limit. A rate-limited batch extends that pause.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from coastwatch.connectors.marinesia_client import MarinesiaClient, VesselProfile
from coastwatch.framework.errors import RateLimitedError
from coastwatch.framework.models import Vessel
from coastwatch.vessels.ais_codes import UNKNOWN_VESSEL_TYPES
from coastwatch.vessels.store import VesselStore

logger = logging.getLogger(__name__)

ENRICHMENT_SOURCE = "marinesia"

# Per-vessel outcomes.
ENRICHED, SKIPPED, FAILED = "enriched", "skipped", "failed"


@dataclass
class EnrichmentResult:
    processed: int = 0
    enriched: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "enriched": self.enriched,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
            "duration_seconds": round(self.duration_seconds, 2),
        }


def missing_field_updates(vessel: Vessel, profile: VesselProfile) -> dict[str, Any]:
    """Fields the profile can supply that the vessel does not have yet."""
    updates: dict[str, Any] = {}
    if not vessel.imo and profile.imo:
        updates["imo"] = profile.imo
    if (vessel.vessel_type or "") in UNKNOWN_VESSEL_TYPES and profile.ship_type:
        updates["vessel_type"] = profile.ship_type
    if not vessel.length and profile.effective_length:
        updates["length"] = profile.effective_length
    if not vessel.width and profile.effective_width:
        updates["width"] = profile.effective_width
    if not vessel.callsign and profile.callsign:
        updates["callsign"] = profile.callsign
    if not vessel.flag and profile.country:
        updates["flag"] = profile.country
    return updates


class VesselEnrichmentJob:
    """
    One enrichment run over the vessel store.

    Usage:
        job = VesselEnrichmentJob(store, MarinesiaClient(api_key))
        result = await job.run(limit=500)
    """

    def __init__(
        self,
        store: VesselStore,
        client: MarinesiaClient,
        batch_size: int = 50,
        batch_pause_seconds: float = 1.0,
        rate_limit_pause_seconds: float = 60.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.client = client
        self.batch_size = batch_size
        self.batch_pause_seconds = batch_pause_seconds
        self.rate_limit_pause_seconds = rate_limit_pause_seconds
        self._stop: asyncio.Event = asyncio.Event()
        self._sleep = asyncio.sleep

    def shutdown(self) -> None:
        """Stop before the next batch. The batch in flight completes."""
        self._stop.set()
        logger.info("VesselEnrichmentJob shutdown requested")

    async def run(
        self,
        limit: int = 1000,
        only_missing: bool = True,
        mmsi_list: Optional[Sequence[str]] = None,
    ) -> EnrichmentResult:
        """
        Enrich up to `limit` vessels.

        Args:
            limit: Maximum number of vessels to look at
            only_missing: Only vessels lacking an IMO or length
            mmsi_list: Explicit vessels to enrich (overrides only_missing)

        Returns:
            EnrichmentResult with per-outcome counts and error strings
        """
        started = time.monotonic()
        result = EnrichmentResult()
        vessels = await self.store.list_vessels(limit, only_missing=only_missing, mmsi_list=mmsi_list)
        total_batches = (len(vessels) + self.batch_size - 1) // self.batch_size
        logger.info(
            "Enrichment starting | vessels=%d | batches=%d | only_missing=%s",
            len(vessels),
            total_batches,
            only_missing,
        )

        for index in range(0, len(vessels), self.batch_size):
            if self._stop.is_set():
                logger.info("Enrichment stopped early | processed=%d", result.processed)
                break

            batch = vessels[index : index + self.batch_size]
            outcomes = await asyncio.gather(*[self._enrich_vessel(v) for v in batch])

            retry_after: Optional[float] = None
            rate_limited = False
            for vessel, (outcome, error) in zip(batch, outcomes):
                result.processed += 1
                if outcome == ENRICHED:
                    result.enriched += 1
                elif outcome == SKIPPED:
                    result.skipped += 1
                else:
                    result.failed += 1
                    result.errors.append(f"{vessel.mmsi}: {error}")
                    if isinstance(error, RateLimitedError):
                        rate_limited = True
                        if error.retry_after is not None:
                            retry_after = max(retry_after or 0.0, error.retry_after)

            logger.info(
                "Enrichment batch done | batch=%d/%d | enriched=%d | failed=%d",
                index // self.batch_size + 1,
                total_batches,
                result.enriched,
                result.failed,
            )

            if index + self.batch_size >= len(vessels):
                break
            pause = self.batch_pause_seconds
            if rate_limited:
                pause = max(self.rate_limit_pause_seconds, retry_after or 0.0)
                logger.warning("Enrichment rate limited, pausing %.0fs", pause)
            await self._sleep(pause)

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "Enrichment finished | processed=%d | enriched=%d | skipped=%d | failed=%d | duration=%.1fs",
            result.processed,
            result.enriched,
            result.skipped,
            result.failed,
            result.duration_seconds,
        )
        return result

    async def enrich_one(self, mmsi: str) -> bool:
        """
        Enrich a single vessel.

        Returns:
            True if any field was written
        """
        vessel = await self.store.find_vessel(mmsi)
        if vessel is None:
            logger.warning("Enrichment target not found | mmsi=%s", mmsi)
            return False
        outcome, error = await self._enrich_vessel(vessel)
        if error is not None:
            logger.warning("Enrichment failed | mmsi=%s | error=%s", mmsi, error)
        return outcome == ENRICHED

    async def _enrich_vessel(self, vessel: Vessel) -> tuple[str, Optional[Exception]]:
        try:
            profile = await self.client.get_vessel_profile(vessel.mmsi)
            if profile is None:
                return SKIPPED, None
            updates = missing_field_updates(vessel, profile)
            if not updates:
                return SKIPPED, None
            updates["enriched_at"] = datetime.now(timezone.utc)
            updates["enrichment_source"] = ENRICHMENT_SOURCE
            await self.store.update_vessel(vessel.mmsi, updates)
            logger.debug("Vessel enriched | mmsi=%s | fields=%s", vessel.mmsi, sorted(updates))
            return ENRICHED, None
        except Exception as exc:
            return FAILED, exc
