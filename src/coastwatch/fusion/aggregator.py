"""
Multi-source earthquake aggregation.

One poll cycle:
1. Probe every adapter concurrently; unavailable adapters are skipped
2. Fetch from the available ones concurrently; a failed fetch contributes
   nothing and never fails the cycle
3. Stable-sort the reports by source priority, then cluster them: a report
   joins the first group whose representative (first member) is within
   MAX_TIME_DIFF_MS, MAX_DISTANCE_KM and MAX_MAGNITUDE_DIFF of it
4. Merge each group into one AggregatedHazardEvent

Sorting by priority before clustering makes the grouping independent of the
order in which concurrent fetches complete. Group representatives are always
the highest-priority report of their group.
"""

import asyncio
import logging
from statistics import fmean
from typing import Any, Optional, Sequence

from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.geo import haversine_km
from coastwatch.framework.lineage import generate_correlation_id
from coastwatch.framework.models import AggregatedHazardEvent, HazardEvent

logger = logging.getLogger(__name__)

MAX_TIME_DIFF_MS = 300_000
MAX_DISTANCE_KM = 50.0
MAX_MAGNITUDE_DIFF = 0.3

SOURCE_PRIORITY: dict[str, int] = {"JMA": 3, "USGS": 2, "EMSC": 1}


def source_priority(source: str) -> int:
    return SOURCE_PRIORITY.get(source, 0)


def are_similar(a: HazardEvent, b: HazardEvent) -> bool:
    """True if two reports plausibly describe the same earthquake (all bounds inclusive)."""
    return (
        abs(a.time_ms - b.time_ms) <= MAX_TIME_DIFF_MS
        and haversine_km(a.latitude, a.longitude, b.latitude, b.longitude) <= MAX_DISTANCE_KM
        # Rounded so that 6.1 vs 6.4 is not rejected by float representation.
        and round(abs(a.magnitude - b.magnitude), 6) <= MAX_MAGNITUDE_DIFF
    )


def cluster(events: Sequence[HazardEvent]) -> list[list[HazardEvent]]:
    """
    Group similar reports.

    Input order matters: each report is compared with the first member of
    every existing group, in group creation order.
    """
    groups: list[list[HazardEvent]] = []
    for event in events:
        for group in groups:
            if are_similar(group[0], event):
                group.append(event)
                break
        else:
            groups.append([event])
    return groups


def merge_group(group: Sequence[HazardEvent]) -> AggregatedHazardEvent:
    """
    Fuse one group of reports.

    The primary member is the highest-priority report, the earliest in group
    order on ties. Magnitude, coordinates and depth are member means; time,
    place, id and url come from the primary.
    """
    if not group:
        raise ValueError("cannot merge an empty group")

    primary = group[0]
    for event in group[1:]:
        if source_priority(event.source) > source_priority(primary.source):
            primary = event

    sources = tuple(dict.fromkeys(e.source for e in group))
    member_ids = tuple(e.event_id for e in group)
    return AggregatedHazardEvent(
        event_id=primary.event_id,
        source=primary.source,
        magnitude=round(fmean(e.magnitude for e in group), 2),
        latitude=round(fmean(e.latitude for e in group), 4),
        longitude=round(fmean(e.longitude for e in group), 4),
        depth_km=round(fmean(e.depth_km for e in group), 1),
        time=primary.time,
        place=primary.place,
        sources=sources,
        primary_source=primary.source,
        confidence=min(1.0, len(sources) / 2),
        member_ids=member_ids,
        correlation_id=generate_correlation_id(*sorted(member_ids)),
        url=primary.url,
        magnitude_type=primary.magnitude_type,
    )


def aggregate(events: Sequence[HazardEvent]) -> list[AggregatedHazardEvent]:
    """Priority sort, cluster and merge. Pure; no I/O."""
    ordered = sorted(events, key=lambda e: source_priority(e.source), reverse=True)
    return [merge_group(group) for group in cluster(ordered)]


class Aggregator:
    """
    Fuses earthquake reports from the injected adapters.

    Usage:
        aggregator = Aggregator([UsgsSource(), EmscSource(), JmaSource()])
        events = await aggregator.fetch_aggregated(FetchOptions(min_magnitude=4.5))
    """

    def __init__(self, sources: Sequence[BaseSource]) -> None:
        self.sources = list(sources)

    async def available_sources(self) -> list[BaseSource]:
        """Probe every adapter concurrently and return the reachable ones, in order."""
        checks = await asyncio.gather(*[s.is_available() for s in self.sources])
        available = []
        for source, ok in zip(self.sources, checks):
            if ok:
                available.append(source)
            else:
                logger.warning("Skipping unavailable source | source=%s", source.name)
        return available

    async def fetch_all(self, options: Optional[FetchOptions] = None) -> list[HazardEvent]:
        """Raw reports from every available adapter, flattened in adapter order."""
        sources = await self.available_sources()
        results = await asyncio.gather(
            *[s.fetch_hazard_events(options) for s in sources], return_exceptions=True
        )
        events: list[HazardEvent] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.warning("Source contributed nothing | source=%s | error=%s", source.name, result)
                continue
            logger.info("%s returned %d events", source.name, len(result))
            events.extend(result)
        return events

    async def fetch_aggregated(
        self, options: Optional[FetchOptions] = None
    ) -> list[AggregatedHazardEvent]:
        events = await self.fetch_all(options)
        fused = aggregate(events)
        logger.info("Aggregated %d reports into %d events", len(events), len(fused))
        return fused

    def sources_health(self) -> dict[str, dict[str, Any]]:
        """Name, coverage and current health of every registered adapter."""
        return {
            source.name: {
                "name": source.name,
                "coverage": list(source.coverage),
                "supports_tsunami": source.supports_tsunami,
                "health": source.health_status().to_dict(),
            }
            for source in self.sources
        }
