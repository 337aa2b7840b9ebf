"""
SourceManager: reads the hazards config, instantiates adapters, runs the poll loop.

This is the orchestrator behind `coastwatch hazards`:
1. Builds one adapter instance per configured source name (an adapter listed
   under both earthquake_sources and tsunami_sources is shared)
2. Wires the earthquake adapters into an Aggregator and the tsunami adapters
   into TsunamiFusion
3. Every poll interval: aggregate, fuse, publish to Kinesis, publish health
   metrics, until shutdown() is called
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from coastwatch.connectors import (
    DartBuoySource,
    EmscSource,
    GeoNetSource,
    IrisSource,
    JmaSource,
    PtwcSource,
    SeismicInferenceSource,
    UsgsSource,
)
from coastwatch.framework.base_source import BaseSource, FetchOptions
from coastwatch.framework.config_loader import ConfigLoader
from coastwatch.framework.lineage import hash_config
from coastwatch.framework.models import AggregatedHazardEvent, TsunamiAlert
from coastwatch.fusion.aggregator import Aggregator
from coastwatch.fusion.tsunami import TsunamiFusion
from coastwatch.producer.kinesis_writer import KinesisPublisher, build_record
from coastwatch.producer.metrics import MetricsPublisher

logger = logging.getLogger(__name__)

# Registry maps config source names to adapter classes.
_SOURCE_REGISTRY: dict[str, Callable[[], BaseSource]] = {
    "usgs": UsgsSource,
    "emsc": EmscSource,
    "jma": JmaSource,
    "iris": IrisSource,
    "geonet": GeoNetSource,
    "ptwc": PtwcSource,
    "dart": DartBuoySource,
}

# Derived sources wrap the named upstream adapter.
_DERIVED_SOURCES: dict[str, str] = {"seismic-inference": "usgs"}


@dataclass
class CycleResult:
    earthquakes: list[AggregatedHazardEvent] = field(default_factory=list)
    tsunami_alerts: list[TsunamiAlert] = field(default_factory=list)
    records_sent: int = 0
    records_failed: int = 0

    def to_dict(self, config_hash: str = "") -> dict[str, Any]:
        return {
            "earthquakes": [build_record(e, config_hash) for e in self.earthquakes],
            "tsunami_alerts": [build_record(a, config_hash) for a in self.tsunami_alerts],
            "records_sent": self.records_sent,
            "records_failed": self.records_failed,
        }


class SourceManager:
    """
    Orchestrates hazard polling, fusion and publication.

    Usage:
        manager = SourceManager(loader)
        await manager.run()          # called from main.py
        manager.shutdown()           # called from signal handler
    """

    def __init__(
        self,
        loader: ConfigLoader,
        publisher: Optional[KinesisPublisher] = None,
        metrics: Optional[MetricsPublisher] = None,
    ) -> None:
        self._loader = loader
        self._publisher = publisher
        self._metrics = metrics
        self._stop: asyncio.Event = asyncio.Event()
        self._instances: dict[str, BaseSource] = {}

        hazards = loader.section("hazards")
        self.poll_interval_seconds = float(hazards.get("poll_interval_seconds", 60))
        self.options: FetchOptions = loader.get_fetch_options()
        self.config_hash = hash_config(hazards)

        self.earthquake_sources = self.build_sources(hazards.get("earthquake_sources", []))
        self.tsunami_sources = self.build_sources(hazards.get("tsunami_sources", []))
        self.aggregator = Aggregator(self.earthquake_sources)
        self.tsunami = TsunamiFusion(self.tsunami_sources)

    @classmethod
    def from_config(cls, loader: ConfigLoader) -> "SourceManager":
        """Build with the Kinesis and CloudWatch publishers the config enables."""
        publishing = loader.section("publishing")
        publisher = None
        metrics = None
        if publishing.get("kinesis_enabled"):
            publisher = KinesisPublisher(
                stream_name=publishing["kinesis_stream"], region=publishing["region"]
            )
        if publishing.get("metrics_enabled"):
            metrics = MetricsPublisher(
                namespace=publishing["cloudwatch_namespace"], region=publishing["region"]
            )
        return cls(loader, publisher=publisher, metrics=metrics)

    def build_sources(self, names: list[str]) -> list[BaseSource]:
        """
        Instantiate adapters for the given config names.

        Unknown names are logged as warnings and skipped.
        """
        sources: list[BaseSource] = []
        for name in names:
            source = self._instance(name)
            if source is None:
                logger.warning("Unknown source '%s' in hazards config, skipping", name)
                continue
            sources.append(source)
        return sources

    def _instance(self, name: str) -> Optional[BaseSource]:
        if name in self._instances:
            return self._instances[name]
        if name in _DERIVED_SOURCES:
            upstream = self._instance(_DERIVED_SOURCES[name])
            source: Optional[BaseSource] = SeismicInferenceSource(upstream) if upstream else None
        else:
            factory = _SOURCE_REGISTRY.get(name)
            source = factory() if factory else None
        if source is not None:
            self._instances[name] = source
            logger.info("Registered source: %s (%s)", name, type(source).__name__)
        return source

    async def run_cycle(self, publish: bool = True) -> CycleResult:
        """One poll: aggregate earthquakes, fuse tsunami alerts, publish."""
        earthquakes, alerts = await asyncio.gather(
            self.aggregator.fetch_aggregated(self.options), self.tsunami.fetch_alerts()
        )
        result = CycleResult(earthquakes=earthquakes, tsunami_alerts=alerts)

        if publish and self._publisher is not None:
            records = [build_record(item, self.config_hash) for item in [*earthquakes, *alerts]]
            result.records_sent, result.records_failed = await self._publisher.publish(records)

        if publish and self._metrics is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._metrics.publish_source_health, self.health())
            await loop.run_in_executor(
                None, self._metrics.publish_cycle, len(earthquakes), len(alerts)
            )

        logger.info(
            "Hazard cycle complete | earthquakes=%d | tsunami_alerts=%d | sent=%d | failed=%d",
            len(earthquakes),
            len(alerts),
            result.records_sent,
            result.records_failed,
        )
        return result

    def health(self) -> dict[str, Any]:
        return {source.name: source.health_status() for source in self._instances.values()}

    async def run(self) -> None:
        """Poll until shutdown() is called. A failing cycle is logged and retried next interval."""
        logger.info(
            "SourceManager starting | sources=%s | interval=%.0fs",
            sorted(self._instances),
            self.poll_interval_seconds,
        )
        try:
            while not self._stop.is_set():
                try:
                    await self.run_cycle()
                except Exception as exc:
                    logger.exception("Hazard cycle failed: %s", exc)
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.aclose()

    def shutdown(self) -> None:
        logger.info("SourceManager shutdown initiated")
        self._stop.set()

    async def aclose(self) -> None:
        for source in self._instances.values():
            await source.aclose()
