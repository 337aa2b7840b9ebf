"""
CoastWatch command line entry point.

Sub-commands:
    coastwatch hazards [--once]                       Earthquake + tsunami poll loop
    coastwatch vessels [--region R] [--no-positions] [--sample N]
                                                      Live AIS ingestion
    coastwatch enrich [--limit N] [--batch-size N] [--all] [--mmsi M ...] [--stats]
                                                      One vessel enrichment run

Environment variables:
    COASTWATCH_LOG_LEVEL     Logging level (default: INFO)
    AISSTREAM_API_KEY        aisstream.io API key (or secrets.aisstream_api_key_param)
    MARINESIA_API_KEY        Marinesia API key (or secrets.marinesia_api_key_param)
    COASTWATCH_DATABASE_URL  SQLAlchemy database URL
    KINESIS_STREAM_NAME      Kinesis stream for fused hazard records
    AWS_REGION               AWS region for Kinesis / CloudWatch / SSM

Shutdown:
    SIGTERM / SIGINT  -> graceful shutdown of the running service
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Callable, Optional

from coastwatch.connectors.aisstream_connector import AisStreamConnector
from coastwatch.connectors.marinesia_client import MarinesiaClient
from coastwatch.framework.config_loader import ConfigLoader
from coastwatch.framework.errors import ConfigError, StreamFatalError
from coastwatch.producer.metrics import MetricsPublisher
from coastwatch.producer.source_manager import SourceManager
from coastwatch.vessels.ais_codes import REGIONS
from coastwatch.vessels.enrichment import VesselEnrichmentJob
from coastwatch.vessels.store import EngineConfig, SqlVesselStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coastwatch", description="Coastal hazard and vessel ingestion")
    parser.add_argument(
        "--config", default=ConfigLoader.DEFAULT_CONFIG_PATH, help="Path to coastwatch.yaml"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    hazards = commands.add_parser("hazards", help="Poll hazard sources and publish fused records")
    hazards.add_argument("--once", action="store_true", help="Run one cycle, print JSON, exit")

    vessels = commands.add_parser("vessels", help="Run the AIS vessel ingestion stream")
    vessels.add_argument("--region", choices=sorted(REGIONS), help="Subscription region")
    vessels.add_argument("--no-positions", action="store_true", help="Only ingest static data")
    vessels.add_argument("--sample", type=int, help="Process every Nth position report")

    enrich = commands.add_parser("enrich", help="Fill in vessel reference data from Marinesia")
    enrich.add_argument("--limit", type=int, help="Maximum vessels to process")
    enrich.add_argument("--batch-size", type=int, help="Vessels per batch")
    enrich.add_argument("--all", action="store_true", help="Include vessels that already have data")
    enrich.add_argument("--mmsi", action="append", help="Enrich this vessel (repeatable)")
    enrich.add_argument("--stats", action="store_true", help="Print coverage statistics and exit")
    return parser


def _install_signal_handlers(shutdown: Callable[[], None]) -> None:
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _open_store(loader: ConfigLoader) -> SqlVesselStore:
    database = loader.section("database")
    store = SqlVesselStore.from_config(
        EngineConfig(url=database["url"], echo=bool(database.get("echo", False)))
    )
    store.create_tables()
    return store


# ----------------------------------------------------------------------
# Sub-commands
# ----------------------------------------------------------------------


async def run_hazards(loader: ConfigLoader, once: bool = False) -> int:
    if once:
        manager = SourceManager(loader)
        try:
            result = await manager.run_cycle(publish=False)
        finally:
            await manager.aclose()
        _print_json(result.to_dict(manager.config_hash))
        return 0

    manager = SourceManager.from_config(loader)
    _install_signal_handlers(manager.shutdown)
    await manager.run()
    return 0


def _log_stats_publish_failure(future: "asyncio.Future[Any]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Ingestion stats publish failed | error=%s", exc)


async def run_vessels(
    loader: ConfigLoader,
    region: Optional[str] = None,
    no_positions: bool = False,
    sample: Optional[int] = None,
) -> int:
    settings = loader.section("vessels")
    region = region or settings["region"]
    if region not in REGIONS:
        raise ConfigError(f"Unknown AIS region '{region}' (choose from {sorted(REGIONS)})")
    api_key = loader.get_secret("aisstream_api_key")

    metrics: Optional[MetricsPublisher] = None
    publishing = loader.section("publishing")
    if publishing.get("metrics_enabled"):
        metrics = MetricsPublisher(
            namespace=publishing["cloudwatch_namespace"], region=publishing["region"]
        )

    loop = asyncio.get_running_loop()
    fatal: list[StreamFatalError] = []

    def _publish_stats(stats: Any) -> None:
        if metrics is not None:
            future = loop.run_in_executor(None, metrics.publish_ingestion_stats, stats)
            future.add_done_callback(_log_stats_publish_failure)

    store = _open_store(loader)
    connector = AisStreamConnector(
        store,
        api_key=api_key,
        bounding_boxes=REGIONS[region],
        track_positions=bool(settings["track_positions"]) and not no_positions,
        position_sample_rate=sample or int(settings["position_sample_rate"]),
        max_reconnect_attempts=int(settings["max_reconnect_attempts"]),
        reconnect_delay_seconds=float(settings["reconnect_delay_seconds"]),
        max_reconnect_delay_seconds=float(settings["max_reconnect_delay_seconds"]),
        stats_interval_seconds=float(settings["stats_interval_seconds"]),
        on_fatal=fatal.append,
        on_stats=_publish_stats,
    )
    connector.connect()
    _install_signal_handlers(connector.shutdown)
    logger.info("Vessel ingestion starting | region=%s", region)
    try:
        await connector.stream()
    finally:
        await store.close()
    _print_json(connector.stats().to_dict())
    return 1 if fatal else 0


async def run_enrich(
    loader: ConfigLoader,
    limit: Optional[int] = None,
    batch_size: Optional[int] = None,
    include_all: bool = False,
    mmsi: Optional[list[str]] = None,
    stats_only: bool = False,
) -> int:
    settings = loader.section("enrichment")
    store = _open_store(loader)
    try:
        if stats_only:
            _print_json((await store.enrichment_stats()).to_dict())
            return 0

        client = MarinesiaClient(loader.get_secret("marinesia_api_key"))
        job = VesselEnrichmentJob(
            store,
            client,
            batch_size=batch_size or int(settings["batch_size"]),
            batch_pause_seconds=float(settings["batch_pause_seconds"]),
            rate_limit_pause_seconds=float(settings["rate_limit_pause_seconds"]),
        )
        _install_signal_handlers(job.shutdown)
        try:
            result = await job.run(
                limit=limit or int(settings["limit"]),
                only_missing=bool(settings["only_missing"]) and not include_all,
                mmsi_list=mmsi,
            )
        finally:
            await client.aclose()
        _print_json(result.to_dict())
        return 0
    finally:
        await store.close()


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> None:
    """Parse arguments, configure logging, run the chosen service until it exits."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=os.getenv("COASTWATCH_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )

    loader = ConfigLoader(args.config)
    if args.command == "hazards":
        work = run_hazards(loader, once=args.once)
    elif args.command == "vessels":
        work = run_vessels(loader, args.region, args.no_positions, args.sample)
    else:
        work = run_enrich(
            loader, args.limit, args.batch_size, args.all, args.mmsi, args.stats
        )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    exit_code = 0
    try:
        loader.load()
        logger.info("CoastWatch %s starting", args.command)
        exit_code = loop.run_until_complete(work)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        exit_code = 2
    except Exception as exc:
        logger.exception("CoastWatch %s exited with error: %s", args.command, exc)
        exit_code = 1
    finally:
        work.close()
        loop.close()
        logger.info("CoastWatch %s stopped", args.command)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
