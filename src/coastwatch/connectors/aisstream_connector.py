"""
aisstream.io WebSocket connector for live vessel telemetry.

Subscribes to the aisstream.io stream for a set of bounding boxes and keeps
the vessel store current:
- ShipStaticData messages upsert the vessel's identity and dimensions
- PositionReport messages (sampled) mark the vessel seen and append a position

Messages are handled one at a time in arrival order. A failure while handling
one message is counted and reported through on_error; it never stops the
stream. Disconnects are retried with jittered exponential backoff until the
reconnect budget is spent, at which point on_fatal is called and stream()
returns.
"""

import asyncio
import contextlib
import json
import logging
import random
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from coastwatch.framework.errors import ConfigError, StreamFatalError
from coastwatch.framework.models import VesselPosition, to_iso
from coastwatch.vessels.ais_codes import (
    HEADING_NOT_AVAILABLE,
    navigational_status_name,
    type_from_navigational_status,
    vessel_type_name,
)
from coastwatch.vessels.store import VesselStore

logger = logging.getLogger(__name__)

_AIS_TIME_RE = re.compile(r"(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2}:\d{2})(?:\.(\d+))?")


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    STREAMING = "STREAMING"


@dataclass(frozen=True)
class IngestionStats:
    """Point-in-time counters for one connector run."""

    start_time: Optional[datetime]
    uptime_seconds: int
    messages_received: int
    position_reports: int
    static_data_messages: int
    vessels_created: int
    vessels_updated: int
    positions_recorded: int
    errors: int
    last_message: Optional[datetime]
    connected: bool
    reconnect_attempts: int
    state: ConnectionState

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_time"] = to_iso(self.start_time)
        data["last_message"] = to_iso(self.last_message)
        data["state"] = self.state.value
        return data


def parse_ais_time(value: Optional[str], default: Optional[datetime] = None) -> datetime:
    """
    Parse aisstream's MetaData.time_utc into an aware UTC datetime.

    The stream sends Go-formatted times such as
    "2024-01-01 12:00:00.123456789 +0000 UTC"; fractional seconds are cut to
    microseconds. Unparseable or missing values fall back to `default` (or now).
    """
    match = _AIS_TIME_RE.match(value.strip()) if value else None
    if match is None:
        return default or datetime.now(timezone.utc)
    day, clock, fraction = match.groups()
    parsed = datetime.strptime(f"{day} {clock}", "%Y-%m-%d %H:%M:%S")
    micros = int((fraction or "0")[:6].ljust(6, "0"))
    return parsed.replace(microsecond=micros, tzinfo=timezone.utc)


def clean_name(value: Any) -> str:
    """AIS pads text fields with '@' and spaces."""
    if not value:
        return ""
    return str(value).strip().rstrip("@ ").strip()


class AisStreamConnector:
    """
    Streams PositionReport and ShipStaticData messages from aisstream.io.

    Usage:
        connector = AisStreamConnector(store, api_key, REGIONS["singapore"])
        connector.connect()
        await connector.stream()
    """

    STREAM_URL = "wss://stream.aisstream.io/v0/stream"
    HEALTH_WINDOW_SECONDS = 120.0

    def __init__(
        self,
        store: VesselStore,
        api_key: str,
        bounding_boxes: list[list[list[float]]],
        track_positions: bool = True,
        position_sample_rate: int = 10,
        max_reconnect_attempts: int = 10,
        reconnect_delay_seconds: float = 5,
        max_reconnect_delay_seconds: float = 300,
        stats_interval_seconds: float = 60,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_fatal: Optional[Callable[[StreamFatalError], None]] = None,
        on_message: Optional[Callable[[dict[str, Any]], None]] = None,
        on_stats: Optional[Callable[[IngestionStats], None]] = None,
    ) -> None:
        """
        Initialize the connector.

        Args:
            store: Vessel store the stream writes to
            api_key: aisstream.io API key
            bounding_boxes: [[[lat, lon], [lat, lon]], ...] subscription areas
            track_positions: Record positions (static data is always processed)
            position_sample_rate: Process every Nth position report
            max_reconnect_attempts: Consecutive failed sessions before giving up
            reconnect_delay_seconds: Base backoff delay
            max_reconnect_delay_seconds: Backoff cap
            stats_interval_seconds: Period of the statistics log line
            on_error: Called with each per-message exception
            on_fatal: Called once with StreamFatalError when reconnects run out
            on_message: Called with every decoded message
            on_stats: Called with each periodic IngestionStats snapshot
        """
        self.store = store
        self.api_key = api_key
        self.bounding_boxes = bounding_boxes
        self.track_positions = track_positions
        self.position_sample_rate = position_sample_rate
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.max_reconnect_delay_seconds = max_reconnect_delay_seconds
        self.stats_interval_seconds = stats_interval_seconds
        self.on_error = on_error
        self.on_fatal = on_fatal
        self.on_message = on_message
        self.on_stats = on_stats

        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.messages_received = 0
        self.position_reports = 0
        self.static_data_messages = 0
        self.vessels_created = 0
        self.vessels_updated = 0
        self.positions_recorded = 0
        self.errors = 0

        self._started_at: Optional[datetime] = None
        self._last_message: Optional[datetime] = None
        self._last_message_at: Optional[float] = None  # monotonic, None until first message
        self._stop: asyncio.Event = asyncio.Event()
        self._ws: Any = None
        self._random = random.Random()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """
        Setup-only: validates config and logs the subscription.

        No network I/O happens here; the WebSocket is opened inside stream().
        """
        if not self.api_key:
            raise ConfigError("AisStreamConnector requires an aisstream.io API key")
        if not self.bounding_boxes:
            raise ConfigError("AisStreamConnector requires at least one bounding box")
        if self.position_sample_rate < 1:
            raise ConfigError("position_sample_rate must be >= 1")
        logger.info(
            "AisStreamConnector configured | boxes=%s | track_positions=%s | sample_rate=%d",
            self.bounding_boxes,
            self.track_positions,
            self.position_sample_rate,
        )

    def subscription_message(self) -> dict[str, Any]:
        message_types = ["PositionReport", "ShipStaticData"] if self.track_positions else ["ShipStaticData"]
        return {
            "APIKey": self.api_key,
            "BoundingBoxes": self.bounding_boxes,
            "FilterMessageTypes": message_types,
        }

    def health_check(self) -> bool:
        """True while connected and a message arrived within HEALTH_WINDOW_SECONDS."""
        if not self.connected or self._last_message_at is None:
            return False
        return time.monotonic() - self._last_message_at < self.HEALTH_WINDOW_SECONDS

    @property
    def connected(self) -> bool:
        return self.state in (ConnectionState.SUBSCRIBED, ConnectionState.STREAMING)

    def shutdown(self) -> None:
        """Signal stream() to exit and close the open socket, if any."""
        self._stop.set()
        if self._ws is not None:
            with contextlib.suppress(RuntimeError):
                asyncio.get_running_loop().create_task(self._ws.close())
        logger.info("AisStreamConnector shutdown requested")

    # ------------------------------------------------------------------
    # Streaming coroutine
    # ------------------------------------------------------------------

    def reconnect_delay(self, attempt: int) -> float:
        """min(base * 2**(attempt-1), cap), scaled by a jitter factor in [0.5, 1.0]."""
        delay = min(
            self.reconnect_delay_seconds * 2 ** (attempt - 1), self.max_reconnect_delay_seconds
        )
        return delay * self._random.uniform(0.5, 1.0)

    async def stream(self) -> None:
        """
        Run until shutdown() is called or the reconnect budget is exhausted.

        Every (re)connect sends the full subscription. The attempt counter
        resets once a session reaches SUBSCRIBED, so only consecutive failed
        sessions count against max_reconnect_attempts.
        """
        self._started_at = datetime.now(timezone.utc)
        stats_task = asyncio.create_task(self._stats_loop())
        try:
            while not self._stop.is_set():
                try:
                    await self._listen_once()
                    error: Exception = ConnectionError("stream closed by server")
                except Exception as exc:
                    error = exc
                self.state = ConnectionState.DISCONNECTED
                if self._stop.is_set():
                    break

                self.reconnect_attempts += 1
                if self.reconnect_attempts > self.max_reconnect_attempts:
                    fatal = StreamFatalError(self.max_reconnect_attempts, str(error))
                    logger.error("AisStreamConnector giving up | error=%s", fatal)
                    if self.on_fatal is not None:
                        self.on_fatal(fatal)
                    return

                delay = self.reconnect_delay(self.reconnect_attempts)
                logger.warning(
                    "AisStreamConnector disconnected, reconnecting in %.1fs | attempt=%d/%d | error=%s",
                    delay,
                    self.reconnect_attempts,
                    self.max_reconnect_attempts,
                    error,
                )
                await self._wait_stop(delay)
        finally:
            stats_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stats_task
            self.state = ConnectionState.DISCONNECTED
            logger.info("AisStreamConnector stopped | stats=%s", self.stats().to_dict())

    async def _listen_once(self) -> None:
        """Open one WebSocket session, subscribe, and handle messages until close or stop."""
        import websockets

        self.state = ConnectionState.CONNECTING
        async with websockets.connect(self.STREAM_URL) as ws:
            self._ws = ws
            try:
                await ws.send(json.dumps(self.subscription_message()))
                self.state = ConnectionState.SUBSCRIBED
                self.reconnect_attempts = 0
                logger.info("AisStreamConnector subscribed | url=%s", self.STREAM_URL)
                async for message in ws:
                    if self._stop.is_set():
                        return
                    self.state = ConnectionState.STREAMING
                    await self.handle_message(message)
            finally:
                self._ws = None

    async def _wait_stop(self, timeout: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=timeout)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Any) -> None:
        """Decode and dispatch one stream message. Never raises."""
        try:
            data = json.loads(raw)
            self.messages_received += 1
            self._last_message = datetime.now(timezone.utc)
            self._last_message_at = time.monotonic()

            message_type = data.get("MessageType")
            if message_type == "PositionReport":
                self.position_reports += 1
                if self.track_positions and self.position_reports % self.position_sample_rate == 0:
                    await self._process_position(data)
            elif message_type == "ShipStaticData":
                self.static_data_messages += 1
                await self._process_static_data(data)
            else:
                logger.debug("AisStreamConnector ignoring message | type=%s", message_type)

            if self.on_message is not None:
                self.on_message(data)
        except Exception as exc:
            self.errors += 1
            logger.warning("AisStreamConnector message handling failed | error=%s", exc)
            if self.on_error is not None:
                self.on_error(exc)

    async def _process_position(self, data: dict[str, Any]) -> None:
        report = data["Message"]["PositionReport"]
        meta = data.get("MetaData") or {}
        mmsi = str(report["UserID"])
        observed = parse_ais_time(meta.get("time_utc"))
        nav_status = report.get("NavigationalStatus")

        _, created = await self.store.upsert_vessel(
            mmsi,
            {"last_seen": observed, "active": True},
            create_defaults={
                "name": clean_name(meta.get("ShipName")) or f"Vessel {mmsi}",
                "vessel_type": type_from_navigational_status(nav_status),
            },
        )
        if created:
            self.vessels_created += 1
            logger.info("New vessel from position report | mmsi=%s", mmsi)
        else:
            self.vessels_updated += 1

        heading = report.get("TrueHeading")
        await self.store.append_position(
            VesselPosition(
                mmsi=mmsi,
                latitude=float(report["Latitude"]),
                longitude=float(report["Longitude"]),
                speed=report.get("Sog"),
                course=report.get("Cog"),
                heading=None if heading in (None, HEADING_NOT_AVAILABLE) else int(heading),
                navigational_status=navigational_status_name(nav_status),
                timestamp=observed,
            )
        )
        self.positions_recorded += 1

    async def _process_static_data(self, data: dict[str, Any]) -> None:
        static = data["Message"]["ShipStaticData"]
        meta = data.get("MetaData") or {}
        mmsi = str(static["UserID"])
        observed = parse_ais_time(meta.get("time_utc"))

        fields: dict[str, Any] = {
            "callsign": (static.get("CallSign") or "").strip() or None,
            "vessel_type": vessel_type_name(int(static.get("Type") or 0)),
            "enriched_at": observed,
            "enrichment_source": "aisstream",
            "active": True,
        }
        name = clean_name(static.get("Name"))
        if name:
            fields["name"] = name
        imo = static.get("ImoNumber") or 0
        if imo > 0:
            fields["imo"] = str(imo)

        dimension = static.get("Dimension") or {}
        length = (dimension.get("A") or 0) + (dimension.get("B") or 0)
        width = (dimension.get("C") or 0) + (dimension.get("D") or 0)
        if length > 0:
            fields["length"] = float(length)
        if width > 0:
            fields["width"] = float(width)
        draught = static.get("MaximumStaticDraught") or 0
        if draught > 0:
            fields["draught"] = float(draught)

        _, created = await self.store.upsert_vessel(mmsi, fields)
        if created:
            self.vessels_created += 1
            logger.info("New vessel from static data | mmsi=%s | name=%s", mmsi, name)
        else:
            self.vessels_updated += 1

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> IngestionStats:
        uptime = 0
        if self._started_at is not None:
            uptime = int((datetime.now(timezone.utc) - self._started_at).total_seconds())
        return IngestionStats(
            start_time=self._started_at,
            uptime_seconds=uptime,
            messages_received=self.messages_received,
            position_reports=self.position_reports,
            static_data_messages=self.static_data_messages,
            vessels_created=self.vessels_created,
            vessels_updated=self.vessels_updated,
            positions_recorded=self.positions_recorded,
            errors=self.errors,
            last_message=self._last_message,
            connected=self.connected,
            reconnect_attempts=self.reconnect_attempts,
            state=self.state,
        )

    async def _stats_loop(self) -> None:
        while not self._stop.is_set():
            await self._wait_stop(self.stats_interval_seconds)
            if self._stop.is_set():
                return
            snapshot = self.stats()
            logger.info(
                "AisStreamConnector stats | messages=%d | positions=%d | created=%d | updated=%d | errors=%d",
                snapshot.messages_received,
                snapshot.positions_recorded,
                snapshot.vessels_created,
                snapshot.vessels_updated,
                snapshot.errors,
            )
            if self.on_stats is not None:
                try:
                    self.on_stats(snapshot)
                except Exception as exc:
                    logger.warning("AisStreamConnector stats hook failed | error=%s", exc)
