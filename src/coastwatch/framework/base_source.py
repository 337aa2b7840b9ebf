"""
Base source abstraction for external hazard feed integration.

Every polled feed (USGS GeoJSON, EMSC/IRIS FDSN, PTWC Atom, GeoNet CAP,
NDBC DART text files, ...) inherits from BaseSource and implements:
1. A lightweight liveness probe (probe)
2. Normalization of the feed's records into HazardEvent / TsunamiAlert
3. The actual fetch (_fetch_hazard_events, optionally _fetch_tsunami_alerts)

The public fetch_* wrappers own the health bookkeeping and the error
contract: a failed fetch is recorded in the HealthTracker and re-raised as a
SourceFetchError, never as a transport- or parser-specific exception.
Adapters perform network I/O only; they never touch the vessel store.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Optional, TypeVar

import httpx

from coastwatch.framework.errors import RateLimitedError, SourceFetchError
from coastwatch.framework.geo import BoundingBox, in_bbox
from coastwatch.framework.health import HealthTracker
from coastwatch.framework.models import HazardEvent, SourceHealthStatus, TsunamiAlert

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_AGENT = "CoastWatch/1.0 (+hazard-ingestion)"


@dataclass(frozen=True)
class FetchOptions:
    """
    Query options shared by every earthquake adapter.

    An adapter that cannot express a filter natively applies it client-side
    via apply() after fetching.
    """

    min_magnitude: Optional[float] = None
    time_window_hours: Optional[float] = None
    limit: Optional[int] = None
    bounding_box: Optional[BoundingBox] = None

    def apply(
        self, events: list[HazardEvent], now: Optional[datetime] = None
    ) -> list[HazardEvent]:
        """Filter by magnitude floor, time window and bbox, then truncate to limit."""
        now = now or datetime.now(timezone.utc)
        cutoff = (
            now - timedelta(hours=self.time_window_hours)
            if self.time_window_hours is not None
            else None
        )
        kept = [
            e
            for e in events
            if (self.min_magnitude is None or e.magnitude >= self.min_magnitude)
            and (cutoff is None or e.time >= cutoff)
            and in_bbox(e.latitude, e.longitude, self.bounding_box)
        ]
        if self.limit is not None:
            kept = kept[: self.limit]
        return kept


class BaseSource(ABC):
    """
    Abstract base class for polled hazard sources.

    Subclasses set name / coverage / PROBE_URL and implement
    _fetch_hazard_events() (and _fetch_tsunami_alerts() when
    supports_tsunami is True).
    """

    name: str = ""
    coverage: tuple[str, ...] = ()
    update_frequency_seconds: int = 60
    supports_tsunami: bool = False

    PROBE_URL: str = ""
    PROBE_METHOD: str = "HEAD"
    PROBE_TIMEOUT_SECONDS = 5.0
    FETCH_TIMEOUT_SECONDS = 10.0

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        """
        Initialize the source.

        Args:
            client: Shared httpx.AsyncClient. When omitted the source lazily
                    creates (and later closes) its own.
        """
        self._client = client
        self._owns_client = client is None
        self.health = HealthTracker()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT}, follow_redirects=True
            )
        return self._client

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def probe(self) -> None:
        """
        Lightweight liveness check against PROBE_URL.

        Raises:
            httpx.HTTPError: If the endpoint is unreachable or answers non-2xx
        """
        response = await self.client.request(
            self.PROBE_METHOD, self.PROBE_URL, timeout=self.PROBE_TIMEOUT_SECONDS
        )
        response.raise_for_status()

    async def is_available(self) -> bool:
        """
        Run probe() and record the outcome. Never raises.

        A successful probe records its latency but does not reset the
        failure streak; only a successful fetch does that.
        """
        start = time.monotonic()
        try:
            await self.probe()
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self.health.record_failure(f"probe failed: {message}")
            logger.warning("%s probe failed | error=%s", self.name, message)
            return False
        self.health.record_latency((time.monotonic() - start) * 1000)
        return True

    # ------------------------------------------------------------------
    # Guarded public fetches
    # ------------------------------------------------------------------

    async def fetch_hazard_events(
        self, options: Optional[FetchOptions] = None
    ) -> list[HazardEvent]:
        """
        Fetch and normalize recent seismic events.

        Raises:
            SourceFetchError: On any failure (already recorded in health)
        """
        return await self._guarded(self._fetch_hazard_events(options or FetchOptions()))

    async def fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        """
        Fetch tsunami alerts. Sources without tsunami support return [].

        Raises:
            SourceFetchError: On any failure (already recorded in health)
        """
        if not self.supports_tsunami:
            return []
        return await self._guarded(self._fetch_tsunami_alerts())

    @abstractmethod
    async def _fetch_hazard_events(self, options: FetchOptions) -> list[HazardEvent]:
        """Source-specific earthquake fetch. May raise anything."""

    async def _fetch_tsunami_alerts(self) -> list[TsunamiAlert]:
        """Source-specific tsunami fetch. May raise anything."""
        return []

    async def _guarded(self, work: Awaitable[T]) -> T:
        start = time.monotonic()
        try:
            result = await work
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            self.health.record_failure(message)
            logger.warning("%s fetch failed | error=%s", self.name, message)
            if isinstance(exc, SourceFetchError):
                raise
            raise SourceFetchError(self.name, message) from exc
        self.health.record_success((time.monotonic() - start) * 1000)
        return result

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """GET with the source's fetch timeout. Status handling is left to the caller."""
        return await self.client.get(
            url,
            params=params,
            headers=headers,
            timeout=timeout if timeout is not None else self.FETCH_TIMEOUT_SECONDS,
        )

    def _check(self, response: httpx.Response) -> httpx.Response:
        """Raise RateLimitedError on 429, httpx.HTTPStatusError on any other non-2xx."""
        if response.status_code == 429:
            raise RateLimitedError(self.name, retry_after_seconds(response))
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Operational
    # ------------------------------------------------------------------

    def health_status(self) -> SourceHealthStatus:
        return self.health.status()

    async def aclose(self) -> None:
        """Close the HTTP client if this source created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_time(value: Any) -> datetime:
    """
    Parse an ISO 8601 string or epoch-milliseconds number into aware UTC.

    Naive timestamps are taken as UTC.

    Raises:
        ValueError: If the value cannot be interpreted as a time
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"unparseable time: {value!r}")
    text = value.strip().replace(" ", "T", 1) if "T" not in value else value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
