"""
Rolling success / failure / latency bookkeeping for a single adapter.

Every adapter embeds one HealthTracker. The tracker is mutated by every probe
and fetch attempt and exposed read-only via status() for operational
dashboards and CloudWatch metrics.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Optional

from coastwatch.framework.models import SourceHealthStatus


class HealthTracker:
    """
    Tracks consecutive failures, last error, last success and recent latency.

    A source is healthy while consecutive_failures < UNHEALTHY_AFTER. The
    reported average response time covers the last LATENCY_WINDOW
    observations only.
    """

    UNHEALTHY_AFTER = 3
    LATENCY_WINDOW = 10

    def __init__(self) -> None:
        self.last_successful_fetch: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0
        self._latencies_ms: deque[float] = deque(maxlen=self.LATENCY_WINDOW)

    @property
    def is_healthy(self) -> bool:
        return self.consecutive_failures < self.UNHEALTHY_AFTER

    def record_success(self, latency_ms: Optional[float] = None) -> None:
        """A fetch succeeded: reset the failure streak and clear the last error."""
        self.last_successful_fetch = datetime.now(timezone.utc)
        self.consecutive_failures = 0
        self.last_error = None
        if latency_ms is not None:
            self.record_latency(latency_ms)

    def record_failure(self, error: str) -> None:
        self.last_error = error
        self.consecutive_failures += 1

    def record_latency(self, latency_ms: float) -> None:
        # Probes contribute latency without touching the failure streak.
        self._latencies_ms.append(latency_ms)

    def average_response_time_ms(self) -> int:
        if not self._latencies_ms:
            return 0
        return round(sum(self._latencies_ms) / len(self._latencies_ms))

    def status(self) -> SourceHealthStatus:
        return SourceHealthStatus(
            is_healthy=self.is_healthy,
            last_successful_fetch=self.last_successful_fetch,
            last_error=self.last_error,
            consecutive_failures=self.consecutive_failures,
            average_response_time_ms=self.average_response_time_ms(),
        )
