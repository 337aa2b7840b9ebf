"""
CloudWatch metrics for the hazard poll loop and the vessel stream.

Publishes:
- Per-source health: SourceHealthy, ConsecutiveFailures, AverageResponseTimeMs
  (dimension Source)
- Fused output per cycle: AggregatedEvents, TsunamiAlerts
- Vessel ingestion: MessagesReceived, PositionsRecorded, VesselsCreated, Errors

All calls are synchronous boto3; async callers run them in an executor.
CloudWatch failures are logged as warnings and never interrupt ingestion.
"""

import logging
from typing import Any, Mapping, Optional

import boto3

from coastwatch.framework.models import SourceHealthStatus

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Thin put_metric_data wrapper.

    Usage:
        metrics = MetricsPublisher(namespace="CoastWatch/Ingestion", region="us-west-2")
        metrics.publish_source_health({"USGS": usgs.health_status()})
    """

    DEFAULT_NAMESPACE = "CoastWatch/Ingestion"
    MAX_METRICS_PER_CALL = 20

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, region: str = "us-west-2") -> None:
        self._namespace = namespace
        self._cw = boto3.client("cloudwatch", region_name=region)

    def publish_source_health(self, health: Mapping[str, SourceHealthStatus]) -> None:
        data: list[dict[str, Any]] = []
        for source, status in health.items():
            dimensions = [{"Name": "Source", "Value": source}]
            data.extend(
                [
                    _datum("SourceHealthy", 1.0 if status.is_healthy else 0.0, "Count", dimensions),
                    _datum("ConsecutiveFailures", status.consecutive_failures, "Count", dimensions),
                    _datum(
                        "AverageResponseTimeMs",
                        status.average_response_time_ms,
                        "Milliseconds",
                        dimensions,
                    ),
                ]
            )
        self._put(data)

    def publish_cycle(self, aggregated_events: int, tsunami_alerts: int) -> None:
        self._put(
            [
                _datum("AggregatedEvents", aggregated_events, "Count"),
                _datum("TsunamiAlerts", tsunami_alerts, "Count"),
            ]
        )

    def publish_ingestion_stats(self, stats: Any) -> None:
        """Publish counters from an IngestionStats snapshot (cumulative since start)."""
        self._put(
            [
                _datum("MessagesReceived", stats.messages_received, "Count"),
                _datum("PositionsRecorded", stats.positions_recorded, "Count"),
                _datum("VesselsCreated", stats.vessels_created, "Count"),
                _datum("Errors", stats.errors, "Count"),
            ]
        )

    def _put(self, data: list[dict[str, Any]]) -> None:
        for start in range(0, len(data), self.MAX_METRICS_PER_CALL):
            chunk = data[start : start + self.MAX_METRICS_PER_CALL]
            try:
                self._cw.put_metric_data(Namespace=self._namespace, MetricData=chunk)
            except Exception as exc:
                logger.warning("CloudWatch put_metric_data failed (non-fatal): %s", exc)
                return


def _datum(
    name: str,
    value: float,
    unit: str,
    dimensions: Optional[list[dict[str, str]]] = None,
) -> dict[str, Any]:
    datum: dict[str, Any] = {"MetricName": name, "Value": float(value), "Unit": unit}
    if dimensions:
        datum["Dimensions"] = dimensions
    return datum
