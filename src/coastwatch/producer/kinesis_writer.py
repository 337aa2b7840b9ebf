"""
Kinesis publisher for fused hazard records.

Every fused earthquake and tsunami alert is serialized to JSON with an
embedded `_lineage` block and written with put_records() (up to 500 records
per call). Partition key = correlation id, so successive versions of the
same fused event land on the same shard in order. Records that fail inside a
batch are retried individually with exponential backoff (1s, 2s, 4s).
"""

import asyncio
import json
import logging
import time
from typing import Any, Union

import boto3

from coastwatch.framework.lineage import build_lineage, generate_correlation_id
from coastwatch.framework.models import AggregatedHazardEvent, TsunamiAlert

logger = logging.getLogger(__name__)

FusedRecord = Union[AggregatedHazardEvent, TsunamiAlert]


def build_record(item: FusedRecord, config_hash: str) -> dict[str, Any]:
    """Serialize a fused record and stamp it with lineage."""
    if isinstance(item, AggregatedHazardEvent):
        lineage = build_lineage(
            record_type="earthquake",
            correlation_id=item.correlation_id or generate_correlation_id(*sorted(item.member_ids)),
            primary_source=item.primary_source,
            sources=list(item.sources),
            member_ids=list(item.member_ids),
            config_hash=config_hash,
        )
    else:
        lineage = build_lineage(
            record_type="tsunami",
            correlation_id=generate_correlation_id(item.alert_id),
            primary_source=item.source,
            sources=list(item.sources or (item.source,)),
            member_ids=[item.alert_id],
            config_hash=config_hash,
        )
    record = item.to_dict()
    if isinstance(item, TsunamiAlert):
        # Raw feed payloads can be large and are not part of the published contract.
        record.pop("raw", None)
    record["_lineage"] = lineage.to_dict()
    return record


class KinesisPublisher:
    """
    Batching Kinesis writer with per-record retry.

    All boto3 calls are synchronous and run in the default thread pool
    executor so the poll loop never blocks.

    Usage:
        publisher = KinesisPublisher(stream_name="coastwatch-hazards", region="us-west-2")
        sent, failed = await publisher.publish(records)
    """

    MAX_BATCH_SIZE = 500  # Kinesis put_records hard limit
    MAX_RETRIES = 3

    def __init__(self, stream_name: str, region: str) -> None:
        self._stream_name = stream_name
        self._region = region
        self._kinesis = boto3.client("kinesis", region_name=region)

    async def publish(self, records: list[dict[str, Any]]) -> tuple[int, int]:
        """
        Write records in batches of MAX_BATCH_SIZE.

        Returns:
            (records_sent, records_failed)
        """
        if not records:
            return 0, 0
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_all, records)

    def _send_all(self, records: list[dict[str, Any]]) -> tuple[int, int]:
        sent = failed = 0
        for start in range(0, len(records), self.MAX_BATCH_SIZE):
            batch_sent, batch_failed = self._send_batch(records[start : start + self.MAX_BATCH_SIZE])
            sent += batch_sent
            failed += batch_failed
        logger.info(
            "Kinesis publish complete | stream=%s | sent=%d | failed=%d",
            self._stream_name,
            sent,
            failed,
        )
        return sent, failed

    def _send_batch(self, events: list[dict[str, Any]]) -> tuple[int, int]:
        """
        Send one batch via put_records(); retry failed entries individually.

        Data: JSON-encoded record bytes.
        PartitionKey: the record's lineage correlation id.
        """
        records = [
            {
                "Data": json.dumps(event, default=str).encode("utf-8"),
                "PartitionKey": event.get("_lineage", {}).get("correlation_id") or "unknown",
            }
            for event in events
        ]

        try:
            response = self._kinesis.put_records(StreamName=self._stream_name, Records=records)
        except Exception as exc:
            logger.error("Kinesis put_records batch failed entirely: %s", exc)
            return 0, len(records)

        failed_count = response.get("FailedRecordCount", 0)
        sent = len(records) - failed_count
        failed = 0
        if failed_count > 0:
            logger.warning(
                "put_records: %d/%d records failed, retrying individually",
                failed_count,
                len(records),
            )
            retried_sent, failed = self._retry_failed(records, response["Records"])
            sent += retried_sent
        return sent, failed

    def _retry_failed(
        self,
        records: list[dict[str, Any]],
        results: list[dict[str, Any]],
    ) -> tuple[int, int]:
        """
        Retry the records whose result carries an ErrorCode.

        Waits 1s, 2s, 4s before the successive attempts of each record.

        Returns:
            (records_sent, records_failed) across all retry attempts
        """
        sent = failed = 0
        failed_records = [records[i] for i, result in enumerate(results) if result.get("ErrorCode")]

        for record in failed_records:
            for attempt in range(self.MAX_RETRIES):
                time.sleep(2**attempt)
                try:
                    self._kinesis.put_record(
                        StreamName=self._stream_name,
                        Data=record["Data"],
                        PartitionKey=record["PartitionKey"],
                    )
                except Exception as exc:
                    logger.warning(
                        "put_record retry %d/%d failed: %s", attempt + 1, self.MAX_RETRIES, exc
                    )
                    continue
                sent += 1
                break
            else:
                logger.error("put_record failed after %d retries", self.MAX_RETRIES)
                failed += 1

        return sent, failed
