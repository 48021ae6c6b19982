"""Check history — append-only records with a fixed retention window.

Keys are ``"<endpoint-id>:<timestamp-ns, zero padded>"`` so a prefix scan
returns one endpoint's history in chronological order. ``prune`` deletes
everything older than ``now - RETENTION``; it runs once at startup and then
periodically from ``RetentionPruner``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

from sitewatch.errors import StorageError
from sitewatch.storage.kv import HISTORY, SETTINGS, KVStore

logger = logging.getLogger(__name__)

RETENTION = timedelta(days=3)
DEFAULT_PRUNE_INTERVAL = 3600.0  # seconds

_NS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True)
class HealthCheckRecord:
    """Result of a single health check execution. Never mutated."""

    endpoint_id: str
    timestamp_ns: int
    status: str
    response_time: float  # seconds
    status_code: int | None = None
    error: str = ""

    @property
    def key(self) -> str:
        return history_key(self.endpoint_id, self.timestamp_ns)

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ns / _NS_PER_SECOND, tz=timezone.utc)

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes) -> HealthCheckRecord:
        raw = json.loads(data)
        return cls(
            endpoint_id=raw["endpoint_id"],
            timestamp_ns=int(raw["timestamp_ns"]),
            status=raw["status"],
            response_time=float(raw.get("response_time", 0.0)),
            status_code=raw.get("status_code"),
            error=raw.get("error", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint_id": self.endpoint_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "response_time_ms": round(self.response_time * 1000, 3),
            "status_code": self.status_code,
            "error": self.error,
        }


def history_key(endpoint_id: str, timestamp_ns: int) -> str:
    return f"{endpoint_id}:{timestamp_ns:020d}"


def to_ns(moment: datetime) -> int:
    """Nanoseconds since the epoch for an aware (or UTC-naive) datetime."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    delta = moment - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * _NS_PER_SECOND + delta.microseconds * 1000


class HistoryStore:
    """Writer, reader and pruner for the ``history`` namespace."""

    def __init__(self, kv: KVStore) -> None:
        self.kv = kv

    def record(
        self,
        endpoint_id: str,
        status: str,
        response_time: float,
        status_code: int | None = None,
        error: str = "",
        at: datetime | None = None,
    ) -> HealthCheckRecord:
        """Build a record stamped with ``at`` (default: now) and append it."""
        return self.append(HealthCheckRecord(
            endpoint_id=endpoint_id,
            timestamp_ns=to_ns(at) if at else time.time_ns(),
            status=status,
            response_time=response_time,
            status_code=status_code,
            error=error,
        ))

    def append(self, record: HealthCheckRecord) -> HealthCheckRecord:
        """Store ``record`` and return it as stored.

        The timestamp is kept unless another record of the endpoint already
        holds that exact key; then it moves forward 1 ns at a time to the
        next free key. The existence check and the write share one write
        transaction.
        """
        with self.kv.transaction(write=True) as tx:
            ts = record.timestamp_ns
            while tx.exists(HISTORY, history_key(record.endpoint_id, ts)):
                ts += 1
            if ts != record.timestamp_ns:
                record = replace(record, timestamp_ns=ts)
            tx.put(HISTORY, record.key, record.to_json())
        return record

    def query(self, endpoint_id: str, limit: int = 0) -> list[HealthCheckRecord]:
        """History for one endpoint, most recent first. ``limit <= 0`` = all."""
        records: list[HealthCheckRecord] = []
        for key, value in self.kv.scan_prefix(HISTORY, f"{endpoint_id}:"):
            try:
                records.append(HealthCheckRecord.from_json(value))
            except (ValueError, KeyError):
                logger.warning("Skipping unreadable history record %s", key)
        records.reverse()
        if limit > 0:
            records = records[:limit]
        return records

    def delete_endpoint_history(self, endpoint_id: str) -> int:
        """Remove all history of one endpoint (used when it is deleted)."""
        with self.kv.transaction(write=True) as tx:
            keys = [k for k, _ in tx.scan_prefix(HISTORY, f"{endpoint_id}:")]
            for key in keys:
                tx.delete(HISTORY, key)
        return len(keys)

    def prune(self, now: datetime | None = None, retention: timedelta = RETENTION) -> int:
        """Delete records strictly older than ``now - retention``.

        Doomed keys are collected first, then deleted one by one. A failed
        delete does not stop the rest; the first error is raised afterwards.
        """
        now = now or datetime.now(timezone.utc)
        cutoff_ns = to_ns(now - retention)

        doomed: list[str] = []
        for key, value in self.kv.scan(HISTORY):
            try:
                ts = HealthCheckRecord.from_json(value).timestamp_ns
            except (ValueError, KeyError):
                logger.warning("Skipping unreadable history record %s", key)
                continue
            if ts < cutoff_ns:
                doomed.append(key)

        deleted = 0
        errors: list[StorageError] = []
        for key in doomed:
            try:
                if self.kv.delete(HISTORY, key):
                    deleted += 1
            except StorageError as e:
                errors.append(e)

        if deleted:
            logger.info(
                "Pruned %d history records older than %d days", deleted, retention.days,
            )
        if errors:
            raise StorageError(
                f"prune deleted {deleted}/{len(doomed)} records; first error: {errors[0]}"
            )

        self.kv.put(SETTINGS, "last_prune_at", now.isoformat().encode("utf-8"))
        return deleted

    @staticmethod
    def average_response_time_ms(records: list[HealthCheckRecord]) -> float:
        """Mean response time over records with a non-zero response time."""
        times = [r.response_time for r in records if r.response_time > 0]
        if not times:
            return 0.0
        return round(sum(times) / len(times) * 1000, 3)


class RetentionPruner:
    """Runs ``HistoryStore.prune`` once at start, then every ``interval`` seconds."""

    def __init__(self, history: HistoryStore, interval: float = DEFAULT_PRUNE_INTERVAL) -> None:
        self.history = history
        self.interval = interval
        self._task: asyncio.Task[None] | None = None
        self._running = False

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._prune_loop(), name="history-pruner")
        logger.info("Retention pruner started (interval=%ss, retention=%s)", self.interval, RETENTION)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Retention pruner stopped")

    def run_once(self) -> int:
        """Prune now; errors are logged, never raised (the next run retries)."""
        try:
            return self.history.prune()
        except StorageError:
            logger.exception("History prune failed")
            return 0

    async def _prune_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._running:
            await loop.run_in_executor(None, self.run_once)
            await asyncio.sleep(self.interval)
