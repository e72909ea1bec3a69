"""
Call metadata persistence sinks.

The lifecycle only ever writes; the dashboard reads aggregates back through
`stats_since`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import case, func, select

from orchestrator.calls.models import CallMetadata, CallMetadataRecord, to_naive_utc
from orchestrator.config import Settings
from orchestrator.shared.database import DatabaseManager
from orchestrator.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallStats:
    """Aggregates over finished calls."""

    total_calls: int = 0
    avg_duration_s: float = 0.0
    crisis_calls: int = 0
    kb_used_calls: int = 0

    def _pct(self, part: int) -> float:
        if self.total_calls == 0:
            return 0.0
        return round(100.0 * part / self.total_calls, 1)

    @property
    def crisis_pct(self) -> float:
        return self._pct(self.crisis_calls)

    @property
    def kb_used_pct(self) -> float:
        return self._pct(self.kb_used_calls)


class CallMetadataSink(Protocol):
    """Write-only destination for terminal call records."""

    async def prepare(self) -> None: ...

    async def write(self, record: CallMetadataRecord) -> None: ...

    async def stats_since(self, since: datetime) -> CallStats: ...

    async def close(self) -> None: ...


class InMemoryCallMetadataSink:
    """Keeps records in a list (tests, local runs)."""

    def __init__(self) -> None:
        self._records: list[CallMetadataRecord] = []

    @property
    def records(self) -> list[CallMetadataRecord]:
        return self._records.copy()

    async def prepare(self) -> None:
        return None

    async def write(self, record: CallMetadataRecord) -> None:
        self._records.append(record)

    async def stats_since(self, since: datetime) -> CallStats:
        since = to_naive_utc(since)
        rows = [r for r in self._records if to_naive_utc(r.ts_end) >= since]
        if not rows:
            return CallStats()
        return CallStats(
            total_calls=len(rows),
            avg_duration_s=round(sum(r.duration_s for r in rows) / len(rows), 1),
            crisis_calls=sum(1 for r in rows if r.crisis_flag),
            kb_used_calls=sum(1 for r in rows if r.kb_used),
        )

    async def close(self) -> None:
        return None


class DatabaseCallMetadataSink:
    """Async SQLAlchemy sink writing to the call_metadata table."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self._db = db_manager

    async def prepare(self) -> None:
        await self._db.create_all()

    async def write(self, record: CallMetadataRecord) -> None:
        async with self._db.session() as session:
            session.add(CallMetadata.from_record(record))
        logger.info(
            "Call metadata persisted",
            extra={"call_id": record.call_id, "end_reason": record.end_reason},
        )

    async def stats_since(self, since: datetime) -> CallStats:
        query = select(
            func.count(CallMetadata.id).label("total"),
            func.avg(CallMetadata.duration_s).label("avg_duration"),
            func.sum(case((CallMetadata.crisis_flag.is_(True), 1), else_=0)).label("crisis"),
            func.sum(case((CallMetadata.kb_used.is_(True), 1), else_=0)).label("kb_used"),
        ).where(CallMetadata.ts_end >= to_naive_utc(since))

        async with self._db.session() as session:
            result = await session.execute(query)
            row = result.one()

        total = int(row.total or 0)
        if total == 0:
            return CallStats()
        return CallStats(
            total_calls=total,
            avg_duration_s=round(float(row.avg_duration or 0.0), 1),
            crisis_calls=int(row.crisis or 0),
            kb_used_calls=int(row.kb_used or 0),
        )

    async def close(self) -> None:
        await self._db.close()


def start_of_utc_day(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def build_metadata_sink(settings: Settings) -> InMemoryCallMetadataSink | DatabaseCallMetadataSink:
    if settings.persistence_backend == "memory":
        return InMemoryCallMetadataSink()
    return DatabaseCallMetadataSink(DatabaseManager(settings.database_url))
