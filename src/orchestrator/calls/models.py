"""
Call metadata: the terminal record emitted once per ended call, and its table.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from orchestrator.shared.database import Base


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class CallMetadataRecord:
    """Summary of one finished call. Contains no transcript content."""

    call_id: str
    ts_start: datetime
    ts_end: datetime
    duration_s: int
    lang: str
    crisis_flag: bool
    kb_used: bool
    kb_count: int
    end_reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "callId": self.call_id,
            "ts_start": self.ts_start.isoformat(),
            "ts_end": self.ts_end.isoformat(),
            "duration_s": self.duration_s,
            "lang": self.lang,
            "crisis_flag": self.crisis_flag,
            "kb_used": self.kb_used,
            "kb_count": self.kb_count,
            "end_reason": self.end_reason,
        }


class CallMetadata(Base):
    """ORM row for a CallMetadataRecord. Timestamps are stored as naive UTC."""

    __tablename__ = "call_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    call_id: Mapped[str] = mapped_column(String(128), index=True)
    ts_start: Mapped[datetime] = mapped_column(DateTime())
    ts_end: Mapped[datetime] = mapped_column(DateTime(), index=True)
    duration_s: Mapped[int] = mapped_column(Integer)
    lang: Mapped[str] = mapped_column(String(8))
    crisis_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    kb_used: Mapped[bool] = mapped_column(Boolean, default=False)
    kb_count: Mapped[int] = mapped_column(Integer, default=0)
    end_reason: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(), server_default=func.now())

    @classmethod
    def from_record(cls, record: CallMetadataRecord) -> CallMetadata:
        return cls(
            call_id=record.call_id,
            ts_start=to_naive_utc(record.ts_start),
            ts_end=to_naive_utc(record.ts_end),
            duration_s=record.duration_s,
            lang=record.lang,
            crisis_flag=record.crisis_flag,
            kb_used=record.kb_used,
            kb_count=record.kb_count,
            end_reason=record.end_reason,
        )
