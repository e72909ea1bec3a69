"""
Domain models for live call sessions.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Language(str, Enum):
    """Conversation language of a call."""

    EN = "en"
    HI = "hi"
    AUTO = "auto"


@dataclass
class SessionMetrics:
    """Observability fields filled in by the voice pipeline, never computed here."""

    last_turn_latency_ms: float | None = None
    latency_p95_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.last_turn_latency_ms is not None:
            data["lastTurnLatencyMs"] = self.last_turn_latency_ms
        if self.latency_p95_ms is not None:
            data["latencyP95Ms"] = self.latency_p95_ms
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SessionMetrics:
        data = data or {}
        return cls(
            last_turn_latency_ms=data.get("lastTurnLatencyMs"),
            latency_p95_ms=data.get("latencyP95Ms"),
        )


@dataclass
class CallSession:
    """In-memory state tracked for the duration of one active call.

    `crisis` is sticky: use `mark_crisis()` and never assign False.
    `kb_uses` and `last_kb_ms` only move through `record_kb_use()`.
    """

    call_id: str
    lang: Language = Language.AUTO
    kb_opt_in: bool = False
    crisis: bool = False
    last_kb_ms: int = 0
    kb_uses: int = 0
    turn_count: int = 0
    metrics: SessionMetrics = field(default_factory=SessionMetrics)

    def opt_in_to_kb(self) -> None:
        self.kb_opt_in = True

    def mark_crisis(self) -> None:
        self.crisis = True

    def record_turn(self) -> None:
        self.turn_count += 1

    def record_kb_use(self, now_ms: int) -> None:
        self.kb_uses += 1
        self.last_kb_ms = now_ms

    @property
    def kb_used(self) -> bool:
        return self.kb_uses > 0

    def to_dict(self) -> dict[str, Any]:
        """Wire/storage representation (camelCase keys)."""
        return {
            "callId": self.call_id,
            "lang": self.lang.value,
            "kb_opt_in": self.kb_opt_in,
            "crisis": self.crisis,
            "lastKbMs": self.last_kb_ms,
            "kbUses": self.kb_uses,
            "turnCount": self.turn_count,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CallSession:
        try:
            lang = Language(data.get("lang") or Language.AUTO.value)
        except ValueError:
            lang = Language.AUTO
        return cls(
            call_id=str(data["callId"]),
            lang=lang,
            kb_opt_in=bool(data.get("kb_opt_in", False)),
            crisis=bool(data.get("crisis", False)),
            last_kb_ms=int(data.get("lastKbMs", 0)),
            kb_uses=int(data.get("kbUses", 0)),
            turn_count=int(data.get("turnCount", 0)),
            metrics=SessionMetrics.from_dict(data.get("metrics")),
        )
