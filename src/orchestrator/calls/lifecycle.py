"""
Call session lifecycle state machine.

States are Absent and Active (presence in the SessionStore). Each handler is a
transition over session state plus one bounded side effect (KB lookup,
escalation, metadata emission) and returns a HandlerResult. Direct endpoints
and the webhook dispatcher both call these handlers, so status and body are the
same whichever way an event arrives.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from orchestrator.calls.models import CallMetadataRecord
from orchestrator.calls.persistence import CallMetadataSink
from orchestrator.kb.client import KBClient
from orchestrator.realtime.tools import CRISIS_SIGNAL_TOOL, KB_SEARCH_TOOL
from orchestrator.sessions.models import CallSession, Language
from orchestrator.sessions.policy import allow_kb
from orchestrator.sessions.store import SessionStore
from orchestrator.shared.exceptions import (
    SessionNotFoundError,
    UpstreamUnavailableError,
)
from orchestrator.shared.logging import get_logger
from orchestrator.telephony.interface import TelephonyAdapter, TelephonyProviderError

logger = get_logger(__name__)

OPT_IN_INTENT = "opt_in_epics"

# Self-harm phrases (EN + HI). A heuristic only: the assistant model signals too.
CRISIS_PATTERN = re.compile(r"suicide|kill myself|end my life|आत्महत्या|मरना", re.IGNORECASE)

DEFAULT_CALL_DURATION_S = 60
DEFAULT_END_REASON = "normal"
EPOCH_MS_THRESHOLD = 100_000_000_000

HIGH_RISK = {"risk_level": "high", "reason": "heuristic", "confidence": 0.7}
NO_RISK = {"risk_level": "none", "reason": "none", "confidence": 0.9}


def epoch_ms() -> int:
    return int(time.time() * 1000)


def is_crisis_text(text: str | None) -> bool:
    return isinstance(text, str) and CRISIS_PATTERN.search(text) is not None


@dataclass(frozen=True)
class HandlerResult:
    """Status code and JSON body returned to the caller (vendor or client)."""

    status_code: int = 200
    body: dict[str, Any] = field(default_factory=lambda: {"ok": True})

    @classmethod
    def ok(cls, **extra: Any) -> HandlerResult:
        return cls(200, {"ok": True, **extra})

    @classmethod
    def error(cls, status_code: int, error: str) -> HandlerResult:
        return cls(status_code, {"ok": False, "error": error})

    @classmethod
    def from_exception(cls, status_code: int, exc: Exception) -> HandlerResult:
        return cls.error(status_code, getattr(exc, "error_code", "internal_error"))


def _empty_passages() -> HandlerResult:
    return HandlerResult.ok(result={"passages": []})


def _parse_duration(value: Any) -> int:
    # Absent, zero or unparseable durations fall back to the default.
    if not value:
        return DEFAULT_CALL_DURATION_S
    try:
        duration = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_CALL_DURATION_S
    return duration or DEFAULT_CALL_DURATION_S


def _from_epoch(value: float, fallback: datetime) -> datetime:
    # Values past EPOCH_MS_THRESHOLD are milliseconds, smaller ones seconds.
    seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return fallback


def _parse_timestamp(value: Any, fallback: datetime) -> datetime:
    """ISO-8601 text or epoch seconds/milliseconds; anything else gives `fallback`."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return _from_epoch(value, fallback)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return _from_epoch(float(text), fallback)
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return fallback


class CallLifecycleService:
    """Handlers for call-start, user-input, tool-call, call-end and escalate."""

    def __init__(
        self,
        store: SessionStore,
        kb_client: KBClient,
        telephony: TelephonyAdapter,
        metadata_sink: CallMetadataSink,
        hotline_number: str = "",
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._store = store
        self._kb = kb_client
        self._telephony = telephony
        self._sink = metadata_sink
        self._hotline_number = hotline_number
        self._clock = clock
        self._pending_writes: set[asyncio.Task[None]] = set()

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock() / 1000, tz=timezone.utc)

    # ------------------------------------------------------------------
    # Absent -> Active
    # ------------------------------------------------------------------

    async def call_started(self, call_id: str | None) -> HandlerResult:
        """Create a fresh session. A repeated start resets it."""
        call_id = call_id or f"call_{self._clock()}"
        async with self._store.lock(call_id):
            await self._store.create(call_id, Language.AUTO)
        logger.info("Call started", extra={"call_id": call_id})
        return HandlerResult.ok()

    # ------------------------------------------------------------------
    # Active -> Active
    # ------------------------------------------------------------------

    async def user_input(
        self,
        call_id: str | None,
        intent: str | None = None,
        transcript: str | None = None,
    ) -> HandlerResult:
        """Apply opt-in / crisis signals of one user turn."""
        if not call_id:
            return HandlerResult.from_exception(404, SessionNotFoundError(call_id))

        async with self._store.lock(call_id):
            session = await self._store.get(call_id)
            if session is None:
                logger.info("User input for unknown session", extra={"call_id": call_id})
                return HandlerResult.from_exception(404, SessionNotFoundError(call_id))

            if intent == OPT_IN_INTENT:
                session.opt_in_to_kb()
            if is_crisis_text(transcript) and not session.crisis:
                session.mark_crisis()
                logger.warning("Crisis signal detected", extra={"call_id": call_id})
            session.record_turn()

            await self._store.save(session)

        return HandlerResult.ok()

    async def tool_call(
        self,
        call_id: str | None,
        tool: str | None,
        query: str | None = None,
    ) -> HandlerResult:
        """Answer a tool invocation of the realtime assistant."""
        if not call_id:
            return HandlerResult.from_exception(404, SessionNotFoundError(call_id))

        # The lock is held across the KB request so two concurrent searches of
        # one call cannot both pass the quota check.
        async with self._store.lock(call_id):
            session = await self._store.get(call_id)
            if session is None:
                logger.info(
                    "Tool call for unknown session",
                    extra={"call_id": call_id, "tool": tool},
                )
                return HandlerResult.from_exception(404, SessionNotFoundError(call_id))

            if tool == KB_SEARCH_TOOL:
                return await self._kb_search(session, query)

            if tool == CRISIS_SIGNAL_TOOL:
                return HandlerResult.ok(result=dict(HIGH_RISK if session.crisis else NO_RISK))

        logger.info("Unknown tool acknowledged", extra={"call_id": call_id, "tool": tool})
        return HandlerResult.ok(result={})

    async def _kb_search(self, session: CallSession, query: str | None) -> HandlerResult:
        now_ms = self._clock()
        if not allow_kb(session, now_ms):
            logger.info(
                "KB lookup denied by policy",
                extra={
                    "call_id": session.call_id,
                    "kb_opt_in": session.kb_opt_in,
                    "crisis": session.crisis,
                    "kb_uses": session.kb_uses,
                },
            )
            return _empty_passages()

        if not isinstance(query, str) or not query.strip():
            logger.info("KB lookup skipped: empty query", extra={"call_id": session.call_id})
            return _empty_passages()

        try:
            response = await self._kb.search(
                query=query,
                language=session.lang,
                crisis=session.crisis,
            )
        except UpstreamUnavailableError as e:
            logger.warning(
                "KB unavailable; continuing without enrichment",
                extra={"call_id": session.call_id, "error_code": e.error_code},
            )
            return _empty_passages()

        session.record_kb_use(now_ms)
        await self._store.save(session)

        logger.info(
            "KB lookup served",
            extra={
                "call_id": session.call_id,
                "kb_uses": session.kb_uses,
                "passages": len(response.passages),
            },
        )
        return HandlerResult.ok(result=response.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Active -> Absent
    # ------------------------------------------------------------------

    async def call_ended(
        self,
        call_id: str | None,
        ts_start: Any = None,
        duration_s: Any = None,
        reason: str | None = None,
    ) -> HandlerResult:
        """Emit the call metadata record and forget the session. Idempotent."""
        if not call_id:
            return HandlerResult.ok()

        async with self._store.lock(call_id):
            session = await self._store.get(call_id)
            if session is None:
                return HandlerResult.ok()

            ts_end = self._now()
            record = CallMetadataRecord(
                call_id=call_id,
                ts_start=_parse_timestamp(ts_start, ts_end - timedelta(seconds=60)),
                ts_end=ts_end,
                duration_s=_parse_duration(duration_s),
                lang=session.lang.value,
                crisis_flag=session.crisis,
                kb_used=session.kb_used,
                kb_count=session.kb_uses,
                end_reason=reason or DEFAULT_END_REASON,
            )
            await self._store.delete(call_id)

        logger.info(
            "Call ended",
            extra={
                "call_id": call_id,
                "turn_count": session.turn_count,
                "kb_count": record.kb_count,
                "crisis_flag": record.crisis_flag,
                "end_reason": record.end_reason,
            },
        )
        self._emit_metadata(record)
        return HandlerResult.ok()

    def _emit_metadata(self, record: CallMetadataRecord) -> None:
        task = asyncio.create_task(self._write_metadata(record))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_metadata(self, record: CallMetadataRecord) -> None:
        try:
            await self._sink.write(record)
        except Exception:
            logger.exception(
                "Call metadata persistence failed",
                extra={"call_id": record.call_id},
            )

    async def drain(self) -> None:
        """Wait for in-flight metadata writes (shutdown, tests)."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    # ------------------------------------------------------------------
    # Side channel
    # ------------------------------------------------------------------

    async def escalate(self, call_id: str) -> HandlerResult:
        """Bridge the call to the hotline. Works for untracked calls too."""
        try:
            await self._telephony.escalate(call_id, self._hotline_number)
        except TelephonyProviderError:
            logger.exception("Escalation failed", extra={"call_id": call_id})
            return HandlerResult.error(502, "escalation_failed")
        return HandlerResult.ok()
