"""
Tests for the call lifecycle state machine.

Handlers are called directly on the service; HTTP surfaces are covered in the
router tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import HOTLINE, T0_MS, FakeClock, KBStub
from orchestrator.calls.lifecycle import (
    CallLifecycleService,
    HandlerResult,
    OPT_IN_INTENT,
    is_crisis_text,
)
from orchestrator.calls.models import CallMetadataRecord
from orchestrator.calls.persistence import CallStats, InMemoryCallMetadataSink
from orchestrator.sessions.policy import KB_COOLDOWN_MS
from orchestrator.sessions.store import SessionStore
from orchestrator.telephony.mock_adapter import MockTelephonyAdapter

EMPTY_PASSAGES = {"ok": True, "result": {"passages": []}}


async def _opted_in_call(lifecycle: CallLifecycleService, call_id: str) -> None:
    await lifecycle.call_started(call_id)
    await lifecycle.user_input(call_id, intent=OPT_IN_INTENT, transcript="tell me a story")


class TestCrisisPattern:
    @pytest.mark.parametrize(
        "text",
        [
            "I keep thinking about suicide",
            "sometimes I want to KILL MYSELF",
            "I just want to end my life",
            "मुझे आत्महत्या के विचार आते हैं",
            "मैं मरना चाहता हूँ",
        ],
    )
    def test_crisis_phrases_match(self, text: str) -> None:
        assert is_crisis_text(text) is True

    @pytest.mark.parametrize("text", ["I had a long day", "", None])
    def test_benign_text_does_not_match(self, text: str | None) -> None:
        assert is_crisis_text(text) is False


class TestCallStarted:
    @pytest.mark.asyncio
    async def test_creates_fresh_session(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        result = await lifecycle.call_started("c1")

        assert result == HandlerResult(200, {"ok": True})
        session = await store.get("c1")
        assert session is not None
        assert session.lang.value == "auto"
        assert (session.kb_opt_in, session.crisis, session.kb_uses, session.turn_count) == (
            False,
            False,
            0,
            0,
        )

    @pytest.mark.asyncio
    async def test_missing_id_gets_generated_one(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        await lifecycle.call_started(None)

        assert await store.get(f"call_{T0_MS}") is not None

    @pytest.mark.asyncio
    async def test_repeated_start_resets_session(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        await lifecycle.call_started("c1")
        await lifecycle.user_input("c1", intent=OPT_IN_INTENT, transcript="end my life")

        await lifecycle.call_started("c1")

        session = await store.get("c1")
        assert session.kb_opt_in is False
        assert session.crisis is False
        assert session.turn_count == 0


class TestUserInput:
    @pytest.mark.asyncio
    async def test_unknown_session_is_404(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        result = await lifecycle.user_input("nope", transcript="hello")

        assert result.status_code == 404
        assert result.body == {"ok": False, "error": "session_not_found"}
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_missing_call_id_is_404(self, lifecycle: CallLifecycleService) -> None:
        result = await lifecycle.user_input(None, intent=OPT_IN_INTENT)

        assert result.status_code == 404

    @pytest.mark.asyncio
    async def test_opt_in_and_turn_count(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        await lifecycle.call_started("c1")

        await lifecycle.user_input("c1", intent="small_talk", transcript="hi")
        assert (await store.get("c1")).kb_opt_in is False

        result = await lifecycle.user_input("c1", intent=OPT_IN_INTENT, transcript="yes please")

        assert result.body == {"ok": True}
        session = await store.get("c1")
        assert session.kb_opt_in is True
        assert session.turn_count == 2

    @pytest.mark.asyncio
    async def test_crisis_is_sticky(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        await lifecycle.call_started("c2")
        await lifecycle.user_input("c2", transcript="I think about suicide")
        await lifecycle.user_input("c2", transcript="actually I feel better now")

        session = await store.get("c2")
        assert session.crisis is True
        assert session.turn_count == 2

    @pytest.mark.asyncio
    async def test_opt_in_and_crisis_on_same_turn(
        self, lifecycle: CallLifecycleService, store: SessionStore
    ) -> None:
        await lifecycle.call_started("c1")

        await lifecycle.user_input("c1", intent=OPT_IN_INTENT, transcript="I want to end my life")

        session = await store.get("c1")
        assert session.kb_opt_in is True
        assert session.crisis is True


class TestKbSearch:
    @pytest.mark.asyncio
    async def test_scenario_quota_and_cooldown(
        self,
        lifecycle: CallLifecycleService,
        store: SessionStore,
        kb_stub: KBStub,
        clock: FakeClock,
    ) -> None:
        await _opted_in_call(lifecycle, "c1")

        first = await lifecycle.tool_call("c1", "kb_search", query="courage")

        assert first.status_code == 200
        assert first.body["result"]["passages"][0]["source"]["work"] == "Mahabharata"
        session = await store.get("c1")
        assert session.kb_uses == 1
        assert session.last_kb_ms == T0_MS

        clock.advance(1000)
        second = await lifecycle.tool_call("c1", "kb_search", query="duty")

        assert second.body == EMPTY_PASSAGES
        assert (await store.get("c1")).kb_uses == 1
        assert len(kb_stub.requests) == 1

    @pytest.mark.asyncio
    async def test_cooldown_boundary_and_quota(
        self,
        lifecycle: CallLifecycleService,
        store: SessionStore,
        kb_stub: KBStub,
        clock: FakeClock,
    ) -> None:
        await _opted_in_call(lifecycle, "c1")
        await lifecycle.tool_call("c1", "kb_search", query="courage")

        clock.advance(KB_COOLDOWN_MS)
        at_boundary = await lifecycle.tool_call("c1", "kb_search", query="duty")
        assert at_boundary.body == EMPTY_PASSAGES

        clock.advance(1)
        after_cooldown = await lifecycle.tool_call("c1", "kb_search", query="duty")
        assert after_cooldown.body["result"]["passages"] != []
        assert (await store.get("c1")).kb_uses == 2

        clock.advance(KB_COOLDOWN_MS * 10)
        over_quota = await lifecycle.tool_call("c1", "kb_search", query="loyalty")
        assert over_quota.body == EMPTY_PASSAGES
        assert len(kb_stub.requests) == 2

    @pytest.mark.asyncio
    async def test_request_shape(
        self, lifecycle: CallLifecycleService, kb_stub: KBStub
    ) -> None:
        await _opted_in_call(lifecycle, "c1")

        await lifecycle.tool_call("c1", "kb_search", query="courage")

        request = kb_stub.requests[0]
        assert str(request.url) == "http://kb.test/kb/search"
        assert request.headers["X-CRISIS"] == "0"
        assert kb_stub.last_json == {"query": "courage", "lang": "auto", "k": 4}

    @pytest.mark.asyncio
    async def test_not_opted_in_is_denied(
        self, lifecycle: CallLifecycleService, kb_stub: KBStub
    ) -> None:
        await lifecycle.call_started("c1")

        result = await lifecycle.tool_call("c1", "kb_search", query="courage")

        assert result.body == EMPTY_PASSAGES
        assert kb_stub.requests == []

    @pytest.mark.asyncio
    async def test_scenario_crisis_blocks_kb(
        self,
        lifecycle: CallLifecycleService,
        store: SessionStore,
        kb_stub: KBStub,
    ) -> None:
        missing = await lifecycle.user_input("c2", transcript="hello")
        assert missing.status_code == 404

        await _opted_in_call(lifecycle, "c2")
        await lifecycle.user_input("c2", transcript="I want to kill myself")

        result = await lifecycle.tool_call("c2", "kb_search", query="comfort")

        assert result.body == EMPTY_PASSAGES
        assert kb_stub.requests == []
        assert (await store.get("c2")).kb_uses == 0

    @pytest.mark.asyncio
    async def test_empty_query_skips_kb(
        self, lifecycle: CallLifecycleService, store: SessionStore, kb_stub: KBStub
    ) -> None:
        await _opted_in_call(lifecycle, "c1")

        result = await lifecycle.tool_call("c1", "kb_search", query="   ")

        assert result.body == EMPTY_PASSAGES
        assert kb_stub.requests == []
        assert (await store.get("c1")).kb_uses == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code, error, raw_body",
        [
            (503, None, None),
            (404, None, None),
            (200, None, b"<html>not json</html>"),
            (200, httpx.ConnectError("connection refused"), None),
            (200, httpx.ReadTimeout("timed out"), None),
        ],
    )
    async def test_kb_failure_fails_open(
        self,
        lifecycle: CallLifecycleService,
        store: SessionStore,
        kb_stub: KBStub,
        status_code: int,
        error: Exception | None,
        raw_body: bytes | None,
    ) -> None:
        kb_stub.status_code = status_code
        kb_stub.error = error
        kb_stub.raw_body = raw_body
        await _opted_in_call(lifecycle, "c1")

        result = await lifecycle.tool_call("c1", "kb_search", query="courage")

        assert result == HandlerResult(200, EMPTY_PASSAGES)
        session = await store.get("c1")
        assert session.kb_uses == 0
        assert session.last_kb_ms == 0

    @pytest.mark.asyncio
    async def test_missing_passages_is_empty_success(
        self, lifecycle: CallLifecycleService, store: SessionStore, kb_stub: KBStub
    ) -> None:
        kb_stub.body = {}
        await _opted_in_call(lifecycle, "c1")

        result = await lifecycle.tool_call("c1", "kb_search", query="courage")

        assert result.body == EMPTY_PASSAGES
        assert (await store.get("c1")).kb_uses == 1

    @pytest.mark.asyncio
    async def test_concurrent_searches_respect_quota(
        self, lifecycle: CallLifecycleService, store: SessionStore, kb_stub: KBStub
    ) -> None:
        kb_stub.delay_seconds = 0.05
        await _opted_in_call(lifecycle, "c1")

        results = await asyncio.gather(
            lifecycle.tool_call("c1", "kb_search", query="courage"),
            lifecycle.tool_call("c1", "kb_search", query="duty"),
        )

        served = [r for r in results if r.body["result"]["passages"]]
        assert len(served) == 1
        assert len(kb_stub.requests) == 1
        assert (await store.get("c1")).kb_uses == 1


class TestOtherTools:
    @pytest.mark.asyncio
    async def test_crisis_signal_without_crisis(self, lifecycle: CallLifecycleService) -> None:
        await lifecycle.call_started("c1")

        result = await lifecycle.tool_call("c1", "crisis_signal")

        assert result.body == {
            "ok": True,
            "result": {"risk_level": "none", "reason": "none", "confidence": 0.9},
        }

    @pytest.mark.asyncio
    async def test_crisis_signal_with_crisis(self, lifecycle: CallLifecycleService) -> None:
        await lifecycle.call_started("c1")
        await lifecycle.user_input("c1", transcript="suicide")

        result = await lifecycle.tool_call("c1", "crisis_signal")

        assert result.body["result"] == {
            "risk_level": "high",
            "reason": "heuristic",
            "confidence": 0.7,
        }

    @pytest.mark.asyncio
    async def test_unknown_tool_acknowledged(self, lifecycle: CallLifecycleService) -> None:
        await lifecycle.call_started("c1")

        result = await lifecycle.tool_call("c1", "weather")

        assert result == HandlerResult(200, {"ok": True, "result": {}})

    @pytest.mark.asyncio
    async def test_tool_call_unknown_session(
        self, lifecycle: CallLifecycleService, kb_stub: KBStub
    ) -> None:
        result = await lifecycle.tool_call("ghost", "kb_search", query="courage")

        assert result.status_code == 404
        assert result.body["error"] == "session_not_found"
        assert kb_stub.requests == []


class TestCallEnded:
    @pytest.mark.asyncio
    async def test_start_then_end_emits_default_record(
        self,
        lifecycle: CallLifecycleService,
        store: SessionStore,
        sink: InMemoryCallMetadataSink,
    ) -> None:
        await lifecycle.call_started("c1")

        result = await lifecycle.call_ended("c1")
        await lifecycle.drain()

        assert result == HandlerResult(200, {"ok": True})
        assert await store.get("c1") is None
        [record] = sink.records
        ts_end = datetime.fromtimestamp(T0_MS / 1000, tz=timezone.utc)
        assert record == CallMetadataRecord(
            call_id="c1",
            ts_start=ts_end - timedelta(seconds=60),
            ts_end=ts_end,
            duration_s=60,
            lang="auto",
            crisis_flag=False,
            kb_used=False,
            kb_count=0,
            end_reason="normal",
        )

    @pytest.mark.asyncio
    async def test_record_reflects_session(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink
    ) -> None:
        await _opted_in_call(lifecycle, "c1")
        await lifecycle.tool_call("c1", "kb_search", query="courage")
        await lifecycle.user_input("c1", transcript="end my life")

        await lifecycle.call_ended(
            "c1",
            ts_start="2023-11-14T22:00:00Z",
            duration_s="245",
            reason="customer-ended-call",
        )
        await lifecycle.drain()

        [record] = sink.records
        assert record.ts_start == datetime(2023, 11, 14, 22, 0, tzinfo=timezone.utc)
        assert record.duration_s == 245
        assert record.crisis_flag is True
        assert record.kb_used is True
        assert record.kb_count == 1
        assert record.end_reason == "customer-ended-call"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [None, 0, "", "abc"])
    async def test_unusable_duration_defaults(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink, duration: object
    ) -> None:
        await lifecycle.call_started("c1")

        await lifecycle.call_ended("c1", ts_start="not a timestamp", duration_s=duration)
        await lifecycle.drain()

        [record] = sink.records
        assert record.duration_s == 60
        assert record.ts_end - record.ts_start == timedelta(seconds=60)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "ts_start",
        [T0_MS - 1_000_000, (T0_MS - 1_000_000) / 1000, str(T0_MS - 1_000_000)],
    )
    async def test_epoch_start_time_is_kept(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink, ts_start: object
    ) -> None:
        await lifecycle.call_started("c1")

        await lifecycle.call_ended("c1", ts_start=ts_start)
        await lifecycle.drain()

        [record] = sink.records
        assert record.ts_start == datetime(2023, 11, 14, 21, 56, 40, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ts_start", [True, float("nan"), float("inf")])
    async def test_unusable_epoch_falls_back(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink, ts_start: object
    ) -> None:
        await lifecycle.call_started("c1")

        await lifecycle.call_ended("c1", ts_start=ts_start)
        await lifecycle.drain()

        [record] = sink.records
        assert record.ts_end - record.ts_start == timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_end_is_idempotent(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink
    ) -> None:
        await lifecycle.call_started("c1")

        first = await lifecycle.call_ended("c1")
        second = await lifecycle.call_ended("c1")
        await lifecycle.drain()

        assert first.body == second.body == {"ok": True}
        assert len(sink.records) == 1

    @pytest.mark.asyncio
    async def test_end_of_unknown_call_emits_nothing(
        self, lifecycle: CallLifecycleService, sink: InMemoryCallMetadataSink
    ) -> None:
        result = await lifecycle.call_ended("ghost")
        await lifecycle.drain()

        assert result.status_code == 200
        assert sink.records == []

    @pytest.mark.asyncio
    async def test_persistence_failure_is_swallowed(
        self,
        store: SessionStore,
        kb_client,
        telephony: MockTelephonyAdapter,
        clock: FakeClock,
    ) -> None:
        class BrokenSink(InMemoryCallMetadataSink):
            async def write(self, record: CallMetadataRecord) -> None:
                raise RuntimeError("database is down")

            async def stats_since(self, since: datetime) -> CallStats:
                return CallStats()

        service = CallLifecycleService(
            store=store,
            kb_client=kb_client,
            telephony=telephony,
            metadata_sink=BrokenSink(),
            hotline_number=HOTLINE,
            clock=clock,
        )
        await service.call_started("c1")

        result = await service.call_ended("c1")
        await service.drain()

        assert result.body == {"ok": True}
        assert await store.get("c1") is None


class TestEscalate:
    @pytest.mark.asyncio
    async def test_escalate_bridges_to_hotline(
        self, lifecycle: CallLifecycleService, telephony: MockTelephonyAdapter
    ) -> None:
        result = await lifecycle.escalate("untracked-call")

        assert result.body == {"ok": True}
        op = telephony.get_last_operation()
        assert op.action == "escalate"
        assert op.call_id == "untracked-call"
        assert op.args == {"hotline_number": HOTLINE}

    @pytest.mark.asyncio
    async def test_escalate_failure_is_502(
        self, lifecycle: CallLifecycleService, telephony: MockTelephonyAdapter
    ) -> None:
        telephony.configure_failure(error_message="bridge refused")

        result = await lifecycle.escalate("c1")

        assert result == HandlerResult(502, {"ok": False, "error": "escalation_failed"})
