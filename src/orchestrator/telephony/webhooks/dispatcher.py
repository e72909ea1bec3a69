"""
Routes normalized webhook events to the lifecycle handlers.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from orchestrator.calls.lifecycle import CallLifecycleService, HandlerResult, epoch_ms
from orchestrator.shared.logging import get_logger
from orchestrator.telephony.webhooks.events import (
    CallEnded,
    CallStarted,
    NormalizedEvent,
    ToolCall,
    Unrecognized,
    UserInput,
)

logger = get_logger(__name__)


class WebhookDispatcher:
    """In-process dispatch of webhook events.

    The response of the matching handler is returned unchanged, so posting an
    event to the webhook or to its direct endpoint yields the same result. The
    dispatcher also remembers when the last authenticated webhook arrived.
    """

    def __init__(
        self,
        lifecycle: CallLifecycleService,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._lifecycle = lifecycle
        self._clock = clock
        self._last_event_ms: int | None = None

    def last_event(self) -> dict[str, int | str | None]:
        if self._last_event_ms is None:
            return {"lastEventAt": None, "iso": None}
        iso = datetime.fromtimestamp(self._last_event_ms / 1000, tz=timezone.utc).isoformat()
        return {"lastEventAt": self._last_event_ms, "iso": iso}

    def record_event(self) -> None:
        self._last_event_ms = self._clock()

    async def dispatch(self, event: NormalizedEvent) -> HandlerResult:
        match event:
            case CallStarted(call_id=call_id):
                return await self._lifecycle.call_started(call_id)
            case UserInput(call_id=call_id, intent=intent, transcript=transcript):
                return await self._lifecycle.user_input(call_id, intent=intent, transcript=transcript)
            case ToolCall(call_id=call_id, tool=tool, query=query):
                return await self._lifecycle.tool_call(call_id, tool, query=query)
            case CallEnded():
                return await self._lifecycle.call_ended(
                    event.call_id,
                    ts_start=event.ts_start,
                    duration_s=event.duration_s,
                    reason=event.reason,
                )
            case Unrecognized():
                logger.warning(
                    "Unrecognized webhook event acknowledged",
                    extra={"event_type": event.raw_type, "call_id": event.call_id},
                )
                return HandlerResult.ok()
        raise TypeError(f"Unsupported event: {event!r}")
