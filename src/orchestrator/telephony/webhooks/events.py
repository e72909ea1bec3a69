"""
Normalization of vendor webhook payloads.

Vendors (and vendor versions) disagree on field names, so classification and
extraction are driven by priority-ordered rule tables: the first present field
wins. The result is one of the tagged variants below.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class EventKind(str, Enum):
    """Canonical kinds of lifecycle event."""

    CALL_STARTED = "call_started"
    USER_INPUT = "user_input"
    TOOL_CALL = "tool_call"
    CALL_ENDED = "call_ended"
    UNRECOGNIZED = "unrecognized"


# Where the event type may live, highest priority first.
TYPE_FIELDS: tuple[str, ...] = ("type", "event", "event_type", "message.type")

# Where the call id may live, highest priority first.
CALL_ID_FIELDS: tuple[str, ...] = ("callId", "call_id", "id", "message.call.id", "call.id")

EVENT_ALIASES: dict[str, EventKind] = {
    "call.started": EventKind.CALL_STARTED,
    "on_call_start": EventKind.CALL_STARTED,
    "user.input": EventKind.USER_INPUT,
    "on_user_input": EventKind.USER_INPUT,
    "transcript.partial": EventKind.USER_INPUT,
    "tool.call": EventKind.TOOL_CALL,
    "on_tool_call": EventKind.TOOL_CALL,
    "call.ended": EventKind.CALL_ENDED,
    "on_call_end": EventKind.CALL_ENDED,
}

# Kind-specific attributes: attribute name -> candidate paths.
FIELD_RULES: dict[EventKind, dict[str, tuple[str, ...]]] = {
    EventKind.USER_INPUT: {
        "intent": ("intent",),
        "transcript": ("transcript",),
    },
    EventKind.TOOL_CALL: {
        "tool": ("tool.name", "tool"),
        "query": ("tool.args.query", "query"),
    },
    EventKind.CALL_ENDED: {
        "ts_start": ("ts_start",),
        "duration_s": ("duration_s",),
        "reason": ("reason", "end_reason"),
    },
}


@dataclass(frozen=True)
class CallStarted:
    call_id: str
    raw_type: str | None = None


@dataclass(frozen=True)
class UserInput:
    call_id: str | None
    raw_type: str | None = None
    intent: str | None = None
    transcript: str | None = None


@dataclass(frozen=True)
class ToolCall:
    call_id: str | None
    raw_type: str | None = None
    tool: str | None = None
    query: str | None = None


@dataclass(frozen=True)
class CallEnded:
    call_id: str | None
    raw_type: str | None = None
    ts_start: Any = None
    duration_s: Any = None
    reason: str | None = None


@dataclass(frozen=True)
class Unrecognized:
    call_id: str | None
    raw_type: str | None = None


NormalizedEvent = Union[CallStarted, UserInput, ToolCall, CallEnded, Unrecognized]


def _lookup(payload: dict[str, Any], path: str) -> Any:
    node: Any = payload
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def first_present(payload: dict[str, Any], paths: tuple[str, ...]) -> Any:
    """Value of the first path holding a non-empty scalar, else None."""
    for path in paths:
        value = _lookup(payload, path)
        if value is None or value == "" or isinstance(value, (dict, list, bool)):
            continue
        return value
    return None


def _as_str(value: Any) -> str | None:
    return None if value is None else str(value)


def classify(payload: dict[str, Any]) -> tuple[EventKind, str | None]:
    raw_type = _as_str(first_present(payload, TYPE_FIELDS))
    kind = EVENT_ALIASES.get(raw_type, EventKind.UNRECOGNIZED) if raw_type else EventKind.UNRECOGNIZED
    return kind, raw_type


def normalize_event(payload: Any, now_ms: int | None = None) -> NormalizedEvent:
    """Classify a decoded webhook body and extract its canonical fields.

    Non-object bodies are treated as empty and come out Unrecognized. Only
    CallStarted gets a generated `call_<epoch ms>` id when none is present.
    """
    if not isinstance(payload, dict):
        payload = {}

    kind, raw_type = classify(payload)
    call_id = _as_str(first_present(payload, CALL_ID_FIELDS))

    fields = {
        name: first_present(payload, paths)
        for name, paths in FIELD_RULES.get(kind, {}).items()
    }

    match kind:
        case EventKind.CALL_STARTED:
            if call_id is None:
                call_id = f"call_{now_ms if now_ms is not None else int(time.time() * 1000)}"
            return CallStarted(call_id=call_id, raw_type=raw_type)
        case EventKind.USER_INPUT:
            return UserInput(
                call_id=call_id,
                raw_type=raw_type,
                intent=_as_str(fields["intent"]),
                transcript=_as_str(fields["transcript"]),
            )
        case EventKind.TOOL_CALL:
            return ToolCall(
                call_id=call_id,
                raw_type=raw_type,
                tool=_as_str(fields["tool"]),
                query=_as_str(fields["query"]),
            )
        case EventKind.CALL_ENDED:
            return CallEnded(
                call_id=call_id,
                raw_type=raw_type,
                ts_start=fields["ts_start"],
                duration_s=fields["duration_s"],
                reason=_as_str(fields["reason"]),
            )
        case _:
            return Unrecognized(call_id=call_id, raw_type=raw_type)
