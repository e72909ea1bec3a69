"""
Request bodies of the direct lifecycle endpoints.

Every body accepts the call id as `callId` or `call_id`; unknown fields are
ignored so vendor payloads can be forwarded unchanged.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_CALL_ID = AliasChoices("callId", "call_id")


def _call_id_as_str(value: Any) -> Any:
    # Vendors sometimes send numeric ids; the webhook path keeps them as text.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class _CallBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    call_id: str | None = Field(default=None, validation_alias=_CALL_ID)

    @field_validator("call_id", mode="before")
    @classmethod
    def coerce_call_id(cls, value: Any) -> Any:
        return _call_id_as_str(value)


class CallStartRequest(_CallBody):
    """Body of POST /vapi/call-start. A missing id gets a generated one."""


class UserInputRequest(_CallBody):
    intent: str | None = None
    transcript: str | None = None


class ToolInvocation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)


class ToolCallRequest(_CallBody):
    """Body of POST /vapi/tool-call.

    `tool` is either the tool name or an object `{"name", "args": {"query"}}`.
    """

    tool: str | ToolInvocation | None = None
    query: str | None = None

    @property
    def tool_name(self) -> str | None:
        if isinstance(self.tool, ToolInvocation):
            return self.tool.name
        return self.tool

    @property
    def tool_query(self) -> str | None:
        if isinstance(self.tool, ToolInvocation) and self.tool.args.get("query") is not None:
            return self.tool.args["query"]
        return self.query


class CallEndRequest(_CallBody):
    ts_start: str | float | None = None
    duration_s: float | str | None = None
    reason: str | None = Field(
        default=None,
        validation_alias=AliasChoices("reason", "end_reason"),
    )


class EscalateRequest(BaseModel):
    """Body of POST /escalate. The call id is mandatory here."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    call_id: str = Field(..., min_length=1, validation_alias=_CALL_ID)

    @field_validator("call_id", mode="before")
    @classmethod
    def coerce_call_id(cls, value: Any) -> Any:
        return _call_id_as_str(value)
