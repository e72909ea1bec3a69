"""
Direct lifecycle endpoints.

These call the same handlers the webhook dispatcher uses, so a vendor (or a
test harness) may post each event kind to its own route.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from orchestrator.calls.lifecycle import CallLifecycleService, HandlerResult
from orchestrator.calls.schemas import (
    CallEndRequest,
    CallStartRequest,
    EscalateRequest,
    ToolCallRequest,
    UserInputRequest,
)
from orchestrator.dependencies import get_lifecycle

router = APIRouter(tags=["lifecycle"])

Lifecycle = Annotated[CallLifecycleService, Depends(get_lifecycle)]


def to_response(result: HandlerResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/vapi/call-start")
async def call_start(
    lifecycle: Lifecycle,
    body: Annotated[CallStartRequest | None, Body()] = None,
) -> JSONResponse:
    # A bodyless start is valid: the id is generated.
    body = body or CallStartRequest()
    return to_response(await lifecycle.call_started(body.call_id))


@router.post("/vapi/user-input")
async def user_input(body: UserInputRequest, lifecycle: Lifecycle) -> JSONResponse:
    result = await lifecycle.user_input(
        body.call_id,
        intent=body.intent,
        transcript=body.transcript,
    )
    return to_response(result)


@router.post("/vapi/tool-call")
async def tool_call(body: ToolCallRequest, lifecycle: Lifecycle) -> JSONResponse:
    result = await lifecycle.tool_call(body.call_id, body.tool_name, query=body.tool_query)
    return to_response(result)


@router.post("/vapi/call-end")
async def call_end(
    lifecycle: Lifecycle,
    body: Annotated[CallEndRequest | None, Body()] = None,
) -> JSONResponse:
    body = body or CallEndRequest()
    result = await lifecycle.call_ended(
        body.call_id,
        ts_start=body.ts_start,
        duration_s=body.duration_s,
        reason=body.reason,
    )
    return to_response(result)


@router.post("/escalate")
async def escalate(body: EscalateRequest, lifecycle: Lifecycle) -> JSONResponse:
    return to_response(await lifecycle.escalate(body.call_id))
