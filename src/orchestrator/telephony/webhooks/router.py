"""
FastAPI router for the vendor webhook.

One endpoint receives every event kind; the payload is normalized and handed
to the dispatcher in-process. The vendor always gets the handler's response,
including for events we do not recognize.
"""

from __future__ import annotations

import hmac
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from orchestrator.calls.router import to_response
from orchestrator.config import Settings
from orchestrator.dependencies import get_app_settings, get_dispatcher
from orchestrator.realtime.tools import TOOL_DEFINITIONS
from orchestrator.shared.exceptions import UnauthorizedError
from orchestrator.shared.logging import correlation_id_var, get_logger
from orchestrator.telephony.webhooks.dispatcher import WebhookDispatcher
from orchestrator.telephony.webhooks.events import normalize_event

logger = get_logger(__name__)

router = APIRouter(prefix="/vapi", tags=["webhooks"])

SECRET_HEADER = "x-vapi-secret"


def verify_webhook_secret(
    settings: Annotated[Settings, Depends(get_app_settings)],
    x_vapi_secret: Annotated[str | None, Header(alias=SECRET_HEADER)] = None,
) -> None:
    """Reject the request unless the shared secret matches.

    An unconfigured secret disables the check.
    """
    expected = settings.vapi_webhook_secret
    if not expected:
        return
    if x_vapi_secret is None or not hmac.compare_digest(
        x_vapi_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Webhook rejected: secret mismatch")
        raise UnauthorizedError()


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post("/webhook", dependencies=[Depends(verify_webhook_secret)])
async def receive_webhook(
    request: Request,
    dispatcher: Annotated[WebhookDispatcher, Depends(get_dispatcher)],
) -> JSONResponse:
    dispatcher.record_event()

    event = normalize_event(await _read_payload(request))
    token = correlation_id_var.set(event.call_id)
    try:
        logger.info(
            "Webhook received",
            extra={"event_type": event.raw_type, "call_id": event.call_id},
        )
        result = await dispatcher.dispatch(event)
    finally:
        correlation_id_var.reset(token)

    return to_response(result)


@router.get("/last-event")
async def last_event(
    dispatcher: Annotated[WebhookDispatcher, Depends(get_dispatcher)],
) -> dict[str, Any]:
    return dispatcher.last_event()


@router.get("/tools")
async def tool_definitions() -> dict[str, Any]:
    return {"tools": TOOL_DEFINITIONS}
