"""
FastAPI dependency getters.

Collaborators are built once in `create_app` and kept on `app.state`; routers
resolve them per request so tests can inject fakes.
"""

from collections.abc import Callable

from fastapi import Request

from orchestrator.calls.lifecycle import CallLifecycleService
from orchestrator.calls.persistence import CallMetadataSink
from orchestrator.config import Settings
from orchestrator.telephony.webhooks.dispatcher import WebhookDispatcher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> CallLifecycleService:
    return request.app.state.lifecycle


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


def get_metadata_sink(request: Request) -> CallMetadataSink:
    return request.app.state.metadata_sink


def get_clock(request: Request) -> Callable[[], int]:
    return request.app.state.clock
