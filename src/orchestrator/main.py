"""
FastAPI application entry point.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orchestrator.calls.lifecycle import CallLifecycleService, epoch_ms
from orchestrator.calls.persistence import CallMetadataSink, build_metadata_sink
from orchestrator.calls.router import router as lifecycle_router
from orchestrator.config import Settings, get_settings
from orchestrator.dashboard.router import router as dashboard_router
from orchestrator.kb.client import KBClient
from orchestrator.sessions.store import SessionStore, build_session_store
from orchestrator.shared.exceptions import OrchestratorError, SessionBusyError, UnauthorizedError
from orchestrator.shared.logging import get_logger, setup_logging
from orchestrator.telephony.factory import build_telephony_adapter, get_telephony_config
from orchestrator.telephony.interface import TelephonyAdapter
from orchestrator.telephony.webhooks.dispatcher import WebhookDispatcher
from orchestrator.telephony.webhooks.router import router as webhooks_router

logger = get_logger(__name__)

ORCHESTRATOR_HEADER = "X-Orchestrator"
ORCHESTRATOR_HEADER_VALUE = "ai-voice"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    setup_logging(settings.log_level)

    logger.info(
        "Application starting",
        extra={
            "env": settings.app_env,
            "session_store_backend": settings.session_store_backend,
            "persistence_backend": settings.persistence_backend,
        },
    )
    if not settings.webhook_auth_enabled:
        logger.warning("VAPI_WEBHOOK_SECRET is not set; webhook authentication is disabled")
    if not settings.hotline_number:
        logger.warning("HOTLINE_NUMBER is not set; escalations have no bridge target")

    await app.state.metadata_sink.prepare()

    yield

    logger.info("Shutting down application")

    await app.state.lifecycle.drain()
    await app.state.metadata_sink.close()
    await app.state.kb_client.close()
    await app.state.telephony.close()
    await app.state.session_store.close()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    store: SessionStore | None = None,
    kb_client: KBClient | None = None,
    telephony: TelephonyAdapter | None = None,
    metadata_sink: CallMetadataSink | None = None,
    clock: Callable[[], int] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from settings.
    """
    settings = settings or get_settings()
    clock = clock or epoch_ms

    app = FastAPI(
        title="Voice Orchestrator",
        description="Session orchestrator for realtime voice calls",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.clock = clock
    app.state.session_store = store or build_session_store(settings)
    app.state.kb_client = kb_client or KBClient(settings)
    app.state.telephony = telephony or build_telephony_adapter(get_telephony_config())
    app.state.metadata_sink = metadata_sink or build_metadata_sink(settings)
    app.state.lifecycle = CallLifecycleService(
        store=app.state.session_store,
        kb_client=app.state.kb_client,
        telephony=app.state.telephony,
        metadata_sink=app.state.metadata_sink,
        hotline_number=settings.hotline_number,
        clock=clock,
    )
    app.state.dispatcher = WebhookDispatcher(app.state.lifecycle, clock=clock)

    # Map domain exceptions to the {"ok": false, "error": ...} body
    @app.exception_handler(UnauthorizedError)
    async def _unauthorized(_: Request, exc: UnauthorizedError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"ok": False, "error": exc.error_code})

    @app.exception_handler(SessionBusyError)
    async def _session_busy(_: Request, exc: SessionBusyError) -> JSONResponse:
        logger.warning("Session lock not acquired", extra={"call_id": exc.call_id})
        return JSONResponse(status_code=409, content={"ok": False, "error": exc.error_code})

    @app.exception_handler(OrchestratorError)
    async def _orchestrator_error(_: Request, exc: OrchestratorError) -> JSONResponse:
        logger.error("Unhandled orchestrator error", extra={"error_code": exc.error_code})
        return JSONResponse(status_code=500, content={"ok": False, "error": exc.error_code})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    @app.middleware("http")
    async def orchestrator_header(request: Request, call_next):
        response = await call_next(request)
        response.headers[ORCHESTRATOR_HEADER] = ORCHESTRATOR_HEADER_VALUE
        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(webhooks_router)
    app.include_router(lifecycle_router)
    app.include_router(dashboard_router)

    @app.get("/healthz")
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/readyz")
    async def readyz() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()
