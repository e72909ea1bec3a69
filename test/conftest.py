"""
Pytest configuration and shared fixtures.

Every collaborator is replaced by an in-process double: the KB is served by an
httpx.MockTransport, telephony by MockTelephonyAdapter, persistence by the
in-memory sink. Time comes from a FakeClock; FakeRedis stands in for the
Redis session backend.
"""
from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from orchestrator.calls.lifecycle import CallLifecycleService
from orchestrator.calls.persistence import InMemoryCallMetadataSink
from orchestrator.config import Settings
from orchestrator.kb.client import KBClient
from orchestrator.main import create_app
from orchestrator.sessions.store import InMemorySessionBackend, SessionStore
from orchestrator.telephony.mock_adapter import MockTelephonyAdapter

# 2023-11-14T22:13:20Z
T0_MS = 1_700_000_000_000

KB_URL = "http://kb.test/kb/search"
HOTLINE = "+15550001111"

SAMPLE_PASSAGES: list[dict[str, Any]] = [
    {
        "passage": "Arjuna lays down his bow, unwilling to fight.",
        "source": {
            "work": "Mahabharata",
            "book": "Bhishma Parva",
            "chapter": 25,
            "verse_range": "1-47",
            "edition": "BORI",
        },
        "language": "en",
        "sensitive_tags": [],
    }
]


class FakeClock:
    """Callable epoch-ms clock that only moves when told to."""

    def __init__(self, start_ms: int = T0_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeRedisLock:
    def __init__(self, acquired: bool = True, release_error: Exception | None = None) -> None:
        self.acquired = acquired
        self.release_error = release_error
        self.released = False

    async def acquire(self) -> bool:
        return self.acquired

    async def release(self) -> None:
        if self.release_error is not None:
            raise self.release_error
        self.released = True


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the session backend."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.locks: list[str] = []
        self.next_lock = FakeRedisLock()
        self.closed = False

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        self.values[key] = value
        self.expiry[key] = ex

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)

    def lock(self, name: str, timeout: float, blocking_timeout: float) -> FakeRedisLock:
        self.locks.append(name)
        return self.next_lock

    async def aclose(self) -> None:
        self.closed = True


class KBStub:
    """Scriptable KB collaborator behind httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: Any = {"passages": SAMPLE_PASSAGES}
        self.raw_body: bytes | None = None
        self.error: Exception | None = None
        self.delay_seconds = 0.0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last_json(self) -> Any:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="dev",
        hotline_number=HOTLINE,
        kb_url=KB_URL,
        kb_timeout_seconds=1.0,
        vapi_webhook_secret="",
        session_store_backend="memory",
        persistence_backend="memory",
    )


@pytest.fixture
def kb_stub() -> KBStub:
    return KBStub()


@pytest.fixture
def kb_client(settings: Settings, kb_stub: KBStub) -> KBClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(kb_stub.handler))
    return KBClient(settings, http_client=http_client)


@pytest.fixture
def store() -> SessionStore:
    return SessionStore(InMemorySessionBackend())


@pytest.fixture
def telephony() -> MockTelephonyAdapter:
    return MockTelephonyAdapter()


@pytest.fixture
def sink() -> InMemoryCallMetadataSink:
    return InMemoryCallMetadataSink()


@pytest.fixture
def app(
    settings: Settings,
    store: SessionStore,
    kb_client: KBClient,
    telephony: MockTelephonyAdapter,
    sink: InMemoryCallMetadataSink,
    clock: FakeClock,
) -> FastAPI:
    return create_app(
        settings,
        store=store,
        kb_client=kb_client,
        telephony=telephony,
        metadata_sink=sink,
        clock=clock,
    )


@pytest.fixture
def lifecycle(app: FastAPI) -> CallLifecycleService:
    return app.state.lifecycle


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
