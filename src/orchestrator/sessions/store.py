"""
Session store: keyed registry of live call sessions.

The store is an explicit object owned by the application container. Its
backing structure is injectable:

- InMemorySessionBackend: process-local dict (tests, single instance)
- RedisSessionBackend: shared across instances, JSON values with a TTL

All mutation of a session must happen inside `store.lock(call_id)` so that
concurrent webhooks for the same call cannot lose updates to counters or flags.
"""

from __future__ import annotations

import asyncio
import json
import weakref
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import redis.asyncio as redis
from redis.exceptions import LockError

from orchestrator.config import Settings
from orchestrator.sessions.models import CallSession, Language
from orchestrator.shared.exceptions import SessionBusyError
from orchestrator.shared.logging import get_logger

logger = get_logger(__name__)


class SessionBackend(Protocol):
    """Storage contract for serialized sessions."""

    async def get(self, call_id: str) -> dict[str, Any] | None: ...

    async def put(self, call_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, call_id: str) -> None: ...

    def lock(self, call_id: str) -> AbstractAsyncContextManager[None]: ...

    async def close(self) -> None: ...


class InMemorySessionBackend:
    """Dict-backed backend with one asyncio.Lock per call id."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}
        # Locks disappear once no coroutine holds or waits on them.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def get(self, call_id: str) -> dict[str, Any] | None:
        data = self._data.get(call_id)
        return dict(data) if data is not None else None

    async def put(self, call_id: str, data: dict[str, Any]) -> None:
        self._data[call_id] = dict(data)

    async def delete(self, call_id: str) -> None:
        self._data.pop(call_id, None)

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        async with lock:
            yield

    async def close(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class RedisSessionBackend:
    """Redis-backed backend for multi-instance deployments."""

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int,
        key_prefix: str = "voice:session:",
        lock_timeout_seconds: float = 10.0,
        client: redis.Redis | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._lock_timeout_seconds = lock_timeout_seconds
        self._client = client

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    def _key(self, call_id: str) -> str:
        return f"{self._key_prefix}{call_id}"

    async def get(self, call_id: str) -> dict[str, Any] | None:
        raw = await self._get_client().get(self._key(call_id))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable session payload", extra={"call_id": call_id})
            return None
        return data if isinstance(data, dict) else None

    async def put(self, call_id: str, data: dict[str, Any]) -> None:
        await self._get_client().set(
            self._key(call_id),
            json.dumps(data),
            ex=self._ttl_seconds,
        )

    async def delete(self, call_id: str) -> None:
        await self._get_client().delete(self._key(call_id))

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        lock = self._get_client().lock(
            f"{self._key_prefix}lock:{call_id}",
            timeout=self._lock_timeout_seconds,
            blocking_timeout=self._lock_timeout_seconds,
        )
        if not await lock.acquire():
            raise SessionBusyError(call_id)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # Held past its timeout; another holder may already own it.
                logger.warning("Session lock expired before release", extra={"call_id": call_id})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SessionStore:
    """Keyed registry of live sessions; Absent/Active is presence in the backend."""

    def __init__(self, backend: SessionBackend | None = None) -> None:
        self._backend: SessionBackend = backend or InMemorySessionBackend()

    @property
    def backend(self) -> SessionBackend:
        return self._backend

    async def create(self, call_id: str, initial_lang: Language = Language.AUTO) -> CallSession:
        """Insert a fresh session, overwriting any stale entry for the same id."""
        session = CallSession(call_id=call_id, lang=initial_lang)
        await self._backend.put(call_id, session.to_dict())
        return session

    async def get(self, call_id: str | None) -> CallSession | None:
        if not call_id:
            return None
        data = await self._backend.get(call_id)
        if data is None:
            return None
        return CallSession.from_dict(data)

    async def save(self, session: CallSession) -> None:
        await self._backend.put(session.call_id, session.to_dict())

    async def delete(self, call_id: str) -> None:
        await self._backend.delete(call_id)

    def lock(self, call_id: str) -> AbstractAsyncContextManager[None]:
        return self._backend.lock(call_id)

    async def close(self) -> None:
        await self._backend.close()


def build_session_store(settings: Settings) -> SessionStore:
    """Create the store for the configured backend."""
    if settings.session_store_backend == "redis":
        logger.info(
            "Using Redis session store",
            extra={"ttl_seconds": settings.session_ttl_seconds},
        )
        return SessionStore(
            RedisSessionBackend(
                redis_url=settings.redis_url,
                ttl_seconds=settings.session_ttl_seconds,
                key_prefix=settings.session_key_prefix,
            )
        )
    return SessionStore(InMemorySessionBackend())
