"""
Live call sessions: model, store and KB access policy.
"""

from orchestrator.sessions.models import CallSession, Language, SessionMetrics
from orchestrator.sessions.policy import KB_COOLDOWN_MS, MAX_KB_PER_CALL, allow_kb
from orchestrator.sessions.store import (
    InMemorySessionBackend,
    RedisSessionBackend,
    SessionStore,
    build_session_store,
)

__all__ = [
    "CallSession",
    "InMemorySessionBackend",
    "KB_COOLDOWN_MS",
    "Language",
    "MAX_KB_PER_CALL",
    "RedisSessionBackend",
    "SessionMetrics",
    "SessionStore",
    "allow_kb",
    "build_session_store",
]
