"""
Knowledge-base collaborator: wire models and HTTP client.
"""

from orchestrator.kb.client import CRISIS_HEADER, KBClient
from orchestrator.kb.models import KBSearchRequest, KBSearchResponse, Passage, PassageSource

__all__ = [
    "CRISIS_HEADER",
    "KBClient",
    "KBSearchRequest",
    "KBSearchResponse",
    "Passage",
    "PassageSource",
]
