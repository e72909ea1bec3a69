"""
Knowledge-base access policy.

Decides whether a kb_search tool invocation may reach the KB collaborator.
Pure: no I/O, no mutation.
"""

from orchestrator.sessions.models import CallSession

KB_COOLDOWN_MS = 2 * 60_000
MAX_KB_PER_CALL = 2


def allow_kb(session: CallSession, now_ms: int) -> bool:
    """Return True when a KB lookup is permitted for this session right now.

    Crisis sessions never get auxiliary content, whatever the other fields say.
    """
    if session.crisis:
        return False
    if not session.kb_opt_in:
        return False
    if now_ms - session.last_kb_ms <= KB_COOLDOWN_MS:
        return False
    return session.kb_uses < MAX_KB_PER_CALL
