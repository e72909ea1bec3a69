"""
Domain exceptions shared across the orchestrator.

Each exception carries the short machine-readable error code that ends up in
the `{"ok": false, "error": ...}` response body.
"""


class OrchestratorError(Exception):
    """Base exception for orchestrator errors."""

    error_code: str = "internal_error"

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class SessionNotFoundError(OrchestratorError):
    """No live session is tracked for the call id."""

    error_code = "session_not_found"

    def __init__(self, call_id: str | None) -> None:
        super().__init__(f"Session not found: {call_id}")
        self.call_id = call_id


class UnauthorizedError(OrchestratorError):
    """Webhook shared secret missing or mismatched."""

    error_code = "unauthorized"

    def __init__(self, message: str = "Webhook secret mismatch") -> None:
        super().__init__(message)


class UpstreamUnavailableError(OrchestratorError):
    """KB collaborator unreachable, slow or returned an unusable body."""

    error_code = "upstream_unavailable"


class SessionBusyError(OrchestratorError):
    """The per-call lock could not be acquired in time."""

    error_code = "session_busy"

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Session lock timed out: {call_id}")
        self.call_id = call_id
