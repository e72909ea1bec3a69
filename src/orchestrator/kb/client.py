"""
HTTP client for the knowledge-base search collaborator.

Every failure mode (connect error, timeout, non-2xx, malformed body) is raised
as UpstreamUnavailableError; callers decide how to fail open.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from orchestrator.config import Settings, get_settings
from orchestrator.kb.models import KBSearchRequest, KBSearchResponse
from orchestrator.sessions.models import Language
from orchestrator.shared.exceptions import UpstreamUnavailableError
from orchestrator.shared.logging import get_logger

logger = get_logger(__name__)

CRISIS_HEADER = "X-CRISIS"


class KBClient:
    """Async KB search client.

    Uses one shared httpx.AsyncClient. An injected client is never closed here.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.kb_timeout_seconds),
            )
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def search(
        self,
        query: str,
        language: Language,
        crisis: bool,
        k: int | None = None,
    ) -> KBSearchResponse:
        """Search the KB for passages matching `query`.

        The crisis header lets the KB suppress results server-side as well.
        """
        body = KBSearchRequest(
            query=query,
            lang=language,
            k=k or self._settings.kb_result_count,
        )
        headers = {CRISIS_HEADER: "1" if crisis else "0"}

        try:
            response = await self._get_client().post(
                self._settings.kb_url,
                json=body.model_dump(mode="json"),
                headers=headers,
                timeout=self._settings.kb_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.warning("KB request timed out", extra={"kb_url": self._settings.kb_url})
            raise UpstreamUnavailableError("KB request timed out", error_code="kb_timeout") from e
        except httpx.HTTPError as e:
            logger.warning(
                "KB request failed",
                extra={"kb_url": self._settings.kb_url, "error": repr(e)},
            )
            raise UpstreamUnavailableError(f"KB transport error: {e!s}", error_code="kb_transport") from e

        if response.status_code >= 400:
            logger.warning(
                "KB returned error status",
                extra={"status_code": response.status_code, "kb_url": self._settings.kb_url},
            )
            raise UpstreamUnavailableError(
                f"KB returned HTTP {response.status_code}",
                error_code="kb_http_error",
            )

        try:
            return KBSearchResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning("KB returned malformed body", extra={"kb_url": self._settings.kb_url})
            raise UpstreamUnavailableError("KB returned malformed body", error_code="kb_parse_error") from e
