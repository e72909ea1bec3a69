"""
Vapi telephony adapter.

Thin REST wrapper over the vendor's call-control endpoints. The vendor starts
calls itself and notifies us through the webhook, so `start` only logs.
Without an API key every operation is a logged no-op.
"""

from __future__ import annotations

from typing import Any

import httpx

from orchestrator.shared.logging import get_logger
from orchestrator.telephony.config import TelephonyConfig, get_telephony_config
from orchestrator.telephony.interface import TelephonyAdapter, TelephonyProviderError

logger = get_logger(__name__)


def _mask(s: str, keep: int = 4) -> str:
    if not s:
        return ""
    if len(s) <= keep:
        return "*" * len(s)
    return f"***{s[-keep:]}"


class VapiAdapter(TelephonyAdapter):
    """Vapi call-control adapter using httpx."""

    def __init__(
        self,
        config: TelephonyConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_telephony_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def enabled(self) -> bool:
        return bool(self._config.vapi_api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.request_timeout_seconds),
            )
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.vapi_api_key}",
            "Accept": "application/json",
        }

    async def _post(self, call_id: str, action: str, payload: dict[str, Any]) -> None:
        if not self.enabled:
            logger.info(
                "Vapi API key not configured; skipping call control",
                extra={"call_id": call_id, "action": action},
            )
            return

        url = self._config.get_call_url(call_id, action)
        try:
            response = await self._get_client().post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.exception(
                "HTTP error during Vapi call control",
                extra={"call_id": call_id, "action": action},
            )
            raise TelephonyProviderError(
                message=f"HTTP error: {e!s}",
                error_code="HTTP_ERROR",
            ) from e

        if response.status_code >= 400:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"body": response.text}
            if not isinstance(error_data, dict):
                error_data = {"body": error_data}
            logger.error(
                "Vapi call control failed",
                extra={
                    "status_code": response.status_code,
                    "call_id": call_id,
                    "action": action,
                },
            )
            raise TelephonyProviderError(
                message=str(error_data.get("message", f"Vapi {action} failed")),
                error_code=str(response.status_code),
                provider_response=error_data,
            )

        logger.info("Vapi call control OK", extra={"call_id": call_id, "action": action})

    async def start(self, call_id: str) -> None:
        logger.info("Call start acknowledged", extra={"call_id": call_id})

    async def speak(
        self,
        call_id: str,
        text: str | None = None,
        audio_url: str | None = None,
    ) -> None:
        payload: dict[str, Any] = {}
        if text:
            payload["text"] = text
        if audio_url:
            payload["audioUrl"] = audio_url
        if not payload:
            return
        await self._post(call_id, "speak", payload)

    async def escalate(self, call_id: str, hotline_number: str) -> None:
        logger.warning(
            "Escalating call to hotline",
            extra={"call_id": call_id, "hotline_number": _mask(hotline_number)},
        )
        await self._post(call_id, "bridge", {"number": hotline_number})

    async def end(self, call_id: str) -> None:
        await self._post(call_id, "end", {})
