"""
Telephony adapter interface definition.

The vendor's call-control operations (start, speak, escalate, end) behind a
stable capability interface.
"""

from abc import ABC, abstractmethod
from typing import Any


class TelephonyProviderError(Exception):
    """Base exception for telephony provider errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.provider_response = provider_response or {}


class TelephonyAdapter(ABC):
    """Abstract call-control capability set of a voice vendor."""

    @abstractmethod
    async def start(self, call_id: str) -> None:
        """Start (or acknowledge) a call."""
        ...

    @abstractmethod
    async def speak(
        self,
        call_id: str,
        text: str | None = None,
        audio_url: str | None = None,
    ) -> None:
        """Say text or play audio on the live call."""
        ...

    @abstractmethod
    async def escalate(self, call_id: str, hotline_number: str) -> None:
        """Bridge the live call to a human hotline."""
        ...

    @abstractmethod
    async def end(self, call_id: str) -> None:
        """Hang up the call."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        return None
