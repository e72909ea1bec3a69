"""
Telephony provider configuration.
"""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderType(str, Enum):
    """Supported telephony provider types."""

    VAPI = "vapi"
    MOCK = "mock"


class TelephonyConfig(BaseSettings):
    """Telephony provider configuration from environment."""

    model_config = SettingsConfigDict(
        env_prefix="TELEPHONY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider selection
    provider_type: ProviderType = Field(default=ProviderType.VAPI)

    # Provider credentials. Empty key turns every call-control operation into a logged no-op.
    vapi_api_key: str = Field(default="")
    vapi_base_url: str = Field(default="https://api.vapi.ai")

    request_timeout_seconds: float = Field(default=10.0, gt=0, le=60)

    def get_call_url(self, call_id: str, action: str) -> str:
        base = self.vapi_base_url.rstrip("/")
        return f"{base}/calls/{call_id}/{action}"


def get_telephony_config() -> TelephonyConfig:
    return TelephonyConfig()
