"""
Telephony adapter factory.

Single source of truth for configuration: TelephonyConfig (Pydantic Settings)
loaded from OS env + .env.
"""

from __future__ import annotations

from functools import lru_cache

from orchestrator.shared.logging import get_logger
from orchestrator.telephony.config import ProviderType, TelephonyConfig
from orchestrator.telephony.config import get_telephony_config as _get_settings_telephony_config
from orchestrator.telephony.interface import TelephonyAdapter
from orchestrator.telephony.mock_adapter import MockTelephonyAdapter
from orchestrator.telephony.vapi_adapter import VapiAdapter

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_telephony_config() -> TelephonyConfig:
    """Return cached TelephonyConfig."""
    return _get_settings_telephony_config()


def build_telephony_adapter(cfg: TelephonyConfig) -> TelephonyAdapter:
    logger.info(
        "Telephony config resolved",
        extra={
            "provider_type": cfg.provider_type.value,
            "vapi_api_key_configured": bool(cfg.vapi_api_key),
            "vapi_base_url": cfg.vapi_base_url,
        },
    )

    if cfg.provider_type == ProviderType.VAPI:
        return VapiAdapter(cfg)

    if cfg.provider_type == ProviderType.MOCK:
        return MockTelephonyAdapter()

    raise ValueError(f"Unsupported telephony provider_type: {cfg.provider_type}")

