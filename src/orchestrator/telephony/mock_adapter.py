"""
Mock telephony adapter for testing and local runs.
"""

from dataclasses import dataclass, field
from typing import Any

from orchestrator.shared.logging import get_logger
from orchestrator.telephony.interface import TelephonyAdapter, TelephonyProviderError

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordedOperation:
    """One call-control operation seen by the mock."""

    action: str
    call_id: str
    args: dict[str, Any] = field(default_factory=dict)


class MockTelephonyAdapter(TelephonyAdapter):
    """Records every operation instead of calling a vendor."""

    def __init__(self) -> None:
        self._operations: list[RecordedOperation] = []
        self._should_fail: bool = False
        self._fail_error: str = "Mock failure"
        self._fail_code: str = "MOCK_ERROR"

    def reset(self) -> None:
        self._operations.clear()
        self._should_fail = False
        self._fail_error = "Mock failure"
        self._fail_code = "MOCK_ERROR"

    def configure_failure(
        self,
        should_fail: bool = True,
        error_message: str = "Mock failure",
        error_code: str = "MOCK_ERROR",
    ) -> None:
        self._should_fail = should_fail
        self._fail_error = error_message
        self._fail_code = error_code

    @property
    def operations(self) -> list[RecordedOperation]:
        return self._operations.copy()

    def get_last_operation(self) -> RecordedOperation | None:
        return self._operations[-1] if self._operations else None

    def _record(self, action: str, call_id: str, **args: Any) -> None:
        logger.info("Mock: %s", action, extra={"call_id": call_id})
        if self._should_fail:
            raise TelephonyProviderError(
                message=self._fail_error,
                error_code=self._fail_code,
            )
        self._operations.append(RecordedOperation(action=action, call_id=call_id, args=args))

    async def start(self, call_id: str) -> None:
        self._record("start", call_id)

    async def speak(
        self,
        call_id: str,
        text: str | None = None,
        audio_url: str | None = None,
    ) -> None:
        self._record("speak", call_id, text=text, audio_url=audio_url)

    async def escalate(self, call_id: str, hotline_number: str) -> None:
        self._record("escalate", call_id, hotline_number=hotline_number)

    async def end(self, call_id: str) -> None:
        self._record("end", call_id)
