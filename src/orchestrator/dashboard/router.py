"""
Dashboard API router.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from orchestrator.calls.persistence import CallMetadataSink, start_of_utc_day
from orchestrator.dashboard.schemas import DailyMetrics
from orchestrator.dependencies import get_clock, get_metadata_sink
from orchestrator.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["dashboard"])


@router.get(
    "/metrics",
    response_model=DailyMetrics,
    summary="Today's call metrics",
    description="Call count, mean duration and crisis/KB percentages for the current UTC day.",
)
async def get_daily_metrics(
    sink: Annotated[CallMetadataSink, Depends(get_metadata_sink)],
    clock: Annotated[Callable[[], int], Depends(get_clock)],
) -> DailyMetrics:
    now = datetime.fromtimestamp(clock() / 1000, tz=timezone.utc)
    stats = await sink.stats_since(start_of_utc_day(now))
    logger.debug("Daily metrics computed", extra={"today_calls": stats.total_calls})
    return DailyMetrics.from_stats(stats)
