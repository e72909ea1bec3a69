"""
Pydantic schemas for the dashboard metrics feed.
"""

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.calls.persistence import CallStats


class DailyMetrics(BaseModel):
    """Aggregates over calls that ended today (UTC)."""

    model_config = ConfigDict(populate_by_name=True)

    today_calls: int = Field(alias="todayCalls", ge=0, description="Calls ended today")
    avg_duration: float = Field(alias="avgDuration", ge=0.0, description="Mean duration in seconds")
    crisis_pct: float = Field(
        alias="crisisPct",
        ge=0.0,
        le=100.0,
        description="Percentage of calls with a crisis signal",
    )
    kb_used_pct: float = Field(
        alias="kbUsedPct",
        ge=0.0,
        le=100.0,
        description="Percentage of calls that used the KB at least once",
    )

    @classmethod
    def from_stats(cls, stats: CallStats) -> "DailyMetrics":
        return cls(
            today_calls=stats.total_calls,
            avg_duration=stats.avg_duration_s,
            crisis_pct=stats.crisis_pct,
            kb_used_pct=stats.kb_used_pct,
        )
