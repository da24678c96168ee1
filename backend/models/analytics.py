"""Analytics value types (not persisted).

Metric series come back from platform clients; the aggregated shapes are
computed per request and serialized with camelCase keys.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============== Platform metric series ==============

class MetricPoint(BaseModel):
    """One day's value of a metric."""
    date: str  # YYYY-MM-DD
    total: Union[int, float]


class MetricSeries(BaseModel):
    """A labelled metric series as returned by a platform client."""
    label: str
    data: list[MetricPoint] = Field(default_factory=list)
    average: Optional[bool] = None


class AuthTokenDetails(BaseModel):
    """Credentials returned by a token refresh."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600  # seconds


# ============== Aggregated results ==============

class PlatformBreakdown(CamelModel):
    """Subtotals for one integration."""
    integration_id: str
    platform: str
    posts: int
    impressions: Union[int, float]
    engagements: Union[int, float]
    engagement_rate: float


class TimeSeriesPoint(CamelModel):
    """All platforms merged for one calendar day."""
    date: str
    impressions: Union[int, float] = 0
    engagements: Union[int, float] = 0
    posts: int = 0


class TopPost(CamelModel):
    """Recent published post.

    Platform APIs only report account-level series, so per-post metrics are
    left as None and ``metrics_available`` is False.
    """
    id: str
    content: str
    platform: str
    publish_date: datetime
    url: str
    impressions: Optional[int] = None
    engagements: Optional[int] = None
    engagement_rate: Optional[float] = None
    metrics_available: bool = False


class AggregatedMetrics(CamelModel):
    """Cross-platform analytics for one user and date range."""
    total_posts: int
    total_impressions: Union[int, float]
    total_engagements: Union[int, float]
    average_engagement_rate: float
    platform_breakdown: list[PlatformBreakdown]
    time_series_data: list[TimeSeriesPoint]
    top_performing_posts: list[TopPost]


class BestTimeSlot(CamelModel):
    """Average engagement for a weekday/hour slot (day_of_week 0 = Sunday)."""
    day_of_week: int
    hour: int
    average_engagement_rate: float
    post_count: int


class GrowthPoint(CamelModel):
    date: str
    followers: Union[int, float]
    growth: Union[int, float]


class AudienceGrowth(CamelModel):
    """Follower series with day-over-day deltas for one integration."""
    integration_id: str
    platform: str
    data: list[GrowthPoint]
