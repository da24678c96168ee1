"""Cross-platform analytics aggregation.

For one user and date range the aggregator:

1. selects the user's active social integrations and published posts,
2. fetches every integration's metric series concurrently, refreshing an
   expired access token once and retrying once,
3. classifies each series (see metric_normalizer) and merges impressions
   and engagements into totals, a per-integration breakdown and one daily
   time series.

A failing integration contributes nothing and carries an error string; it
never fails the whole request. Results are merged only after every fetch
has finished, so breakdown order is integration order, not completion
order.
"""

import asyncio
import csv
import enum
import io
import logging
import math
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from models.analytics import (
    AggregatedMetrics,
    AudienceGrowth,
    BestTimeSlot,
    GrowthPoint,
    MetricSeries,
    PlatformBreakdown,
    TimeSeriesPoint,
    TopPost,
)
from models.integration import Integration, IntegrationType
from models.post import Post, PostState
from services.metric_normalizer import MetricBucket, classify, fold_series
from services.platform_client import PlatformClient, is_auth_failure
from services.platform_registry import PlatformRegistry, UnknownProviderError
from services.token_store import TokenStore, TokenStoreError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
TOP_POSTS_LIMIT = 10
CONTENT_PREVIEW_LENGTH = 100
BEST_TIMES_LIMIT = 10
MIN_SLOT_SAMPLES = 3

FETCH_FAILED = "Failed to fetch analytics"
FETCH_TIMED_OUT = "Timed out fetching analytics"
REFRESH_REQUIRED = "Token refresh required"


class FetchStatus(str, enum.Enum):
    OK = "ok"
    NEEDS_REFRESH = "needs_refresh"
    FAILED = "failed"


@dataclass
class FetchResult:
    """Outcome of one analytics call with a given access token."""
    status: FetchStatus
    series: list[MetricSeries] = field(default_factory=list)
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, series: list[MetricSeries]) -> "FetchResult":
        return cls(FetchStatus.OK, series=series)

    @classmethod
    def needs_refresh(cls, error: BaseException) -> "FetchResult":
        return cls(FetchStatus.NEEDS_REFRESH, error=error)

    @classmethod
    def failed(cls, error: BaseException) -> "FetchResult":
        return cls(FetchStatus.FAILED, error=error)


@dataclass
class IntegrationAnalytics:
    """One integration's contribution to an aggregate."""
    integration: Integration
    series: list[MetricSeries] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def platform(self) -> str:
        return self.integration.provider_identifier


class PostEngagementSource(ABC):
    """Supplies a per-post engagement rate (percent) for best-time analysis."""

    available: bool = True

    @abstractmethod
    async def engagement_rates(self, posts: Sequence[Post]) -> dict[str, float]:
        """Map post id -> engagement rate. Posts without data are omitted."""
        ...


class NoPostEngagement(PostEngagementSource):
    """Platform clients only report account-level series, so no post has a rate."""

    available = False

    async def engagement_rates(self, posts: Sequence[Post]) -> dict[str, float]:
        return {}


def window_days(
    start: Optional[datetime],
    end: Optional[datetime],
    default: int = DEFAULT_WINDOW_DAYS,
) -> int:
    """Whole days spanned by [start, end], rounded up; ``default`` if either is missing."""
    if start is None or end is None:
        return default
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def engagement_rate(engagements: float, impressions: float) -> float:
    """Engagements per impression, in percent; 0 when there are no impressions."""
    if impressions > 0 and engagements > 0:
        return engagements / impressions * 100
    return 0.0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def post_day(post: Post) -> str:
    """Calendar day (UTC) a post was published on, as YYYY-MM-DD."""
    return _as_utc(post.publish_date).date().isoformat()


def content_preview(content: str, limit: int = CONTENT_PREVIEW_LENGTH) -> str:
    if len(content) > limit:
        return content[:limit] + "..."
    return content


class AnalyticsAggregator:
    """Fetches, reconciles and merges analytics across a user's integrations."""

    def __init__(
        self,
        registry: PlatformRegistry,
        token_store: TokenStore,
        fetch_timeout: float = 30.0,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        engagement_source: Optional[PostEngagementSource] = None,
    ):
        self.registry = registry
        self.token_store = token_store
        self.fetch_timeout = fetch_timeout
        self.default_window_days = default_window_days
        self.engagement_source = engagement_source or NoPostEngagement()

    # ============== Selection ==============

    async def load_integrations(
        self,
        db: AsyncSession,
        user_id: str,
        platforms: Optional[Sequence[str]] = None,
    ) -> list[Integration]:
        """Active social integrations of a user, optionally limited to some providers."""
        query = select(Integration).where(
            Integration.user_id == user_id,
            Integration.type == IntegrationType.SOCIAL.value,
            Integration.deleted_at.is_(None),
            Integration.disabled.is_(False),
        )
        if platforms:
            query = query.where(Integration.provider_identifier.in_(list(platforms)))
        query = query.order_by(Integration.created_at, Integration.id)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def load_published_posts(
        self,
        db: AsyncSession,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Post]:
        """Published posts in [start, end], newest first, with their integration loaded."""
        query = (
            select(Post)
            .options(selectinload(Post.integration))
            .where(
                Post.user_id == user_id,
                Post.state == PostState.PUBLISHED,
                Post.deleted_at.is_(None),
            )
        )
        if start is not None:
            query = query.where(Post.publish_date >= start)
        if end is not None:
            query = query.where(Post.publish_date <= end)
        query = query.order_by(Post.publish_date.desc(), Post.id)

        result = await db.execute(query)
        return list(result.scalars().all())

    # ============== Fetch + refresh ==============

    async def fetch_with_auth(
        self,
        client: PlatformClient,
        integration: Integration,
        access_token: str,
        days: int,
    ) -> FetchResult:
        """Call the platform once, classifying the outcome instead of raising."""
        try:
            series = await asyncio.wait_for(
                client.analytics(integration.internal_id, access_token, days),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Analytics fetch for {integration.provider_identifier} integration "
                f"{integration.id} timed out after {self.fetch_timeout}s"
            )
            return FetchResult.failed(e)
        except Exception as e:
            if is_auth_failure(e):
                return FetchResult.needs_refresh(e)
            logger.error(
                f"Failed to fetch analytics for {integration.provider_identifier} "
                f"integration {integration.id}: {e}"
            )
            return FetchResult.failed(e)
        return FetchResult.ok(list(series))

    async def refresh_credentials(
        self, client: PlatformClient, integration: Integration
    ) -> Optional[str]:
        """Refresh and persist an integration's access token.

        Returns the new plain access token, or None after flagging the
        integration ``refresh_needed``.
        """
        if not integration.refresh_token:
            logger.warning(f"Integration {integration.id} has no refresh token")
            await self._mark_refresh_needed(integration)
            return None

        logger.info(f"Attempting to refresh token for integration {integration.id}")
        try:
            refresh_token = self.token_store.decrypt(integration.refresh_token)
            tokens = await asyncio.wait_for(
                client.refresh_token(refresh_token), timeout=self.fetch_timeout
            )
        except Exception as e:
            logger.error(f"Failed to refresh token for integration {integration.id}: {e}")
            await self._mark_refresh_needed(integration)
            return None

        try:
            await self.token_store.save_rotated_tokens(integration.id, tokens)
        except SQLAlchemyError as e:
            # The new token is still valid for this request
            logger.error(f"Failed to store refreshed token for integration {integration.id}: {e}")
        return tokens.access_token

    async def _mark_refresh_needed(self, integration: Integration) -> None:
        try:
            await self.token_store.mark_refresh_needed(integration.id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to flag integration {integration.id} for refresh: {e}")

    async def fetch_integration(self, integration: Integration, days: int) -> IntegrationAnalytics:
        """Fetch one integration's series, refreshing its token at most once.

        Never raises; failures are reported through ``error``.
        """
        try:
            client = self.registry.get(integration.provider_identifier)
            access_token = self.token_store.decrypt(integration.token)
        except (UnknownProviderError, TokenStoreError) as e:
            logger.error(f"Cannot fetch analytics for integration {integration.id}: {e}")
            return IntegrationAnalytics(integration, error=FETCH_FAILED)

        # Known-bad or expired credentials are refreshed before the first call
        refreshed = integration.refresh_needed or integration.is_expired()
        if refreshed:
            access_token = await self.refresh_credentials(client, integration)
            if access_token is None:
                return IntegrationAnalytics(integration, error=REFRESH_REQUIRED)

        result = await self.fetch_with_auth(client, integration, access_token, days)

        if result.status is FetchStatus.NEEDS_REFRESH and not refreshed:
            access_token = await self.refresh_credentials(client, integration)
            if access_token is None:
                return IntegrationAnalytics(integration, error=REFRESH_REQUIRED)
            result = await self.fetch_with_auth(client, integration, access_token, days)

        if result.status is FetchStatus.NEEDS_REFRESH:
            logger.error(f"Refreshed token for integration {integration.id} was rejected")
            await self._mark_refresh_needed(integration)
            return IntegrationAnalytics(integration, error=REFRESH_REQUIRED)

        if result.status is FetchStatus.FAILED:
            if isinstance(result.error, asyncio.TimeoutError):
                return IntegrationAnalytics(integration, error=FETCH_TIMED_OUT)
            return IntegrationAnalytics(integration, error=FETCH_FAILED)

        return IntegrationAnalytics(integration, series=result.series)

    async def fetch_all(
        self, integrations: Sequence[Integration], days: int
    ) -> list[IntegrationAnalytics]:
        """Fetch every integration concurrently; results keep integration order."""
        return list(await asyncio.gather(
            *(self.fetch_integration(integration, days) for integration in integrations)
        ))

    # ============== Merge ==============

    def merge(
        self, results: Sequence[IntegrationAnalytics], posts: Sequence[Post]
    ) -> AggregatedMetrics:
        """Combine per-integration series and published posts into one aggregate."""
        impressions_by_date: dict[str, float] = {}
        engagements_by_date: dict[str, float] = {}
        posts_by_date: dict[str, int] = defaultdict(int)
        posts_per_integration = Counter(post.integration_id for post in posts)

        total_impressions = 0
        total_engagements = 0
        breakdown = []

        for result in results:
            platform_impressions = 0
            platform_engagements = 0
            for series in result.series:
                bucket = classify(series.label)
                if bucket is MetricBucket.IMPRESSIONS:
                    platform_impressions += fold_series(series, impressions_by_date)
                elif bucket is MetricBucket.ENGAGEMENT:
                    platform_engagements += fold_series(series, engagements_by_date)

            total_impressions += platform_impressions
            total_engagements += platform_engagements
            breakdown.append(PlatformBreakdown(
                integration_id=result.integration.id,
                platform=result.platform,
                posts=posts_per_integration.get(result.integration.id, 0),
                impressions=platform_impressions,
                engagements=platform_engagements,
                engagement_rate=engagement_rate(platform_engagements, platform_impressions),
            ))

        for post in posts:
            posts_by_date[post_day(post)] += 1

        dates = sorted(set(impressions_by_date) | set(engagements_by_date) | set(posts_by_date))
        time_series = [
            TimeSeriesPoint(
                date=day,
                impressions=impressions_by_date.get(day, 0),
                engagements=engagements_by_date.get(day, 0),
                posts=posts_by_date.get(day, 0),
            )
            for day in dates
        ]

        top_posts = [
            TopPost(
                id=post.id,
                content=content_preview(post.content),
                platform=post.integration.provider_identifier,
                publish_date=post.publish_date,
                url=post.release_url or "",
            )
            for post in posts[:TOP_POSTS_LIMIT]
        ]

        return AggregatedMetrics(
            total_posts=len(posts),
            total_impressions=total_impressions,
            total_engagements=total_engagements,
            average_engagement_rate=engagement_rate(total_engagements, total_impressions),
            platform_breakdown=breakdown,
            time_series_data=time_series,
            top_performing_posts=top_posts,
        )

    # ============== Operations ==============

    async def get_aggregated_analytics(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> AggregatedMetrics:
        """Aggregate every active social integration of ``user_id`` over [start, end]."""
        integrations = await self.load_integrations(db, user_id)
        posts = await self.load_published_posts(db, user_id, start, end)
        days = window_days(start, end, self.default_window_days)

        results = await self.fetch_all(integrations, days)
        return self.merge(results, posts)

    async def get_best_times_to_post(self, db: AsyncSession, user_id: str) -> list[BestTimeSlot]:
        """Rank weekday/hour slots (UTC) by average per-post engagement rate.

        Slots with fewer than MIN_SLOT_SAMPLES rated posts are dropped. With
        no per-post engagement source this returns an empty list.
        """
        posts = await self.load_published_posts(db, user_id)
        rates = await self.engagement_source.engagement_rates(posts)

        slots: dict[tuple[int, int], list[float]] = defaultdict(list)
        for post in posts:
            rate = rates.get(post.id)
            if rate is None:
                continue
            published = _as_utc(post.publish_date)
            day_of_week = (published.weekday() + 1) % 7  # 0 = Sunday
            slots[(day_of_week, published.hour)].append(rate)

        ranked = [
            BestTimeSlot(
                day_of_week=day_of_week,
                hour=hour,
                average_engagement_rate=sum(samples) / len(samples),
                post_count=len(samples),
            )
            for (day_of_week, hour), samples in slots.items()
            if len(samples) >= MIN_SLOT_SAMPLES
        ]
        ranked.sort(key=lambda s: (-s.average_engagement_rate, s.day_of_week, s.hour))
        return ranked[:BEST_TIMES_LIMIT]

    async def get_audience_growth(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[AudienceGrowth]:
        """Day-over-day follower change for each integration's first follower series."""
        integrations = await self.load_integrations(db, user_id)
        results = await self.fetch_all(integrations, window_days(start, end, self.default_window_days))

        growth = []
        for result in results:
            followers = next(
                (s for s in result.series if classify(s.label) is MetricBucket.FOLLOWERS),
                None,
            )
            points = []
            if followers is not None:
                previous = None
                for point in followers.data:
                    delta = point.total - previous if previous is not None else 0
                    points.append(GrowthPoint(date=point.date, followers=point.total, growth=delta))
                    previous = point.total
            growth.append(AudienceGrowth(
                integration_id=result.integration.id,
                platform=result.platform,
                data=points,
            ))
        return growth

    async def export_to_csv(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> str:
        """Daily rows for all platforms, then a per-platform summary."""
        analytics = await self.get_aggregated_analytics(db, user_id, start, end)

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Date", "Platform", "Posts", "Impressions", "Engagements", "Engagement Rate"])
        for point in analytics.time_series_data:
            rate = engagement_rate(point.engagements, point.impressions)
            writer.writerow([
                point.date, "All Platforms", point.posts,
                point.impressions, point.engagements, f"{rate:.2f}%",
            ])

        writer.writerow([])
        writer.writerow(["Platform Summary"])
        writer.writerow(["Platform", "Total Posts", "Total Impressions", "Total Engagements", "Engagement Rate"])
        for row in analytics.platform_breakdown:
            writer.writerow([
                row.platform, row.posts, row.impressions,
                row.engagements, f"{row.engagement_rate:.2f}%",
            ])
        return buffer.getvalue()
