"""Analytics router - cross-platform aggregates over a user's integrations.

Computed responses are cached per query (see services.analytics_cache);
DELETE /cache flushes every user's entries.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import get_db
from middleware.auth import get_current_active_user, require_roles
from middleware.rate_limit import limiter
from models.analytics import AggregatedMetrics, AudienceGrowth, BestTimeSlot, MetricSeries
from models.integration import Integration
from models.user import User, UserRole
from services.analytics_aggregator import REFRESH_REQUIRED, AnalyticsAggregator, window_days
from services.analytics_cache import AnalyticsCache, build_cache_key
from services.metric_normalizer import normalize_label

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


# ============== Response Models ==============

class IntegrationSummary(BaseModel):
    id: str
    name: str
    provider: str
    picture: Optional[str] = None


class IntegrationAnalyticsEntry(BaseModel):
    """One integration's series, or the reason it has none."""
    integration: IntegrationSummary
    analytics: list[MetricSeries]
    error: Optional[str] = None


class Period(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str


class AggregatedAnalyticsResponse(BaseModel):
    data: list[IntegrationAnalyticsEntry]
    period: Period


class CacheClearResponse(BaseModel):
    success: bool
    message: str


class BestTimesResponse(BaseModel):
    """``available`` is False when no per-post engagement data exists."""
    data: list[BestTimeSlot]
    available: bool


class AudienceGrowthResponse(BaseModel):
    data: list[AudienceGrowth]


class SingleIntegrationResponse(BaseModel):
    integration: IntegrationSummary
    analytics: list[MetricSeries]
    period: Period


# ============== Dependencies ==============

def get_analytics_cache(request: Request) -> AnalyticsCache:
    return request.app.state.analytics_cache


def get_aggregator(request: Request) -> AnalyticsAggregator:
    return request.app.state.aggregator


def _parse_bound(value: str, end_of_day: bool) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid date: {value}",
        )
    # A bare date covers the whole calendar day
    if len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max if end_of_day else time.min)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date_range(
    start_date: Optional[str], end_date: Optional[str]
) -> tuple[datetime, datetime]:
    """Resolve query bounds, defaulting to the trailing window ending now."""
    end = _parse_bound(end_date, end_of_day=True) if end_date else datetime.now(timezone.utc)
    if start_date:
        start = _parse_bound(start_date, end_of_day=False)
    else:
        start = end - timedelta(days=settings.analytics_default_window_days)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="startDate must not be after endDate",
        )
    return start, end


def split_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def summarize(integration: Integration) -> IntegrationSummary:
    return IntegrationSummary(
        id=integration.id,
        name=integration.name,
        provider=integration.provider_identifier,
        picture=integration.picture,
    )


# ============== Endpoints ==============

@router.get(
    "/aggregated",
    response_model=AggregatedAnalyticsResponse,
    response_model_exclude_none=True,
)
@limiter.limit(settings.rate_limit_aggregated)
async def get_aggregated_analytics(
    request: Request,
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[AnalyticsCache, Depends(get_analytics_cache)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    platforms: Optional[str] = None,
    metrics: Optional[str] = None,
):
    """
    Raw metric series for each of the user's social integrations.

    - platforms: comma-separated provider ids; others are not fetched
    - metrics: comma-separated labels, compared lowercased with whitespace removed
    """
    platform_list = split_list(platforms)
    metric_list = [normalize_label(m) for m in split_list(metrics)]

    cache_key = build_cache_key(
        "aggregated", current_user.id, start_date, end_date, platform_list, metric_list
    )
    cached = await cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Analytics cache hit: {cache_key}")
        return cached

    start, end = parse_date_range(start_date, end_date)
    integrations = await aggregator.load_integrations(db, current_user.id, platform_list)
    results = await aggregator.fetch_all(
        integrations, window_days(start, end, settings.analytics_default_window_days)
    )

    entries = []
    for result in results:
        series = result.series
        if metric_list:
            series = [s for s in series if normalize_label(s.label) in metric_list]
        entries.append(IntegrationAnalyticsEntry(
            integration=summarize(result.integration),
            analytics=series,
            error=result.error,
        ))

    response = AggregatedAnalyticsResponse(
        data=entries,
        period=Period(from_=start.isoformat(), to=end.isoformat()),
    )
    payload = response.model_dump(mode="json", by_alias=True, exclude_none=True)
    await cache.set(cache_key, payload)
    logger.info(
        f"Aggregated analytics for user {current_user.id}: "
        f"{len(entries)} integrations, {sum(1 for e in entries if e.error)} failed"
    )
    return payload


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_analytics_cache(
    current_user: Annotated[User, Depends(require_roles(UserRole.ADMIN))],
    cache: Annotated[AnalyticsCache, Depends(get_analytics_cache)],
):
    """Flush all cached analytics (every user)."""
    removed = await cache.clear()
    logger.info(f"Analytics cache cleared by {current_user.email}: {removed} entries")
    return CacheClearResponse(success=True, message=f"Analytics cache cleared ({removed} entries)")


@router.get("/overview", response_model=AggregatedMetrics)
async def get_overview(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[AnalyticsCache, Depends(get_analytics_cache)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Totals, per-integration breakdown, daily series and recent posts."""
    cache_key = build_cache_key("overview", current_user.id, start_date, end_date)
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    start, end = parse_date_range(start_date, end_date)
    metrics = await aggregator.get_aggregated_analytics(db, current_user.id, start, end)

    payload = metrics.model_dump(mode="json", by_alias=True)
    await cache.set(cache_key, payload)
    return payload


@router.get("/best-times", response_model=BestTimesResponse)
async def get_best_times(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
):
    """Top weekday/hour slots (UTC) by average post engagement."""
    slots = await aggregator.get_best_times_to_post(db, current_user.id)
    return BestTimesResponse(data=slots, available=aggregator.engagement_source.available)


@router.get("/audience-growth", response_model=AudienceGrowthResponse)
async def get_audience_growth(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    start, end = parse_date_range(start_date, end_date)
    growth = await aggregator.get_audience_growth(db, current_user.id, start, end)
    return AudienceGrowthResponse(data=growth)


@router.get("/export")
async def export_analytics(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """Download the overview as CSV."""
    start, end = parse_date_range(start_date, end_date)
    content = await aggregator.export_to_csv(db, current_user.id, start, end)
    filename = f"analytics-{start.date().isoformat()}-{end.date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{integration_id}", response_model=SingleIntegrationResponse)
async def get_integration_analytics(
    integration_id: str,
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[AnalyticsCache, Depends(get_analytics_cache)],
    aggregator: Annotated[AnalyticsAggregator, Depends(get_aggregator)],
    days: int = Query(30, ge=1, le=365),
):
    """Metric series for one integration over the last ``days`` days."""
    result = await db.execute(
        select(Integration).where(
            Integration.id == integration_id,
            Integration.user_id == current_user.id,
            Integration.deleted_at.is_(None),
        )
    )
    integration = result.scalar_one_or_none()
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    if not integration.is_social:
        raise HTTPException(status_code=400, detail="Analytics are only available for social integrations")

    cache_key = f"integration:{current_user.id}:{integration_id}:{days}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    fetched = await aggregator.fetch_integration(integration, days)
    if fetched.error == REFRESH_REQUIRED:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={
                "error": REFRESH_REQUIRED,
                "message": f"Reconnect your {integration.provider_identifier} account",
                "refreshNeeded": True,
            },
        )
    if fetched.error:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=fetched.error)

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=days)
    payload = SingleIntegrationResponse(
        integration=summarize(integration),
        analytics=fetched.series,
        period=Period(from_=start.isoformat(), to=end.isoformat()),
    ).model_dump(mode="json", by_alias=True, exclude_none=True)
    await cache.set(cache_key, payload)
    return payload
