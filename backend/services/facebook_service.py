"""Facebook Graph API client for Page insights.

Page access tokens obtained through a long-lived user token do not expire,
so there is nothing to refresh; a rejected page token needs a reconnect.
"""

import logging
from collections import defaultdict
from datetime import datetime, time, timezone

import httpx

from models.analytics import AuthTokenDetails, MetricSeries
from services.platform_client import PlatformClient, PlatformError, series_from_daily, window_start

logger = logging.getLogger(__name__)

# insight name -> series label
PAGE_INSIGHTS = {
    "page_impressions": "Impressions",
    "page_engaged_users": "Engaged Users",
    "page_post_engagements": "Post Engagements",
    "page_fans": "Page Fans",
}


class FacebookClient(PlatformClient):
    identifier = "facebook"
    name = "Facebook"

    def __init__(self, graph_version: str = "v22.0"):
        self.graph_base = f"https://graph.facebook.com/{graph_version}"

    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        since = datetime.combine(window_start(window_days), time.min, tzinfo=timezone.utc)
        until = datetime.now(timezone.utc)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.graph_base}/{account_id}/insights",
                params={
                    "metric": ",".join(PAGE_INSIGHTS),
                    "period": "day",
                    "since": int(since.timestamp()),
                    "until": int(until.timestamp()),
                    "access_token": access_token,
                },
            )
        self.raise_for_status(response)

        insights = response.json().get("data", [])
        logger.info(f"Fetched {len(insights)} insights for Facebook page {account_id}")
        daily: dict[str, dict[str, int]] = {label: defaultdict(int) for label in PAGE_INSIGHTS.values()}
        for insight in insights:
            label = PAGE_INSIGHTS.get(insight.get("name"))
            if label is None:
                continue
            for value in insight.get("values", []):
                end_time = value.get("end_time")
                if not end_time:
                    continue
                daily[label][end_time[:10]] += value.get("value") or 0

        return [series_from_daily(label, daily[label]) for label in PAGE_INSIGHTS.values()]

    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        logger.warning("Facebook page token was rejected, the page must be reconnected")
        raise PlatformError("Facebook page tokens do not require refresh", provider=self.identifier)
