"""Instagram Graph API client (Instagram Login, business/creator accounts).

Long-lived Instagram tokens last 60 days and are refreshed with the
``ig_refresh_token`` grant, which takes the current token itself.
"""

import logging
from datetime import datetime, timezone

import httpx

from models.analytics import AuthTokenDetails, MetricPoint, MetricSeries
from services.platform_client import PlatformClient, PlatformAPIError, window_start

logger = logging.getLogger(__name__)

INSIGHT_METRICS = ("follower_count", "reach", "profile_views")


def format_metric_label(name: str) -> str:
    """follower_count -> Follower Count"""
    return " ".join(word.capitalize() for word in name.split("_"))


class InstagramClient(PlatformClient):
    identifier = "instagram"
    name = "Instagram"

    def __init__(self, graph_version: str = "v20.0"):
        self.graph_base = f"https://graph.instagram.com/{graph_version}"

    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        until = datetime.now(timezone.utc).date()
        since = window_start(window_days, today=until)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.graph_base}/{account_id}/insights",
                params={
                    "metric": ",".join(INSIGHT_METRICS),
                    "period": "day",
                    "since": since.isoformat(),
                    "until": until.isoformat(),
                    "access_token": access_token,
                },
            )
        self.raise_for_status(response)

        data = response.json()
        if "error" in data:
            error = data["error"]
            logger.warning(f"Instagram API error {error.get('code')} for account {account_id}")
            raise PlatformAPIError(
                f"Instagram API error {error.get('code')}: {error.get('message')}",
                provider=self.identifier,
            )

        series = []
        for metric in data.get("data", []):
            points = [
                MetricPoint(date=value["end_time"][:10], total=value.get("value") or 0)
                for value in metric.get("values", [])
                if value.get("end_time")
            ]
            series.append(MetricSeries(label=format_metric_label(metric.get("name", "")), data=points))
        logger.info(f"Fetched {len(series)} insight metrics for Instagram account {account_id}")
        return series

    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                "https://graph.instagram.com/refresh_access_token",
                params={"grant_type": "ig_refresh_token", "access_token": refresh_token},
            )
        if not response.is_success:
            logger.warning(f"Instagram token refresh failed with HTTP {response.status_code}")
            raise PlatformAPIError(
                f"Instagram token refresh failed: {response.status_code} - {response.text[:200]}",
                provider=self.identifier,
                status_code=response.status_code,
            )

        tokens = response.json()
        new_token = tokens["access_token"]
        # The long-lived token doubles as its own refresh token
        return AuthTokenDetails(
            access_token=new_token,
            refresh_token=new_token,
            expires_in=tokens.get("expires_in", 59 * 24 * 60 * 60),
        )
