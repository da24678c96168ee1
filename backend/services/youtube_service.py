"""YouTube Analytics API client (OAuth, channel==MINE).

Google answers an expired access token with 401 and an "Invalid
Credentials" error message; both map to PlatformAuthError.
"""

import logging
from datetime import datetime, timezone

import httpx

from models.analytics import AuthTokenDetails, MetricPoint, MetricSeries
from services.platform_client import PlatformClient, PlatformAPIError, window_start

logger = logging.getLogger(__name__)

YT_ANALYTICS_BASE = "https://youtubeanalytics.googleapis.com/v2"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# (series label, report metric)
REPORT_METRICS = (
    ("Views", "views"),
    ("Likes", "likes"),
    ("Comments", "comments"),
    ("Shares", "shares"),
    ("Subscribers Gained", "subscribersGained"),
)


class YouTubeClient(PlatformClient):
    identifier = "youtube"
    name = "YouTube"

    def __init__(self, client_id: str = "", client_secret: str = ""):
        self.client_id = client_id
        self.client_secret = client_secret

    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        end = datetime.now(timezone.utc).date()
        start = window_start(window_days, today=end)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{YT_ANALYTICS_BASE}/reports",
                params={
                    "ids": "channel==MINE",
                    "startDate": start.isoformat(),
                    "endDate": end.isoformat(),
                    "metrics": ",".join(metric for _, metric in REPORT_METRICS),
                    "dimensions": "day",
                    "sort": "day",
                },
                headers={"Authorization": f"Bearer {access_token}"},
            )
        self.raise_for_status(response)

        data = response.json()
        headers = [h.get("name") for h in data.get("columnHeaders", [])]
        rows = data.get("rows", []) or []
        logger.info(f"Fetched {len(rows)} daily report rows for YouTube channel {account_id}")

        series = []
        for label, metric in REPORT_METRICS:
            if "day" not in headers or metric not in headers:
                series.append(MetricSeries(label=label))
                continue
            day_idx = headers.index("day")
            metric_idx = headers.index(metric)
            series.append(MetricSeries(
                label=label,
                data=[MetricPoint(date=row[day_idx], total=row[metric_idx] or 0) for row in rows],
            ))
        return series

    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
            )
        if not response.is_success:
            logger.warning(f"Google token refresh failed with HTTP {response.status_code}")
            raise PlatformAPIError(
                f"Google token refresh failed: {response.status_code} - {response.text[:200]}",
                provider=self.identifier,
                status_code=response.status_code,
            )

        tokens = response.json()
        return AuthTokenDetails(
            access_token=tokens["access_token"],
            # Google only returns a refresh token on first consent
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_in=tokens.get("expires_in", 3600),
        )
