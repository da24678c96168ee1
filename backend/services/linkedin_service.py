"""LinkedIn Marketing API client for organization page analytics.

Share statistics are requested at DAY granularity; each element of the
response covers one day.
"""

import logging
from collections import defaultdict
from datetime import datetime, time, timezone

import httpx

from models.analytics import AuthTokenDetails, MetricSeries
from services.platform_client import PlatformClient, PlatformAPIError, series_from_daily, window_start

logger = logging.getLogger(__name__)

LINKEDIN_API_BASE = "https://api.linkedin.com/v2"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"

# (series label, totalShareStatistics field)
SHARE_METRICS = (
    ("Impressions", "impressionCount"),
    ("Clicks", "clickCount"),
    ("Likes", "likeCount"),
    ("Comments", "commentCount"),
    ("Shares", "shareCount"),
)


def organization_urn(account_id: str) -> str:
    if account_id.startswith("urn:li:"):
        return account_id
    return f"urn:li:organization:{account_id}"


class LinkedInClient(PlatformClient):
    identifier = "linkedin"
    name = "LinkedIn"

    def __init__(self, client_id: str = "", client_secret: str = ""):
        self.client_id = client_id
        self.client_secret = client_secret

    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        start = datetime.combine(window_start(window_days), time.min, tzinfo=timezone.utc)
        end = datetime.now(timezone.utc)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{LINKEDIN_API_BASE}/organizationalEntityShareStatistics",
                params={
                    "q": "organizationalEntity",
                    "organizationalEntity": organization_urn(account_id),
                    "timeIntervals.timeGranularityType": "DAY",
                    "timeIntervals.timeRange.start": int(start.timestamp() * 1000),
                    "timeIntervals.timeRange.end": int(end.timestamp() * 1000),
                },
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "X-Restli-Protocol-Version": "2.0.0",
                },
            )
        self.raise_for_status(response)

        elements = response.json().get("elements", [])
        logger.info(f"Fetched {len(elements)} daily share statistics for LinkedIn organization {account_id}")
        daily: dict[str, dict[str, int]] = {label: defaultdict(int) for label, _ in SHARE_METRICS}
        for element in elements:
            range_start = element.get("timeRange", {}).get("start")
            if range_start is None:
                continue
            day = datetime.fromtimestamp(range_start / 1000, tz=timezone.utc).date().isoformat()
            stats = element.get("totalShareStatistics", {})
            for label, field in SHARE_METRICS:
                daily[label][day] += stats.get(field, 0) or 0

        return [series_from_daily(label, daily[label]) for label, _ in SHARE_METRICS]

    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.post(
                LINKEDIN_TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        if not response.is_success:
            logger.warning(f"LinkedIn token refresh failed with HTTP {response.status_code}")
            raise PlatformAPIError(
                f"LinkedIn token refresh failed: {response.status_code} - {response.text[:200]}",
                provider=self.identifier,
                status_code=response.status_code,
            )

        tokens = response.json()
        return AuthTokenDetails(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_in=tokens.get("expires_in", 60 * 24 * 60 * 60),
        )
