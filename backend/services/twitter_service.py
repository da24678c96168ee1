"""X/Twitter API v2 client.

Analytics are built from the account's own timeline: each tweet's public
metrics are summed into the day it was posted.
"""

import logging
from collections import defaultdict
from datetime import datetime, time, timezone

import httpx

from models.analytics import AuthTokenDetails, MetricSeries
from services.platform_client import PlatformClient, PlatformAPIError, series_from_daily, window_start

logger = logging.getLogger(__name__)

X_API_BASE = "https://api.twitter.com/2"

# (series label, public_metrics field)
TWEET_METRICS = (
    ("Impressions", "impression_count"),
    ("Likes", "like_count"),
    ("Replies", "reply_count"),
    ("Retweets", "retweet_count"),
    ("Quotes", "quote_count"),
)


class TwitterClient(PlatformClient):
    identifier = "twitter"
    name = "X (Twitter)"

    def __init__(self, client_id: str = "", client_secret: str = ""):
        self.client_id = client_id
        self.client_secret = client_secret

    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        start = datetime.combine(window_start(window_days), time.min, tzinfo=timezone.utc)
        daily: dict[str, dict[str, int]] = {label: defaultdict(int) for label, _ in TWEET_METRICS}
        tweet_count = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            params = {
                "start_time": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "tweet.fields": "public_metrics,created_at",
                "max_results": 100,
            }
            while True:
                response = await client.get(
                    f"{X_API_BASE}/users/{account_id}/tweets",
                    params=params,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                self.raise_for_status(response)
                data = response.json()

                for tweet in data.get("data", []):
                    tweet_count += 1
                    created_at = tweet.get("created_at")
                    if not created_at:
                        continue
                    day = created_at[:10]
                    metrics = tweet.get("public_metrics", {})
                    for label, field in TWEET_METRICS:
                        daily[label][day] += metrics.get(field, 0) or 0

                next_token = data.get("meta", {}).get("next_token")
                if not next_token:
                    break
                params["pagination_token"] = next_token

        logger.info(f"Fetched {tweet_count} tweets for X account {account_id}")
        return [series_from_daily(label, daily[label]) for label, _ in TWEET_METRICS]

    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        auth = (self.client_id, self.client_secret) if self.client_secret else None
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{X_API_BASE}/oauth2/token",
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                },
                auth=auth,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        if not response.is_success:
            logger.warning(f"X token refresh failed with HTTP {response.status_code}")
            raise PlatformAPIError(
                f"X token refresh failed: {response.status_code} - {response.text[:200]}",
                provider=self.identifier,
                status_code=response.status_code,
            )

        tokens = response.json()
        return AuthTokenDetails(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_in=tokens.get("expires_in", 7200),
        )
