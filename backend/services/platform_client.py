"""Abstract social platform client and its error types.

A platform client wraps one provider's HTTP API. The analytics aggregator
only needs two calls from it: fetch the account's metric series for a
trailing window, and exchange a refresh token for a new access token.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import httpx

from models.analytics import AuthTokenDetails, MetricPoint, MetricSeries

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid Credentials"


class PlatformError(Exception):
    """Base error raised by platform clients."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class PlatformAuthError(PlatformError):
    """The provider rejected the access token (HTTP 401 / invalid credentials)."""

    code = 401


class PlatformAPIError(PlatformError):
    """Any other non-success response from the provider."""

    def __init__(self, message: str, provider: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, provider)
        self.code = status_code
        self.status_code = status_code


def is_auth_failure(error: BaseException) -> bool:
    """True for errors that a token refresh might fix.

    Matches a ``code``/``status_code`` of 401 or a message containing
    "Invalid Credentials", whatever the exception type.
    """
    if isinstance(error, PlatformAuthError):
        return True
    for attr in ("code", "status_code"):
        if getattr(error, attr, None) == 401:
            return True
    message = getattr(error, "message", None) or str(error)
    return INVALID_CREDENTIALS in message


def window_start(window_days: int, today: Optional[date] = None) -> date:
    """First day of a trailing window ending today (UTC)."""
    today = today or datetime.now(timezone.utc).date()
    return today - timedelta(days=window_days)


def series_from_daily(label: str, daily: dict[str, float]) -> MetricSeries:
    """Build a date-ordered series from a {YYYY-MM-DD: total} mapping."""
    return MetricSeries(
        label=label,
        data=[MetricPoint(date=day, total=daily[day]) for day in sorted(daily)],
    )


class PlatformClient(ABC):
    """Per-provider API client."""

    identifier: str = ""
    name: str = ""
    timeout: float = 20

    @abstractmethod
    async def analytics(
        self, account_id: str, access_token: str, window_days: int
    ) -> list[MetricSeries]:
        """Fetch metric series for the trailing ``window_days`` days.

        Raises:
            PlatformAuthError: the access token was rejected.
            PlatformAPIError: any other provider failure.
        """
        ...

    @abstractmethod
    async def refresh_token(self, refresh_token: str) -> AuthTokenDetails:
        """Exchange a refresh token for a new access token."""
        ...

    def raise_for_status(self, response: httpx.Response) -> None:
        """Map a provider response onto the platform error types."""
        if response.is_success:
            return
        body = response.text
        if response.status_code == 401 or INVALID_CREDENTIALS in body:
            logger.warning(f"{self.name} rejected the access token (HTTP {response.status_code})")
            raise PlatformAuthError(
                f"{self.name} rejected the access token: {body[:200]}",
                provider=self.identifier,
            )
        logger.warning(f"{self.name} API error {response.status_code}")
        raise PlatformAPIError(
            f"{self.name} API error {response.status_code}: {body[:200]}",
            provider=self.identifier,
            status_code=response.status_code,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identifier}>"
