"""
Pytest fixtures for analytics tests.

Provides:
- A per-test SQLite database (aiosqlite) with the schema created
- A TokenStore bound to that database
- FakePlatformClient, a scripted stand-in for provider HTTP clients
- A factory for users, integrations and posts
"""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet

# Settings are read once on first import, so the environment is set up first
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/unused.db"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["ANALYTICS_CACHE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["DEBUG"] = "true"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from models import Base, Integration, IntegrationType, Post, PostState, User, UserRole
from models.analytics import AuthTokenDetails, MetricSeries
from services.platform_client import PlatformClient, series_from_daily
from services.token_store import TokenStore


def daily(label: str, values: dict[str, float]) -> MetricSeries:
    """Shorthand for a metric series from {date: total}."""
    return series_from_daily(label, values)


class FakePlatformClient(PlatformClient):
    """Scripted platform client.

    ``errors`` are raised by successive analytics() calls before ``series``
    is returned. Every call is recorded.
    """

    def __init__(
        self,
        identifier: str,
        series: list[MetricSeries] | None = None,
        errors: list[Exception] | None = None,
        refreshed: AuthTokenDetails | None = None,
        refresh_error: Exception | None = None,
        delay: float = 0,
    ):
        self.identifier = identifier
        self.name = identifier.title()
        self.series = series or []
        self.errors = list(errors or [])
        self.refreshed = refreshed or AuthTokenDetails(
            access_token="new-access-token",
            refresh_token="new-refresh-token",
            expires_in=3600,
        )
        self.refresh_error = refresh_error
        self.delay = delay
        self.analytics_calls: list[tuple[str, str, int]] = []
        self.refresh_calls: list[str] = []

    async def analytics(self, account_id, access_token, window_days):
        self.analytics_calls.append((account_id, access_token, window_days))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return self.series

    async def refresh_token(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refreshed


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, session_factory, token_store: TokenStore):
        self.session_factory = session_factory
        self.token_store = token_store
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def _add(self, obj):
        async with self.session_factory() as db:
            db.add(obj)
            await db.commit()
        return obj

    async def user(self, email: str = "owner@example.com", role: UserRole = UserRole.MEMBER, **kwargs) -> User:
        return await self._add(User(email=email, name=email.split("@")[0], role=role, **kwargs))

    async def integration(
        self,
        user: User,
        provider: str = "twitter",
        access_token: str = "access-token",
        refresh_token: str | None = "refresh-token",
        **kwargs,
    ) -> Integration:
        kwargs.setdefault("internal_id", f"{provider}-{self._clock.timestamp()}")
        kwargs.setdefault("name", f"{provider.title()} Account")
        kwargs.setdefault("type", IntegrationType.SOCIAL.value)
        return await self._add(Integration(
            user_id=user.id,
            provider_identifier=provider,
            token=self.token_store.encrypt(access_token),
            refresh_token=self.token_store.encrypt(refresh_token) if refresh_token else None,
            created_at=self._tick(),
            **kwargs,
        ))

    async def post(
        self,
        user: User,
        integration: Integration,
        publish_date: datetime,
        content: str = "Hello world",
        state: PostState = PostState.PUBLISHED,
        **kwargs,
    ) -> Post:
        return await self._add(Post(
            user_id=user.id,
            integration_id=integration.id,
            content=content,
            state=state,
            publish_date=publish_date,
            **kwargs,
        ))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'analytics.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def token_store(session_factory):
    return TokenStore(os.environ["TOKEN_ENCRYPTION_KEY"], session_factory)


@pytest.fixture
def factory(session_factory, token_store):
    return Factory(session_factory, token_store)
