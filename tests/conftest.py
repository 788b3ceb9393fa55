"""Shared test fixtures with in-memory SQLite."""
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("ENCRYPTION_KEY", "0" * 64)

import pytest
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from crosspost.config import Settings
from crosspost.integrations.base import PlatformAdapter, PublishResult, TokenGrant
from crosspost.integrations.registry import AdapterRegistry
from crosspost.models import Account, AccountStatus, Base, Platform, Post, PostStatus
from crosspost.services.context import JobContext

# --- SQLite compatibility: compile PostgreSQL types for SQLite ---

@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "VARCHAR(36)"


TEST_KEY = "0" * 64
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _set_sqlite_pragma(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENCRYPTION_KEY=TEST_KEY,
        MEDIA_ROOT=str(tmp_path),
        MEDIA_BASE_URL="https://media.example.test/social",
        YOUTUBE_CLIENT_ID="yt-client",
        YOUTUBE_CLIENT_SECRET="yt-secret",
    )


# --- Scripted adapter ---

class FakeAdapter(PlatformAdapter):
    """Adapter whose responses are queued per method; exceptions in the queue are raised."""

    def __init__(self, platform: Platform):
        super().__init__()
        self.platform = platform
        self.scripts: dict[str, list] = {}
        self.calls: list[tuple[str, object]] = []

    def script(self, method: str, *effects) -> "FakeAdapter":
        self.scripts.setdefault(method, []).extend(effects)
        return self

    def _next(self, method: str, default):
        queue = self.scripts.get(method)
        effect = queue.pop(0) if queue else default
        if isinstance(effect, BaseException):
            raise effect
        return effect

    async def publish(self, account, post):
        self.calls.append(("publish", post.id))
        return self._next("publish", PublishResult(f"{self.platform.value}-1", f"https://{self.platform.value}.test/v/1"))

    async def get_post_metrics(self, account, platform_post_id):
        self.calls.append(("get_post_metrics", platform_post_id))
        return self._next("get_post_metrics", {})

    async def get_account_analytics(self, account, start, end):
        self.calls.append(("get_account_analytics", (start, end)))
        return self._next("get_account_analytics", {})

    async def get_audience_insights(self, account):
        self.calls.append(("get_audience_insights", account.id))
        return self._next("get_audience_insights", {})

    async def refresh_access_token(self, account):
        self.calls.append(("refresh_access_token", account.id))
        return self._next("refresh_access_token", TokenGrant("fresh-access", None, NOW + timedelta(hours=1)))

    def called(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


class EnqueueRecorder(list):
    def __call__(self, message):
        self.append(message)
        return f"task-{len(self)}"


@pytest.fixture
def adapters() -> dict[Platform, FakeAdapter]:
    return {p: FakeAdapter(p) for p in (Platform.YOUTUBE, Platform.INSTAGRAM, Platform.FACEBOOK)}


@pytest.fixture
def job_ctx(session_factory, test_settings, adapters) -> JobContext:
    return JobContext(
        session_factory=session_factory,
        registry=AdapterRegistry(adapters),
        settings=test_settings,
        enqueue=EnqueueRecorder(),
        clock=lambda: NOW,
    )


# --- Factories ---

async def create_account(
    db: AsyncSession, platform: Platform = Platform.YOUTUBE, **overrides,
) -> Account:
    values = {
        "id": uuid.uuid4(),
        "platform": platform,
        "platform_user_id": f"{platform.value}-user-{uuid.uuid4().hex[:6]}",
        "username": "crosspost_test",
        "access_token": "access-token",
        "refresh_token": "refresh-token",
        "token_expires_at": NOW + timedelta(days=30),
        "status": AccountStatus.ACTIVE,
    }
    values.update(overrides)
    account = Account(**values)
    db.add(account)
    await db.commit()
    return account


async def create_post(db: AsyncSession, account: Account, **overrides) -> Post:
    values = {
        "id": uuid.uuid4(),
        "account_id": account.id,
        "title": "Launch video",
        "description": "Our new product",
        "hashtags": ["launch", "video"],
        "media_path": "videos/launch.mp4",
        "status": PostStatus.DRAFT,
    }
    values.update(overrides)
    post = Post(**values)
    db.add(post)
    await db.commit()
    return post
