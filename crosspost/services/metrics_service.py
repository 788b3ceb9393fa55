"""Post metrics and account analytics collection jobs."""
import uuid
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crosspost.integrations.base import PlatformAdapter
from crosspost.models.account import Account, AccountStatus
from crosspost.models.metric import COUNTER_FIELDS, Metric, MetricType
from crosspost.models.post import Post, PostStatus
from crosspost.services.context import JobContext
from crosspost.services.credentials import ensure_usable, flag_if_revoked
from crosspost.services.retry import Job, JobOutcome
from crosspost.utils.helpers import to_count

logger = structlog.get_logger(__name__)

# Account-level keys always present in analytics metadata (0 when the platform is silent)
ACCOUNT_SUMMARY_KEYS = (
    "followers",
    "engaged_users",
    "engagements",
    "profile_views",
    "website_clicks",
    "video_views",
)


def split_metrics(raw: dict[str, Any]) -> tuple[dict[str, int], dict[str, Any] | None, dict[str, Any]]:
    """Separate a platform payload into counters, demographics and extras."""
    counters = {name: to_count(raw.get(name)) for name in COUNTER_FIELDS}
    demographics = raw.get("demographics") or None
    extras = {k: v for k, v in raw.items() if k not in COUNTER_FIELDS and k != "demographics"}
    return counters, demographics, extras


class PostMetricsJob(Job):
    name = "post_metrics"

    def __init__(self, ctx: JobContext, post_id: uuid.UUID | str):
        super().__init__()
        self.ctx = ctx
        self.post_id = uuid.UUID(str(post_id))
        self.account: Account | None = None
        self.log_context["post_id"] = str(self.post_id)

    async def attempt(self, attempt: int) -> JobOutcome:
        async with self.ctx.session_factory() as session:
            post = await session.get(Post, self.post_id)
            if post is None:
                return JobOutcome.skipped("post not found")
            if post.status != PostStatus.PUBLISHED or not post.platform_post_id:
                return JobOutcome.skipped(f"post is {post.status.value}, no metrics to collect")

            account = self.account = post.account
            self.log_context.update(account_id=str(account.id), platform=account.platform.value)

            adapter = self.ctx.registry.get(account.platform)
            await ensure_usable(session, account, adapter, self.ctx.settings, self.ctx.now())
            raw = await adapter.get_post_metrics(account, post.platform_post_id)

            counters, demographics, extras = split_metrics(raw)
            metric = Metric(
                post_id=post.id,
                account_id=account.id,
                metric_type=MetricType.POST,
                date=self.ctx.now().date(),
                demographics=demographics,
                meta=extras or None,
                **counters,
            )
            session.add(metric)
            await session.commit()

        return JobOutcome.succeeded(
            "metrics stored",
            views=metric.views,
            engagement_rate=metric.engagement_rate,
        )

    async def on_failure(self, error: BaseException, attempt: int) -> None:
        await _flag_revoked_account(self.ctx, self.account, error)


class AccountAnalyticsJob(Job):
    name = "account_analytics"

    def __init__(self, ctx: JobContext, account_id: uuid.UUID | str, start: date, end: date):
        super().__init__()
        self.ctx = ctx
        self.account_id = uuid.UUID(str(account_id))
        self.start = start
        self.end = end
        self.account: Account | None = None
        self.log_context.update(
            account_id=str(self.account_id),
            period_start=start.isoformat(),
            period_end=end.isoformat(),
        )

    async def attempt(self, attempt: int) -> JobOutcome:
        async with self.ctx.session_factory() as session:
            account = self.account = await session.get(Account, self.account_id)
            if account is None:
                return JobOutcome.skipped("account not found")
            self.log_context["platform"] = account.platform.value

            adapter = self.ctx.registry.get(account.platform)
            await ensure_usable(session, account, adapter, self.ctx.settings, self.ctx.now())

            raw = await adapter.get_account_analytics(account, self.start, self.end)
            demographics = await self._demographics(adapter, account)

            counters, _, extras = split_metrics(raw)
            meta = {key: to_count(extras.pop(key, 0)) for key in ACCOUNT_SUMMARY_KEYS}
            meta["period_start"] = self.start.isoformat()
            meta["period_end"] = self.end.isoformat()
            meta.update(extras)

            metric = Metric(
                account_id=account.id,
                metric_type=MetricType.ACCOUNT,
                date=self.end,
                demographics=demographics,
                meta=meta,
                **counters,
            )
            session.add(metric)
            account.last_synced_at = self.ctx.now()
            await session.commit()

        return JobOutcome.succeeded(
            "analytics stored",
            views=metric.views,
            followers=meta["followers"],
            engagement_rate=metric.engagement_rate,
        )

    async def _demographics(self, adapter: PlatformAdapter, account: Account) -> dict[str, Any] | None:
        # Demographics never block the analytics row
        try:
            return await adapter.get_audience_insights(account) or None
        except Exception as exc:
            logger.warning(
                "demographics_unavailable",
                account_id=str(account.id),
                platform=account.platform.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    async def on_failure(self, error: BaseException, attempt: int) -> None:
        await _flag_revoked_account(self.ctx, self.account, error)


async def _flag_revoked_account(ctx: JobContext, account: Account | None, error: BaseException) -> None:
    if account is None:
        return
    async with ctx.session_factory() as session:
        if flag_if_revoked(await session.get(Account, account.id), error):
            await session.commit()


def analytics_window(now: datetime, days: int) -> tuple[date, date]:
    """The last ``days`` full days ending yesterday."""
    end = now.date() - timedelta(days=1)
    return end - timedelta(days=days - 1), end


async def find_recent_publications(session: AsyncSession, now: datetime, lookback_days: int) -> list[uuid.UUID]:
    """Published posts still young enough to be worth re-measuring."""
    result = await session.execute(
        select(Post.id).where(
            Post.status == PostStatus.PUBLISHED,
            Post.platform_post_id.is_not(None),
            Post.published_at >= now - timedelta(days=lookback_days),
        )
    )
    return list(result.scalars().all())


async def find_active_accounts(session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(select(Account.id).where(Account.status == AccountStatus.ACTIVE))
    return list(result.scalars().all())
