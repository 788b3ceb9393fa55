"""Data collection tasks - MEDIUM queue.

Handles post metrics, account analytics and token refresh, plus the Beat
scans that fan those jobs out.
"""
from datetime import date

import structlog

from crosspost.config import settings
from crosspost.queue import JobKind, JobMessage
from crosspost.services.context import JobContext
from crosspost.services.metrics_service import (
    AccountAnalyticsJob,
    PostMetricsJob,
    analytics_window,
    find_active_accounts,
    find_recent_publications,
)
from crosspost.services.token_service import TokenRefreshJob, select_expiring_accounts
from crosspost.tasks.celery_app import celery_app
from crosspost.tasks.worker import run_job, run_scan, task_options
from crosspost.utils.helpers import utc_now

logger = structlog.get_logger(__name__)


# ── Post metrics ──

@celery_app.task(
    name="crosspost.tasks.data_collection_tasks.collect_post_metrics",
    **task_options(JobKind.POST_METRICS),
)
def collect_post_metrics(self, post_id: str):
    """Fetch and store one metrics snapshot for a published post."""
    return run_job(self, JobKind.POST_METRICS, lambda ctx: PostMetricsJob(ctx, post_id))


async def enqueue_post_metrics_sweep(ctx: JobContext) -> int:
    async with ctx.session_factory() as session:
        post_ids = await find_recent_publications(session, ctx.now(), ctx.settings.METRICS_LOOKBACK_DAYS)

    for post_id in post_ids:
        ctx.enqueue(JobMessage(JobKind.POST_METRICS, str(post_id)))

    logger.info("post_metrics_enqueued", count=len(post_ids))
    return len(post_ids)


@celery_app.task(name="crosspost.tasks.data_collection_tasks.schedule_post_metrics")
def schedule_post_metrics():
    """Periodic task (METRICS_FETCH_INTERVAL): re-measure recently published posts."""
    return run_scan(enqueue_post_metrics_sweep)


# ── Account analytics ──

@celery_app.task(
    name="crosspost.tasks.data_collection_tasks.collect_account_analytics",
    **task_options(JobKind.ACCOUNT_ANALYTICS),
)
def collect_account_analytics(self, account_id: str, start: str | None = None, end: str | None = None):
    """Fetch account analytics + demographics for a date range (defaults to the last window)."""
    if start and end:
        period = date.fromisoformat(start), date.fromisoformat(end)
    else:
        period = analytics_window(utc_now(), settings.ANALYTICS_WINDOW_DAYS)
    return run_job(
        self,
        JobKind.ACCOUNT_ANALYTICS,
        lambda ctx: AccountAnalyticsJob(ctx, account_id, *period),
    )


async def enqueue_account_analytics_sweep(ctx: JobContext) -> int:
    start, end = analytics_window(ctx.now(), ctx.settings.ANALYTICS_WINDOW_DAYS)
    async with ctx.session_factory() as session:
        account_ids = await find_active_accounts(session)

    for account_id in account_ids:
        ctx.enqueue(JobMessage(
            JobKind.ACCOUNT_ANALYTICS,
            str(account_id),
            params={"start": start.isoformat(), "end": end.isoformat()},
        ))

    logger.info("account_analytics_enqueued", count=len(account_ids), start=start.isoformat(), end=end.isoformat())
    return len(account_ids)


@celery_app.task(name="crosspost.tasks.data_collection_tasks.schedule_account_analytics")
def schedule_account_analytics():
    """Periodic task (daily): one analytics job per active account."""
    return run_scan(enqueue_account_analytics_sweep)


# ── Token refresh ──

@celery_app.task(
    name="crosspost.tasks.data_collection_tasks.refresh_account_token",
    **task_options(JobKind.TOKEN_REFRESH),
)
def refresh_account_token(self, account_id: str):
    """Refresh one account's OAuth token."""
    return run_job(self, JobKind.TOKEN_REFRESH, lambda ctx: TokenRefreshJob(ctx, account_id))


async def enqueue_expiring_tokens(ctx: JobContext) -> int:
    async with ctx.session_factory() as session:
        accounts = await select_expiring_accounts(session, ctx.settings, ctx.now())

    for account in accounts:
        ctx.enqueue(JobMessage(JobKind.TOKEN_REFRESH, str(account.id)))

    logger.info("token_refresh_enqueued", count=len(accounts))
    return len(accounts)


@celery_app.task(name="crosspost.tasks.data_collection_tasks.refresh_expiring_tokens")
def refresh_expiring_tokens():
    """Periodic task (every 1 hour): refresh tokens expiring within the window."""
    return run_scan(enqueue_expiring_tokens)
