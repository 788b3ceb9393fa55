"""Publish job: drives one post through the state machine via its account's adapter."""
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crosspost.models.account import Account
from crosspost.models.post import Post, PostStatus
from crosspost.queue import JobKind, JobMessage
from crosspost.services import post_state
from crosspost.services.context import JobContext
from crosspost.services.credentials import ensure_usable, flag_if_revoked
from crosspost.services.retry import Job, JobOutcome


class PublishJob(Job):
    name = "publish"

    def __init__(self, ctx: JobContext, post_id: uuid.UUID | str):
        super().__init__()
        self.ctx = ctx
        self.post_id = uuid.UUID(str(post_id))
        self.account_id: uuid.UUID | None = None
        self.claimed = False
        self.log_context["post_id"] = str(self.post_id)

    async def attempt(self, attempt: int) -> JobOutcome:
        async with self.ctx.session_factory() as session:
            if not await post_state.claim(session, self.post_id, attempt):
                status = await post_state.current_status(session, self.post_id)
                await session.rollback()
                label = status.value if status else "missing"
                return JobOutcome.skipped(f"post is {label}, nothing to publish")
            await session.commit()
            self.claimed = True

            post = await session.get(Post, self.post_id, populate_existing=True)
            account = post.account
            self.account_id = account.id
            self.log_context.update(account_id=str(account.id), platform=account.platform.value)

            adapter = self.ctx.registry.get(account.platform)
            await ensure_usable(session, account, adapter, self.ctx.settings, self.ctx.now())
            await session.commit()

        # No connection is held while the upload runs
        result = await adapter.publish(account, post)

        async with self.ctx.session_factory() as session:
            now = self.ctx.now()
            await post_state.mark_published(session, self.post_id, result, now)
            synced = await session.get(Account, self.account_id)
            synced.last_synced_at = now
            await session.commit()

        self.ctx.enqueue(JobMessage(
            JobKind.POST_METRICS,
            str(self.post_id),
            delay=self.ctx.settings.METRICS_INITIAL_DELAY_SECONDS,
        ))
        return JobOutcome.succeeded(
            "published",
            platform_post_id=result.platform_post_id,
            video_url=result.video_url,
        )

    async def on_failure(self, error: BaseException, attempt: int) -> None:
        if not self.claimed:
            return
        reason = str(error) or type(error).__name__
        async with self.ctx.session_factory() as session:
            await post_state.mark_failed(session, self.post_id, reason)
            if self.account_id is not None:
                flag_if_revoked(await session.get(Account, self.account_id), error)
            await session.commit()


async def find_due_posts(session: AsyncSession, now: datetime) -> list[uuid.UUID]:
    """Scheduled posts whose time has come."""
    result = await session.execute(
        select(Post.id)
        .where(Post.status == PostStatus.SCHEDULED, Post.scheduled_at <= now)
        .order_by(Post.scheduled_at)
    )
    return list(result.scalars().all())
