"""Post lifecycle: allowed transitions and the status writes that enforce them.

Every write is a conditional UPDATE on the current status, so two workers
holding the same post id can never both move it.
"""
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crosspost.integrations.base import PublishResult
from crosspost.models.post import Post, PostStatus

TRANSITIONS: dict[PostStatus, frozenset[PostStatus]] = {
    PostStatus.DRAFT: frozenset({PostStatus.PROCESSING}),
    PostStatus.SCHEDULED: frozenset({PostStatus.PROCESSING}),
    PostStatus.FAILED: frozenset({PostStatus.PROCESSING}),
    PostStatus.PROCESSING: frozenset({PostStatus.PUBLISHED, PostStatus.FAILED}),
    PostStatus.PUBLISHED: frozenset(),
}

CLAIMABLE = tuple(status for status, targets in TRANSITIONS.items() if PostStatus.PROCESSING in targets)


class InvalidTransition(Exception):
    def __init__(self, current: PostStatus | None, target: PostStatus):
        current_label = current.value if current else "missing"
        super().__init__(f"Cannot move post from {current_label} to {target.value}")
        self.current = current
        self.target = target


def can_transition(current: PostStatus, target: PostStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


async def current_status(session: AsyncSession, post_id: uuid.UUID) -> PostStatus | None:
    return (await session.execute(select(Post.status).where(Post.id == post_id))).scalar_one_or_none()


async def claim(session: AsyncSession, post_id: uuid.UUID, attempt: int) -> bool:
    """Move the post into processing.

    The first attempt claims from draft/scheduled/failed; later attempts of the
    same job only continue a post they already hold in processing. False means
    someone else owns the post (or it is already terminal).
    """
    sources = CLAIMABLE if attempt <= 1 else (PostStatus.PROCESSING,)
    result = await session.execute(
        update(Post)
        .where(Post.id == post_id, Post.status.in_(sources))
        .values(status=PostStatus.PROCESSING)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _move(session: AsyncSession, post_id: uuid.UUID, target: PostStatus, **values) -> None:
    result = await session.execute(
        update(Post)
        .where(Post.id == post_id, Post.status == PostStatus.PROCESSING)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition(await current_status(session, post_id), target)


async def mark_published(session: AsyncSession, post_id: uuid.UUID, result: PublishResult, now: datetime) -> None:
    await _move(
        session,
        post_id,
        PostStatus.PUBLISHED,
        platform_post_id=result.platform_post_id,
        video_url=result.video_url,
        published_at=now,
        failure_reason=None,
    )


async def mark_failed(session: AsyncSession, post_id: uuid.UUID, reason: str) -> None:
    await _move(
        session,
        post_id,
        PostStatus.FAILED,
        failure_reason=reason,
        platform_post_id=None,
        published_at=None,
    )
