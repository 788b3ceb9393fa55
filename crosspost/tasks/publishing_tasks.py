"""Publishing tasks - CRITICAL queue.

Handles one-post publishing and the periodic scan for due scheduled posts.
"""
import structlog

from crosspost.queue import JobKind, JobMessage
from crosspost.services.context import JobContext
from crosspost.services.publishing_service import PublishJob, find_due_posts
from crosspost.tasks.celery_app import celery_app
from crosspost.tasks.worker import run_job, run_scan, task_options

logger = structlog.get_logger(__name__)


@celery_app.task(name="crosspost.tasks.publishing_tasks.publish_post", **task_options(JobKind.PUBLISH))
def publish_post(self, post_id: str):
    """Publish a post to its account's platform.

    Steps:
        1. Claim the post (draft/scheduled/failed -> processing)
        2. Check/refresh the account's credentials
        3. Call the platform adapter
        4. Record published state, enqueue the first metrics collection
        5. On transient errors: Celery retry after the configured backoff
    """
    return run_job(self, JobKind.PUBLISH, lambda ctx: PublishJob(ctx, post_id))


async def enqueue_due_posts(ctx: JobContext) -> int:
    async with ctx.session_factory() as session:
        post_ids = await find_due_posts(session, ctx.now())

    for post_id in post_ids:
        ctx.enqueue(JobMessage(JobKind.PUBLISH, str(post_id)))

    if post_ids:
        logger.info("scheduled_posts_enqueued", count=len(post_ids))
    return len(post_ids)


@celery_app.task(name="crosspost.tasks.publishing_tasks.scan_scheduled_posts")
def scan_scheduled_posts():
    """Periodic task (every 1 min): enqueue scheduled posts whose time has come."""
    return run_scan(enqueue_due_posts)
