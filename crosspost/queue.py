"""Enqueue interface: job messages handed to the Celery broker.

Callers (the authoring collaborator, Beat scans, jobs chaining follow-ups)
build a ``JobMessage`` and ``submit`` it; they never import task functions.
"""
import enum
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

import structlog

from crosspost.tasks.celery_app import celery_app
from crosspost.utils.helpers import to_seconds

logger = structlog.get_logger(__name__)


class JobKind(str, enum.Enum):
    PUBLISH = "publish"
    POST_METRICS = "post_metrics"
    ACCOUNT_ANALYTICS = "account_analytics"
    TOKEN_REFRESH = "token_refresh"


TASK_NAMES = {
    JobKind.PUBLISH: "crosspost.tasks.publishing_tasks.publish_post",
    JobKind.POST_METRICS: "crosspost.tasks.data_collection_tasks.collect_post_metrics",
    JobKind.ACCOUNT_ANALYTICS: "crosspost.tasks.data_collection_tasks.collect_account_analytics",
    JobKind.TOKEN_REFRESH: "crosspost.tasks.data_collection_tasks.refresh_account_token",
}


@dataclass(frozen=True)
class JobMessage:
    kind: JobKind
    entity_id: str
    delay: float | timedelta | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def task_name(self) -> str:
        return TASK_NAMES[self.kind]


def submit(message: JobMessage) -> str:
    """Hand a message to the broker; returns the Celery task id."""
    countdown = to_seconds(message.delay)
    result = celery_app.send_task(
        message.task_name,
        args=[str(message.entity_id)],
        kwargs=message.params,
        countdown=countdown,
    )
    logger.info(
        "job_enqueued",
        kind=message.kind.value,
        entity_id=str(message.entity_id),
        countdown=countdown,
        task_id=result.id,
    )
    return result.id


def enqueue_publish(post_id: uuid.UUID | str, delay: float | timedelta | None = None) -> str:
    return submit(JobMessage(JobKind.PUBLISH, str(post_id), delay))


def enqueue_post_metrics(post_id: uuid.UUID | str, delay: float | timedelta | None = None) -> str:
    return submit(JobMessage(JobKind.POST_METRICS, str(post_id), delay))


def enqueue_account_analytics(account_id: uuid.UUID | str, start: date, end: date) -> str:
    return submit(JobMessage(
        JobKind.ACCOUNT_ANALYTICS,
        str(account_id),
        params={"start": start.isoformat(), "end": end.isoformat()},
    ))


def enqueue_token_refresh(account_id: uuid.UUID | str) -> str:
    return submit(JobMessage(JobKind.TOKEN_REFRESH, str(account_id)))
