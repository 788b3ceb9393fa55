"""Retry/backoff executor shared by every job type.

A job attempt either returns an outcome (succeeded or skipped) or raises.
The executor bounds the attempt with a timeout, classifies adapter errors and
hands back a ``JobOutcome`` telling the worker to finish, retry or stop.
"""
import abc
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any

import structlog

from crosspost.config import Settings
from crosspost.integrations.errors import PlatformError, TransientApiError
from crosspost.queue import JobKind

logger = structlog.get_logger(__name__)


class Decision(str, enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class JobOutcome:
    decision: Decision
    detail: str | None = None
    delay: float | None = None
    error: PlatformError | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, detail: str | None = None, **data: Any) -> "JobOutcome":
        return cls(Decision.SUCCEEDED, detail, data=data)

    @classmethod
    def skipped(cls, reason: str) -> "JobOutcome":
        return cls(Decision.SKIPPED, reason)

    @classmethod
    def retry(cls, error: PlatformError, delay: float) -> "JobOutcome":
        return cls(Decision.RETRY, error.message, delay=delay, error=error)

    @classmethod
    def failed(cls, error: PlatformError) -> "JobOutcome":
        return cls(Decision.FAILED, error.message, error=error)

    @property
    def finished(self) -> bool:
        return self.decision is not Decision.RETRY

    def as_dict(self) -> dict[str, Any]:
        return {"status": self.decision.value, "detail": self.detail, **self.data}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff_seconds: float
    timeout_seconds: float

    @classmethod
    def for_kind(cls, kind: JobKind, settings: Settings) -> "RetryPolicy":
        if kind is JobKind.PUBLISH:
            return cls(
                settings.PUBLISH_MAX_ATTEMPTS,
                settings.PUBLISH_BACKOFF_SECONDS,
                settings.PUBLISH_TIMEOUT_SECONDS,
            )
        if kind is JobKind.TOKEN_REFRESH:
            return cls(
                settings.TOKEN_REFRESH_MAX_ATTEMPTS,
                settings.TOKEN_REFRESH_BACKOFF_SECONDS,
                settings.TOKEN_REFRESH_TIMEOUT_SECONDS,
            )
        return cls(
            settings.METRICS_MAX_ATTEMPTS,
            settings.METRICS_BACKOFF_SECONDS,
            settings.METRICS_TIMEOUT_SECONDS,
        )


class Job(abc.ABC):
    """One unit of background work, executed once per attempt."""

    name: str

    def __init__(self):
        # Identifiers attached to every log entry; jobs add to it as they load state
        self.log_context: dict[str, Any] = {}

    @abc.abstractmethod
    async def attempt(self, attempt: int) -> JobOutcome:
        """Run one attempt; return succeeded/skipped or raise."""

    async def on_failure(self, error: BaseException, attempt: int) -> None:
        """Terminal-failure hook, run once when the job will not be retried."""


class RetryExecutor:
    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    async def execute(self, job: Job, attempt: int) -> JobOutcome:
        try:
            outcome = await asyncio.wait_for(job.attempt(attempt), timeout=self.policy.timeout_seconds)
        except asyncio.TimeoutError:
            error = TransientApiError(
                f"{job.name} attempt timed out after {self.policy.timeout_seconds}s",
                job.log_context.get("platform"),
            )
            return await self._handle_error(job, error, attempt)
        except PlatformError as exc:
            return await self._handle_error(job, exc, attempt)
        except Exception as exc:
            logger.exception("job_crashed", job=job.name, attempt=attempt, error=str(exc), **job.log_context)
            await job.on_failure(exc, attempt)
            raise

        event = "job_succeeded" if outcome.decision is Decision.SUCCEEDED else "job_skipped"
        logger.info(event, job=job.name, attempt=attempt, detail=outcome.detail, **{**job.log_context, **outcome.data})
        return outcome

    async def _handle_error(self, job: Job, error: PlatformError, attempt: int) -> JobOutcome:
        fields = {
            "job": job.name,
            "attempt": attempt,
            "max_attempts": self.policy.max_attempts,
            "error": error.message,
            "error_type": type(error).__name__,
            **job.log_context,
        }
        fields.setdefault("platform", error.platform)

        if error.retryable and attempt < self.policy.max_attempts:
            logger.warning("job_retry_scheduled", delay=self.policy.backoff_seconds, **fields)
            return JobOutcome.retry(error, self.policy.backoff_seconds)

        logger.error("job_failed", **fields)
        await job.on_failure(error, attempt)
        return JobOutcome.failed(error)
