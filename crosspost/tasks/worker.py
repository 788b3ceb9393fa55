"""Per-invocation dependency construction and the Celery <-> executor bridge."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from celery import Task

from crosspost.config import Settings, settings
from crosspost.database import create_session_factory, create_worker_engine
from crosspost.integrations.registry import build_registry
from crosspost.integrations.resilience import RateLimiter
from crosspost.queue import JobKind
from crosspost.services.context import JobContext
from crosspost.services.retry import Decision, Job, RetryExecutor, RetryPolicy
from crosspost.utils.redis_client import close_redis, create_redis

# Margin on top of the per-attempt timeout before Celery kills the worker process
HARD_LIMIT_MARGIN = 30


def task_options(kind: JobKind, config: Settings = settings) -> dict:
    """Celery decorator options matching a job kind's retry policy."""
    policy = RetryPolicy.for_kind(kind, config)
    return {
        "bind": True,
        "max_retries": policy.max_attempts - 1,
        "default_retry_delay": policy.backoff_seconds,
        "time_limit": policy.timeout_seconds + HARD_LIMIT_MARGIN,
    }


@asynccontextmanager
async def job_context(config: Settings = settings) -> AsyncIterator[JobContext]:
    """Build engine, Redis, rate limiter and registry for one job; dispose afterwards."""
    engine = create_worker_engine(config)
    redis = create_redis(config.REDIS_URL)
    rate_limiter = None
    if config.RATE_LIMIT_ENABLED:
        rate_limiter = RateLimiter(
            redis,
            config.RATE_LIMITS,
            window=config.RATE_LIMIT_WINDOW,
            prefix=config.RATE_LIMIT_PREFIX,
        )
    try:
        yield JobContext(
            session_factory=create_session_factory(engine),
            registry=build_registry(config, rate_limiter),
            settings=config,
        )
    finally:
        await close_redis(redis)
        await engine.dispose()


def run_job(task: Task, kind: JobKind, make_job: Callable[[JobContext], Job]) -> dict:
    """Execute one attempt of a job inside a Celery task.

    Celery's own retry counter is the attempt number, so a retry survives a
    worker restart. Returns the outcome as a JSON-able dict.
    """
    attempt = task.request.retries + 1
    policy = RetryPolicy.for_kind(kind, settings)

    async def _run():
        async with job_context() as ctx:
            return await RetryExecutor(policy).execute(make_job(ctx), attempt)

    outcome = asyncio.run(_run())
    if outcome.decision is Decision.RETRY:
        raise task.retry(countdown=outcome.delay, exc=outcome.error, max_retries=policy.max_attempts - 1)
    return outcome.as_dict()


def run_scan(scan: Callable[[JobContext], Awaitable[int]]) -> int:
    """Run a periodic selection pass; returns how many jobs it enqueued."""

    async def _run():
        async with job_context() as ctx:
            return await scan(ctx)

    return asyncio.run(_run())
