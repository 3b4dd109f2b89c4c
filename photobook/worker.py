"""
ARQ workers for background story and illustration generation.

Each job kind has its own queue and worker process:

    arq photobook.worker.StoryWorkerSettings
    arq photobook.worker.IllustrationWorkerSettings

The task functions are thin wrappers: they validate the payload, run the
pipeline, and apply the job kind's retry policy. Pipelines never retry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import asyncpg
from arq import Retry, cron
from arq.connections import RedisSettings
from dotenv import load_dotenv

# Load environment variables before importing app modules
load_dotenv()

from photobook.api.config import (  # noqa: E402
    ILLUSTRATION_JOB_ATTEMPTS,
    ILLUSTRATION_JOB_BACKOFF_SECONDS,
    ILLUSTRATION_JOB_TIMEOUT,
    ILLUSTRATION_QUEUE_NAME,
    ILLUSTRATION_WORKER_CONCURRENCY,
    LOG_FORMAT,
    REDIS_URL,
    STALE_GENERATING_MINUTES,
    STALE_ILLUSTRATING_MINUTES,
    STORY_JOB_ATTEMPTS,
    STORY_JOB_BACKOFF_SECONDS,
    STORY_JOB_TIMEOUT,
    STORY_QUEUE_NAME,
    STORY_WORKER_CONCURRENCY,
    get_database_dsn,
)
from photobook.api.database.repository import BookRepository  # noqa: E402
from photobook.api.logging import configure_logging, story_logger  # noqa: E402
from photobook.api.models.enums import JobKind  # noqa: E402
from photobook.api.models.jobs import IllustrationGenerationJob, StoryGenerationJob  # noqa: E402
from photobook.api.services.asset_store import FileSystemAssetStore  # noqa: E402
from photobook.api.services.illustration_generation import IllustrationPipeline  # noqa: E402
from photobook.api.services.status_machine import (  # noqa: E402
    ILLUSTRATING,
    ILLUSTRATION_FAILED,
    STORY_FAILED,
    STORY_GENERATING,
    BookState,
    transition,
)
from photobook.api.services.story_generation import StoryGenerationPipeline  # noqa: E402
from photobook.config import get_openai_client, get_pacing_seconds  # noqa: E402
from photobook.core.clients import ImageGenerationClient, TextGenerationClient  # noqa: E402
from photobook.core.errors import StaleStatusError  # noqa: E402

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed attempt count with exponential backoff between attempts."""

    attempts: int
    base_delay: float

    def delay_for(self, job_try: int) -> float:
        """Delay before the attempt that follows ``job_try`` (1-based)."""
        return self.base_delay * 2 ** (job_try - 1)


STORY_RETRY_POLICY = RetryPolicy(STORY_JOB_ATTEMPTS, STORY_JOB_BACKOFF_SECONDS)
ILLUSTRATION_RETRY_POLICY = RetryPolicy(ILLUSTRATION_JOB_ATTEMPTS, ILLUSTRATION_JOB_BACKOFF_SECONDS)

# (state, minutes before it is considered abandoned, state to fail it into)
STALE_STATE_RULES = (
    (STORY_GENERATING, STALE_GENERATING_MINUTES, STORY_FAILED),
    (ILLUSTRATING, STALE_ILLUSTRATING_MINUTES, ILLUSTRATION_FAILED),
)


async def run_with_retry_policy(
    ctx: dict[str, Any],
    policy: RetryPolicy,
    job_kind: str,
    book_id: str,
    attempt: Callable[[], Awaitable[T]],
) -> T:
    """
    Run one job attempt and translate failures into the queue's retry policy.

    While attempts remain, a failure becomes ``arq.Retry`` with an exponential
    defer. On the last attempt the original exception propagates so arq
    records the job as failed.
    """
    job_try = ctx.get("job_try", 1)
    try:
        return await attempt()
    except Exception as e:
        if job_try < policy.attempts:
            defer = policy.delay_for(job_try)
            story_logger.retry_scheduled(book_id, job_kind, job_try, defer)
            raise Retry(defer=defer) from e
        logger.error(
            f"{job_kind} job for book {book_id} failed after {job_try} attempt(s): {e}",
            extra={"book_id": book_id, "job_kind": job_kind, "attempt": job_try},
        )
        raise


async def generate_story_task(ctx: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    """
    ARQ task for writing a book's story text.

    Args:
        ctx: ARQ context (job_id, job_try, and the pipeline built at startup)
        payload: A serialized StoryGenerationJob

    Returns:
        Dict with book_id and the pages that received text
    """
    job = StoryGenerationJob.model_validate(payload)
    job_id = ctx.get("job_id", "unknown")
    pipeline: StoryGenerationPipeline = ctx["story_pipeline"]

    result = await run_with_retry_policy(
        ctx,
        STORY_RETRY_POLICY,
        JobKind.STORY_GENERATION.value,
        job.book_id,
        lambda: pipeline.run(job, job_id),
    )
    if result is None:
        return {"book_id": job.book_id, "status": "skipped"}
    return {
        "book_id": job.book_id,
        "status": "completed",
        "pages_written": result.written,
        "pages_missing": result.missing,
    }


async def generate_illustrations_task(
    ctx: dict[str, Any], payload: dict[str, Any]
) -> dict[str, Any]:
    """
    ARQ task for illustrating every page of a book.

    Args:
        ctx: ARQ context (job_id, job_try, and the pipeline built at startup)
        payload: A serialized IllustrationGenerationJob

    Returns:
        Dict with book_id and per-page outcome counts
    """
    job = IllustrationGenerationJob.model_validate(payload)
    job_id = ctx.get("job_id", "unknown")
    pipeline: IllustrationPipeline = ctx["illustration_pipeline"]

    outcomes = await run_with_retry_policy(
        ctx,
        ILLUSTRATION_RETRY_POLICY,
        JobKind.ILLUSTRATION_GENERATION.value,
        job.book_id,
        lambda: pipeline.run(job, job_id),
    )
    if outcomes is None:
        return {"book_id": job.book_id, "status": "skipped"}

    counts: dict[str, int] = {}
    for outcome in outcomes:
        counts[outcome.status.value] = counts.get(outcome.status.value, 0) + 1
    return {"book_id": job.book_id, "status": "completed", "pages": counts}


async def cleanup_stale_books_task(ctx: dict[str, Any]) -> dict[str, Any]:
    """
    Cron task that fails books abandoned in an in-flight status.

    A worker crash between picking up a job and writing a terminal status
    leaves the book GENERATING or ILLUSTRATING forever. Books that have not
    changed state within the stale window are moved to FAILED through the
    state machine, so the user can re-trigger them.
    """
    pool: Optional[asyncpg.Pool] = ctx.get("db_pool")
    if pool is None:
        logger.warning("Database pool not available, skipping stale book cleanup")
        return {"cleaned": 0}

    now = datetime.now(timezone.utc)
    cleaned = 0
    try:
        async with pool.acquire() as conn:
            repo = BookRepository(conn)
            for state, minutes, failed_state in STALE_STATE_RULES:
                cutoff = now - timedelta(minutes=minutes)
                for book_id in await repo.find_stale_books(state.status, state.phase, cutoff):
                    if await _fail_stale_book(repo, book_id, state, failed_state):
                        cleaned += 1
    except Exception as e:
        logger.error(f"Failed to clean up stale books: {e}")
        return {"cleaned": cleaned, "error": str(e)}

    if cleaned > 0:
        logger.info(f"Marked {cleaned} stale book(s) as FAILED")
    return {"cleaned": cleaned}


async def _fail_stale_book(
    repo: BookRepository, book_id: str, state: BookState, failed_state: BookState
) -> bool:
    try:
        await transition(repo, book_id, failed_state, expected=state)
    except StaleStatusError:
        # A worker finished the book after the stale query ran
        return False
    logger.warning(
        f"Book {book_id} was stuck in {state}, marked {failed_state}",
        extra={"book_id": book_id},
    )
    return True


async def _cleanup_stale_redis_keys(ctx: dict[str, Any]) -> None:
    """Clean up stale in-progress keys from crashed workers.

    On worker startup, clears arq:in-progress:* keys (except cron jobs) so
    jobs that were running when the previous worker died can be picked up
    again instead of waiting for the key to expire.
    """
    redis = ctx.get("redis")
    if not redis:
        logger.warning("Redis connection not available in context, skipping Redis cleanup")
        return

    try:
        cleaned = 0
        for key in await redis.keys("arq:in-progress:*"):
            # Cron keys guard against duplicate cron runs
            if b"cron:" in key:
                continue
            await redis.delete(key)
            cleaned += 1
            logger.debug(f"Deleted stale in-progress key: {key}")

        if cleaned > 0:
            logger.info(f"Startup Redis cleanup: removed {cleaned} stale in-progress key(s)")

    except Exception as e:
        logger.error(f"Failed Redis cleanup: {e}")


async def _startup_common(ctx: dict[str, Any], max_db_connections: int) -> None:
    configure_logging(json_format=LOG_FORMAT == "json")
    await _cleanup_stale_redis_keys(ctx)

    dsn = get_database_dsn()
    if not dsn:
        raise RuntimeError("DATABASE_URL is not set; the worker cannot persist book state")

    # Process-scoped clients shared by every job this worker runs
    ctx["db_pool"] = await asyncpg.create_pool(dsn, min_size=1, max_size=max_db_connections)
    ctx["openai_client"] = get_openai_client()


async def story_startup(ctx: dict[str, Any]) -> None:
    """Called when the story worker starts up."""
    logger.info("Story worker starting up")
    await _startup_common(ctx, max_db_connections=STORY_WORKER_CONCURRENCY + 1)
    ctx["story_pipeline"] = StoryGenerationPipeline(
        ctx["db_pool"], TextGenerationClient(ctx["openai_client"])
    )


async def illustration_startup(ctx: dict[str, Any]) -> None:
    """Called when the illustration worker starts up."""
    logger.info("Illustration worker starting up")
    await _startup_common(ctx, max_db_connections=ILLUSTRATION_WORKER_CONCURRENCY + 1)
    ctx["asset_store"] = FileSystemAssetStore()
    ctx["illustration_pipeline"] = IllustrationPipeline(
        ctx["db_pool"],
        ImageGenerationClient(ctx["openai_client"]),
        ctx["asset_store"],
        pacing_seconds=get_pacing_seconds(),
    )


async def shutdown(ctx: dict[str, Any]) -> None:
    """Called when a worker shuts down."""
    logger.info("Worker shutting down")
    if ctx.get("asset_store") is not None:
        await ctx["asset_store"].aclose()
    if ctx.get("openai_client") is not None:
        await ctx["openai_client"].close()
    if ctx.get("db_pool") is not None:
        await ctx["db_pool"].close()


class StoryWorkerSettings:
    """ARQ configuration for the story worker."""

    functions = [generate_story_task]

    # Stale book cleanup runs in one worker kind only
    cron_jobs = [
        cron(cleanup_stale_books_task, minute=set(range(0, 60, 5))),
    ]

    on_startup = story_startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(REDIS_URL)
    queue_name = STORY_QUEUE_NAME

    max_jobs = STORY_WORKER_CONCURRENCY
    job_timeout = STORY_JOB_TIMEOUT
    max_tries = STORY_RETRY_POLICY.attempts

    health_check_interval = 30


class IllustrationWorkerSettings:
    """ARQ configuration for the illustration worker.

    max_jobs is pinned to 1: the image model's rate limit is shared by every
    job, and the pipeline's pacing only holds if one book is illustrated at a
    time.
    """

    functions = [generate_illustrations_task]

    on_startup = illustration_startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(REDIS_URL)
    queue_name = ILLUSTRATION_QUEUE_NAME

    max_jobs = ILLUSTRATION_WORKER_CONCURRENCY
    job_timeout = ILLUSTRATION_JOB_TIMEOUT
    max_tries = ILLUSTRATION_RETRY_POLICY.attempts

    health_check_interval = 30
