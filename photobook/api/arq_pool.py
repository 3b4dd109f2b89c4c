"""ARQ Redis pool and job enqueueing.

The pool is a process-scoped singleton created in the API lifespan. The
enqueue helpers route each job kind to its own queue so the story and
illustration workers can run with different concurrency limits.
"""

import logging
from typing import Optional

from arq import ArqRedis

from .config import ILLUSTRATION_QUEUE_NAME, STORY_QUEUE_NAME
from .models.jobs import IllustrationGenerationJob, StoryGenerationJob

logger = logging.getLogger(__name__)

STORY_TASK_NAME = "generate_story_task"
ILLUSTRATION_TASK_NAME = "generate_illustrations_task"

# Global ARQ Redis pool (set during API startup)
_pool: Optional[ArqRedis] = None


def set_pool(pool: ArqRedis) -> None:
    """Set the ARQ pool. Called during API startup."""
    global _pool
    _pool = pool


def get_pool() -> ArqRedis:
    """Get the ARQ Redis pool. Raises if not initialized."""
    if _pool is None:
        raise RuntimeError(
            "ARQ pool not initialized. Ensure the API server is running."
        )
    return _pool


async def close_pool() -> None:
    """Close the ARQ pool. Called during API shutdown."""
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None


class JobQueue:
    """Enqueues generation jobs onto their per-kind arq queues."""

    def __init__(self, pool: ArqRedis):
        self.pool = pool

    async def enqueue_story(self, job: StoryGenerationJob) -> str:
        """Enqueue a StoryGeneration job and return its queue job id."""
        return await self._enqueue(STORY_TASK_NAME, STORY_QUEUE_NAME, job.model_dump(mode="json"))

    async def enqueue_illustrations(self, job: IllustrationGenerationJob) -> str:
        """Enqueue an IllustrationGeneration job and return its queue job id."""
        return await self._enqueue(
            ILLUSTRATION_TASK_NAME, ILLUSTRATION_QUEUE_NAME, job.model_dump(mode="json")
        )

    async def _enqueue(self, task_name: str, queue_name: str, payload: dict) -> str:
        job = await self.pool.enqueue_job(task_name, payload, _queue_name=queue_name)
        if job is None:
            raise RuntimeError(f"Failed to enqueue {task_name} for book {payload.get('book_id')}")
        logger.info(
            f"Enqueued {task_name} job {job.job_id}",
            extra={"book_id": payload.get("book_id"), "job_id": job.job_id},
        )
        return job.job_id
