"""
Story text generation for a single book.

Called from the story worker's arq task. One text-model call per job attempt;
retry is the queue's concern, so any failure marks the book FAILED and
propagates.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import asyncpg

from photobook.core.clients import TextGenerationClient
from photobook.core.errors import (
    BookNotFoundError,
    EmptyStoryError,
    InvalidStatusTransition,
    StaleStatusError,
)
from photobook.core.modules import SYSTEM_PROMPT, build_story_prompt, parse_story_response

from ..database.repository import BookRepository
from ..logging import story_logger
from ..models.enums import JobKind
from ..models.jobs import StoryGenerationJob
from .status_machine import STORY_COMPLETED, STORY_FAILED, STORY_GENERATING, transition

JOB_KIND = JobKind.STORY_GENERATION.value


@dataclass
class StoryResult:
    """Which expected pages received text from the model."""

    written: list[int] = field(default_factory=list)
    missing: list[int] = field(default_factory=list)


class StoryGenerationPipeline:
    """Turns a StoryGeneration job into persisted page text."""

    def __init__(self, pool: asyncpg.Pool, text_client: TextGenerationClient):
        self.pool = pool
        self.text_client = text_client

    async def run(self, job: StoryGenerationJob, job_id: str = "") -> Optional[StoryResult]:
        """
        Generate and persist text for every page the job expects.

        Returns:
            The per-page result, or None if the book was missing or no longer
            accepts a story job

        Raises:
            StoryResponseError: If the model output is not a valid story mapping
            EmptyStoryError: If none of the expected pages received text
            Exception: Upstream client errors, after the book is marked FAILED
        """
        book_id = job.book_id
        start_time = time.time()
        story_logger.job_started(JOB_KIND, book_id, job_id)

        async with self.pool.acquire() as conn:
            repo = BookRepository(conn)
            try:
                await transition(repo, book_id, STORY_GENERATING)
            except (BookNotFoundError, InvalidStatusTransition, StaleStatusError) as e:
                story_logger.logger.warning(
                    f"Ignoring story job for book {book_id}: {e}",
                    extra={"book_id": book_id, "job_id": job_id},
                )
                return None

            try:
                result = await self._generate(repo, job)
            except Exception as e:
                story_logger.generation_failed(book_id, JOB_KIND, e)
                await self._mark_failed(repo, book_id)
                raise

        story_logger.generation_completed(book_id, JOB_KIND, time.time() - start_time)
        return result

    async def _generate(self, repo: BookRepository, job: StoryGenerationJob) -> StoryResult:
        book_id = job.book_id
        pages = job.ordered_pages()

        parts = build_story_prompt(job.to_story_context(), job.to_page_bindings())
        generation_start = time.time()
        response = await self.text_client.generate(SYSTEM_PROMPT, parts)
        story_logger.stage_completed(book_id, "text_generation", time.time() - generation_start)

        story = parse_story_response(response.content)

        result = StoryResult()
        texts: list[tuple[str, str]] = []
        for page in pages:
            text = story.get(str(page.page_number))
            if text is None:
                result.missing.append(page.page_number)
                story_logger.page_skipped(book_id, page.page_number, "no text in model response")
                continue
            texts.append((page.page_id, text))
            result.written.append(page.page_number)

        if pages and not texts:
            raise EmptyStoryError(
                f"Model response for book {book_id} covered none of pages "
                f"{[p.page_number for p in pages]}"
            )

        # Page text, usage and the COMPLETED write land together or not at all
        async with repo.transaction():
            for page_id, text in texts:
                await repo.set_page_text(page_id, text, text_confirmed=False)
            await repo.save_token_usage(
                book_id,
                response.prompt_tokens,
                response.completion_tokens,
                response.total_tokens,
            )
            await transition(repo, book_id, STORY_COMPLETED, expected=STORY_GENERATING)

        return result

    async def _mark_failed(self, repo: BookRepository, book_id: str) -> None:
        # Best-effort: never let this mask the original error
        try:
            await transition(repo, book_id, STORY_FAILED)
        except Exception as e:
            story_logger.logger.error(
                f"Could not mark book {book_id} as FAILED: {e}",
                extra={"book_id": book_id, "error_type": type(e).__name__},
            )
