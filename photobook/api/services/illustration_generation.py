"""
Per-page illustration of a book.

Called from the illustration worker's arq task, which runs with concurrency 1.
Pages are processed in page-number order with a fixed pacing delay before
every image call to stay under the image model's requests-per-minute ceiling.

Pages with a source photo are re-rendered from it through the image edit
endpoint; pages without one are drawn from the prompt alone. Each page is
attempted independently. Pages that already have an illustration
are skipped, so re-triggering a PARTIAL or FAILED book only regenerates the
pages that are still missing.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import asyncpg

from photobook.config import get_pacing_seconds
from photobook.core.clients import ImageGenerationClient
from photobook.core.errors import IllustrationGenerationError
from photobook.core.modules import build_illustration_prompt
from photobook.core.types import IllustrationPromptInput

from ..database.repository import BookRecord, BookRepository, PageRecord
from ..logging import story_logger
from ..models.enums import JobKind
from ..models.jobs import IllustrationGenerationJob
from .asset_store import FileSystemAssetStore, generated_image_key
from .status_machine import (
    ILLUSTRATING,
    ILLUSTRATION_COMPLETED,
    ILLUSTRATION_FAILED,
    ILLUSTRATION_PARTIAL,
    BookState,
    get_state,
    transition,
)

JOB_KIND = JobKind.ILLUSTRATION_GENERATION.value

# Stored on the page when an illustration attempt fails
MAX_ERROR_LENGTH = 500


class PageOutcomeStatus(str, Enum):
    ILLUSTRATED = "illustrated"
    ALREADY_ILLUSTRATED = "already_illustrated"
    UNCONFIRMED = "unconfirmed"
    FAILED = "failed"


@dataclass
class PageOutcome:
    """Result of one page's illustration attempt within a job."""

    page_number: int
    status: PageOutcomeStatus
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def has_illustration(self) -> bool:
        return self.status in (PageOutcomeStatus.ILLUSTRATED, PageOutcomeStatus.ALREADY_ILLUSTRATED)


def final_state(outcomes: list[PageOutcome]) -> BookState:
    """COMPLETED if every page has an illustration, PARTIAL if some, FAILED if none."""
    illustrated = sum(1 for o in outcomes if o.has_illustration)
    if illustrated == len(outcomes):
        return ILLUSTRATION_COMPLETED
    if illustrated:
        return ILLUSTRATION_PARTIAL
    return ILLUSTRATION_FAILED


def build_page_prompt(book: BookRecord, page: PageRecord) -> str:
    return build_illustration_prompt(
        IllustrationPromptInput(
            style=book.art_style,
            tone=book.tone,
            page_text=None if page.is_title_page else page.text,
            child_name=book.child_name,
            theme=book.theme,
            key_characters=book.people,
            special_objects=book.objects,
            book_title=book.title,
            is_title_page=page.is_title_page,
            has_reference_photo=bool(page.original_image_url),
        )
    )


class IllustrationPipeline:
    """Turns an IllustrationGeneration job into stored per-page illustrations."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        image_client: ImageGenerationClient,
        asset_store: FileSystemAssetStore,
        pacing_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.pool = pool
        self.image_client = image_client
        self.asset_store = asset_store
        self.pacing_seconds = get_pacing_seconds() if pacing_seconds is None else pacing_seconds
        self.sleep = sleep

    async def run(
        self, job: IllustrationGenerationJob, job_id: str = ""
    ) -> Optional[list[PageOutcome]]:
        """
        Illustrate every page of the book that does not have an image yet.

        Returns:
            Per-page outcomes, or None if the job was stale (book missing or
            not ILLUSTRATING) and nothing was touched

        Raises:
            IllustrationGenerationError: If no page ended up illustrated
            Exception: Errors outside the per-page loop, after the book is
                marked FAILED
        """
        book_id = job.book_id
        start_time = time.time()
        story_logger.job_started(JOB_KIND, book_id, job_id)

        async with self.pool.acquire() as conn:
            repo = BookRepository(conn)

            book = await repo.get_book(book_id)
            if book is None:
                story_logger.logger.warning(
                    f"Book {book_id} not found, ignoring illustration job",
                    extra={"book_id": book_id, "job_id": job_id},
                )
                return None
            if BookState(book.status, book.phase) != ILLUSTRATING:
                story_logger.logger.warning(
                    f"Book {book_id} is {book.status.value} ({book.phase.value}), "
                    "ignoring stale illustration job",
                    extra={"book_id": book_id, "job_id": job_id},
                )
                return None

            try:
                pages = await repo.get_pages(book_id)
                outcomes = [await self._illustrate_page(repo, book, page) for page in pages]
                target = final_state(outcomes)
                await transition(repo, book_id, target, expected=ILLUSTRATING)
            except Exception as e:
                story_logger.generation_failed(book_id, JOB_KIND, e)
                await self._mark_failed(repo, book_id)
                raise

        if target == ILLUSTRATION_FAILED:
            error = IllustrationGenerationError(f"No page of book {book_id} could be illustrated")
            story_logger.generation_failed(book_id, JOB_KIND, error)
            raise error

        story_logger.generation_completed(book_id, JOB_KIND, time.time() - start_time)
        return outcomes

    async def _illustrate_page(
        self, repo: BookRepository, book: BookRecord, page: PageRecord
    ) -> PageOutcome:
        if page.generated_image_url:
            story_logger.page_skipped(book.id, page.page_number, "already illustrated")
            return PageOutcome(
                page.page_number, PageOutcomeStatus.ALREADY_ILLUSTRATED, url=page.generated_image_url
            )

        if not page.is_title_page and not page.text_confirmed:
            story_logger.page_skipped(book.id, page.page_number, "text not confirmed")
            return PageOutcome(page.page_number, PageOutcomeStatus.UNCONFIRMED)

        try:
            prompt = build_page_prompt(book, page)
            reference = None
            if page.original_image_url:
                reference = await self.asset_store.fetch_reference(
                    page.original_image_url, f"page_{page.page_number:02d}_original"
                )
            await self.sleep(self.pacing_seconds)
            if reference is not None:
                image = await self.image_client.edit(prompt, reference)
            else:
                image = await self.image_client.generate(prompt)
            url = await self.asset_store.store_image(
                image, generated_image_key(book.id, page.page_number)
            )
            await repo.save_generated_image(page.id, url)
        except Exception as e:
            story_logger.page_failed(book.id, page.page_number, e)
            message = f"{type(e).__name__}: {e}"[:MAX_ERROR_LENGTH]
            await repo.record_illustration_error(page.id, message)
            return PageOutcome(page.page_number, PageOutcomeStatus.FAILED, error=message)

        story_logger.page_illustrated(book.id, page.page_number, url)
        return PageOutcome(page.page_number, PageOutcomeStatus.ILLUSTRATED, url=url)

    async def _mark_failed(self, repo: BookRepository, book_id: str) -> None:
        # Only a book this job still owns is failed; anything else was moved on purpose
        try:
            if await get_state(repo, book_id) == ILLUSTRATING:
                await transition(repo, book_id, ILLUSTRATION_FAILED, expected=ILLUSTRATING)
        except Exception as e:
            story_logger.logger.error(
                f"Could not mark book {book_id} as FAILED: {e}",
                extra={"book_id": book_id, "error_type": type(e).__name__},
            )
