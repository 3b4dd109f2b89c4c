"""Book service for creation, generation triggers and page review."""

import logging
import uuid

from photobook.core.errors import (
    AssetNotFoundError,
    BookNotFoundError,
    InvalidStatusTransition,
    PageNotFoundError,
)

from ..arq_pool import JobQueue
from ..database.repository import BookRecord, BookRepository, PageRecord
from ..models.jobs import (
    IllustrationGenerationJob,
    PromptContext,
    StoryGenerationJob,
    StoryPageBindingPayload,
)
from ..models.requests import TITLE_PAGE_SLOT, CreateBookRequest, UpdatePageRequest
from ..models.responses import BookContentResponse, BookStatusResponse, PageResponse
from .page_confirmation import PageConfirmationLedger
from .status_machine import (
    ILLUSTRATING,
    ILLUSTRATION_FAILED,
    BookState,
    can_transition,
    transition,
)

logger = logging.getLogger(__name__)


def _page_response(page: PageRecord) -> PageResponse:
    return PageResponse(
        id=page.id,
        page_number=page.page_number,
        text=page.text,
        text_confirmed=page.text_confirmed,
        is_title_page=page.is_title_page,
        original_image_url=page.original_image_url,
        generated_image_url=page.generated_image_url,
    )


class BookService:
    """Service for creating books and driving them through generation."""

    def __init__(self, repo: BookRepository, queue: JobQueue):
        self.repo = repo
        self.queue = queue
        self.ledger = PageConfirmationLedger(repo)

    async def create_book(self, user_id: str, request: CreateBookRequest) -> tuple[str, str]:
        """
        Create a DRAFT book with its pages and enqueue story generation.

        The title page (page 0) exists only when a photo was dropped on the
        cover slot. Story pages are 1..page_count, bound to grid slots
        "0".."page_count-1".

        Returns:
            (book_id, job_id)

        Raises:
            AssetNotFoundError: If a dropped asset does not exist or is not the user's
        """
        asset_ids = {asset_id for asset_id in request.dropped_assets.values() if asset_id}
        assets = await self.repo.get_assets(user_id, asset_ids)
        missing = asset_ids - assets.keys()
        if missing:
            raise AssetNotFoundError(missing)

        book_id = str(uuid.uuid4())
        pages: list[dict] = []

        title_asset_id = request.dropped_assets.get(TITLE_PAGE_SLOT)
        if title_asset_id:
            pages.append({
                "id": str(uuid.uuid4()),
                "page_number": 0,
                "is_title_page": True,
                "asset_id": title_asset_id,
                "original_image_url": assets[title_asset_id].url,
                "text": request.book_title,
                "text_confirmed": True,
            })

        for slot in range(request.page_count):
            asset_id = request.dropped_assets.get(str(slot))
            pages.append({
                "id": str(uuid.uuid4()),
                "page_number": slot + 1,
                "asset_id": asset_id,
                "original_image_url": assets[asset_id].url if asset_id else None,
            })

        async with self.repo.transaction():
            await self.repo.create_book(
                book_id=book_id,
                user_id=user_id,
                title=request.book_title,
                child_name=request.child_name,
                page_count=request.page_count,
                art_style=request.art_style,
                tone=request.story_tone,
                theme=request.theme,
                people=request.people,
                objects=request.objects,
                excitement_element=request.excitement_element,
            )
            await self.repo.create_pages(book_id, pages)

        job = StoryGenerationJob(
            user_id=user_id,
            book_id=book_id,
            prompt_context=PromptContext(
                child_name=request.child_name,
                book_title=request.book_title,
                page_count=request.page_count,
                tone=request.story_tone,
                theme=request.theme,
                people=request.people,
                objects=request.objects,
                excitement_element=request.excitement_element,
            ),
            story_pages=[
                StoryPageBindingPayload(
                    page_id=p["id"],
                    page_number=p["page_number"],
                    asset_id=p["asset_id"],
                    original_image_url=p["original_image_url"],
                )
                for p in pages
                if not p.get("is_title_page")
            ],
        )

        try:
            job_id = await self.queue.enqueue_story(job)
        except Exception:
            logger.error(
                f"Failed to enqueue story job, reverting book {book_id}",
                extra={"book_id": book_id},
                exc_info=True,
            )
            await self.repo.delete_book(book_id)
            raise

        return book_id, job_id

    async def start_illustrations(self, user_id: str, book_id: str) -> str:
        """
        Move a reviewed book to ILLUSTRATING and enqueue illustration.

        The status is written before the job is enqueued so a polling client
        never sees the worker start on a book that still looks idle.

        Raises:
            BookNotFoundError: If the book does not exist or is not the user's
            InvalidStatusTransition: If the book cannot enter ILLUSTRATING
            PagesNotConfirmedError: If any story page is unconfirmed
        """
        book = await self._get_owned_book(user_id, book_id)
        current = BookState(book.status, book.phase)
        if not can_transition(current, ILLUSTRATING):
            raise InvalidStatusTransition(book_id, current, ILLUSTRATING)

        await self.ledger.ensure_ready_for_illustration(book_id)
        await transition(self.repo, book_id, ILLUSTRATING, expected=current)

        try:
            return await self.queue.enqueue_illustrations(
                IllustrationGenerationJob(user_id=user_id, book_id=book_id)
            )
        except Exception:
            logger.error(
                f"Failed to enqueue illustration job for book {book_id}",
                extra={"book_id": book_id},
                exc_info=True,
            )
            await transition(self.repo, book_id, ILLUSTRATION_FAILED, expected=ILLUSTRATING)
            raise

    async def get_status(self, user_id: str, book_id: str) -> BookStatusResponse:
        book = await self._get_owned_book(user_id, book_id)
        return BookStatusResponse(status=book.status, phase=book.phase)

    async def get_content(self, user_id: str, book_id: str) -> BookContentResponse:
        book = await self._get_owned_book(user_id, book_id)
        pages = await self.repo.get_pages(book_id)
        return BookContentResponse(
            book_id=book.id,
            status=book.status,
            phase=book.phase,
            pages=[_page_response(p) for p in pages],
        )

    async def update_page(
        self, user_id: str, book_id: str, page_id: str, request: UpdatePageRequest
    ) -> PageResponse:
        await self._get_owned_page(user_id, book_id, page_id)
        page = await self.ledger.update_page(page_id, request.text, request.text_confirmed)
        return _page_response(page)

    async def confirm_page(self, user_id: str, book_id: str, page_id: str) -> PageResponse:
        await self._get_owned_page(user_id, book_id, page_id)
        page = await self.ledger.confirm_page(page_id)
        return _page_response(page)

    async def _get_owned_book(self, user_id: str, book_id: str) -> BookRecord:
        # Someone else's book is reported as missing, not forbidden
        book = await self.repo.get_book(book_id)
        if book is None or book.user_id != user_id:
            raise BookNotFoundError(book_id)
        return book

    async def _get_owned_page(self, user_id: str, book_id: str, page_id: str) -> PageRecord:
        await self._get_owned_book(user_id, book_id)
        page = await self.repo.get_page(page_id)
        if page is None or page.book_id != book_id:
            raise PageNotFoundError(page_id)
        return page
