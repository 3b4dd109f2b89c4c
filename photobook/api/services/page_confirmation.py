"""
Per-page text confirmation.

A page's ``text_confirmed`` flag is the human approval gate in front of
illustration. Any text change clears it unless the caller confirms in the same
call. A text change also discards the page's generated illustration so the
next illustration run redraws it. Title pages carry the book title and are
always treated as confirmed.
"""

import logging
from typing import Optional

from photobook.core.errors import (
    BookBusyError,
    PageNotConfirmableError,
    PageNotFoundError,
    PagesNotConfirmedError,
)

from ..database.repository import BookRepository, PageRecord
from .status_machine import IN_FLIGHT_STATES, get_state

logger = logging.getLogger(__name__)


class PageConfirmationLedger:
    """Edits and confirms page text on behalf of the reviewing user."""

    def __init__(self, repo: BookRepository):
        self.repo = repo

    async def edit_page_text(self, page_id: str, text: str) -> PageRecord:
        """Overwrite a page's text. Clears confirmation on story pages."""
        return await self.update_page(page_id, text)

    async def update_page(
        self,
        page_id: str,
        text: Optional[str] = None,
        text_confirmed: Optional[bool] = None,
    ) -> PageRecord:
        """
        Apply a page update.

        A text change always clears confirmation unless ``text_confirmed=True``
        is sent with it. Sending only ``text_confirmed`` toggles the flag on the
        existing text.

        Raises:
            PageNotFoundError: If the page does not exist
            BookBusyError: If a worker currently owns the book
            PageNotConfirmableError: If confirming a page whose text is empty
        """
        page = await self._get_editable_page(page_id)

        new_text = page.text if text is None else text
        if page.is_title_page:
            confirmed = True
        elif text is not None and text != page.text:
            confirmed = text_confirmed is True
        elif text_confirmed is not None:
            confirmed = text_confirmed
        else:
            confirmed = page.text_confirmed

        if confirmed and not page.is_title_page and not (new_text or "").strip():
            raise PageNotConfirmableError(page_id)

        await self.repo.set_page_text(page_id, new_text or "", text_confirmed=confirmed)
        if (new_text or "") != page.text:
            page.generated_image_url = None
            page.illustration_error = None
        page.text = new_text
        page.text_confirmed = confirmed
        logger.info(
            f"Page {page.page_number} updated (confirmed={confirmed})",
            extra={"book_id": page.book_id, "page_number": page.page_number},
        )
        return page

    async def confirm_page(self, page_id: str) -> PageRecord:
        """Mark a page's current text as approved.

        Raises:
            PageNotConfirmableError: If the page has no text
        """
        page = await self._get_editable_page(page_id)
        if page.is_title_page:
            return page
        if not (page.text or "").strip():
            raise PageNotConfirmableError(page_id)

        await self.repo.set_page_confirmed(page_id, True)
        page.text_confirmed = True
        return page

    async def ensure_ready_for_illustration(self, book_id: str) -> None:
        """Raise unless every story page of the book is confirmed."""
        unconfirmed = await self.repo.list_unconfirmed_story_pages(book_id)
        if unconfirmed:
            raise PagesNotConfirmedError(book_id, unconfirmed)

    async def _get_editable_page(self, page_id: str) -> PageRecord:
        page = await self.repo.get_page(page_id)
        if page is None:
            raise PageNotFoundError(page_id)

        state = await get_state(self.repo, page.book_id)
        if state in IN_FLIGHT_STATES:
            raise BookBusyError(page.book_id, state.status.value)
        return page
