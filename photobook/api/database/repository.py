"""Repository for book, page and asset persistence using raw asyncpg SQL."""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

import asyncpg

from ..models.enums import BookPhase, BookStatus


@dataclass
class AssetRecord:
    id: str
    user_id: str
    url: str
    thumbnail_url: Optional[str] = None


@dataclass
class BookRecord:
    """A book row, mapped from the database."""

    id: str
    user_id: str
    title: str
    child_name: str
    page_count: int
    status: BookStatus
    phase: BookPhase
    art_style: Optional[str] = None
    tone: Optional[str] = None
    theme: Optional[str] = None
    people: Optional[str] = None
    objects: Optional[str] = None
    excitement_element: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @classmethod
    def from_record(cls, record) -> "BookRecord":
        return cls(
            id=record["id"],
            user_id=record["user_id"],
            title=record["title"],
            child_name=record["child_name"],
            page_count=record["page_count"],
            status=BookStatus(record["status"]),
            phase=BookPhase(record["phase"]),
            art_style=record["art_style"],
            tone=record["tone"],
            theme=record["theme"],
            people=record["people"],
            objects=record["objects"],
            excitement_element=record["excitement_element"],
            prompt_tokens=record["prompt_tokens"],
            completion_tokens=record["completion_tokens"],
            total_tokens=record["total_tokens"],
        )


@dataclass
class PageRecord:
    """A page row, mapped from the database."""

    id: str
    book_id: str
    page_number: int
    is_title_page: bool = False
    asset_id: Optional[str] = None
    original_image_url: Optional[str] = None
    text: Optional[str] = None
    text_confirmed: bool = False
    generated_image_url: Optional[str] = None
    illustration_error: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "PageRecord":
        return cls(
            id=record["id"],
            book_id=record["book_id"],
            page_number=record["page_number"],
            is_title_page=record["is_title_page"],
            asset_id=record["asset_id"],
            original_image_url=record["original_image_url"],
            text=record["text"],
            text_confirmed=record["text_confirmed"],
            generated_image_url=record["generated_image_url"],
            illustration_error=record["illustration_error"],
        )


def _rows_affected(result: str) -> int:
    # asyncpg returns command tags like "UPDATE 1" or "DELETE 0"
    return int(result.split()[-1])


class BookRepository:
    """Repository for book lifecycle persistence operations."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    def transaction(self):
        """Transaction context for writes that must land together."""
        return self.conn.transaction()

    # =========================================================================
    # Books
    # =========================================================================

    async def create_book(
        self,
        book_id: str,
        user_id: str,
        title: str,
        child_name: str,
        page_count: int,
        art_style: Optional[str] = None,
        tone: Optional[str] = None,
        theme: Optional[str] = None,
        people: Optional[str] = None,
        objects: Optional[str] = None,
        excitement_element: Optional[str] = None,
    ) -> None:
        """Create a new book record in DRAFT status."""
        await self.conn.execute(
            """
            INSERT INTO books
                (id, user_id, title, child_name, page_count, art_style, tone,
                 theme, people, objects, excitement_element, status, phase,
                 created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, NOW(), NOW())
            """,
            book_id,
            user_id,
            title,
            child_name,
            page_count,
            art_style,
            tone,
            theme,
            people,
            objects,
            excitement_element,
            BookStatus.DRAFT.value,
            BookPhase.STORY.value,
        )

    async def get_book(self, book_id: str) -> Optional[BookRecord]:
        row = await self.conn.fetchrow("SELECT * FROM books WHERE id = $1", book_id)
        return BookRecord.from_record(row) if row else None

    async def delete_book(self, book_id: str) -> bool:
        """Delete a book and its pages (cascades via FK)."""
        result = await self.conn.execute("DELETE FROM books WHERE id = $1", book_id)
        return _rows_affected(result) != 0

    async def get_state(self, book_id: str) -> Optional[tuple[BookStatus, BookPhase]]:
        """Read the (status, phase) pair of a book, or None if it does not exist."""
        row = await self.conn.fetchrow(
            "SELECT status, phase FROM books WHERE id = $1", book_id
        )
        if not row:
            return None
        return BookStatus(row["status"]), BookPhase(row["phase"])

    async def compare_and_set_state(
        self,
        book_id: str,
        expected: tuple[BookStatus, BookPhase],
        target: tuple[BookStatus, BookPhase],
    ) -> bool:
        """Write a new state only if the book is still in the expected one.

        Returns:
            True if the row was updated, False if another writer got there first
        """
        result = await self.conn.execute(
            """
            UPDATE books
            SET status = $4, phase = $5, updated_at = NOW()
            WHERE id = $1 AND status = $2 AND phase = $3
            """,
            book_id,
            expected[0].value,
            expected[1].value,
            target[0].value,
            target[1].value,
        )
        return _rows_affected(result) == 1

    async def save_token_usage(
        self,
        book_id: str,
        prompt_tokens: Optional[int],
        completion_tokens: Optional[int],
        total_tokens: Optional[int],
    ) -> None:
        """Overwrite the token counters with the usage of the latest call."""
        await self.conn.execute(
            """
            UPDATE books
            SET prompt_tokens = $2, completion_tokens = $3, total_tokens = $4
            WHERE id = $1
            """,
            book_id,
            prompt_tokens,
            completion_tokens,
            total_tokens,
        )

    async def find_stale_books(
        self, status: BookStatus, phase: BookPhase, updated_before: datetime
    ) -> list[str]:
        """IDs of books that have sat in a state since before the cutoff."""
        rows = await self.conn.fetch(
            """
            SELECT id FROM books
            WHERE status = $1 AND phase = $2 AND updated_at < $3
            """,
            status.value,
            phase.value,
            updated_before,
        )
        return [row["id"] for row in rows]

    # =========================================================================
    # Pages
    # =========================================================================

    async def create_pages(self, book_id: str, pages: list[dict]) -> None:
        """Batch insert page rows for a new book."""
        page_data = [
            (
                p["id"],
                book_id,
                p["page_number"],
                p.get("is_title_page", False),
                p.get("asset_id"),
                p.get("original_image_url"),
                p.get("text"),
                p.get("text_confirmed", False),
            )
            for p in pages
        ]
        await self.conn.executemany(
            """
            INSERT INTO pages
                (id, book_id, page_number, is_title_page, asset_id,
                 original_image_url, text, text_confirmed)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            page_data,
        )

    async def get_pages(self, book_id: str) -> list[PageRecord]:
        """All pages of a book in authoritative page-number order."""
        rows = await self.conn.fetch(
            "SELECT * FROM pages WHERE book_id = $1 ORDER BY page_number",
            book_id,
        )
        return [PageRecord.from_record(row) for row in rows]

    async def get_page(self, page_id: str) -> Optional[PageRecord]:
        row = await self.conn.fetchrow("SELECT * FROM pages WHERE id = $1", page_id)
        return PageRecord.from_record(row) if row else None

    async def set_page_text(
        self, page_id: str, text: str, text_confirmed: bool = False
    ) -> bool:
        """
        Overwrite a page's text and set its confirmation flag.

        A page whose text actually changes loses its generated illustration
        and any recorded illustration error, so the next illustration run
        draws it again from the new text.
        """
        result = await self.conn.execute(
            """
            UPDATE pages SET
                generated_image_url = CASE WHEN text IS DISTINCT FROM $2
                    THEN NULL ELSE generated_image_url END,
                illustration_error = CASE WHEN text IS DISTINCT FROM $2
                    THEN NULL ELSE illustration_error END,
                text = $2,
                text_confirmed = $3
            WHERE id = $1
            """,
            page_id,
            text,
            text_confirmed,
        )
        return _rows_affected(result) == 1

    async def set_page_confirmed(self, page_id: str, confirmed: bool) -> None:
        await self.conn.execute(
            "UPDATE pages SET text_confirmed = $2 WHERE id = $1",
            page_id,
            confirmed,
        )

    async def list_unconfirmed_story_pages(self, book_id: str) -> list[int]:
        """Page numbers of story pages (title page excluded) still awaiting confirmation."""
        rows = await self.conn.fetch(
            """
            SELECT page_number FROM pages
            WHERE book_id = $1 AND NOT is_title_page AND NOT text_confirmed
            ORDER BY page_number
            """,
            book_id,
        )
        return [row["page_number"] for row in rows]

    async def save_generated_image(self, page_id: str, url: str) -> None:
        """Persist a page's illustration and clear any earlier failure."""
        await self.conn.execute(
            """
            UPDATE pages
            SET generated_image_url = $2, illustration_error = NULL
            WHERE id = $1
            """,
            page_id,
            url,
        )

    async def record_illustration_error(self, page_id: str, message: str) -> None:
        await self.conn.execute(
            "UPDATE pages SET illustration_error = $2 WHERE id = $1",
            page_id,
            message,
        )

    # =========================================================================
    # Assets
    # =========================================================================

    async def get_assets(self, user_id: str, asset_ids: Iterable[str]) -> dict[str, AssetRecord]:
        """Fetch the given assets, restricted to those owned by the user."""
        ids = list(set(asset_ids))
        if not ids:
            return {}
        rows = await self.conn.fetch(
            """
            SELECT id, user_id, url, thumbnail_url FROM assets
            WHERE user_id = $1 AND id = ANY($2::text[])
            """,
            user_id,
            ids,
        )
        return {
            row["id"]: AssetRecord(
                id=row["id"],
                user_id=row["user_id"],
                url=row["url"],
                thumbnail_url=row["thumbnail_url"],
            )
            for row in rows
        }
