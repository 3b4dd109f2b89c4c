"""Pytest fixtures for unit tests."""

import copy
import dataclasses
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# Set a signing key before the auth module reads it
os.environ.setdefault("JWT_SECRET", "test-secret-for-unit-tests")

from photobook.api.database.repository import (  # noqa: E402
    AssetRecord,
    BookRecord,
    PageRecord,
)
from photobook.api.dependencies import get_book_service, get_current_user  # noqa: E402
from photobook.api.main import app  # noqa: E402
from photobook.api.services.book_service import BookService  # noqa: E402
from photobook.api.services.status_machine import DRAFT, BookState  # noqa: E402

TEST_USER_ID = "user-123"
TEST_BOOK_ID = "12345678-1234-5678-1234-567812345678"


class InMemoryBookRepository:
    """Dict-backed stand-in for BookRepository with the same async surface.

    ``transaction()`` snapshots all rows and restores them if the block
    raises, so tests can observe rollback. ``fail_transitions_to`` makes
    compare-and-set writes to the given states raise.
    """

    def __init__(self):
        self.books: dict[str, BookRecord] = {}
        self.pages: dict[str, PageRecord] = {}
        self.assets: dict[str, AssetRecord] = {}
        self.updated_at: dict[str, datetime] = {}
        self.state_history: list[tuple[str, BookState]] = []
        self.fail_transitions_to: set[BookState] = set()

    # -- test helpers -------------------------------------------------------

    def add_book(
        self,
        book_id: str = TEST_BOOK_ID,
        state: BookState = DRAFT,
        user_id: str = TEST_USER_ID,
        **fields,
    ) -> BookRecord:
        book = BookRecord(
            id=book_id,
            user_id=user_id,
            title=fields.pop("title", "Max's Big Day"),
            child_name=fields.pop("child_name", "Max"),
            page_count=fields.pop("page_count", 3),
            status=state.status,
            phase=state.phase,
            **fields,
        )
        self.books[book_id] = book
        self.updated_at[book_id] = datetime.now(timezone.utc)
        return book

    def add_page(self, book_id: str, page_number: int, **fields) -> PageRecord:
        page = PageRecord(
            id=fields.pop("id", f"page-{page_number}"),
            book_id=book_id,
            page_number=page_number,
            **fields,
        )
        self.pages[page.id] = page
        return page

    def add_asset(self, asset_id: str, user_id: str = TEST_USER_ID) -> AssetRecord:
        asset = AssetRecord(
            id=asset_id,
            user_id=user_id,
            url=f"https://img.example.com/{asset_id}.jpg",
            thumbnail_url=f"https://img.example.com/{asset_id}_thumb.jpg",
        )
        self.assets[asset_id] = asset
        return asset

    def state_of(self, book_id: str = TEST_BOOK_ID) -> BookState:
        book = self.books[book_id]
        return BookState(book.status, book.phase)

    def pages_of(self, book_id: str = TEST_BOOK_ID) -> list[PageRecord]:
        return sorted(
            (p for p in self.pages.values() if p.book_id == book_id),
            key=lambda p: p.page_number,
        )

    # -- repository surface -------------------------------------------------

    @asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy((self.books, self.pages, self.state_history))
        try:
            yield
        except BaseException:
            self.books, self.pages, self.state_history = snapshot
            raise

    async def create_book(self, book_id: str, user_id: str, **fields) -> None:
        self.add_book(book_id, DRAFT, user_id, **fields)

    async def get_book(self, book_id: str) -> Optional[BookRecord]:
        book = self.books.get(book_id)
        return dataclasses.replace(book) if book else None

    async def delete_book(self, book_id: str) -> bool:
        if self.books.pop(book_id, None) is None:
            return False
        for page_id in [p.id for p in self.pages.values() if p.book_id == book_id]:
            del self.pages[page_id]
        return True

    async def get_state(self, book_id: str):
        book = self.books.get(book_id)
        return (book.status, book.phase) if book else None

    async def compare_and_set_state(self, book_id: str, expected, target) -> bool:
        target = BookState(*target)
        if target in self.fail_transitions_to:
            raise ConnectionError(f"database unavailable while writing {target}")
        book = self.books.get(book_id)
        if book is None or (book.status, book.phase) != tuple(expected):
            return False
        book.status, book.phase = target
        self.updated_at[book_id] = datetime.now(timezone.utc)
        self.state_history.append((book_id, target))
        return True

    async def save_token_usage(self, book_id, prompt_tokens, completion_tokens, total_tokens) -> None:
        book = self.books[book_id]
        book.prompt_tokens = prompt_tokens
        book.completion_tokens = completion_tokens
        book.total_tokens = total_tokens

    async def find_stale_books(self, status, phase, updated_before: datetime) -> list[str]:
        return [
            book.id
            for book in self.books.values()
            if (book.status, book.phase) == (status, phase)
            and self.updated_at[book.id] < updated_before
        ]

    async def create_pages(self, book_id: str, pages: list[dict]) -> None:
        for p in pages:
            self.add_page(book_id, **p)

    async def get_pages(self, book_id: str) -> list[PageRecord]:
        return [dataclasses.replace(p) for p in self.pages_of(book_id)]

    async def get_page(self, page_id: str) -> Optional[PageRecord]:
        page = self.pages.get(page_id)
        return dataclasses.replace(page) if page else None

    async def set_page_text(self, page_id: str, text: str, text_confirmed: bool = False) -> bool:
        page = self.pages.get(page_id)
        if page is None:
            return False
        if page.text != text:
            page.generated_image_url = None
            page.illustration_error = None
        page.text = text
        page.text_confirmed = text_confirmed
        return True

    async def set_page_confirmed(self, page_id: str, confirmed: bool) -> None:
        self.pages[page_id].text_confirmed = confirmed

    async def list_unconfirmed_story_pages(self, book_id: str) -> list[int]:
        return [
            p.page_number
            for p in self.pages_of(book_id)
            if not p.is_title_page and not p.text_confirmed
        ]

    async def save_generated_image(self, page_id: str, url: str) -> None:
        page = self.pages[page_id]
        page.generated_image_url = url
        page.illustration_error = None

    async def record_illustration_error(self, page_id: str, message: str) -> None:
        self.pages[page_id].illustration_error = message

    async def get_assets(self, user_id: str, asset_ids) -> dict[str, AssetRecord]:
        return {
            asset_id: self.assets[asset_id]
            for asset_id in asset_ids
            if asset_id in self.assets and self.assets[asset_id].user_id == user_id
        }


def create_mock_pool_and_conn():
    """Create a mocked asyncpg pool whose acquire() yields a mock connection."""
    mock_conn = AsyncMock()
    mock_pool = MagicMock()

    @asynccontextmanager
    async def mock_acquire():
        yield mock_conn

    mock_pool.acquire = mock_acquire
    mock_pool.close = AsyncMock()

    return mock_pool, mock_conn


@pytest.fixture
def fake_repo():
    """Empty in-memory repository."""
    return InMemoryBookRepository()


@pytest.fixture
def mock_pool():
    pool, _ = create_mock_pool_and_conn()
    return pool


@pytest.fixture
def mock_service():
    """Create a mock service for route tests."""
    return AsyncMock(spec=BookService)


@pytest.fixture
def client_with_mocks(mock_service):
    """TestClient with mocked service and a fixed authenticated user.

    The client is not entered as a context manager, so the lifespan (database
    and Redis connections) does not run.
    """
    app.dependency_overrides[get_book_service] = lambda: mock_service
    app.dependency_overrides[get_current_user] = lambda: TEST_USER_ID

    yield TestClient(app), mock_service

    app.dependency_overrides.clear()

