"""Pydantic models for API responses."""

from typing import Optional

from pydantic import BaseModel, Field

from .enums import BookPhase, BookStatus


class BookStatusResponse(BaseModel):
    """Minimal polling surface."""

    status: BookStatus
    phase: BookPhase


class PageResponse(BaseModel):
    """A single page of a book."""

    id: str
    page_number: int
    text: Optional[str] = None
    text_confirmed: bool = False
    is_title_page: bool = False
    original_image_url: Optional[str] = None
    generated_image_url: Optional[str] = None


class BookContentResponse(BaseModel):
    """Ordered pages of a book."""

    book_id: str
    status: BookStatus
    phase: BookPhase
    pages: list[PageResponse]


class JobAcceptedResponse(BaseModel):
    """Response when a generation job has been enqueued."""

    book_id: str
    job_id: str
    status: BookStatus
    message: str = Field(
        default="Generation started. Poll GET /books/{id}/status for progress."
    )
