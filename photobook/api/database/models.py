"""SQLAlchemy ORM models for PostgreSQL."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class Asset(Base):
    """An uploaded photo. Pages reference assets but never own them."""

    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (Index("idx_assets_user_id", "user_id"),)


class Book(Base):
    """Book model - one creation project and its lifecycle state."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    child_name: Mapped[str] = mapped_column(String(100), nullable=False)
    page_count: Mapped[int] = mapped_column(Integer, nullable=False)
    art_style: Mapped[Optional[str]] = mapped_column(String(50))
    tone: Mapped[Optional[str]] = mapped_column(String(50))
    theme: Mapped[Optional[str]] = mapped_column(Text)
    people: Mapped[Optional[str]] = mapped_column(Text)
    objects: Mapped[Optional[str]] = mapped_column(Text)
    excitement_element: Mapped[Optional[str]] = mapped_column(Text)

    # Lifecycle: status is what clients poll, phase disambiguates COMPLETED/FAILED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="story")

    # Token usage from the last successful text-generation call
    prompt_tokens: Mapped[Optional[int]] = mapped_column(Integer)
    completion_tokens: Mapped[Optional[int]] = mapped_column(Integer)
    total_tokens: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    pages: Mapped[list["Page"]] = relationship(
        back_populates="book", cascade="all, delete-orphan", order_by="Page.page_number"
    )

    __table_args__ = (
        Index("idx_books_user_id", "user_id"),
        Index("idx_books_status", "status", "phase"),
    )


class Page(Base):
    """Page model - one sequential unit of a book. Page 0 is the title page."""

    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_title_page: Mapped[bool] = mapped_column(Boolean, default=False)
    asset_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("assets.id", ondelete="SET NULL")
    )
    original_image_url: Mapped[Optional[str]] = mapped_column(Text)
    text: Mapped[Optional[str]] = mapped_column(Text)
    text_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    generated_image_url: Mapped[Optional[str]] = mapped_column(Text)
    illustration_error: Mapped[Optional[str]] = mapped_column(Text)

    book: Mapped["Book"] = relationship(back_populates="pages")

    __table_args__ = (
        Index("idx_pages_book_id", "book_id"),
        Index("uq_book_page", "book_id", "page_number", unique=True),
    )
