"""Database module for book persistence."""

from .db import Base, engine, init_db
from .models import Asset, Book, Page
from .repository import AssetRecord, BookRecord, BookRepository, PageRecord

__all__ = [
    # Schema bootstrap
    "init_db",
    "engine",
    "Base",
    # Models
    "Asset",
    "Book",
    "Page",
    # Repository
    "BookRepository",
    "AssetRecord",
    "BookRecord",
    "PageRecord",
]
