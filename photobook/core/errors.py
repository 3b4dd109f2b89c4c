"""
Exception taxonomy for the photobook pipeline.

Workers raise these and let them propagate to the job queue; the API layer
translates them into HTTP responses.
"""

from typing import Iterable, Optional


class PhotobookError(Exception):
    """Base class for all pipeline errors."""


# =============================================================================
# Generative output errors
# =============================================================================


class StoryResponseError(PhotobookError):
    """The text model returned something that is not a valid story mapping."""

    def __init__(self, message: str, raw: Optional[str] = None, cleaned: Optional[str] = None):
        self.raw = raw
        self.cleaned = cleaned
        super().__init__(message)


class EmptyStoryError(PhotobookError):
    """The parsed story covered none of the expected pages."""


class ImageGenerationError(PhotobookError):
    """The image model call succeeded but returned no usable image."""


class IllustrationGenerationError(PhotobookError):
    """No page of the book could be illustrated."""


# =============================================================================
# Lookup errors
# =============================================================================


class BookNotFoundError(PhotobookError):
    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"Book {book_id} not found")


class PageNotFoundError(PhotobookError):
    def __init__(self, page_id: str):
        self.page_id = page_id
        super().__init__(f"Page {page_id} not found")


class AssetNotFoundError(PhotobookError):
    def __init__(self, asset_ids: Iterable[str]):
        self.asset_ids = sorted(asset_ids)
        super().__init__(f"Assets not found: {', '.join(self.asset_ids)}")


# =============================================================================
# State machine and confirmation errors
# =============================================================================


class InvalidStatusTransition(PhotobookError):
    """The requested edge does not exist in the book lifecycle."""

    def __init__(self, book_id: str, current, target):
        self.book_id = book_id
        self.current = current
        self.target = target
        super().__init__(f"Book {book_id}: cannot move from {current} to {target}")


class StaleStatusError(PhotobookError):
    """The book changed state between the read and the compare-and-set write."""

    def __init__(self, book_id: str, expected, target):
        self.book_id = book_id
        self.expected = expected
        self.target = target
        super().__init__(
            f"Book {book_id} is no longer {expected}; refusing to move to {target}"
        )


class BookBusyError(PhotobookError):
    """The book is being generated and cannot be edited right now."""

    def __init__(self, book_id: str, status: str):
        self.book_id = book_id
        self.status = status
        super().__init__(f"Book {book_id} is {status}; pages cannot be edited")


class PageNotConfirmableError(PhotobookError):
    def __init__(self, page_id: str):
        self.page_id = page_id
        super().__init__(f"Page {page_id} has no text to confirm")


class PagesNotConfirmedError(PhotobookError):
    def __init__(self, book_id: str, page_numbers: Iterable[int]):
        self.book_id = book_id
        self.page_numbers = sorted(page_numbers)
        super().__init__(
            f"Book {book_id} has unconfirmed pages: {', '.join(map(str, self.page_numbers))}"
        )
