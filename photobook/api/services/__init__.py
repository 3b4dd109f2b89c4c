"""Services for book lifecycle, generation pipelines and asset storage."""

from .asset_store import FileSystemAssetStore, generated_image_key
from .book_service import BookService
from .illustration_generation import IllustrationPipeline, PageOutcome, PageOutcomeStatus
from .page_confirmation import PageConfirmationLedger
from .status_machine import BookState, can_transition, transition
from .story_generation import StoryGenerationPipeline, StoryResult

__all__ = [
    "FileSystemAssetStore",
    "generated_image_key",
    "BookService",
    "IllustrationPipeline",
    "PageOutcome",
    "PageOutcomeStatus",
    "PageConfirmationLedger",
    "BookState",
    "can_transition",
    "transition",
    "StoryGenerationPipeline",
    "StoryResult",
]
