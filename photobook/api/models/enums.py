"""Shared enums for API models, job payloads and persistence."""

from enum import Enum


class BookStatus(str, Enum):
    """Lifecycle status of a book, as seen by the polling client."""

    DRAFT = "DRAFT"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ILLUSTRATING = "ILLUSTRATING"
    PARTIAL = "PARTIAL"


class BookPhase(str, Enum):
    """Which generation phase a status belongs to.

    COMPLETED and FAILED occur in both phases; the phase tells them apart.
    """

    STORY = "story"
    ILLUSTRATION = "illustration"


class JobKind(str, Enum):
    """Kinds of queued generation work."""

    STORY_GENERATION = "StoryGeneration"
    ILLUSTRATION_GENERATION = "IllustrationGeneration"
