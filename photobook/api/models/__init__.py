"""Pydantic models for API requests, responses and job payloads."""

from .enums import BookPhase, BookStatus, JobKind
from .jobs import (
    IllustrationGenerationJob,
    PromptContext,
    StoryGenerationJob,
    StoryPageBindingPayload,
)
from .requests import CreateBookRequest, UpdatePageRequest
from .responses import (
    BookContentResponse,
    BookStatusResponse,
    JobAcceptedResponse,
    PageResponse,
)

__all__ = [
    "BookPhase",
    "BookStatus",
    "JobKind",
    "IllustrationGenerationJob",
    "PromptContext",
    "StoryGenerationJob",
    "StoryPageBindingPayload",
    "CreateBookRequest",
    "UpdatePageRequest",
    "BookContentResponse",
    "BookStatusResponse",
    "JobAcceptedResponse",
    "PageResponse",
]
