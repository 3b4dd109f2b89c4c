"""Pydantic models for queued job payloads.

StoryGeneration jobs carry the full prompt context and page/asset bindings
captured at enqueue time. IllustrationGeneration jobs only carry the book id;
the worker re-reads pages from the database so it always sees current text.
"""

from typing import Optional

from pydantic import BaseModel, Field

from photobook.core.types import PageBinding, StoryContext


class PromptContext(BaseModel):
    """Book configuration snapshot used to build the story prompt."""

    child_name: str
    book_title: str
    page_count: Optional[int] = None
    tone: Optional[str] = None
    theme: Optional[str] = None
    people: Optional[str] = None
    objects: Optional[str] = None
    excitement_element: Optional[str] = None


class StoryPageBindingPayload(BaseModel):
    """A story page awaiting text, and the photo bound to it."""

    page_id: str
    page_number: int = Field(..., ge=1)
    asset_id: Optional[str] = None
    original_image_url: Optional[str] = None


class StoryGenerationJob(BaseModel):
    """Payload of a StoryGeneration job."""

    user_id: str
    book_id: str
    prompt_context: PromptContext
    story_pages: list[StoryPageBindingPayload]

    def ordered_pages(self) -> list[StoryPageBindingPayload]:
        return sorted(self.story_pages, key=lambda p: p.page_number)

    def to_story_context(self) -> StoryContext:
        ctx = self.prompt_context
        return StoryContext(
            child_name=ctx.child_name,
            book_title=ctx.book_title,
            page_count=ctx.page_count or len(self.story_pages),
            tone=ctx.tone,
            theme=ctx.theme,
            people=ctx.people,
            objects=ctx.objects,
            excitement_element=ctx.excitement_element,
        )

    def to_page_bindings(self) -> list[PageBinding]:
        return [PageBinding(p.page_number, p.original_image_url) for p in self.ordered_pages()]


class IllustrationGenerationJob(BaseModel):
    """Payload of an IllustrationGeneration job."""

    user_id: str
    book_id: str
