"""Pydantic models for API requests."""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

TITLE_PAGE_SLOT = "title-page"


class CreateBookRequest(BaseModel):
    """Request body for creating a book and starting story generation."""

    child_name: str = Field(..., min_length=1, max_length=100)
    book_title: str = Field(..., min_length=1, max_length=200)
    page_count: Literal[8, 12, 16]
    art_style: Optional[str] = None
    story_tone: Optional[str] = None
    theme: str = ""
    people: str = ""
    objects: str = ""
    excitement_element: str = ""
    dropped_assets: dict[str, Optional[str]] = Field(
        default_factory=dict,
        description="Grid slot -> asset id. Story slots are '0'..'N-1'; the cover uses 'title-page'.",
        examples=[{"title-page": "asset-1", "0": "asset-2", "1": None}],
    )

    @field_validator("dropped_assets")
    @classmethod
    def _slots_are_known(cls, value: dict[str, Optional[str]]) -> dict[str, Optional[str]]:
        for slot in value:
            if slot != TITLE_PAGE_SLOT and not slot.isdigit():
                raise ValueError(f"Unknown storyboard slot: {slot}")
        return value


class UpdatePageRequest(BaseModel):
    """Request body for editing a page's text."""

    text: str = Field(..., min_length=1)
    text_confirmed: Optional[bool] = None
