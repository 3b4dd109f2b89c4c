"""
Centralized domain types for the photobook pipeline.

All dataclasses that are shared between prompt builders, generation clients
and the workers are defined here to keep data flow explicit and avoid
circular imports.
"""

from dataclasses import dataclass, field
from typing import Optional, Union


# =============================================================================
# Prompt Content Types
# =============================================================================


@dataclass(frozen=True)
class TextPart:
    """A text segment of a multi-part model message."""

    text: str

    def to_message_part(self) -> dict:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    """An image reference inside a multi-part model message."""

    url: str
    detail: str = "high"  # low | high | auto

    def to_message_part(self) -> dict:
        return {"type": "image_url", "image_url": {"url": self.url, "detail": self.detail}}


ContentPart = Union[TextPart, ImagePart]


@dataclass
class PromptSection:
    """A named, independently built block of a story prompt."""

    name: str
    parts: list[ContentPart] = field(default_factory=list)

    def add_text(self, text: str) -> "PromptSection":
        self.parts.append(TextPart(text))
        return self

    def add_image(self, url: str, detail: str = "high") -> "PromptSection":
        self.parts.append(ImagePart(url, detail))
        return self


# =============================================================================
# Story Prompt Inputs
# =============================================================================


@dataclass
class StoryContext:
    """Book configuration needed to write the story text."""

    child_name: str
    book_title: str
    page_count: int
    tone: Optional[str] = None
    theme: Optional[str] = None
    people: Optional[str] = None
    objects: Optional[str] = None
    excitement_element: Optional[str] = None


@dataclass(frozen=True)
class PageBinding:
    """A story page number and the photo bound to it, if any."""

    page_number: int
    image_url: Optional[str] = None


# =============================================================================
# Illustration Prompt Inputs
# =============================================================================


@dataclass
class IllustrationPromptInput:
    """Everything the illustration prompt needs for a single page."""

    style: Optional[str]
    tone: Optional[str] = None
    page_text: Optional[str] = None
    child_name: Optional[str] = None
    theme: Optional[str] = None
    key_characters: Optional[str] = None
    special_objects: Optional[str] = None
    book_title: Optional[str] = None
    is_title_page: bool = False
    has_reference_photo: bool = True


# =============================================================================
# Generation Results
# =============================================================================


@dataclass
class TextGenerationResult:
    """Raw text model output plus token accounting for one call."""

    content: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @property
    def usage_dict(self) -> dict[str, Optional[int]]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ReferenceImage:
    """A source photo uploaded alongside an image edit request."""

    data: bytes
    filename: str
    content_type: str

    def to_upload(self) -> tuple[str, bytes, str]:
        return (self.filename, self.data, self.content_type)


@dataclass(frozen=True)
class GeneratedImage:
    """Image model output: inline bytes, a short-lived hosted URL, or both."""

    data: Optional[bytes] = None
    url: Optional[str] = None


# =============================================================================
# Style Types
# =============================================================================


@dataclass(frozen=True)
class StyleDefinition:
    """
    A named visual style sent to the image model.

    The photo hint ties colours and layout to the user's photo and is left
    out when a page is illustrated without one.
    """

    label: str
    traits: tuple[str, ...]
    photo_hint: str

    @property
    def descriptor(self) -> str:
        return ", ".join(self.traits + (self.photo_hint,))

    @property
    def text_only_descriptor(self) -> str:
        return ", ".join(self.traits)
