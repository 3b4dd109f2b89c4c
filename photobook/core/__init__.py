"""
Core building blocks for the photobook pipeline.

Pure prompt construction, response parsing, and thin adapters around the
generative services. Nothing in here talks to the database or the queue.
"""

from .types import (
    ContentPart,
    GeneratedImage,
    ImagePart,
    IllustrationPromptInput,
    PageBinding,
    PromptSection,
    ReferenceImage,
    StoryContext,
    StyleDefinition,
    TextGenerationResult,
    TextPart,
)

__all__ = [
    "ContentPart",
    "GeneratedImage",
    "ImagePart",
    "IllustrationPromptInput",
    "PageBinding",
    "PromptSection",
    "ReferenceImage",
    "StoryContext",
    "StyleDefinition",
    "TextGenerationResult",
    "TextPart",
]
