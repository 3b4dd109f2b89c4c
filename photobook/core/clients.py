"""
Adapters around the two external generative services.

Each call is a single request/response. Neither client retries nor paces
itself: retry is the job queue's concern and pacing is the illustration
worker's concern. Both take an injected ``AsyncOpenAI`` so a worker process
can share one connection pool across jobs.
"""

import base64
import binascii
import logging
from typing import Iterable, Optional

from openai import AsyncOpenAI

from photobook.config import (
    TEXT_CONSTANTS,
    get_image_edit_model,
    get_image_model,
    get_image_size,
    get_text_model,
)
from .errors import ImageGenerationError, StoryResponseError
from .types import ContentPart, GeneratedImage, ReferenceImage, TextGenerationResult

logger = logging.getLogger(__name__)


class TextGenerationClient:
    """Vision-capable chat model that writes the story text."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        max_tokens: int = TEXT_CONSTANTS["max_tokens"],
        temperature: float = TEXT_CONSTANTS["temperature"],
    ):
        self.client = client
        self.model = model or get_text_model()
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(
        self,
        system_prompt: str,
        parts: Iterable[ContentPart],
    ) -> TextGenerationResult:
        """
        Send one system message plus a multi-part user message.

        Returns:
            The raw response text and token usage

        Raises:
            StoryResponseError: If the model returned no content
        """
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": [part.to_message_part() for part in parts]},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise StoryResponseError("Text model returned an empty response", raw=content, cleaned="")

        usage = completion.usage
        return TextGenerationResult(
            content=content,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
        )


class ImageGenerationClient:
    """
    Image model that turns one prompt into one image.

    ``generate`` draws from the prompt alone; ``edit`` re-renders an attached
    reference photo. Either way the result is returned as the provider sent
    it (inline bytes or a short-lived hosted URL) for the asset store to keep.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: Optional[str] = None,
        size: Optional[str] = None,
        edit_model: Optional[str] = None,
    ):
        self.client = client
        self.model = model or get_image_model()
        self.edit_model = edit_model or get_image_edit_model()
        self.size = size or get_image_size()

    async def generate(self, prompt: str) -> GeneratedImage:
        """
        Generate a single square image from the prompt alone.

        Raises:
            ImageGenerationError: If the response carries no image
        """
        result = await self.client.images.generate(
            model=self.model,
            prompt=prompt,
            n=1,
            size=self.size,
        )
        return _first_image(result, prompt)

    async def edit(self, prompt: str, reference: ReferenceImage) -> GeneratedImage:
        """
        Re-render a reference photo as a single square illustration.

        Raises:
            ImageGenerationError: If the response carries no image
        """
        result = await self.client.images.edit(
            model=self.edit_model,
            image=reference.to_upload(),
            prompt=prompt,
            n=1,
            size=self.size,
        )
        return _first_image(result, prompt)


def _first_image(result, prompt: str) -> GeneratedImage:
    item = result.data[0] if result.data else None
    b64_json = getattr(item, "b64_json", None)
    url = getattr(item, "url", None)
    if not b64_json and not url:
        raise ImageGenerationError("Image model response did not contain an image")

    revised = getattr(item, "revised_prompt", None)
    if revised and revised != prompt:
        logger.debug(f"Image model revised the prompt: {revised}")

    try:
        data = base64.b64decode(b64_json, validate=True) if b64_json else None
    except binascii.Error as e:
        raise ImageGenerationError(f"Image model returned undecodable image data: {e}") from e
    return GeneratedImage(data=data, url=url)
