"""
Parsing and validation of the text model's story response.

The model is asked for a bare JSON object but frequently wraps it in a
markdown code fence. The cleaned string must decode to a mapping from
numeric-string page keys to non-empty page text.
"""

import json
import logging
import re
from typing import Annotated

from pydantic import StringConstraints, TypeAdapter, ValidationError

from ..errors import StoryResponseError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)

PageKey = Annotated[str, StringConstraints(pattern=r"^\d+$")]
PageText = Annotated[str, StringConstraints(min_length=1)]

_story_adapter: TypeAdapter[dict[str, str]] = TypeAdapter(dict[PageKey, PageText])


def strip_code_fence(raw: str) -> str:
    """Return the JSON object inside a markdown fence, or the trimmed input."""
    match = _FENCE_PATTERN.search(raw)
    return match.group(1) if match else raw.strip()


def parse_story_response(raw: str) -> dict[str, str]:
    """
    Parse the model output into a page-number -> text mapping.

    Raises:
        StoryResponseError: If the output is empty, not JSON, or the wrong
            shape. The error carries both the raw and cleaned strings.
    """
    if not raw or not raw.strip():
        raise StoryResponseError("Text model returned an empty response", raw=raw, cleaned="")

    cleaned = strip_code_fence(raw)

    try:
        decoded = json.loads(cleaned)
        story = _story_adapter.validate_python(decoded, strict=True)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(
            f"Failed to parse or validate story response: {e}",
            extra={"raw_result": raw, "json_string": cleaned},
        )
        if isinstance(e, ValidationError):
            details = json.dumps(e.errors(include_url=False, include_context=False), default=str)
        else:
            details = str(e)
        raise StoryResponseError(
            f"Failed to parse or validate AI response: {details}",
            raw=raw,
            cleaned=cleaned,
        ) from e

    return story
