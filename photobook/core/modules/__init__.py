"""Prompt builders, style catalog and response parsing."""

from .illustration_prompt import MAX_PROMPT_LENGTH, build_illustration_prompt
from .illustration_styles import (
    DEFAULT_STYLE,
    ILLUSTRATION_STYLES,
    IllustrationStyleType,
    resolve_style,
)
from .story_parser import parse_story_response, strip_code_fence
from .story_prompt import SYSTEM_PROMPT, build_story_prompt

__all__ = [
    "MAX_PROMPT_LENGTH",
    "build_illustration_prompt",
    "DEFAULT_STYLE",
    "ILLUSTRATION_STYLES",
    "IllustrationStyleType",
    "resolve_style",
    "parse_story_response",
    "strip_code_fence",
    "SYSTEM_PROMPT",
    "build_story_prompt",
]
