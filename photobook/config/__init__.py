"""
Configuration module for the generative services.

Re-exports text and image configuration.
"""

from .llm import LLM_TIMEOUT, TEXT_CONSTANTS, get_openai_client, get_text_model
from .image import (
    IMAGE_CONSTANTS,
    get_image_edit_model,
    get_image_model,
    get_image_size,
    get_pacing_seconds,
)

__all__ = [
    # Text
    "LLM_TIMEOUT",
    "TEXT_CONSTANTS",
    "get_openai_client",
    "get_text_model",
    # Image
    "IMAGE_CONSTANTS",
    "get_image_edit_model",
    "get_image_model",
    "get_image_size",
    "get_pacing_seconds",
]
