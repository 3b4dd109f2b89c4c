"""
Image generation configuration for the photobook pipeline.

Illustrations are generated one page at a time. The external service
enforces a requests-per-minute ceiling, so the illustration worker sleeps
for ``pacing_seconds`` before every call.

Pages with a source photo are illustrated through the edit endpoint with
the photo attached; pages without one fall back to plain generation.
"""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

IMAGE_CONSTANTS = {
    "model": os.getenv("IMAGE_MODEL", "dall-e-3"),
    "edit_model": os.getenv("IMAGE_EDIT_MODEL", "gpt-image-1"),  # must accept a reference image
    "size": "1024x1024",  # Fixed square output
    "pacing_seconds": float(os.getenv("ILLUSTRATION_PACING_SECONDS", "12")),  # 5 requests/minute
}


def get_image_model() -> str:
    """Get the image model ID used for text-only generation."""
    return IMAGE_CONSTANTS["model"]


def get_image_edit_model() -> str:
    """Get the image model ID used to re-render a reference photo."""
    return IMAGE_CONSTANTS["edit_model"]


def get_image_size() -> str:
    return IMAGE_CONSTANTS["size"]


def get_pacing_seconds() -> float:
    """Minimum delay before each image generation call."""
    return IMAGE_CONSTANTS["pacing_seconds"]
