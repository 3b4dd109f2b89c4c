"""
Text generation configuration for the photobook pipeline.

Story text comes from a single vision-capable chat model call per book.
There is no retry here: a failed call fails the job attempt and
the job queue decides whether to run it again.
"""

import os

from dotenv import load_dotenv
from openai import AsyncOpenAI

# Load environment variables from .env file
load_dotenv()

# Timeout for a single text generation call (seconds)
LLM_TIMEOUT = 120

TEXT_CONSTANTS = {
    "model": os.getenv("TEXT_MODEL", "gpt-4o"),
    "max_tokens": 1500,
    "temperature": 0.7,
}


def get_openai_client() -> AsyncOpenAI:
    """
    Get the shared OpenAI client used by both generation clients.

    Uses OPENAI_API_KEY from environment. The SDK's own retries are disabled
    so that every failure surfaces to the job queue.
    """
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ValueError("OPENAI_API_KEY not found in environment. Set it in .env file.")

    return AsyncOpenAI(api_key=api_key, timeout=LLM_TIMEOUT, max_retries=0)


def get_text_model() -> str:
    """Get the text model ID."""
    return TEXT_CONSTANTS["model"]
