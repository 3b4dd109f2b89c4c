"""API route modules."""

from . import books

__all__ = ["books"]
