"""Resilient Gemini conversation relay."""

from gemrelay.constants import VERSION

__version__ = VERSION

__all__ = ["__version__"]
