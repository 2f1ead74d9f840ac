"""
Content Module
==============
Raw chapter loading, markup conversion and cached AI processing.
"""

from .source import ChapterSource
from .processor import ContentProcessor, ContentResult, normalize_mode, request_key

__all__ = [
    "ChapterSource",
    "ContentProcessor",
    "ContentResult",
    "normalize_mode",
    "request_key",
]
