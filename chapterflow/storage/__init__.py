"""
Storage Module
==============
Handles the SQLite chapter cache and JSON-backed job progress.

Repository Pattern:
    - IChapterRepository: Abstract interface for storage
    - SQLiteChapterStore: Concrete SQLite implementation
"""

from .repository import IChapterRepository
from .sqlite_repo import SQLiteChapterStore
from .progress_store import ProgressStore
from .files import AsyncFileManager
from .models import (
    RAW_MODE,
    SUMMARY_MODE,
    TRANSLATE_MODE,
    AudioRecord,
    AutoGenerateProgress,
    BookCacheStats,
    CacheStats,
    PrefetchStatus,
    PrefetchTask,
    ProcessedChapter,
)

__all__ = [
    "IChapterRepository",
    "SQLiteChapterStore",
    "ProgressStore",
    "AsyncFileManager",
    "RAW_MODE",
    "SUMMARY_MODE",
    "TRANSLATE_MODE",
    "AudioRecord",
    "AutoGenerateProgress",
    "BookCacheStats",
    "CacheStats",
    "PrefetchStatus",
    "PrefetchTask",
    "ProcessedChapter",
]
