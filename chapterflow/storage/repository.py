"""
Repository Pattern Interface
============================
Abstract base class for the chapter cache, audio index and prefetch queue.
Enables swapping storage backends and in-memory fakes for tests.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from chapterflow.storage.models import (
    AudioRecord,
    BookCacheStats,
    CacheStats,
    PrefetchStatus,
    PrefetchTask,
    ProcessedChapter,
)


class IChapterRepository(ABC):
    """
    Abstract repository interface for processed chapter storage.

    Implementations:
        - SQLiteChapterStore: Local SQLite storage
    """

    # ==================== Processed Chapters ====================

    @abstractmethod
    def get(self, book_id: str, chapter_number: int, mode: str) -> Optional[ProcessedChapter]:
        """
        Get a cached chapter.

        Returns:
            The cached row or None when absent
        """
        pass

    @abstractmethod
    def upsert(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        content: str,
        content_hash: Optional[str] = None,
    ) -> None:
        """Insert or replace the row for (book_id, chapter_number, mode)."""
        pass

    @abstractmethod
    def delete(self, book_id: str, chapter_number: int, mode: Optional[str] = None) -> int:
        """
        Delete one mode of a chapter, or every mode when mode is None.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    def clear_for_book(self, book_id: str, mode: Optional[str] = None) -> int:
        """Delete a book's cached chapters, optionally restricted to one mode."""
        pass

    @abstractmethod
    def clear_all(self) -> None:
        """Delete every cached chapter, audio index row and queued prefetch."""
        pass

    @abstractmethod
    def list_for_book(self, book_id: str) -> list[ProcessedChapter]:
        pass

    @abstractmethod
    def cached_chapters(self, book_id: str, chapters: Iterable[int], mode: str) -> set[int]:
        """Return the subset of ``chapters`` cached for ``mode``."""
        pass

    @abstractmethod
    def stats(self) -> CacheStats:
        pass

    @abstractmethod
    def book_stats(self, book_id: str) -> BookCacheStats:
        pass

    # ==================== Audio Index ====================

    @abstractmethod
    def save_audio(self, record: AudioRecord) -> None:
        pass

    @abstractmethod
    def get_audios(self, book_id: str, chapter_number: int, mode: str) -> list[AudioRecord]:
        """Return indexed audio ordered by sentence index."""
        pass

    @abstractmethod
    def count_audios(self, book_id: str, chapter_number: int, mode: str) -> int:
        pass

    @abstractmethod
    def clear_audio_index(
        self,
        book_id: Optional[str] = None,
        chapter_number: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> int:
        """Delete audio index rows matching every filter given."""
        pass

    # ==================== Prefetch Queue ====================

    @abstractmethod
    def enqueue_prefetch(self, task: PrefetchTask) -> None:
        """Insert a task, resetting an existing identity to pending."""
        pass

    @abstractmethod
    def pending_prefetch(self, limit: int, book_id: Optional[str] = None) -> list[PrefetchTask]:
        """Pending tasks, most urgent (lowest priority value) first."""
        pass

    @abstractmethod
    def update_prefetch_status(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        status: PrefetchStatus,
        error_message: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    def get_prefetch_task(self, book_id: str, chapter_number: int, mode: str) -> Optional[PrefetchTask]:
        pass

    @abstractmethod
    def clear_prefetch_queue(self, book_id: Optional[str] = None) -> int:
        pass
