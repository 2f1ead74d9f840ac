"""
Storage Models
==============
Dataclasses for repository data transfer objects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from enum import Enum


RAW_MODE = "raw"
TRANSLATE_MODE = "translate"
SUMMARY_MODE = "summary"


class PrefetchStatus(str, Enum):
    """Prefetch task status values."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessedChapter:
    """Cached output of one processing mode for one chapter."""
    book_id: str
    chapter_number: int
    mode: str
    content: str
    content_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.book_id, self.chapter_number, self.mode)


@dataclass
class PrefetchTask:
    """One queued chapter warm-up request."""
    book_id: str
    chapter_number: int
    mode: str
    priority: int = 0
    status: PrefetchStatus = PrefetchStatus.PENDING
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.book_id, self.chapter_number, self.mode)


@dataclass
class AudioRecord:
    """Index row for one synthesized sentence of a chapter."""
    book_id: str
    chapter_number: int
    mode: str
    sentence_index: int
    sentence_text: str
    audio_path: str
    file_size: int = 0
    created_at: Optional[datetime] = None


@dataclass
class CacheStats:
    """Global cache counters."""
    total_chapters: int = 0
    total_tts: int = 0
    total_prefetch_pending: int = 0


@dataclass
class BookCacheStats:
    """Per-book cache breakdown."""
    book_id: str
    chapters_by_mode: dict[str, int] = field(default_factory=dict)
    total_tts: int = 0

    @property
    def total_chapters(self) -> int:
        return sum(self.chapters_by_mode.values())


@dataclass
class AutoGenerateProgress:
    """Resumable state of a whole-book summary + audio job."""
    book_id: str
    total_chapters: int
    current_chapter: int = 1
    first_chapter: int = 1
    is_running: bool = False
    completed_chapters: list[int] = field(default_factory=list)
    last_error: Optional[str] = None
    started_at: Optional[str] = None
    updated_at: Optional[str] = None

    def mark_completed(self, chapter_number: int) -> None:
        if chapter_number not in self.completed_chapters:
            self.completed_chapters.append(chapter_number)
            self.completed_chapters.sort()

    def remaining_chapters(self) -> list[int]:
        """Chapters of the job span not yet completed, in order."""
        done = set(self.completed_chapters)
        return [n for n in range(self.first_chapter, self.total_chapters + 1) if n not in done]

    @property
    def is_complete(self) -> bool:
        return not self.remaining_chapters()

    @property
    def progress_percentage(self) -> int:
        span = self.total_chapters - self.first_chapter + 1
        if span <= 0:
            return 0
        return round((span - len(self.remaining_chapters())) / span * 100)

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "total_chapters": self.total_chapters,
            "current_chapter": self.current_chapter,
            "first_chapter": self.first_chapter,
            "is_running": self.is_running,
            "completed_chapters": list(self.completed_chapters),
            "last_error": self.last_error,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AutoGenerateProgress":
        return cls(
            book_id=str(data["book_id"]),
            total_chapters=int(data.get("total_chapters", 0)),
            current_chapter=int(data.get("current_chapter", 1)),
            first_chapter=int(data.get("first_chapter", 1)),
            is_running=bool(data.get("is_running", False)),
            completed_chapters=sorted({int(n) for n in data.get("completed_chapters", [])}),
            last_error=data.get("last_error"),
            started_at=data.get("started_at"),
            updated_at=data.get("updated_at"),
        )
