"""
Prefetch Scheduler
==================
Warms the chapter cache for the chapters right after the reader's position.

Each run registers its window in the prefetch queue, then drains pending
tasks a few at a time (most urgent first) through the content processor.
Configuration and authentication failures abort the run; other failures
are recorded on the task and the run continues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from chapterflow.app.config import AppConfig
from chapterflow.app.events import (
    EventChannel,
    PrefetchProgressEvent,
    make_prefetch_event,
)
from chapterflow.concurrency import CancellationToken
from chapterflow.content.processor import ContentProcessor, normalize_mode
from chapterflow.errors import is_critical
from chapterflow.storage.models import RAW_MODE, PrefetchStatus, PrefetchTask
from chapterflow.storage.repository import IChapterRepository
from config.settings import SettingsStore


logger = logging.getLogger(__name__)


def prefetch_window(from_chapter: int, count: int, total_chapters: int) -> list[int]:
    """
    Chapters to warm after ``from_chapter``.

    The window starts at the next chapter and ends at
    min(from_chapter + count, total_chapters).
    """
    start = from_chapter + 1
    end = min(from_chapter + count, total_chapters)
    return list(range(start, end + 1))


@dataclass
class PrefetchReport:
    """Outcome of one prefetch run."""
    book_id: str
    mode: str
    window: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)
    aborted: bool = False
    abort_reason: str = ""

    @property
    def done(self) -> int:
        return len(self.completed) + len(self.skipped) + len(self.failed)


class PrefetchScheduler:
    """
    Background chapter warm-up.

    A new run for the scheduler supersedes the previous one; abort() stops
    the current run after its in-flight chapters settle.
    """

    def __init__(
        self,
        processor: ContentProcessor,
        store: IChapterRepository,
        settings_store: SettingsStore,
        config: Optional[AppConfig] = None,
    ):
        self.processor = processor
        self.store = store
        self.settings_store = settings_store
        self.config = config or AppConfig()
        self.progress: EventChannel[PrefetchProgressEvent] = EventChannel("prefetch")
        self._token: Optional[CancellationToken] = None

    @property
    def is_running(self) -> bool:
        return self._token is not None and not self._token.is_cancelled()

    def abort(self) -> bool:
        """Cancel the active run. Returns False when nothing is running."""
        if self._token is None:
            return False
        self._token.cancel("aborted")
        return True

    def _window_size(self, prefetch_count: Optional[int]) -> int:
        if prefetch_count is not None:
            return max(0, prefetch_count)
        configured = self.settings_store.snapshot().prefetch_count
        return configured if configured > 0 else self.config.default_prefetch_count

    async def prefetch(
        self,
        book_id: str,
        from_chapter: int,
        mode: str,
        total_chapters: int,
        prefetch_count: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> PrefetchReport:
        """
        Warm the chapters following ``from_chapter``.

        Args:
            book_id: Book identifier
            from_chapter: Chapter the reader is on
            mode: Processing mode to warm
            total_chapters: Number of chapters in the book
            prefetch_count: Window size override (settings otherwise)
            token: Cancellation token for this run (created when omitted)

        Returns:
            PrefetchReport describing every window chapter
        """
        mode = normalize_mode(mode)
        report = PrefetchReport(book_id=book_id, mode=mode)
        if mode == RAW_MODE:
            return report

        report.window = prefetch_window(from_chapter, self._window_size(prefetch_count), total_chapters)
        if not report.window:
            return report

        if self._token is not None:
            self._token.cancel("superseded")
        token = token or CancellationToken()
        self._token = token

        try:
            self._register(book_id, from_chapter, mode, report)
            logger.info(
                f"Prefetching {book_id} chapters {report.window[0]}-{report.window[-1]} ({mode})"
            )
            while not token.is_cancelled():
                batch = self.store.pending_prefetch(self.config.max_concurrent, book_id=book_id)
                if not batch:
                    break
                await asyncio.gather(*(self._run_task(task, token, report) for task in batch))
        finally:
            if self._token is token:
                self._token = None

        if token.is_cancelled():
            report.aborted = True
            report.abort_reason = token.reason
            logger.info(f"Prefetch for {book_id} stopped: {token.reason or 'cancelled'}")
        return report

    def _register(self, book_id: str, from_chapter: int, mode: str, report: PrefetchReport) -> None:
        self.store.clear_prefetch_queue(book_id)
        cached = self.store.cached_chapters(book_id, report.window, mode)
        for chapter in report.window:
            if chapter in cached:
                report.skipped.append(chapter)
                self._emit(report, chapter, PrefetchStatus.COMPLETED, "already cached")
                continue
            self.store.enqueue_prefetch(PrefetchTask(
                book_id=book_id,
                chapter_number=chapter,
                mode=mode,
                priority=chapter - from_chapter,
            ))

    async def _run_task(
        self,
        task: PrefetchTask,
        token: CancellationToken,
        report: PrefetchReport,
    ) -> None:
        if token.is_cancelled():
            return

        book_id, chapter, mode = task.key
        self.store.update_prefetch_status(book_id, chapter, mode, PrefetchStatus.PROCESSING)
        self._emit(report, chapter, PrefetchStatus.PROCESSING)

        if self.store.get(book_id, chapter, mode) is not None:
            self.store.update_prefetch_status(book_id, chapter, mode, PrefetchStatus.COMPLETED)
            report.skipped.append(chapter)
            self._emit(report, chapter, PrefetchStatus.COMPLETED, "already cached")
            return

        result = await self.processor.resolve(book_id, chapter, mode)

        if result.ok:
            self.store.update_prefetch_status(book_id, chapter, mode, PrefetchStatus.COMPLETED)
            report.completed.append(chapter)
            self._emit(report, chapter, PrefetchStatus.COMPLETED)
            if not result.from_cache:
                await token.sleep(self.config.prefetch_delay)
            return

        message = str(result.error)
        self.store.update_prefetch_status(book_id, chapter, mode, PrefetchStatus.FAILED, message)
        report.failed[chapter] = message
        self._emit(report, chapter, PrefetchStatus.FAILED, message)

        if is_critical(result.error):
            logger.error(f"Prefetch aborted on chapter {chapter}: {message}")
            token.cancel(message)

    def _emit(self, report: PrefetchReport, chapter: int, status: PrefetchStatus, message: str = "") -> None:
        self.progress.publish(make_prefetch_event(
            report.book_id,
            chapter,
            report.mode,
            status,
            done=report.done,
            total=len(report.window),
            message=message,
        ))
