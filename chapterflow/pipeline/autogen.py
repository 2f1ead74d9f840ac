"""
Auto-generate Service
=====================
Walks a whole book producing the summary and its audio for each chapter.

Progress is persisted after every step so a stopped or interrupted job
resumes with the chapters it has not finished, including ones that failed
in an earlier run. Per-chapter failures are recorded and skipped;
configuration and authentication failures stop the job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from chapterflow.app.config import AppConfig
from chapterflow.app.events import (
    AutoGenerateEvent,
    AutoGenerateKind,
    EventChannel,
    make_autogen_event,
)
from chapterflow.concurrency import CancellationToken
from chapterflow.content.processor import ContentProcessor
from chapterflow.errors import is_critical
from chapterflow.storage.models import SUMMARY_MODE, AutoGenerateProgress
from chapterflow.storage.progress_store import ProgressStore
from chapterflow.tts.service import ChapterAudioService


logger = logging.getLogger(__name__)

STOP_REASON = "stopped by user"


@dataclass
class AutoGenerateStats:
    """Summary of a book's auto-generate state."""
    book_id: str
    completed: int
    total: int
    progress_percentage: int
    is_running: bool
    can_resume: bool
    current_chapter: Optional[int] = None
    last_error: Optional[str] = None


class AutoGenerateService:
    """Resumable whole-book summary + audio generation."""

    def __init__(
        self,
        processor: ContentProcessor,
        audio: ChapterAudioService,
        progress_store: ProgressStore,
        config: Optional[AppConfig] = None,
        mode: str = SUMMARY_MODE,
    ):
        self.processor = processor
        self.audio = audio
        self.progress_store = progress_store
        self.config = config or AppConfig()
        self.mode = mode
        self.events: EventChannel[AutoGenerateEvent] = EventChannel("autogen")
        self._tokens: dict[str, CancellationToken] = {}

    # ==================== Status ====================

    def is_running(self, book_id: str) -> bool:
        return book_id in self._tokens

    async def get_progress(self, book_id: str) -> Optional[AutoGenerateProgress]:
        return await self.progress_store.get(book_id)

    async def stats(self, book_id: str) -> Optional[AutoGenerateStats]:
        progress = await self.progress_store.get(book_id)
        if progress is None:
            return None
        running = self.is_running(book_id)
        return AutoGenerateStats(
            book_id=book_id,
            completed=len(progress.completed_chapters),
            total=progress.total_chapters,
            progress_percentage=progress.progress_percentage,
            is_running=running,
            can_resume=not running and not progress.is_complete,
            current_chapter=progress.current_chapter,
            last_error=progress.last_error,
        )

    def is_fully_cached(self, book_id: str, chapter_number: int) -> bool:
        """Summary cached and at least one indexed audio segment."""
        if self.processor.store.get(book_id, chapter_number, self.mode) is None:
            return False
        return self.audio.has_audio(book_id, chapter_number, self.mode)

    # ==================== Control ====================

    async def stop(self, book_id: str) -> bool:
        """Request a stop; the job saves its progress and exits."""
        token = self._tokens.get(book_id)
        if token is not None:
            token.cancel(STOP_REASON)

        progress = await self.progress_store.get(book_id)
        if progress is not None and progress.is_running:
            progress.is_running = False
            await self.progress_store.save(progress)
        return token is not None

    async def clear(self, book_id: str) -> bool:
        if self.is_running(book_id):
            await self.stop(book_id)
        return await self.progress_store.clear(book_id)

    async def clear_all(self) -> int:
        for book_id in list(self._tokens):
            await self.stop(book_id)
        return await self.progress_store.clear_all()

    async def start(
        self,
        book_id: str,
        total_chapters: int,
        voice: Optional[str] = None,
        start_from: int = 1,
        resume: bool = True,
    ) -> AutoGenerateProgress:
        """
        Run the job until every chapter is done, the job is stopped, or a
        critical error occurs.

        Args:
            book_id: Book identifier
            total_chapters: Number of chapters in the book
            voice: Speaker for the audio (settings default otherwise)
            start_from: First chapter of a fresh job
            resume: Continue from saved progress when present

        Returns:
            Final progress record (already deleted from the store when complete)
        """
        if self.is_running(book_id):
            logger.warning(f"Auto-generate already running for {book_id}")
            return await self.progress_store.get(book_id)

        progress = await self.progress_store.get(book_id) if resume else None
        if progress is None:
            progress = AutoGenerateProgress(
                book_id=book_id,
                total_chapters=total_chapters,
                current_chapter=start_from,
                first_chapter=start_from,
                started_at=datetime.now().isoformat(),
            )
        progress.total_chapters = total_chapters
        progress.is_running = True

        token = CancellationToken()
        self._tokens[book_id] = token
        try:
            await self.progress_store.save(progress)
            self._emit(progress, AutoGenerateKind.STARTED)
            remaining = progress.remaining_chapters()
            logger.info(
                f"Auto-generate {book_id}: {len(remaining)} chapters to go, "
                f"{len(progress.completed_chapters)} already done"
            )

            for chapter in remaining:
                if token.is_cancelled():
                    break
                await self._run_chapter(progress, chapter, voice, token)

            return await self._finish(progress, token)
        except Exception as exc:
            logger.exception(f"Auto-generate {book_id} aborted by an unexpected error")
            progress.is_running = False
            progress.last_error = f"Unexpected error: {exc}"
            await self.progress_store.save(progress)
            self._emit(progress, AutoGenerateKind.ERROR, progress.current_chapter, str(exc))
            return progress
        finally:
            self._tokens.pop(book_id, None)

    # ==================== Internals ====================

    async def _run_chapter(
        self,
        progress: AutoGenerateProgress,
        chapter: int,
        voice: Optional[str],
        token: CancellationToken,
    ) -> None:
        book_id = progress.book_id
        progress.current_chapter = chapter
        await self.progress_store.save(progress)
        self._emit(progress, AutoGenerateKind.CHAPTER_STARTED, chapter)

        if self.is_fully_cached(book_id, chapter):
            progress.mark_completed(chapter)
            await self.progress_store.save(progress)
            self._emit(progress, AutoGenerateKind.CHAPTER_SKIPPED, chapter, "already cached")
            return

        result = await self.processor.resolve(book_id, chapter, self.mode)
        if not result.ok:
            await self._record_failure(progress, chapter, f"Summary failed: {result.error}")
            if is_critical(result.error):
                token.cancel(str(result.error))
            return

        if token.is_cancelled():
            return

        files = await self.audio.generate(
            book_id, chapter, self.mode, result.content, voice=voice, token=token
        )
        if token.is_cancelled():
            return
        if not files:
            await self._record_failure(progress, chapter, "No audio generated")
            return

        progress.mark_completed(chapter)
        progress.current_chapter = chapter + 1
        progress.last_error = None
        await self.progress_store.save(progress)
        self._emit(progress, AutoGenerateKind.CHAPTER_COMPLETED, chapter, f"{len(files)} audio files")

        await token.sleep(self.config.autogen_delay)

    async def _record_failure(self, progress: AutoGenerateProgress, chapter: int, message: str) -> None:
        logger.error(f"Auto-generate {progress.book_id} chapter {chapter}: {message}")
        progress.last_error = f"Chapter {chapter}: {message}"
        await self.progress_store.save(progress)
        self._emit(progress, AutoGenerateKind.ERROR, chapter, message)

    async def _finish(self, progress: AutoGenerateProgress, token: CancellationToken) -> AutoGenerateProgress:
        progress.is_running = False

        if token.is_cancelled():
            if token.reason and token.reason != STOP_REASON:
                progress.last_error = token.reason
            await self.progress_store.save(progress)
            self._emit(progress, AutoGenerateKind.CANCELLED, message=token.reason)
        elif progress.is_complete:
            await self.progress_store.clear(progress.book_id)
            self._emit(progress, AutoGenerateKind.COMPLETED)
            logger.info(f"Auto-generate {progress.book_id}: all {progress.total_chapters} chapters done")
        else:
            await self.progress_store.save(progress)
            self._emit(progress, AutoGenerateKind.PAUSED)
        return progress

    def _emit(
        self,
        progress: AutoGenerateProgress,
        kind: AutoGenerateKind,
        chapter: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.events.publish(make_autogen_event(
            progress.book_id,
            kind,
            completed=len(progress.completed_chapters),
            total=progress.total_chapters,
            chapter_number=chapter,
            message=message,
        ))
