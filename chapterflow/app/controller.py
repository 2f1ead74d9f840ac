"""
Reader Controller
=================
Facade over the chapter pipeline for presentation layers (CLI, future UI).

Wires the chapter store, settings, content processor, prefetch scheduler,
TTS converter and auto-generate service together, and exposes one method
per user-facing operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from chapterflow.ai.factory import AIProviderFactory
from chapterflow.app.config import AppConfig
from chapterflow.app.events import (
    AudioReadyEvent,
    AutoGenerateEvent,
    ChapterStateEvent,
    PrefetchProgressEvent,
)
from chapterflow.content.processor import ContentProcessor, normalize_mode
from chapterflow.content.source import ChapterSource
from chapterflow.pipeline.autogen import AutoGenerateService, AutoGenerateStats
from chapterflow.pipeline.prefetch import PrefetchReport, PrefetchScheduler
from chapterflow.storage.models import (
    RAW_MODE,
    AutoGenerateProgress,
    BookCacheStats,
    CacheStats,
)
from chapterflow.storage.progress_store import ProgressStore
from chapterflow.storage.repository import IChapterRepository
from chapterflow.storage.sqlite_repo import SQLiteChapterStore
from chapterflow.tts.cache import AudioCache
from chapterflow.tts.capcut import CapcutSynthesizer
from chapterflow.tts.converter import TTSConverter
from chapterflow.tts.service import ChapterAudioService, task_prefix
from config.settings import SettingsStore
from config.voices import VOICES


logger = logging.getLogger(__name__)


@dataclass
class ReaderCallbacks:
    """Optional listeners attached to the controller's event channels."""
    on_chapter_state: Optional[Callable[[ChapterStateEvent], None]] = None
    on_prefetch_progress: Optional[Callable[[PrefetchProgressEvent], None]] = None
    on_autogen: Optional[Callable[[AutoGenerateEvent], None]] = None


class ReaderController:
    """
    Central controller for the reading backend.

    Example:
        controller = ReaderController(AppConfig(data_dir=Path("data")))
        html = await controller.get_chapter("book-1", 3, "translate")
        report = await controller.prefetch("book-1", 3, "translate")
        files = await controller.speak_chapter("book-1", 3, "summary")
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        repository: Optional[IChapterRepository] = None,
        settings_store: Optional[SettingsStore] = None,
        provider_factory: Callable = AIProviderFactory.create,
        synthesizer: Optional[CapcutSynthesizer] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Application configuration
            repository: Chapter store (creates SQLiteChapterStore if None)
            settings_store: User settings (JSON file under data_dir if None)
            provider_factory: AI provider builder (injected in tests)
            synthesizer: Websocket synthesizer (injected in tests)
        """
        self.config = config or AppConfig()
        self.repository = repository or SQLiteChapterStore(self.config.db_path)
        self.settings_store = settings_store or SettingsStore(self.config.settings_path)

        self.source = ChapterSource(self.config.books_dir)
        self.processor = ContentProcessor(
            self.repository, self.source, self.settings_store, provider_factory
        )
        self.prefetcher = PrefetchScheduler(
            self.processor, self.repository, self.settings_store, self.config
        )
        self.audio_cache = AudioCache(self.config.audio_dir)
        self.converter = TTSConverter(
            self.settings_store, self.audio_cache, synthesizer, self.config
        )
        self.audio = ChapterAudioService(self.converter, self.repository, self.audio_cache)
        self.autogen = AutoGenerateService(
            self.processor,
            self.audio,
            ProgressStore(self.config.progress_path),
            self.config,
        )

    def subscribe(self, callbacks: ReaderCallbacks) -> Callable[[], None]:
        """Attach listeners; returns a function detaching all of them."""
        unsubscribers = []
        if callbacks.on_chapter_state:
            unsubscribers.append(self.processor.chapter_events.subscribe(callbacks.on_chapter_state))
        if callbacks.on_prefetch_progress:
            unsubscribers.append(self.prefetcher.progress.subscribe(callbacks.on_prefetch_progress))
        if callbacks.on_autogen:
            unsubscribers.append(self.autogen.events.subscribe(callbacks.on_autogen))

        def unsubscribe_all() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return unsubscribe_all

    # ==================== Reading ====================

    async def get_chapter(self, book_id: str, chapter_number: int, mode: str = RAW_MODE) -> str:
        return await self.processor.get_content(book_id, chapter_number, mode)

    def chapter_count(self, book_id: str) -> int:
        return self.source.chapter_count(book_id)

    async def prefetch(
        self,
        book_id: str,
        from_chapter: int,
        mode: str,
        total_chapters: Optional[int] = None,
        prefetch_count: Optional[int] = None,
    ) -> PrefetchReport:
        total = total_chapters if total_chapters is not None else self.chapter_count(book_id)
        return await self.prefetcher.prefetch(book_id, from_chapter, mode, total, prefetch_count)

    def abort_prefetch(self) -> bool:
        return self.prefetcher.abort()

    # ==================== Audio ====================

    async def speak_chapter(
        self,
        book_id: str,
        chapter_number: int,
        mode: str = RAW_MODE,
        voice: Optional[str] = None,
        on_audio_ready: Optional[Callable[[AudioReadyEvent], None]] = None,
    ) -> list[str]:
        """
        Generate (or replay from cache) audio for a chapter mode.

        Raises:
            ChapterFlowError: If the chapter content cannot be produced
        """
        mode = normalize_mode(mode)
        result = await self.processor.resolve(book_id, chapter_number, mode)
        if not result.ok:
            raise result.error
        return await self.audio.generate(
            book_id, chapter_number, mode, result.content,
            voice=voice, on_audio_ready=on_audio_ready,
        )

    def stop_speaking(self, book_id: str, chapter_number: int, mode: str = RAW_MODE) -> bool:
        return self.converter.cancel(task_prefix(book_id, chapter_number, normalize_mode(mode)))

    def list_chapter_audio(self, book_id: str, chapter_number: int, mode: str = RAW_MODE) -> list[str]:
        return self.audio.list_audio(book_id, chapter_number, normalize_mode(mode))

    def get_available_voices(self) -> list[dict]:
        return [
            {
                "id": v.id,
                "name": v.name,
                "language": v.language,
                "gender": v.gender,
                "style": v.style,
            }
            for v in VOICES.values()
        ]

    # ==================== Auto-generate ====================

    async def start_auto_generate(
        self,
        book_id: str,
        total_chapters: Optional[int] = None,
        voice: Optional[str] = None,
        resume: bool = True,
    ) -> AutoGenerateProgress:
        total = total_chapters if total_chapters is not None else self.chapter_count(book_id)
        return await self.autogen.start(book_id, total, voice=voice, resume=resume)

    async def stop_auto_generate(self, book_id: str) -> bool:
        return await self.autogen.stop(book_id)

    async def auto_generate_stats(self, book_id: str) -> Optional[AutoGenerateStats]:
        return await self.autogen.stats(book_id)

    async def clear_auto_generate(self, book_id: Optional[str] = None) -> int:
        if book_id is None:
            return await self.autogen.clear_all()
        return int(await self.autogen.clear(book_id))

    # ==================== Settings ====================

    def get_settings(self) -> dict:
        return self.settings_store.raw()

    def update_settings(self, values: dict) -> None:
        self.settings_store.update(values)

    # ==================== Cache Management ====================

    def get_cache_stats(self) -> CacheStats:
        return self.repository.stats()

    def get_book_cache_stats(self, book_id: str) -> BookCacheStats:
        return self.repository.book_stats(book_id)

    def clear_chapter(self, book_id: str, chapter_number: int, mode: Optional[str] = None) -> int:
        mode = normalize_mode(mode) if mode else None
        removed = self.processor.invalidate(book_id, chapter_number, mode)
        self.audio.clear(book_id, chapter_number, mode)
        return removed

    def clear_book(self, book_id: str, mode: Optional[str] = None) -> int:
        mode = normalize_mode(mode) if mode else None
        removed = self.repository.clear_for_book(book_id, mode)
        self.audio.clear(book_id, mode=mode)
        self.repository.clear_prefetch_queue(book_id)
        return removed

    def clear_audio(self) -> None:
        self.audio.clear_all()

    def clear_all_cache(self) -> None:
        self.repository.clear_all()
        self.audio_cache.clear_all()
        logger.info("All chapter and audio caches cleared")

    # ==================== Cleanup ====================

    def cleanup(self):
        """
        Clean up resources.

        Call this when shutting down the application.
        """
        self.prefetcher.abort()
        self.converter.cancel_all()
