"""
Content Processor
=================
Cache-first chapter processing with request coalescing.

A request is identified by (book_id, chapter_number, mode). The first caller
for an identity does the work; concurrent duplicates await the same task.
Results are cached in the chapter store so a later call for the same
identity never reaches a provider.
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Optional

from chapterflow.ai.actions import Preprocess
from chapterflow.ai.base import AIProvider
from chapterflow.ai.factory import AIProviderFactory
from chapterflow.app.events import (
    ChapterState,
    ChapterStateEvent,
    EventChannel,
    make_chapter_event,
)
from chapterflow.concurrency import RequestCoalescer
from chapterflow.content.markup import prepare_for_provider, simple_md_to_html
from chapterflow.content.source import ChapterSource
from chapterflow.errors import ChapterFlowError, UnknownModeError, localized
from chapterflow.storage.models import RAW_MODE, SUMMARY_MODE, TRANSLATE_MODE
from chapterflow.storage.repository import IChapterRepository
from config.settings import SettingsStore


logger = logging.getLogger(__name__)

RAW_ALIASES = {RAW_MODE, "none", "normal"}
FALLBACK_KEYS = {
    TRANSLATE_MODE: "translate_failed",
    SUMMARY_MODE: "summary_failed",
}

ProviderBuilder = Callable[..., AIProvider]


def normalize_mode(mode: str) -> str:
    mode = (mode or RAW_MODE).strip()
    return RAW_MODE if mode in RAW_ALIASES else mode


def request_key(book_id: str, chapter_number: int, mode: str) -> str:
    return f"{book_id}_ch{chapter_number}_{mode}"


@dataclass(frozen=True)
class ContentResult:
    """Outcome of one chapter request."""
    content: Optional[str]
    error: Optional[ChapterFlowError] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ContentProcessor:
    """
    Produces chapter content for any processing mode.

    Usage:
        processor = ContentProcessor(store, source, settings_store)
        html = await processor.get_content("book-1", 12, "summary")
    """

    def __init__(
        self,
        store: IChapterRepository,
        source: ChapterSource,
        settings_store: SettingsStore,
        provider_factory: ProviderBuilder = AIProviderFactory.create,
    ):
        self.store = store
        self.source = source
        self.settings_store = settings_store
        self.provider_factory = provider_factory
        self.chapter_events: EventChannel[ChapterStateEvent] = EventChannel("chapters")
        self._coalescer: RequestCoalescer[ContentResult] = RequestCoalescer()

    # ==================== Public API ====================

    def is_processing(self, book_id: str, chapter_number: int, mode: str) -> bool:
        return request_key(book_id, chapter_number, normalize_mode(mode)) in self._coalescer

    @property
    def in_flight(self) -> int:
        return len(self._coalescer)

    async def resolve(self, book_id: str, chapter_number: int, mode: str) -> ContentResult:
        """
        Produce content for (book_id, chapter_number, mode) without raising
        for pipeline failures.

        Returns:
            ContentResult holding either the content or the typed error
        """
        mode = normalize_mode(mode)
        key = request_key(book_id, chapter_number, mode)
        return await self._coalescer.run(
            key, lambda: self._resolve(book_id, chapter_number, mode)
        )

    async def get_content(self, book_id: str, chapter_number: int, mode: str) -> str:
        """
        Reader-facing variant of resolve().

        Translate and summary failures return a localized fallback message so
        the reading view always has text; raw and custom action failures raise.

        Raises:
            ChapterFlowError: For raw or custom action failures
        """
        mode = normalize_mode(mode)
        result = await self.resolve(book_id, chapter_number, mode)
        if result.ok:
            return result.content
        if mode in FALLBACK_KEYS:
            locale = self.settings_store.snapshot().language
            return localized(FALLBACK_KEYS[mode], locale)
        raise result.error

    def invalidate(self, book_id: str, chapter_number: int, mode: Optional[str] = None) -> int:
        """Drop cached output so the next request reprocesses."""
        return self.store.delete(
            book_id, chapter_number, normalize_mode(mode) if mode else None
        )

    # ==================== Internals ====================

    async def _resolve(self, book_id: str, chapter_number: int, mode: str) -> ContentResult:
        try:
            if mode == RAW_MODE:
                raw = await self.source.get_raw(book_id, chapter_number)
                return ContentResult(raw)

            cached = self.store.get(book_id, chapter_number, mode)
            if cached is not None:
                self._publish(book_id, chapter_number, mode, ChapterState.READY, from_cache=True)
                return ContentResult(cached.content, from_cache=True)

            self._publish(book_id, chapter_number, mode, ChapterState.PROCESSING)
            content = await self._process(book_id, chapter_number, mode)
            self._publish(book_id, chapter_number, mode, ChapterState.READY)
            return ContentResult(content)

        except ChapterFlowError as exc:
            logger.warning(f"Processing {request_key(book_id, chapter_number, mode)} failed: {exc}")
            self._publish(book_id, chapter_number, mode, ChapterState.FAILED, message=str(exc))
            return ContentResult(None, error=exc)

    async def _process(self, book_id: str, chapter_number: int, mode: str) -> str:
        settings = self.settings_store.snapshot()
        action = settings.action_for(mode)
        if action is None:
            raise UnknownModeError(mode)

        raw = await self.source.get_raw(book_id, chapter_number)
        text = prepare_for_provider(raw) if action.preprocess == Preprocess.TTS_NORMALIZE else raw

        provider = self.provider_factory(
            action.provider,
            settings,
            on_key_rotated=self.settings_store.set_gemini_key_index,
        )
        logger.info(
            f"Processing {request_key(book_id, chapter_number, mode)} with {provider.name}"
        )
        output = await provider.process_content(action.prompt, text)
        content = simple_md_to_html(output)

        content_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
        try:
            self.store.upsert(book_id, chapter_number, mode, content, content_hash)
        except sqlite3.Error:
            logger.exception(
                f"Could not cache {request_key(book_id, chapter_number, mode)}; returning uncached result"
            )
        return content

    def _publish(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        state: ChapterState,
        from_cache: bool = False,
        message: str = "",
    ) -> None:
        self.chapter_events.publish(
            make_chapter_event(book_id, chapter_number, mode, state, from_cache, message)
        )
