"""
Chapter Audio Service
=====================
Chapter-level TTS: segments processed chapter content, converts it into the
chapter's audio directory and keeps the per-sentence audio index current.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from chapterflow.app.events import AudioReadyEvent, emit, make_audio_ready_event
from chapterflow.concurrency import CancellationToken
from chapterflow.storage.models import AudioRecord
from chapterflow.storage.repository import IChapterRepository
from chapterflow.tts.cache import AudioCache
from chapterflow.tts.converter import ConvertOptions, TTSConverter
from chapterflow.tts.segmenter import SentenceSegmenter


logger = logging.getLogger(__name__)


def task_prefix(book_id: str, chapter_number: int, mode: str) -> str:
    return f"{book_id}_{chapter_number}_{mode}"


class ChapterAudioService:
    """Generates, indexes and clears audio for whole chapters."""

    def __init__(
        self,
        converter: TTSConverter,
        store: IChapterRepository,
        audio_cache: AudioCache,
        segmenter: Optional[SentenceSegmenter] = None,
    ):
        self.converter = converter
        self.store = store
        self.audio_cache = audio_cache
        self.segmenter = segmenter or SentenceSegmenter()

    def has_audio(self, book_id: str, chapter_number: int, mode: str) -> bool:
        return self.store.count_audios(book_id, chapter_number, mode) > 0

    async def generate(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        content: str,
        voice: Optional[str] = None,
        on_audio_ready: Optional[Callable[[AudioReadyEvent], None]] = None,
        token: Optional[CancellationToken] = None,
    ) -> list[str]:
        """
        Produce audio for one chapter mode.

        A fully indexed chapter is replayed from the index. Otherwise sentences
        whose files already exist are reported as cache hits, so a partially
        generated chapter resumes where it stopped.

        Returns:
            Audio file paths in sentence order (empty if cancelled or failed)
        """
        task_id = task_prefix(book_id, chapter_number, mode)
        sentences = self.segmenter.split(content)
        if not sentences:
            logger.info(f"No speakable text in {task_id}")
            return []

        replay = self._indexed_files(book_id, chapter_number, mode, len(sentences))
        if replay:
            for index, path in enumerate(replay):
                emit(on_audio_ready, make_audio_ready_event(path, task_id, index, from_cache=True))
            return replay

        def index_and_forward(event: AudioReadyEvent) -> None:
            path = Path(event.file_path)
            self.store.save_audio(AudioRecord(
                book_id=book_id,
                chapter_number=chapter_number,
                mode=mode,
                sentence_index=event.index,
                sentence_text=sentences[event.index],
                audio_path=str(path),
                file_size=path.stat().st_size if path.exists() else 0,
            ))
            emit(on_audio_ready, event)

        return await self.converter.convert(
            sentences,
            task_id,
            ConvertOptions(
                voice=voice,
                cache_dir=self.audio_cache.chapter_dir(book_id, chapter_number, mode),
                token=token,
                on_audio_ready=index_and_forward,
            ),
        )

    def _indexed_files(self, book_id: str, chapter_number: int, mode: str, expected: int) -> list[str]:
        records = self.store.get_audios(book_id, chapter_number, mode)
        if len(records) != expected or not all(Path(r.audio_path).exists() for r in records):
            return []
        return [r.audio_path for r in records]

    def list_audio(self, book_id: str, chapter_number: int, mode: str) -> list[str]:
        """Indexed audio files that still exist on disk, in sentence order."""
        return [
            record.audio_path
            for record in self.store.get_audios(book_id, chapter_number, mode)
            if Path(record.audio_path).exists()
        ]

    def clear(self, book_id: str, chapter_number: Optional[int] = None, mode: Optional[str] = None) -> int:
        """Remove index rows and files for a book, chapter or chapter mode."""
        rows = self.store.clear_audio_index(book_id, chapter_number, mode)
        self.audio_cache.clear(book_id, chapter_number, mode)
        return rows

    def clear_all(self) -> None:
        self.store.clear_audio_index()
        self.audio_cache.clear_all()
