"""
TTS Converter
=============
Converts an ordered list of sentences into cached MP3 files, one file per
sentence, emitting a ready event as soon as each file is playable.

Run lifecycle: IDLE -> RUNNING -> COMPLETED | CANCELLED | FAILED.
Cancelled and failed runs return an empty list instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from chapterflow.app.config import AppConfig
from chapterflow.app.events import (
    AudioFailedEvent,
    AudioReadyEvent,
    JobState,
    StateEvent,
    emit,
    make_audio_failed_event,
    make_audio_ready_event,
    make_state_event,
)
from chapterflow.concurrency import CancellationToken
from chapterflow.errors import CacheStorageError, ChapterFlowError, SynthesisError
from chapterflow.storage.files import AsyncFileManager
from chapterflow.tts.cache import AudioCache
from chapterflow.tts.capcut import CapcutSynthesizer
from config.settings import Settings, SettingsStore


logger = logging.getLogger(__name__)


@dataclass
class ConvertOptions:
    """Per-run options and callbacks."""
    voice: Optional[str] = None
    cache_dir: Optional[Path] = None
    token: Optional[CancellationToken] = None
    on_audio_ready: Optional[Callable[[AudioReadyEvent], None]] = None
    on_audio_failed: Optional[Callable[[AudioFailedEvent], None]] = None
    on_state: Optional[Callable[[StateEvent], None]] = None


@dataclass
class ConversionRun:
    """Handle for an active conversion."""
    task_id: str
    token: CancellationToken
    state: JobState = JobState.IDLE
    files: list[str] = field(default_factory=list)
    error: Optional[str] = None


class TTSConverter:
    """Sequential per-sentence synthesis with file cache and retries."""

    def __init__(
        self,
        settings_store: SettingsStore,
        audio_cache: AudioCache,
        synthesizer: Optional[CapcutSynthesizer] = None,
        config: Optional[AppConfig] = None,
    ):
        self.settings_store = settings_store
        self.audio_cache = audio_cache
        self.config = config or AppConfig()
        self.synthesizer = synthesizer or CapcutSynthesizer(timeout=self.config.tts_timeout)
        self._files = AsyncFileManager()
        self._runs: dict[str, ConversionRun] = {}

    # ==================== Run control ====================

    def get_run(self, task_id: str) -> Optional[ConversionRun]:
        return self._runs.get(task_id)

    def cancel(self, task_id: str) -> bool:
        run = self._runs.get(task_id)
        if run is None:
            return False
        run.token.cancel("cancelled by user")
        return True

    def cancel_all(self) -> int:
        for run in self._runs.values():
            run.token.cancel("cancelled by user")
        return len(self._runs)

    # ==================== Conversion ====================

    async def convert(
        self,
        sentences: Sequence[str],
        task_id: str,
        options: Optional[ConvertOptions] = None,
    ) -> list[str]:
        """
        Synthesize every sentence in order.

        Args:
            sentences: Utterances to synthesize
            task_id: Prefix of the output file names
            options: Voice, output directory, cancellation token and callbacks

        Returns:
            Paths of the audio files in sentence order; empty when the run was
            cancelled, hit a configuration/authentication failure or could
            not write audio to disk
        """
        options = options or ConvertOptions()
        settings = self.settings_store.snapshot()
        voice = options.voice or settings.tts_voice
        directory = Path(options.cache_dir) if options.cache_dir else self.audio_cache.ensure_root()
        directory.mkdir(parents=True, exist_ok=True)

        previous = self._runs.get(task_id)
        if previous is not None:
            previous.token.cancel("superseded")

        run = ConversionRun(task_id=task_id, token=options.token or CancellationToken())
        self._runs[task_id] = run
        self._set_state(run, JobState.RUNNING, options, f"{len(sentences)} sentences")

        try:
            for index, sentence in enumerate(sentences):
                if run.token.is_cancelled():
                    break

                path = directory / f"{task_id}_{index}.mp3"
                if path.exists():
                    run.files.append(str(path))
                    emit(options.on_audio_ready, make_audio_ready_event(str(path), task_id, index, from_cache=True))
                    continue

                try:
                    data = await self._synthesize_with_retry(sentence, index, voice, settings, run.token)
                except ChapterFlowError as exc:
                    if exc.critical:
                        logger.error(f"TTS run {task_id} stopped: {exc}")
                        run.error = str(exc)
                        run.token.cancel(str(exc))
                        self._set_state(run, JobState.FAILED, options, str(exc))
                        return []
                    logger.warning(f"Sentence {index} of {task_id} skipped: {exc}")
                    emit(options.on_audio_failed, make_audio_failed_event(task_id, index, str(exc)))
                    continue

                if data is None:
                    break

                try:
                    await self._files.write_bytes(path, data)
                except OSError as exc:
                    error = CacheStorageError(str(path), str(exc))
                    logger.error(f"TTS run {task_id} stopped: {error}")
                    emit(options.on_audio_failed, make_audio_failed_event(task_id, index, str(error)))
                    run.error = str(error)
                    run.token.cancel(str(error))
                    self._set_state(run, JobState.FAILED, options, str(error))
                    return []
                run.files.append(str(path))
                emit(options.on_audio_ready, make_audio_ready_event(str(path), task_id, index))
        finally:
            if self._runs.get(task_id) is run:
                del self._runs[task_id]

        if run.token.is_cancelled():
            self._set_state(run, JobState.CANCELLED, options, run.token.reason)
            return []

        self._set_state(run, JobState.COMPLETED, options, f"{len(run.files)} files")
        return list(run.files)

    async def _synthesize_with_retry(
        self,
        sentence: str,
        index: int,
        voice: str,
        settings: Settings,
        token: CancellationToken,
    ) -> Optional[bytes]:
        """Returns audio bytes, or None if the run was cancelled meanwhile."""
        attempts = max(1, self.config.tts_max_retries)
        last_error: Optional[ChapterFlowError] = None

        for attempt in range(attempts):
            if token.is_cancelled():
                return None
            try:
                data = await self.synthesizer.synthesize(
                    sentence, voice, settings.capcut_token, settings.capcut_ws_url
                )
            except ChapterFlowError as exc:
                if exc.critical:
                    raise
                last_error = exc
            else:
                if token.is_cancelled():
                    return None
                if data:
                    return data
                last_error = SynthesisError("Service returned no audio", index)

            logger.warning(f"Synthesis attempt {attempt + 1}/{attempts} for sentence {index} failed: {last_error}")
            if attempt < attempts - 1 and not await token.sleep(self.config.tts_retry_delay):
                return None

        raise last_error

    def _set_state(self, run: ConversionRun, state: JobState, options: ConvertOptions, message: str = "") -> None:
        run.state = state
        emit(options.on_state, make_state_event(state, run.task_id, message))
