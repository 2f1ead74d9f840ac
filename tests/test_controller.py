"""
Reader Controller Tests
=======================
Integration tests wiring the real store, processor, prefetcher and TTS
services with fake AI and synthesis backends.
"""

import pytest

from chapterflow.app.controller import ReaderCallbacks, ReaderController
from chapterflow.app.events import ChapterState
from chapterflow.errors import ChapterUnavailableError


@pytest.fixture
def controller(app_config, chapter_store, settings_store, provider_factory, fake_synthesizer, write_chapter):
    for chapter in range(1, 5):
        write_chapter("book", chapter)
    controller = ReaderController(
        app_config,
        repository=chapter_store,
        settings_store=settings_store,
        provider_factory=provider_factory,
        synthesizer=fake_synthesizer,
    )
    yield controller
    controller.cleanup()


@pytest.mark.integration
class TestReaderController:
    """Facade operations end to end."""

    @pytest.mark.asyncio
    async def test_read_then_prefetch(self, controller, fake_provider):
        states = []
        unsubscribe = controller.subscribe(ReaderCallbacks(on_chapter_state=states.append))

        html = await controller.get_chapter("book", 1, "translate")
        report = await controller.prefetch("book", 1, "translate", prefetch_count=5)
        unsubscribe()
        await controller.get_chapter("book", 2, "translate")

        assert html == "<strong>Bản dịch</strong> của chương"
        assert controller.chapter_count("book") == 4
        assert report.window == [2, 3, 4]
        assert len(fake_provider.calls) == 4
        assert states[0].state == ChapterState.PROCESSING
        assert len(states) == 8

    @pytest.mark.asyncio
    async def test_speak_raw_chapter(self, controller, fake_synthesizer):
        ready = []

        files = await controller.speak_chapter("book", 1, "normal", on_audio_ready=ready.append)

        assert len(files) == 3
        assert fake_synthesizer.calls[0] == "Chương 1."
        assert controller.list_chapter_audio("book", 1, "raw") == files
        assert [e.index for e in ready] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_speak_missing_chapter_raises(self, controller):
        with pytest.raises(ChapterUnavailableError):
            await controller.speak_chapter("book", 42)

    @pytest.mark.asyncio
    async def test_clear_book_drops_content_audio_and_queue(self, controller, chapter_store):
        await controller.get_chapter("book", 1, "summary")
        await controller.speak_chapter("book", 1, "summary")
        await controller.prefetch("book", 1, "summary", prefetch_count=1)

        assert controller.clear_book("book") == 2
        stats = controller.get_cache_stats()
        assert stats.total_chapters == 0
        assert stats.total_tts == 0
        assert chapter_store.get_prefetch_task("book", 2, "summary") is None
        assert controller.audio_cache.file_count() == 0

    @pytest.mark.asyncio
    async def test_auto_generate_round_trip(self, controller):
        progress = await controller.start_auto_generate("book", total_chapters=2)

        assert progress.is_complete
        assert await controller.auto_generate_stats("book") is None
        assert controller.get_book_cache_stats("book").chapters_by_mode == {"summary": 2}

    def test_settings(self, controller):
        controller.update_settings({"PREFETCH_COUNT": 5})
        assert controller.get_settings()["PREFETCH_COUNT"] == 5
        assert controller.settings_store.snapshot().prefetch_count == 5

    def test_voices(self, controller):
        voices = controller.get_available_voices()
        assert voices
        assert {"id", "name", "language", "gender", "style"} <= set(voices[0])
