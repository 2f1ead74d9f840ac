"""
Content Processor Tests
=======================
Cache-first processing, request coalescing and failure handling.
"""

import asyncio
import json
import sqlite3

import pytest

from chapterflow.ai.actions import ProviderType
from chapterflow.app.events import ChapterState
from chapterflow.content.processor import ContentProcessor, normalize_mode, request_key
from chapterflow.content.source import ChapterSource
from chapterflow.errors import (
    ChapterUnavailableError,
    InvalidCredentialsError,
    ProviderHTTPError,
    UnknownModeError,
)


@pytest.fixture
def processor(app_config, chapter_store, settings_store, provider_factory):
    source = ChapterSource(app_config.books_dir)
    return ContentProcessor(chapter_store, source, settings_store, provider_factory)


class TestModeHelpers:
    @pytest.mark.parametrize("mode", ["raw", "none", "normal", "", None, " raw "])
    def test_raw_aliases(self, mode):
        assert normalize_mode(mode) == "raw"

    def test_request_key(self):
        assert request_key("book", 12, "summary") == "book_ch12_summary"


class TestRawMode:
    """Raw content is read from the library and never cached."""

    @pytest.mark.asyncio
    async def test_raw_reads_source(self, processor, write_chapter, chapter_store, fake_provider):
        write_chapter("book", 1, "<p>Nguyên văn chương một.</p>")

        content = await processor.get_content("book", 1, "normal")

        assert content == "<p>Nguyên văn chương một.</p>"
        assert fake_provider.calls == []
        assert chapter_store.stats().total_chapters == 0

    @pytest.mark.asyncio
    async def test_txt_fallback(self, processor, write_chapter):
        write_chapter("book", 2, "Văn bản thuần.", suffix=".txt")
        assert await processor.get_content("book", 2, "raw") == "Văn bản thuần."

    @pytest.mark.asyncio
    async def test_missing_chapter_raises(self, processor):
        with pytest.raises(ChapterUnavailableError):
            await processor.get_content("book", 99, "raw")

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, processor):
        with pytest.raises(ChapterUnavailableError):
            await processor.get_content("../outside", 1, "raw")

    @pytest.mark.asyncio
    async def test_undecodable_file_is_unavailable(self, processor, write_chapter):
        path = write_chapter("book", 3)
        path.write_bytes(b"\xff\xfe\x00ch\x80")

        with pytest.raises(ChapterUnavailableError) as info:
            await processor.get_content("book", 3, "raw")
        assert "unreadable file" in info.value.details


class TestProcessing:
    """AI modes."""

    @pytest.mark.asyncio
    async def test_translate_converts_and_caches(self, processor, write_chapter, chapter_store, fake_provider):
        write_chapter("book", 3)

        first = await processor.resolve("book", 3, "translate")
        second = await processor.resolve("book", 3, "translate")

        assert first.ok and not first.from_cache
        assert first.content == "<strong>Bản dịch</strong> của chương"
        assert second.from_cache
        assert second.content == first.content
        assert len(fake_provider.calls) == 1

        cached = chapter_store.get("book", 3, "translate")
        assert cached.content == first.content
        assert len(cached.content_hash) == 16

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_provider_call(self, processor, write_chapter, fake_provider):
        write_chapter("book", 4)
        fake_provider.delay = 0.05

        results = await asyncio.gather(*(processor.get_content("book", 4, "summary") for _ in range(4)))

        assert len(set(results)) == 1
        assert len(fake_provider.calls) == 1
        assert processor.in_flight == 0

    @pytest.mark.asyncio
    async def test_is_processing_while_in_flight(self, processor, write_chapter, fake_provider):
        write_chapter("book", 4)
        fake_provider.delay = 0.05

        task = asyncio.ensure_future(processor.resolve("book", 4, "summary"))
        await asyncio.sleep(0.01)
        assert processor.is_processing("book", 4, "summary")
        await task
        assert not processor.is_processing("book", 4, "summary")

    @pytest.mark.asyncio
    async def test_summary_receives_normalized_text(self, processor, write_chapter, fake_provider):
        write_chapter("book", 5, "<p>Giá 1.000 lượng bạc. " + "Lâm Phong trầm ngâm rất lâu. " * 3 + "</p>")

        await processor.get_content("book", 5, "summary")

        prompt, content = fake_provider.calls[0]
        assert "original_content.txt" in prompt
        assert "<p>" not in content
        assert "1000 lượng" in content

    @pytest.mark.asyncio
    async def test_translate_receives_raw_html(self, processor, write_chapter, fake_provider):
        write_chapter("book", 5, "<p>Nguyên bản.</p>")

        await processor.get_content("book", 5, "translate")

        assert fake_provider.calls[0][1] == "<p>Nguyên bản.</p>"

    @pytest.mark.asyncio
    async def test_events_published(self, processor, write_chapter):
        write_chapter("book", 6)
        events = []
        processor.chapter_events.subscribe(events.append)

        await processor.resolve("book", 6, "translate")
        await processor.resolve("book", 6, "translate")

        assert [e.state for e in events] == [ChapterState.PROCESSING, ChapterState.READY, ChapterState.READY]
        assert events[-1].from_cache

    @pytest.mark.asyncio
    async def test_settings_changes_apply_to_next_request(
        self, processor, write_chapter, settings_store, provider_factory
    ):
        write_chapter("book", 7)
        write_chapter("book", 8)

        await processor.resolve("book", 7, "translate")
        settings_store.set("TRANSLATE_PROVIDER", "copilot")
        await processor.resolve("book", 8, "translate")

        assert provider_factory.built == [ProviderType.GEMINI, ProviderType.COPILOT]

    @pytest.mark.asyncio
    async def test_custom_action(self, processor, write_chapter, settings_store, fake_provider):
        settings_store.set("AI_PROCESS_ACTIONS", json.dumps([{"key": "poem", "prompt": "Viết thành thơ"}]))
        write_chapter("book", 9)

        await processor.get_content("book", 9, "poem")

        assert fake_provider.calls[0][0] == "Viết thành thơ"

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_content(
        self, processor, write_chapter, chapter_store, mocker
    ):
        write_chapter("book", 10)
        mocker.patch.object(chapter_store, "upsert", side_effect=sqlite3.OperationalError("disk I/O error"))

        content = await processor.get_content("book", 10, "translate")

        assert content == "<strong>Bản dịch</strong> của chương"

    @pytest.mark.asyncio
    async def test_invalidate_forces_reprocessing(self, processor, write_chapter, fake_provider):
        write_chapter("book", 11)
        await processor.get_content("book", 11, "translate")

        assert processor.invalidate("book", 11, "translate") == 1
        await processor.get_content("book", 11, "translate")

        assert len(fake_provider.calls) == 2


class TestFailures:
    """Fallback text for built-in modes, errors for everything else."""

    @pytest.mark.asyncio
    async def test_translate_failure_returns_fallback(self, processor, write_chapter, fake_provider, chapter_store):
        write_chapter("book", 1)
        fake_provider.error = ProviderHTTPError("gemini", 500, "internal")

        content = await processor.get_content("book", 1, "translate")

        assert content == "Không thể dịch chương truyện này"
        assert chapter_store.get("book", 1, "translate") is None

    @pytest.mark.asyncio
    async def test_undecodable_file_returns_fallback(self, processor, write_chapter, fake_provider):
        write_chapter("book", 1).write_bytes(b"\xff\xfe\x00ch\x80")

        content = await processor.get_content("book", 1, "translate")

        assert content == "Không thể dịch chương truyện này"
        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_summary_fallback_in_english(self, processor, write_chapter, fake_provider, settings_store):
        settings_store.set("LANGUAGE", "en")
        write_chapter("book", 1)
        fake_provider.error = InvalidCredentialsError("Gemini")

        assert await processor.get_content("book", 1, "summary") == "Could not summarize this chapter"

    @pytest.mark.asyncio
    async def test_short_content_summary_fails_without_provider_call(
        self, processor, write_chapter, fake_provider
    ):
        write_chapter("book", 2, "<p>Quá ngắn.</p>")

        result = await processor.resolve("book", 2, "summary")

        assert not result.ok
        assert result.error.code.name == "E002"
        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_custom_action_failure_raises(self, processor, write_chapter, settings_store, fake_provider):
        settings_store.set("AI_PROCESS_ACTIONS", json.dumps([{"key": "poem", "prompt": "Viết thành thơ"}]))
        write_chapter("book", 3)
        fake_provider.error = ProviderHTTPError("gemini", 503, "unavailable")

        with pytest.raises(ProviderHTTPError):
            await processor.get_content("book", 3, "poem")

    @pytest.mark.asyncio
    async def test_unknown_mode_raises(self, processor, write_chapter):
        write_chapter("book", 4)
        with pytest.raises(UnknownModeError):
            await processor.get_content("book", 4, "poem")

    @pytest.mark.asyncio
    async def test_failure_publishes_failed_event(self, processor, write_chapter, fake_provider):
        write_chapter("book", 5)
        fake_provider.error = ProviderHTTPError("gemini", 500, "internal")
        events = []
        processor.chapter_events.subscribe(events.append)

        await processor.resolve("book", 5, "translate")

        assert events[-1].state == ChapterState.FAILED
        assert "E102" in events[-1].message

    @pytest.mark.asyncio
    async def test_failure_is_not_cached_and_retry_succeeds(self, processor, write_chapter, fake_provider):
        write_chapter("book", 6)
        fake_provider.error = ProviderHTTPError("gemini", 500, "internal")
        assert not (await processor.resolve("book", 6, "translate")).ok

        fake_provider.error = None
        assert (await processor.resolve("book", 6, "translate")).ok
