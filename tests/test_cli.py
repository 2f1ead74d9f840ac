"""
Test CLI Module
===============
Script-style tests for the terminal CLI command surface.
"""

import io
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chapterflow.app.events import AutoGenerateKind, make_audio_ready_event, make_autogen_event, make_prefetch_event
from chapterflow.cli.main import main as cli_main
from chapterflow.errors import ChapterUnavailableError
from chapterflow.storage.models import AutoGenerateProgress, PrefetchStatus


class FakeController:
    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.cleaned = False
        self.config = None
        self.callbacks = []
        self.settings = {"LANGUAGE": "en", "GEMINI_API_KEY": "AIzaSecretKeyValue1234", "PREFETCH_COUNT": 3}
        self.cleared = []

    def subscribe(self, callbacks):
        self.callbacks.append(callbacks)
        return lambda: self.callbacks.remove(callbacks)

    async def get_chapter(self, book_id, chapter_number, mode):
        if self.mode == "missing":
            raise ChapterUnavailableError(book_id, chapter_number)
        return f"<p>{book_id} chapter {chapter_number} ({mode})</p>"

    async def prefetch(self, book_id, from_chapter, mode, total_chapters=None, prefetch_count=None):  # noqa: ARG002
        for callbacks in self.callbacks:
            if callbacks.on_prefetch_progress:
                callbacks.on_prefetch_progress(make_prefetch_event(
                    book_id, from_chapter + 1, mode, PrefetchStatus.COMPLETED, 1, 2
                ))
        if self.mode == "abort":
            return SimpleNamespace(
                window=[from_chapter + 1, from_chapter + 2], completed=[from_chapter + 1], skipped=[],
                failed={from_chapter + 2: "[E101]"}, aborted=True, abort_reason="[E101] Invalid credentials",
            )
        return SimpleNamespace(
            window=[from_chapter + 1, from_chapter + 2], completed=[from_chapter + 1],
            skipped=[from_chapter + 2], failed={}, aborted=False, abort_reason=None,
        )

    def abort_prefetch(self):
        return True

    async def speak_chapter(self, book_id, chapter_number, mode, voice=None, on_audio_ready=None):  # noqa: ARG002
        if self.mode == "no_audio":
            return []
        files = [f"/audio/{book_id}_{chapter_number}_{mode}_{i}.mp3" for i in range(2)]
        for index, path in enumerate(files):
            on_audio_ready(make_audio_ready_event(path, "task", index, from_cache=(index == 0)))
        return files

    def stop_speaking(self, book_id, chapter_number, mode):  # noqa: ARG002
        return True

    async def start_auto_generate(self, book_id, total_chapters=None, voice=None, resume=True):  # noqa: ARG002
        for callbacks in self.callbacks:
            if callbacks.on_autogen:
                callbacks.on_autogen(make_autogen_event(book_id, AutoGenerateKind.CHAPTER_COMPLETED, 1, 2, 1))
        if self.mode == "autogen_fail":
            return AutoGenerateProgress(
                book_id=book_id, total_chapters=2, current_chapter=2, completed_chapters=[1],
                last_error="Chapter 2: Summary failed",
            )
        return AutoGenerateProgress(book_id=book_id, total_chapters=2, current_chapter=3, completed_chapters=[1, 2])

    async def stop_auto_generate(self, book_id):  # noqa: ARG002
        return True

    async def auto_generate_stats(self, book_id):
        if self.mode == "no_progress":
            return None
        return SimpleNamespace(
            book_id=book_id, completed=3, total=10, progress_percentage=30, is_running=False,
            can_resume=True, current_chapter=4, last_error=None,
        )

    async def clear_auto_generate(self, book_id=None):  # noqa: ARG002
        return 1

    def get_settings(self):
        return dict(self.settings)

    def update_settings(self, values):
        self.settings.update(values)

    def get_cache_stats(self):
        return SimpleNamespace(total_chapters=12, total_tts=40, total_prefetch_pending=2)

    def get_book_cache_stats(self, book_id):
        return SimpleNamespace(book_id=book_id, total_chapters=5, total_tts=9, chapters_by_mode={"translate": 3, "summary": 2})

    def clear_chapter(self, book_id, chapter_number, mode=None):
        self.cleared.append(("chapter", book_id, chapter_number, mode))
        return 2

    def clear_book(self, book_id, mode=None):
        self.cleared.append(("book", book_id, mode))
        return 5

    def clear_all_cache(self):
        self.cleared.append(("all",))

    def clear_audio(self):
        self.cleared.append(("audio",))

    def get_available_voices(self):
        return [
            {"id": "BV421_vivn_streaming", "name": "Giọng nữ miền Bắc", "language": "vi", "gender": "female", "style": ""},
        ]

    def cleanup(self):
        self.cleaned = True


def run_case(argv, mode="ok"):
    output = io.StringIO()
    controller = FakeController(mode=mode)

    def factory(config):
        controller.config = config
        return controller

    with tempfile.TemporaryDirectory() as tmp:
        code = cli_main(argv=["--data-dir", tmp] + argv, controller_factory=factory, out=output)
    return code, output.getvalue(), controller


def test_cli():
    """Run all CLI tests."""
    print("\n" + "=" * 50)
    print("CLI TEST SUITE")
    print("=" * 50 + "\n")

    # read
    code, out, controller = run_case(["read", "book", "3", "--mode", "translate"])
    assert code == 0
    assert "<p>book chapter 3 (translate)</p>" in out
    assert controller.cleaned
    assert controller.config.books_dir.name == "books"
    print("✓ read chapter")

    # read with prefetch
    code, out, _ = run_case(["read", "book", "3", "--prefetch"])
    assert code == 0
    assert "prefetched: 1 new, 1 cached" in out
    print("✓ read with prefetch")

    # read missing chapter
    code, out, controller = run_case(["read", "book", "99"], mode="missing")
    assert code == 1
    assert "error: [E001]" in out
    assert controller.cleaned
    print("✓ read error handling")

    # prefetch
    code, out, controller = run_case(["prefetch", "book", "5", "--count", "2"])
    assert code == 0
    assert "[1/2] chapter 6: completed" in out
    assert "window 6-7: completed=1 cached=1 failed=0" in out
    assert controller.callbacks == []
    print("✓ prefetch window")

    # prefetch aborted
    code, out, _ = run_case(["prefetch", "book", "5"], mode="abort")
    assert code == 1
    assert "aborted: [E101] Invalid credentials" in out
    print("✓ prefetch abort")

    # speak
    code, out, _ = run_case(["speak", "book", "1", "--voice", "BV075_streaming"])
    assert code == 0
    assert "[1] /audio/book_1_raw_0.mp3 (cached)" in out
    assert "[2] /audio/book_1_raw_1.mp3 (new)" in out
    assert "audio files: 2" in out
    print("✓ speak chapter")

    # speak without audio
    code, out, _ = run_case(["speak", "book", "1"], mode="no_audio")
    assert code == 1
    assert "no audio generated" in out
    print("✓ speak without audio")

    # autogen start
    code, out, _ = run_case(["autogen", "start", "book", "--total", "2"])
    assert code == 0
    assert "[1/2] chapter_completed chapter 1" in out
    assert "auto-generate completed: 2 chapters" in out
    print("✓ autogen start")

    # autogen stopped with error
    code, out, _ = run_case(["autogen", "start", "book"], mode="autogen_fail")
    assert code == 1
    assert "stopped at chapter 2 (50%)" in out
    assert "last error: Chapter 2: Summary failed" in out
    print("✓ autogen failure")

    # autogen status
    code, out, _ = run_case(["autogen", "status", "book"])
    assert code == 0
    assert "book: 3/10 chapters (30%)" in out
    assert "next chapter: 4" in out
    code, out, _ = run_case(["autogen", "status", "book"], mode="no_progress")
    assert "no saved progress for book" in out
    print("✓ autogen status")

    # cache stats
    code, out, _ = run_case(["cache", "stats"])
    assert code == 0
    assert "chapters=12 audio=40 pending_prefetch=2" in out
    code, out, _ = run_case(["cache", "stats", "--book", "book"])
    assert "  - summary: 2" in out
    print("✓ cache stats")

    # cache clear
    code, out, controller = run_case(["cache", "clear", "--book", "book", "--chapter", "2", "--mode", "summary"])
    assert code == 0
    assert controller.cleared == [("chapter", "book", 2, "summary")]
    code, out, _ = run_case(["cache", "clear", "--chapter", "2"])
    assert code == 2
    assert "--chapter requires --book" in out
    code, out, controller = run_case(["cache", "clear"])
    assert controller.cleared == [("all",)]
    print("✓ cache clear")

    # voices
    code, out, _ = run_case(["voices"])
    assert code == 0
    assert "- BV421_vivn_streaming: Giọng nữ miền Bắc (vi, female)" in out
    print("✓ voices listing")

    # settings
    code, out, _ = run_case(["settings", "get", "GEMINI_API_KEY"])
    assert code == 0
    assert "GEMINI_API_KEY=AIza...1234" in out
    code, out, controller = run_case(["settings", "set", "PREFETCH_COUNT", "5"])
    assert code == 0
    assert controller.settings["PREFETCH_COUNT"] == "5"
    code, out, _ = run_case(["settings", "set", "AI_PROCESS_ACTIONS", "[not json"])
    assert code == 1
    assert "must be a JSON list" in out
    code, out, _ = run_case(["settings", "get", "MISSING"])
    assert code == 1
    print("✓ settings get/set")

    print("\n" + "=" * 50)
    print("ALL CLI TESTS PASSED ✓")
    print("=" * 50 + "\n")
    return True


if __name__ == "__main__":
    success = test_cli()
    sys.exit(0 if success else 1)
