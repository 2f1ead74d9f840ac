import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from chapterflow.app.config import AppConfig
from chapterflow.storage.sqlite_repo import SQLiteChapterStore
from config.settings import SettingsStore


LONG_PARAGRAPH = (
    "Lâm Phong đứng trên đỉnh núi, nhìn xuống thung lũng phủ đầy sương mù. "
    "Hắn biết rằng con đường phía trước sẽ còn rất dài và đầy gian nan."
)


class FakeProvider:
    """AI provider double that records calls and replies from a script."""

    name = "fake"

    def __init__(self, reply: str = "**Bản dịch** của chương", error: Exception = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def process_content(self, prompt: str, content: str) -> str:
        self.calls.append((prompt, content))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSynthesizer:
    """Synthesizer double; ``failures`` maps sentence text to an exception."""

    def __init__(self, failures: dict = None, payload: bytes = b"ID3fake-mp3"):
        self.failures = failures or {}
        self.payload = payload
        self.calls: list[str] = []

    async def synthesize(self, text: str, voice: str, token: str, ws_url: str) -> bytes:
        self.calls.append(text)
        if text in self.failures:
            raise self.failures[text]
        return self.payload


@pytest.fixture
def app_config(tmp_path):
    """Config rooted in a temp dir with all pacing delays disabled."""
    return AppConfig(
        data_dir=tmp_path / "data",
        prefetch_delay=0.0,
        tts_retry_delay=0.0,
        autogen_delay=0.0,
    )


@pytest.fixture
def chapter_store(app_config):
    return SQLiteChapterStore(app_config.db_path)


@pytest.fixture
def settings_store(app_config):
    store = SettingsStore(app_config.settings_path)
    store.update({
        "GEMINI_API_KEY": "AIza" + "x" * 35,
        "CAPCUT_TOKEN": "capcut-test-token",
        "LANGUAGE": "vi",
    })
    return store


@pytest.fixture
def write_chapter(app_config):
    """Write a raw chapter file into the temp library."""

    def _write(book_id: str, chapter_number: int, text: str = None, suffix: str = ".html") -> Path:
        book_dir = app_config.books_dir / book_id
        book_dir.mkdir(parents=True, exist_ok=True)
        path = book_dir / f"{chapter_number}{suffix}"
        body = text if text is not None else f"<p>Chương {chapter_number}. {LONG_PARAGRAPH}</p>"
        path.write_text(body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def provider_factory(fake_provider):
    """Provider builder that always hands out ``fake_provider``."""
    built = []

    def _factory(provider_type, settings, on_key_rotated=None, **overrides):
        built.append(provider_type)
        return fake_provider

    _factory.built = built
    return _factory


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer()
