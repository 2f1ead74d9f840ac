"""
Application Configuration
=========================
Static configuration: directory layout and pipeline tuning knobs.
User-editable values (credentials, prompts) live in config.settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class AppConfig:
    """
    Application configuration.

    Attributes:
        data_dir: Directory for application data (database, settings, audio)
        books_dir: Library of raw chapter files
        audio_dir: Root of the synthesized audio cache
        db_path: Path to SQLite database
        settings_path: Path to the user settings JSON
        progress_path: Path to the auto-generate progress JSON
        max_concurrent: Chapters prefetched at the same time
        prefetch_delay: Pause after each freshly generated prefetch chapter
        default_prefetch_count: Window size when settings do not set one
        tts_max_retries: Synthesis attempts per sentence
        tts_retry_delay: Pause between synthesis attempts
        tts_timeout: Watchdog for one synthesis attempt
        autogen_delay: Pause between auto-generated chapters
    """

    # Directories
    data_dir: Path = field(default_factory=lambda: Path("data"))
    books_dir: Optional[Path] = None
    audio_dir: Optional[Path] = None

    # Files
    db_path: Optional[Path] = None
    settings_path: Optional[Path] = None
    progress_path: Optional[Path] = None

    # Prefetch
    max_concurrent: int = 2
    prefetch_delay: float = 2.0
    default_prefetch_count: int = 3

    # TTS
    tts_max_retries: int = 2
    tts_retry_delay: float = 1.0
    tts_timeout: float = 20.0

    # Auto-generate
    autogen_delay: float = 0.5

    def __post_init__(self):
        """Ensure directories exist and set defaults."""
        self.data_dir = Path(self.data_dir)
        if self.books_dir is None:
            self.books_dir = self.data_dir / "books"
        if self.audio_dir is None:
            self.audio_dir = self.data_dir / "tts_audio"
        if self.db_path is None:
            self.db_path = self.data_dir / "chapterflow.db"
        if self.settings_path is None:
            self.settings_path = self.data_dir / "settings.json"
        if self.progress_path is None:
            self.progress_path = self.data_dir / "auto_generate.json"

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.books_dir.mkdir(parents=True, exist_ok=True)
        self.audio_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "AppConfig":
        """
        Create config from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            AppConfig instance
        """
        path_fields = {
            "data_dir", "books_dir", "audio_dir",
            "db_path", "settings_path", "progress_path",
        }
        processed = {}

        for key, value in config_dict.items():
            if key in path_fields and value is not None:
                processed[key] = Path(value)
            else:
                processed[key] = value

        return cls(**processed)

    def to_dict(self) -> dict:
        return {
            "data_dir": str(self.data_dir),
            "books_dir": str(self.books_dir),
            "audio_dir": str(self.audio_dir),
            "db_path": str(self.db_path),
            "settings_path": str(self.settings_path),
            "progress_path": str(self.progress_path),
            "max_concurrent": self.max_concurrent,
            "prefetch_delay": self.prefetch_delay,
            "default_prefetch_count": self.default_prefetch_count,
            "tts_max_retries": self.tts_max_retries,
            "tts_retry_delay": self.tts_retry_delay,
            "tts_timeout": self.tts_timeout,
            "autogen_delay": self.autogen_delay,
        }
