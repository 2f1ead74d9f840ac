"""
Audio Cache
===========
On-disk layout of synthesized audio.

Layout:
    {root}/{task_id}_{index}.mp3                      ad-hoc conversions
    {root}/{book_id}/{chapter}/{mode}/{task_id}_{index}.mp3   chapter audio
"""

import logging
import shutil
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class AudioCache:
    """Directory management for the TTS audio cache."""

    def __init__(self, root: Path | str = "data/tts_audio"):
        self.root = Path(root)

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def chapter_dir(self, book_id: str, chapter_number: int, mode: str, create: bool = True) -> Path:
        path = self.root / book_id / str(chapter_number) / mode
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def clear_all(self) -> None:
        """Delete every cached audio file and recreate the empty root."""
        if self.root.exists():
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cleared audio cache at {self.root}")

    def clear(
        self,
        book_id: str,
        chapter_number: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> int:
        """
        Delete cached audio for a book, a chapter, or one chapter mode.

        A mode without a chapter clears that mode across the whole book.

        Returns:
            Number of directories removed
        """
        book_dir = self.root / book_id
        if chapter_number is not None:
            targets = [book_dir / str(chapter_number)]
            if mode is not None:
                targets = [targets[0] / mode]
        elif mode is not None:
            targets = list(book_dir.glob(f"*/{mode}")) if book_dir.exists() else []
        else:
            targets = [book_dir]

        removed = 0
        for target in targets:
            if target.exists():
                shutil.rmtree(target)
                removed += 1
        return removed

    def file_count(self) -> int:
        if not self.root.exists():
            return 0
        return sum(1 for _ in self.root.rglob("*.mp3"))

    def size_bytes(self) -> int:
        if not self.root.exists():
            return 0
        return sum(p.stat().st_size for p in self.root.rglob("*.mp3"))
