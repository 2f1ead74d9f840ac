"""
Chapter Source
==============
Reads raw chapter text from the local book library.

Layout:
    {books_dir}/{book_id}/{chapter_number}.html   (or .txt)
"""

import logging
from pathlib import Path
from typing import Optional

from chapterflow.errors import ChapterUnavailableError
from chapterflow.storage.files import AsyncFileManager


logger = logging.getLogger(__name__)

SUFFIXES = (".html", ".txt")


class ChapterSource:
    """Loads unprocessed chapter text for a book."""

    def __init__(self, books_dir: Path | str = "data/books"):
        self.books_dir = Path(books_dir)
        self._files = AsyncFileManager()

    def book_dir(self, book_id: str) -> Path:
        path = (self.books_dir / book_id).resolve()
        if self.books_dir.resolve() not in path.parents:
            raise ChapterUnavailableError(book_id, 0, "invalid book id")
        return path

    def chapter_path(self, book_id: str, chapter_number: int) -> Optional[Path]:
        directory = self.book_dir(book_id)
        for suffix in SUFFIXES:
            candidate = directory / f"{chapter_number}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def chapter_count(self, book_id: str) -> int:
        """Highest chapter number present for the book (0 when none)."""
        directory = self.book_dir(book_id)
        if not directory.is_dir():
            return 0
        numbers = [
            int(p.stem) for p in directory.iterdir()
            if p.suffix in SUFFIXES and p.stem.isdigit()
        ]
        return max(numbers, default=0)

    async def get_raw(self, book_id: str, chapter_number: int) -> str:
        """
        Read raw chapter text.

        Raises:
            ChapterUnavailableError: If the chapter file is missing, empty
                or cannot be decoded as UTF-8
        """
        path = self.chapter_path(book_id, chapter_number)
        if path is None:
            raise ChapterUnavailableError(book_id, chapter_number, "file not found")
        try:
            content = await self._files.read_text(path)
        except (UnicodeDecodeError, OSError) as exc:
            raise ChapterUnavailableError(book_id, chapter_number, f"unreadable file: {exc}") from exc
        if not content.strip():
            raise ChapterUnavailableError(book_id, chapter_number, "file is empty")
        logger.debug(f"Loaded raw chapter {book_id}#{chapter_number} ({len(content)} chars)")
        return content
