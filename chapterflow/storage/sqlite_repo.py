"""
SQLite Repository Implementation
================================
Concrete implementation of IChapterRepository using SQLite.
The schema is created lazily on the first operation so that building
a store never touches the disk.
"""

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional
from contextlib import contextmanager
import logging
import sqlite3

from chapterflow.storage.repository import IChapterRepository
from chapterflow.storage.models import (
    AudioRecord,
    BookCacheStats,
    CacheStats,
    PrefetchStatus,
    PrefetchTask,
    ProcessedChapter,
)


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteChapterStore(IChapterRepository):
    """
    SQLite implementation of the chapter repository interface.

    Tables:
        processed_chapters: (book_id, chapter_number, mode) -> content
        tts_audio_cache: per-sentence audio index
        prefetch_queue: chapter warm-up tasks
    """

    def __init__(self, db_path: Path | str = "data/chapterflow.db"):
        """
        Initialize SQLite repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialized = False

    @contextmanager
    def _connection(self):
        """Context manager for database connections."""
        self._ensure_schema()
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self):
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            self._init_schema(conn)
            conn.commit()
        finally:
            conn.close()
        self._initialized = True
        logger.debug(f"Initialized chapter cache schema at {self.db_path}")

    def _init_schema(self, conn: sqlite3.Connection):
        """Initialize database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS processed_chapters (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id TEXT NOT NULL,
                chapter_number INTEGER NOT NULL,
                mode TEXT NOT NULL,
                content TEXT NOT NULL,
                content_hash TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(book_id, chapter_number, mode)
            );

            CREATE TABLE IF NOT EXISTS tts_audio_cache (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id TEXT NOT NULL,
                chapter_number INTEGER NOT NULL,
                mode TEXT NOT NULL,
                sentence_index INTEGER NOT NULL,
                sentence_text TEXT NOT NULL,
                audio_path TEXT NOT NULL,
                file_size INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                UNIQUE(book_id, chapter_number, mode, sentence_index)
            );

            CREATE TABLE IF NOT EXISTS prefetch_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id TEXT NOT NULL,
                chapter_number INTEGER NOT NULL,
                mode TEXT NOT NULL,
                priority INTEGER DEFAULT 0,
                status TEXT CHECK(status IN ('pending', 'processing', 'completed', 'failed')) DEFAULT 'pending',
                error_message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(book_id, chapter_number, mode)
            );

            CREATE INDEX IF NOT EXISTS idx_processed_lookup
                ON processed_chapters(book_id, chapter_number, mode);
            CREATE INDEX IF NOT EXISTS idx_tts_lookup
                ON tts_audio_cache(book_id, chapter_number, mode);
            CREATE INDEX IF NOT EXISTS idx_prefetch_status
                ON prefetch_queue(status, priority);
        """)

    def _row_to_chapter(self, row: sqlite3.Row) -> ProcessedChapter:
        """Convert database row to ProcessedChapter dataclass."""
        return ProcessedChapter(
            book_id=row["book_id"],
            chapter_number=row["chapter_number"],
            mode=row["mode"],
            content=row["content"],
            content_hash=row["content_hash"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _row_to_audio(self, row: sqlite3.Row) -> AudioRecord:
        """Convert database row to AudioRecord dataclass."""
        return AudioRecord(
            book_id=row["book_id"],
            chapter_number=row["chapter_number"],
            mode=row["mode"],
            sentence_index=row["sentence_index"],
            sentence_text=row["sentence_text"],
            audio_path=row["audio_path"],
            file_size=row["file_size"] or 0,
            created_at=_parse_ts(row["created_at"]),
        )

    def _row_to_task(self, row: sqlite3.Row) -> PrefetchTask:
        """Convert database row to PrefetchTask dataclass."""
        return PrefetchTask(
            book_id=row["book_id"],
            chapter_number=row["chapter_number"],
            mode=row["mode"],
            priority=row["priority"],
            status=PrefetchStatus(row["status"]),
            error_message=row["error_message"],
            created_at=_parse_ts(row["created_at"]),
        )

    # ==================== Processed Chapters ====================

    def get(self, book_id: str, chapter_number: int, mode: str) -> Optional[ProcessedChapter]:
        with self._connection() as conn:
            row = conn.execute(
                """SELECT * FROM processed_chapters
                   WHERE book_id = ? AND chapter_number = ? AND mode = ?""",
                (book_id, chapter_number, mode)
            ).fetchone()
            return self._row_to_chapter(row) if row else None

    def upsert(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        content: str,
        content_hash: Optional[str] = None,
    ) -> None:
        now = _now()
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO processed_chapters
                       (book_id, chapter_number, mode, content, content_hash, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(book_id, chapter_number, mode) DO UPDATE SET
                       content = excluded.content,
                       content_hash = excluded.content_hash,
                       updated_at = excluded.updated_at""",
                (book_id, chapter_number, mode, content, content_hash, now, now)
            )

    def delete(self, book_id: str, chapter_number: int, mode: Optional[str] = None) -> int:
        with self._connection() as conn:
            if mode is None:
                cursor = conn.execute(
                    "DELETE FROM processed_chapters WHERE book_id = ? AND chapter_number = ?",
                    (book_id, chapter_number)
                )
            else:
                cursor = conn.execute(
                    """DELETE FROM processed_chapters
                       WHERE book_id = ? AND chapter_number = ? AND mode = ?""",
                    (book_id, chapter_number, mode)
                )
            return cursor.rowcount

    def clear_for_book(self, book_id: str, mode: Optional[str] = None) -> int:
        with self._connection() as conn:
            if mode is None:
                cursor = conn.execute(
                    "DELETE FROM processed_chapters WHERE book_id = ?", (book_id,)
                )
            else:
                cursor = conn.execute(
                    "DELETE FROM processed_chapters WHERE book_id = ? AND mode = ?",
                    (book_id, mode)
                )
            return cursor.rowcount

    def clear_all(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM processed_chapters")
            conn.execute("DELETE FROM tts_audio_cache")
            conn.execute("DELETE FROM prefetch_queue")
        logger.info("Cleared all cached chapters, audio index and prefetch queue")

    def list_for_book(self, book_id: str) -> list[ProcessedChapter]:
        with self._connection() as conn:
            rows = conn.execute(
                """SELECT * FROM processed_chapters WHERE book_id = ?
                   ORDER BY chapter_number, mode""",
                (book_id,)
            ).fetchall()
            return [self._row_to_chapter(row) for row in rows]

    def cached_chapters(self, book_id: str, chapters: Iterable[int], mode: str) -> set[int]:
        numbers = list(chapters)
        if not numbers:
            return set()
        placeholders = ",".join("?" for _ in numbers)
        with self._connection() as conn:
            rows = conn.execute(
                f"""SELECT chapter_number FROM processed_chapters
                    WHERE book_id = ? AND mode = ? AND chapter_number IN ({placeholders})""",
                (book_id, mode, *numbers)
            ).fetchall()
            return {row["chapter_number"] for row in rows}

    def stats(self) -> CacheStats:
        with self._connection() as conn:
            chapters = conn.execute("SELECT COUNT(*) FROM processed_chapters").fetchone()[0]
            tts = conn.execute("SELECT COUNT(*) FROM tts_audio_cache").fetchone()[0]
            pending = conn.execute(
                "SELECT COUNT(*) FROM prefetch_queue WHERE status = 'pending'"
            ).fetchone()[0]
            return CacheStats(
                total_chapters=chapters,
                total_tts=tts,
                total_prefetch_pending=pending,
            )

    def book_stats(self, book_id: str) -> BookCacheStats:
        with self._connection() as conn:
            rows = conn.execute(
                """SELECT mode, COUNT(*) AS count FROM processed_chapters
                   WHERE book_id = ? GROUP BY mode""",
                (book_id,)
            ).fetchall()
            tts = conn.execute(
                "SELECT COUNT(*) FROM tts_audio_cache WHERE book_id = ?", (book_id,)
            ).fetchone()[0]
            return BookCacheStats(
                book_id=book_id,
                chapters_by_mode={row["mode"]: row["count"] for row in rows},
                total_tts=tts,
            )

    # ==================== Audio Index ====================

    def save_audio(self, record: AudioRecord) -> None:
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO tts_audio_cache
                       (book_id, chapter_number, mode, sentence_index, sentence_text,
                        audio_path, file_size, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(book_id, chapter_number, mode, sentence_index) DO UPDATE SET
                       sentence_text = excluded.sentence_text,
                       audio_path = excluded.audio_path,
                       file_size = excluded.file_size""",
                (
                    record.book_id,
                    record.chapter_number,
                    record.mode,
                    record.sentence_index,
                    record.sentence_text,
                    record.audio_path,
                    record.file_size,
                    _now(),
                )
            )

    def get_audios(self, book_id: str, chapter_number: int, mode: str) -> list[AudioRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                """SELECT * FROM tts_audio_cache
                   WHERE book_id = ? AND chapter_number = ? AND mode = ?
                   ORDER BY sentence_index""",
                (book_id, chapter_number, mode)
            ).fetchall()
            return [self._row_to_audio(row) for row in rows]

    def count_audios(self, book_id: str, chapter_number: int, mode: str) -> int:
        with self._connection() as conn:
            return conn.execute(
                """SELECT COUNT(*) FROM tts_audio_cache
                   WHERE book_id = ? AND chapter_number = ? AND mode = ?""",
                (book_id, chapter_number, mode)
            ).fetchone()[0]

    def clear_audio_index(
        self,
        book_id: Optional[str] = None,
        chapter_number: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> int:
        clauses = []
        params: list = []
        for column, value in (
            ("book_id", book_id),
            ("chapter_number", chapter_number),
            ("mode", mode),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        query = "DELETE FROM tts_audio_cache"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)

        with self._connection() as conn:
            return conn.execute(query, params).rowcount

    # ==================== Prefetch Queue ====================

    def enqueue_prefetch(self, task: PrefetchTask) -> None:
        now = _now()
        with self._connection() as conn:
            conn.execute(
                """INSERT INTO prefetch_queue
                       (book_id, chapter_number, mode, priority, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, 'pending', ?, ?)
                   ON CONFLICT(book_id, chapter_number, mode) DO UPDATE SET
                       priority = excluded.priority,
                       status = 'pending',
                       error_message = NULL,
                       updated_at = excluded.updated_at""",
                (task.book_id, task.chapter_number, task.mode, task.priority, now, now)
            )

    def pending_prefetch(self, limit: int, book_id: Optional[str] = None) -> list[PrefetchTask]:
        with self._connection() as conn:
            if book_id is None:
                rows = conn.execute(
                    """SELECT * FROM prefetch_queue WHERE status = 'pending'
                       ORDER BY priority ASC, id ASC LIMIT ?""",
                    (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    """SELECT * FROM prefetch_queue WHERE status = 'pending' AND book_id = ?
                       ORDER BY priority ASC, id ASC LIMIT ?""",
                    (book_id, limit)
                ).fetchall()
            return [self._row_to_task(row) for row in rows]

    def update_prefetch_status(
        self,
        book_id: str,
        chapter_number: int,
        mode: str,
        status: PrefetchStatus,
        error_message: Optional[str] = None,
    ) -> None:
        with self._connection() as conn:
            conn.execute(
                """UPDATE prefetch_queue
                   SET status = ?, error_message = ?, updated_at = ?
                   WHERE book_id = ? AND chapter_number = ? AND mode = ?""",
                (status.value, error_message, _now(), book_id, chapter_number, mode)
            )

    def get_prefetch_task(self, book_id: str, chapter_number: int, mode: str) -> Optional[PrefetchTask]:
        with self._connection() as conn:
            row = conn.execute(
                """SELECT * FROM prefetch_queue
                   WHERE book_id = ? AND chapter_number = ? AND mode = ?""",
                (book_id, chapter_number, mode)
            ).fetchone()
            return self._row_to_task(row) if row else None

    def clear_prefetch_queue(self, book_id: Optional[str] = None) -> int:
        with self._connection() as conn:
            if book_id is None:
                return conn.execute("DELETE FROM prefetch_queue").rowcount
            return conn.execute(
                "DELETE FROM prefetch_queue WHERE book_id = ?", (book_id,)
            ).rowcount
