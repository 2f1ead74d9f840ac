"""
Auto-generate Progress Store
============================
JSON key-value persistence for AutoGenerateProgress records, one key per
book (``auto_generate_progress_{book_id}``).
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from chapterflow.storage.files import AsyncFileManager
from chapterflow.storage.models import AutoGenerateProgress


logger = logging.getLogger(__name__)

KEY_PREFIX = "auto_generate_progress_"


class ProgressStore:
    """Persists resumable auto-generate progress in a single JSON document."""

    def __init__(self, path: Path | str = "data/auto_generate.json"):
        self.path = Path(path)
        self._files = AsyncFileManager()
        self._lock = asyncio.Lock()

    @staticmethod
    def key_for(book_id: str) -> str:
        return f"{KEY_PREFIX}{book_id}"

    async def _load(self) -> dict:
        if not self.path.exists():
            return {}
        raw = await self._files.read_text(self.path)
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Progress file {self.path} is corrupt; starting fresh")
            return {}
        return data if isinstance(data, dict) else {}

    async def _dump(self, data: dict) -> None:
        await self._files.write_text(self.path, json.dumps(data, ensure_ascii=False, indent=2))

    async def get(self, book_id: str) -> Optional[AutoGenerateProgress]:
        data = await self._load()
        record = data.get(self.key_for(book_id))
        return AutoGenerateProgress.from_dict(record) if record else None

    async def save(self, progress: AutoGenerateProgress) -> None:
        progress.updated_at = datetime.now().isoformat()
        async with self._lock:
            data = await self._load()
            data[self.key_for(progress.book_id)] = progress.to_dict()
            await self._dump(data)

    async def clear(self, book_id: str) -> bool:
        async with self._lock:
            data = await self._load()
            removed = data.pop(self.key_for(book_id), None) is not None
            if removed:
                await self._dump(data)
            return removed

    async def clear_all(self) -> int:
        async with self._lock:
            data = await self._load()
            keys = [k for k in data if k.startswith(KEY_PREFIX)]
            for key in keys:
                del data[key]
            await self._dump(data)
            return len(keys)

    async def all(self) -> list[AutoGenerateProgress]:
        data = await self._load()
        return [
            AutoGenerateProgress.from_dict(value)
            for key, value in data.items()
            if key.startswith(KEY_PREFIX)
        ]
