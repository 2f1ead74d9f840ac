"""
Async File Manager
==================
aiofiles-backed reads and atomic writes (temp file, then rename).
"""

import asyncio
from pathlib import Path

import aiofiles


class AsyncFileManager:
    """Manager for async file operations using aiofiles."""

    def __init__(self):
        self._lock = asyncio.Lock()

    async def read_text(self, path: Path) -> str:
        """Read text file asynchronously."""
        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            return await f.read()

    async def write_text(self, path: Path, content: str) -> None:
        """Write text file asynchronously."""
        await self.write_bytes(path, content.encode('utf-8'))

    async def write_bytes(self, path: Path, data: bytes) -> None:
        """Write a binary file; readers never observe a partial file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + '.tmp')
        async with aiofiles.open(temp_path, 'wb') as f:
            await f.write(data)

        async with self._lock:
            temp_path.replace(path)
