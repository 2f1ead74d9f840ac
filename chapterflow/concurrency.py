"""
Concurrency Module
===================
Cooperative cancellation and in-flight request coalescing for the
asyncio services.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Generic, Hashable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar('T')


class CancellationToken:
    """
    Token for cooperative task cancellation.

    One token belongs to one run (a prefetch pass, a TTS conversion,
    an auto-generate job). Work loops check is_cancelled() between units
    and exit gracefully.
    """

    def __init__(self):
        self._cancelled = threading.Event()
        self.reason: str = ""

    def cancel(self, reason: str = "") -> None:
        """Request cancellation."""
        if reason and not self.reason:
            self.reason = reason
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled.is_set()

    async def sleep(self, seconds: float, poll: float = 0.05) -> bool:
        """
        Sleep up to ``seconds``, waking early on cancellation.

        Returns:
            True if the full delay elapsed, False if cancelled
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        while not self.is_cancelled():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return True
            await asyncio.sleep(min(poll, remaining))
        return False


class RequestCoalescer(Generic[T]):
    """
    Shares one in-flight computation between identical concurrent requests.

    The first caller for a key starts the work; callers arriving while it
    runs await the same task. The entry is dropped once the task settles,
    whether it succeeded or failed, so the next call starts fresh.

    Example:
        coalescer = RequestCoalescer[str]()
        text = await coalescer.run(("book", 3, "summary"), lambda: compute())
    """

    def __init__(self):
        self._pending: dict[Hashable, asyncio.Task] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._track(key, factory))
            self._pending[key] = task
        else:
            logger.debug(f"Joining in-flight request {key}")
        return await asyncio.shield(task)

    async def _track(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._pending.pop(key, None)
