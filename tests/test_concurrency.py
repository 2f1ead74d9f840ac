"""
Concurrency Module Tests
========================
Tests for cancellation tokens and in-flight request coalescing.
"""

import asyncio

import pytest

from chapterflow.concurrency import (
    CancellationToken,
    RequestCoalescer,
)


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initial_state_not_cancelled(self):
        """Token should not be cancelled initially."""
        token = CancellationToken()
        assert not token.is_cancelled()
        assert token.reason == ""

    def test_cancel_sets_flag_and_reason(self):
        """cancel() should set the flag and keep the first reason."""
        token = CancellationToken()
        token.cancel("invalid credentials")
        token.cancel("later reason")
        assert token.is_cancelled()
        assert token.reason == "invalid credentials"

    def test_tokens_are_independent(self):
        """Cancelling one run never affects another."""
        first, second = CancellationToken(), CancellationToken()
        first.cancel()
        assert not second.is_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        token = CancellationToken()
        assert await token.sleep(0.01) is True

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        """A long pause ends shortly after cancellation."""
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)
        started = loop.time()
        assert await token.sleep(10.0, poll=0.01) is False
        assert loop.time() - started < 1.0


class TestRequestCoalescer:
    """Tests for RequestCoalescer."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_computation(self):
        coalescer = RequestCoalescer()
        calls = []

        async def compute():
            calls.append(1)
            await asyncio.sleep(0.05)
            return "content"

        results = await asyncio.gather(*(coalescer.run("book_ch1_summary", compute) for _ in range(5)))

        assert results == ["content"] * 5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_entry_removed_after_completion(self):
        coalescer = RequestCoalescer()

        async def compute():
            return 42

        assert await coalescer.run("k", compute) == 42
        assert "k" not in coalescer
        assert len(coalescer) == 0

    @pytest.mark.asyncio
    async def test_failure_is_shared_and_entry_removed(self):
        coalescer = RequestCoalescer()
        calls = []

        async def compute():
            calls.append(1)
            await asyncio.sleep(0.01)
            raise ValueError("provider down")

        results = await asyncio.gather(
            coalescer.run("k", compute),
            coalescer.run("k", compute),
            return_exceptions=True,
        )

        assert len(calls) == 1
        assert all(isinstance(r, ValueError) for r in results)
        assert "k" not in coalescer

    @pytest.mark.asyncio
    async def test_next_call_after_settle_starts_fresh(self):
        coalescer = RequestCoalescer()
        calls = []

        async def compute():
            calls.append(1)
            return len(calls)

        assert await coalescer.run("k", compute) == 1
        assert await coalescer.run("k", compute) == 2

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_share(self):
        coalescer = RequestCoalescer()

        async def compute(value):
            await asyncio.sleep(0.01)
            return value

        a, b = await asyncio.gather(
            coalescer.run("a", lambda: compute("A")),
            coalescer.run("b", lambda: compute("B")),
        )
        assert (a, b) == ("A", "B")
