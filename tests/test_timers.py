"""Tests for pulse_client.timers module."""

import asyncio
import logging

import pytest

from pulse_client.timers import AsyncioScheduler, RepeatingTimer


class TestAsyncioScheduler:
    """Tests for AsyncioScheduler."""

    @pytest.mark.asyncio
    async def test_call_later_fires(self):
        """One-shot callbacks fire once after the delay."""
        scheduler = AsyncioScheduler()
        calls = []

        scheduler.call_later(0.01, lambda: calls.append("fired"))
        await asyncio.sleep(0.05)

        assert calls == ["fired"]

    @pytest.mark.asyncio
    async def test_call_later_cancel(self):
        """Cancelled one-shot callbacks never fire."""
        scheduler = AsyncioScheduler()
        calls = []

        handle = scheduler.call_later(0.01, lambda: calls.append("fired"))
        handle.cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_uses_running_loop(self):
        """Loop is taken from the running loop on first use."""
        scheduler = AsyncioScheduler()
        assert scheduler.loop is asyncio.get_running_loop()

    @pytest.mark.asyncio
    async def test_call_repeating(self):
        """Repeating callbacks fire until cancelled."""
        scheduler = AsyncioScheduler()
        calls = []

        timer = scheduler.call_repeating(0.01, lambda: calls.append(1))
        await asyncio.sleep(0.065)
        timer.cancel()
        count = len(calls)
        await asyncio.sleep(0.03)

        assert count >= 3
        assert len(calls) == count
        assert timer.cancelled


class TestRepeatingTimer:
    """Tests for RepeatingTimer."""

    @pytest.mark.asyncio
    async def test_cancel_before_first_tick(self):
        """Cancelling right after start prevents any tick."""
        calls = []
        timer = RepeatingTimer(asyncio.get_running_loop(), 0.01, lambda: calls.append(1)).start()
        timer.cancel()
        await asyncio.sleep(0.03)
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_twice(self):
        """Cancelling twice is harmless."""
        timer = RepeatingTimer(asyncio.get_running_loop(), 0.01, lambda: None).start()
        timer.cancel()
        timer.cancel()
        assert timer.cancelled

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_running(self, caplog):
        """A raising callback is logged and the timer keeps ticking."""
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        timer = RepeatingTimer(asyncio.get_running_loop(), 0.01, flaky).start()
        with caplog.at_level(logging.ERROR, logger="pulse_client"):
            await asyncio.sleep(0.055)
        timer.cancel()

        assert len(calls) >= 2
        assert "Repeating timer callback failed" in caplog.text
