"""Tests for the cancellation signal and guarded awaits."""

import asyncio

import pytest

from core.cancellation import CancelSignal, guarded
from core.errors import Cancelled


class TestGuarded:
    @pytest.mark.asyncio
    async def test_without_signal(self):
        assert await guarded(asyncio.sleep(0, result=5), None) == 5

    @pytest.mark.asyncio
    async def test_result_wins_when_ready(self):
        signal = CancelSignal()
        assert await guarded(asyncio.sleep(0, result="ok"), signal) == "ok"

    @pytest.mark.asyncio
    async def test_signal_interrupts_pending_operation(self):
        signal = CancelSignal()
        never = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, signal.cancel, "stop")

        with pytest.raises(Cancelled) as exc_info:
            await guarded(never.wait(), signal)
        assert exc_info.value.reason == "stop"

    @pytest.mark.asyncio
    async def test_first_reason_is_kept(self):
        signal = CancelSignal()
        signal.cancel("first")
        signal.cancel("second")
        assert signal.aborted
        with pytest.raises(Cancelled, match="first"):
            signal.raise_if_aborted()

    def test_default_reason(self):
        assert Cancelled().reason == "aborted"
