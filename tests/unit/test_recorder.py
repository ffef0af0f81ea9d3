"""Unit tests for the per-call record writer."""
import asyncio

import pytest

from app.services.call_session.recorder import CallRecorder


class TestCallRecorder:
    """Test CallRecorder."""

    @pytest.mark.asyncio
    async def test_writes_run_in_order(self):
        """Test writes run in submission order without blocking submit."""
        recorder = CallRecorder("CA1")
        done = []

        async def write(value, delay):
            await asyncio.sleep(delay)
            done.append(value)

        recorder.submit("first", lambda: write(1, 0.02))
        recorder.submit("second", lambda: write(2, 0.0))
        assert done == []

        await recorder.flush()
        assert done == [1, 2]
        await recorder.close()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_writes(self):
        recorder = CallRecorder("CA1")
        done = []

        async def broken():
            raise RuntimeError("database is down")

        async def ok():
            done.append("ok")

        recorder.submit("broken", broken)
        recorder.submit("ok", ok)
        await recorder.close()

        assert done == ["ok"]
        assert recorder.failures == 1

    @pytest.mark.asyncio
    async def test_close_flushes_and_rejects_new_writes(self):
        recorder = CallRecorder("CA1")
        done = []

        async def write():
            done.append(True)

        recorder.submit("write", write)
        await recorder.close()

        assert done == [True]
        assert recorder.submit("late", write) is False

    @pytest.mark.asyncio
    async def test_close_timeout_abandons_pending(self):
        """Test a stuck write does not hold up close beyond its timeout."""
        recorder = CallRecorder("CA1")

        async def stuck():
            await asyncio.sleep(10)

        recorder.submit("stuck", stuck)
        await asyncio.wait_for(recorder.close(timeout=0.05), 1.0)

    @pytest.mark.asyncio
    async def test_close_without_writes(self):
        recorder = CallRecorder("CA1")
        await recorder.close()
        assert recorder.submit("late", lambda: None) is False
