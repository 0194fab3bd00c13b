"""
Unit Tests for the Bulkhead
===========================
"""

import asyncio
import threading
import time

import pytest

from smsly_resilience import Bulkhead, BulkheadFullError


class TestBulkhead:
    """Tests for the concurrency gate."""

    def test_rejects_when_full(self):
        """Should reject immediately once max_concurrent is reached."""
        bulkhead = Bulkhead("db", max_concurrent=2)

        assert bulkhead.try_acquire() is True
        assert bulkhead.try_acquire() is True
        with pytest.raises(BulkheadFullError) as exc_info:
            bulkhead.acquire()

        assert exc_info.value.max_concurrent == 2
        assert bulkhead.metrics["rejected_calls"] == 1

    def test_slot_released_on_error(self):
        """The slot is released when the block raises."""
        bulkhead = Bulkhead("db", max_concurrent=1)

        with pytest.raises(ValueError):
            with bulkhead.slot():
                assert bulkhead.in_flight == 1
                raise ValueError("boom")

        assert bulkhead.in_flight == 0

    def test_release_underflow(self):
        """Releasing more than acquired is a bug, not a silent no-op."""
        bulkhead = Bulkhead("db", max_concurrent=1)

        with pytest.raises(RuntimeError):
            bulkhead.release()

    def test_in_flight_bounded_under_contention(self):
        """In-flight never exceeds the cap and returns to zero."""
        bulkhead = Bulkhead("db", max_concurrent=5)
        observed = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                if bulkhead.try_acquire():
                    with lock:
                        observed.append(bulkhead.in_flight)
                    time.sleep(0.0005)
                    bulkhead.release()

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert observed
        assert max(observed) <= 5
        assert bulkhead.in_flight == 0

    def test_resize_keeps_in_flight(self):
        """Shrinking the cap never evicts running calls."""
        bulkhead = Bulkhead("db", max_concurrent=3)
        bulkhead.acquire()
        bulkhead.acquire()

        bulkhead.resize(1)

        assert bulkhead.in_flight == 2
        assert bulkhead.try_acquire() is False
        bulkhead.release()
        bulkhead.release()
        assert bulkhead.try_acquire() is True

    def test_uncapped_still_counts(self):
        """Removing the cap admits everything but keeps counting running calls."""
        bulkhead = Bulkhead("db", max_concurrent=1)
        bulkhead.acquire()

        bulkhead.resize(None)
        bulkhead.acquire()
        assert bulkhead.in_flight == 2
        assert bulkhead.available is None

        bulkhead.resize(1)
        assert bulkhead.try_acquire() is False
        bulkhead.release()
        bulkhead.release()
        assert bulkhead.in_flight == 0

    @pytest.mark.asyncio
    async def test_async_slot_released_on_cancel(self):
        """Cancelling a task inside slot_async releases its slot."""
        bulkhead = Bulkhead("db", max_concurrent=1)
        entered = asyncio.Event()

        async def hold():
            async with bulkhead.slot_async():
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.ensure_future(hold())
        await entered.wait()
        assert bulkhead.in_flight == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert bulkhead.in_flight == 0
