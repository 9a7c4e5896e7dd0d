from __future__ import annotations

import asyncio

import pytest

from steward.tools.completion import CompletionTracker


@pytest.mark.asyncio
async def test_wait_returns_immediately_when_nothing_is_pending() -> None:
    tracker = CompletionTracker()

    assert await tracker.wait_for_all_completions(timeout=0.01) is True
    assert tracker.pending_count == 0


@pytest.mark.asyncio
async def test_waiter_is_released_after_matching_completions() -> None:
    tracker = CompletionTracker()
    for _ in range(3):
        tracker.register_start()

    waiter = asyncio.create_task(tracker.wait_for_all_completions(timeout=1.0))
    await asyncio.sleep(0)
    tracker.register_completion()
    tracker.register_completion()
    await asyncio.sleep(0)
    assert not waiter.done()

    tracker.register_completion()

    assert await waiter is True
    assert tracker.pending_count == 0


@pytest.mark.asyncio
async def test_concurrent_waiters_are_all_released() -> None:
    tracker = CompletionTracker()
    tracker.register_start()

    waiters = [asyncio.create_task(tracker.wait_for_all_completions(timeout=1.0)) for _ in range(3)]
    await asyncio.sleep(0)
    tracker.register_completion()

    assert await asyncio.gather(*waiters) == [True, True, True]


@pytest.mark.asyncio
async def test_wait_times_out_while_operations_remain() -> None:
    tracker = CompletionTracker()
    tracker.register_start()

    assert await tracker.wait_for_all_completions(timeout=0.01) is False
    assert tracker.pending_count == 1


@pytest.mark.asyncio
async def test_completion_at_zero_is_ignored_and_reset_clears_count() -> None:
    tracker = CompletionTracker()
    tracker.register_completion()
    assert tracker.pending_count == 0

    tracker.register_start()
    tracker.register_start()
    tracker.reset()

    assert tracker.pending_count == 0
    assert await tracker.wait_for_all_completions(timeout=0.01) is True
