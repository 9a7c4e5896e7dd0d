"""Counting primitive that lets the executor drain in-flight operations between steps."""

from __future__ import annotations

import asyncio
import logging

__all__ = ["CompletionTracker"]

LOGGER = logging.getLogger(__name__)


class CompletionTracker:
    """Track concurrently running operations and release waiters once none remain.

    The tracker keeps an :class:`asyncio.Event` that is set exactly while the
    pending count is zero. Every waiter blocked in
    :meth:`wait_for_all_completions` is released together when the last
    registered operation completes, and later waiters return immediately.
    """

    def __init__(self) -> None:
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending_count(self) -> int:
        """Return the number of operations currently registered as running."""
        return self._pending

    def register_start(self) -> None:
        """Record that an operation started."""
        self._pending += 1
        self._idle.clear()

    def register_completion(self) -> None:
        """Record that an operation finished; signal waiters on reaching zero."""
        if self._pending <= 0:
            return
        self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    async def wait_for_all_completions(self, timeout: float = 30.0) -> bool:
        """Wait until no operations are pending; return False if ``timeout`` elapses first."""
        if self._pending == 0:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Timed out after %.1fs waiting for %d pending operation(s)",
                timeout,
                self._pending,
            )
            return False
        return True

    def reset(self) -> None:
        """Zero the counter for a new conversation and release any waiters."""
        self._pending = 0
        self._idle.set()
