"""Bounded retry with a fixed backoff schedule for transient infrastructure errors."""

from __future__ import annotations

import asyncio
import logging
import socket
import urllib.error
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..errors import ModelTransportError

__all__ = [
    "BACKOFF_SCHEDULE",
    "TRANSIENT_MESSAGE_MARKERS",
    "execute_with_retry",
    "is_transient_error",
]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_SCHEDULE: tuple[float, ...] = (0.5, 1.0, 2.0)

TRANSIENT_MESSAGE_MARKERS: tuple[str, ...] = (
    "connection",
    "timeout",
    "temporarily unavailable",
    "service unavailable",
    "502",
    "503",
    "504",
)

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    socket.timeout,
    socket.gaierror,
    urllib.error.URLError,
    ModelTransportError,
)


def is_transient_error(error: BaseException | None) -> bool:
    """Return True when ``error`` (or anything in its cause chain) is retry-eligible."""
    seen: set[int] = set()
    current = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, asyncio.CancelledError):
            # Cancellation always comes from a caller; never retry it.
            return False
        if isinstance(current, _TRANSIENT_TYPES):
            return True
        message = str(current).lower()
        if any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def _delay_for(attempt: int, schedule: Sequence[float]) -> float:
    if attempt < len(schedule):
        return schedule[attempt]
    return schedule[-1]


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    label: Optional[str] = None,
    *,
    schedule: Sequence[float] = BACKOFF_SCHEDULE,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation`` and retry transient failures up to ``max_retries`` times.

    Non-transient errors propagate on first occurrence. Once the retry budget is
    exhausted the last transient error is re-raised unchanged.
    """
    name = label or "Operation"
    attempts = max(max_retries, 0) + 1
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as error:
            if not is_transient_error(error) or attempt >= attempts - 1:
                raise
            delay = _delay_for(attempt, schedule)
            LOGGER.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.1fs",
                name,
                attempt + 1,
                attempts,
                error,
                delay,
            )
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
