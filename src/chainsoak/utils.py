import asyncio
import contextlib
from collections.abc import Awaitable
from time import perf_counter
from typing import TypeVar

T = TypeVar("T")


async def sleep_or_stop(stop: asyncio.Event, delay: float) -> bool:
    """Sleep for ``delay`` seconds. Returns True if ``stop`` fired instead."""
    if stop.is_set():
        return True
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(stop.wait(), timeout=delay)
    return stop.is_set()


async def with_timeout(aw: Awaitable[T], timeout: float | None) -> T:
    """Await ``aw``; TimeoutError after ``timeout`` seconds unless it is None."""
    async with asyncio.timeout(timeout):
        return await aw


def since(start: float) -> str:
    return f"{perf_counter() - start:.3f}s"
