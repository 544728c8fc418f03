"""Async helper utilities for bounded fan-out inside activities."""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

from syncweave.core.config import settings

T = TypeVar("T")
R = TypeVar("R")

# Tasks currently running inside run_in_waves, across all activities of this worker
_active_task_count = 0


def _chunks(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


async def run_in_waves(
    items: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    wave_size: Optional[int] = None,
) -> List[R]:
    """Run ``func`` over ``items``, at most ``wave_size`` at a time.

    Each wave is awaited before the next starts. The first exception aborts the
    remaining waves and propagates (the other tasks of its wave still finish).

    Args:
        items: Inputs, processed in order
        func: Coroutine function called once per item
        wave_size: Max concurrent calls, defaults to SYNC_MAX_CONCURRENCY

    Returns:
        Results in input order
    """
    global _active_task_count

    size = wave_size or settings.SYNC_MAX_CONCURRENCY
    results: List[R] = []
    for wave in _chunks(list(items), size):
        _active_task_count += len(wave)
        try:
            wave_results = await asyncio.gather(*(func(item) for item in wave), return_exceptions=True)
        finally:
            _active_task_count -= len(wave)
        for result in wave_results:
            if isinstance(result, BaseException):
                raise result
        results.extend(wave_results)
    return results


def get_active_task_count() -> int:
    """Get the number of fan-out tasks currently running.

    Returns:
        Number of in-flight run_in_waves tasks
    """
    return _active_task_count
