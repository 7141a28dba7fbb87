"""Bounded-concurrency runner: a fixed pool of asyncio workers over a shared queue."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_concurrent(
    items: Iterable[T],
    concurrency: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply *fn* to every item with at most *concurrency* calls in flight.

    Workers pull the next item as soon as they finish the previous one, so
    results come back in completion order, not input order.  An exception
    raised by *fn* is logged and that item is left out of the results;
    callers must not assume one result per item.

    Args:
        items: Items to process.  Each is processed exactly once.
        concurrency: Maximum number of concurrent *fn* calls (>= 1).
        fn: Coroutine function applied to each item.

    Returns:
        The successful results.

    Raises:
        ValueError: If *concurrency* is less than 1.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    queue: deque[T] = deque(items)
    results: list[R] = []
    failures = 0

    async def worker() -> None:
        nonlocal failures
        while queue:
            item = queue.popleft()
            try:
                results.append(await fn(item))
            except Exception:
                failures += 1
                logger.warning("Concurrent task failed; dropping it", exc_info=True)

    workers = min(len(queue), concurrency)
    await asyncio.gather(*(worker() for _ in range(workers)))

    if failures:
        logger.debug("%d of %d task(s) failed", failures, failures + len(results))
    return results


async def run_tasks(
    tasks: Iterable[Callable[[], Awaitable[T]]],
    concurrency: int,
) -> list[T]:
    """Run zero-argument coroutine factories with bounded concurrency.

    Same guarantees as ``run_concurrent``.
    """
    return await run_concurrent(tasks, concurrency, lambda task: task())
