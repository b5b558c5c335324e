"""Async utilities for bridging blocking store I/O to the async sync core."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Module-level semaphore, initialized at server startup
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int = 4) -> None:
    """Initialize the remote request semaphore. Call once at server startup."""
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.info(
        "Remote request semaphore initialized: max_parallel=%d",
        max_parallel,
    )


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for local filesystem calls, which are not bounded by the remote
    request semaphore.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        data = await run_sync(path.read_bytes)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool, bounded by the concurrency semaphore.

    Falls back to unbounded if semaphore not initialized.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
    limit: int,
) -> list[T]:
    """Run coroutines concurrently with at most *limit* in flight.

    Returns results in order. Exceptions propagate from the first failure.

    Args:
        coros: Sequence of coroutines to run concurrently.
        limit: Maximum number of coroutines awaited at the same time.

    Returns:
        List of results in the same order as input coroutines.
    """
    gate = asyncio.Semaphore(max(1, limit))

    async def _bounded(coro: Coroutine[Any, Any, T]) -> T:
        async with gate:
            return await coro

    return list(await asyncio.gather(*(_bounded(c) for c in coros)))


async def gather_settled(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T | BaseException]:
    """Run coroutines concurrently and wait for all of them to settle.

    A failure never cancels its siblings; exceptions are returned in place
    of the corresponding result.
    """
    return list(await asyncio.gather(*coros, return_exceptions=True))
