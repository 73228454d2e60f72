"""Async utilities for bridging blocking HTTP and file calls to asyncio."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class RequestLimiter:
    """Bound the number of blocking calls running in worker threads.

    Each client owns its limiter, so two clients never share a budget.

    Args:
        max_parallel: Maximum number of concurrent calls, or ``None`` for
            no limit.
    """

    def __init__(self, max_parallel: int | None = None) -> None:
        self.max_parallel = max_parallel
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore | None:
        # Created lazily so the semaphore binds to the running loop.
        if self.max_parallel is None:
            return None
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_parallel)
            logger.debug(
                "Request limiter initialized: max_parallel=%d",
                self.max_parallel,
            )
        return self._semaphore

    async def run(
        self, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Run *func* in a worker thread, bounded by the limiter."""
        semaphore = self._get_semaphore()
        if semaphore is None:
            return await run_sync(func, *args, **kwargs)
        async with semaphore:
            return await run_sync(func, *args, **kwargs)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for ``requests`` calls and file-system access.  The calling task
    suspends here and nowhere else, which keeps the cooperative scheduling
    model intact.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        content = await run_sync(path.read_text, encoding="utf-8")
    """
    return await asyncio.to_thread(func, *args, **kwargs)
