"""Shared utilities for container operations."""

import asyncio
import functools
from typing import Optional


async def run_in_executor(func, *args, **kwargs):
    """
    Run a blocking function in the default thread pool executor.

    The docker SDK is synchronous; every daemon call goes through here so
    it suspends the calling coroutine instead of blocking the event loop.

    Args:
        func: Blocking function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_event_loop()
    if kwargs:
        func = functools.partial(func, **kwargs)
    return await loop.run_in_executor(None, func, *args)


def deadline_after(timeout: Optional[float]) -> Optional[float]:
    """Convert a relative timeout into an event loop deadline."""
    if timeout is None:
        return None
    return asyncio.get_event_loop().time() + timeout


def remaining_time(deadline: Optional[float]) -> Optional[float]:
    """Seconds left until ``deadline``, never negative; None if unbounded."""
    if deadline is None:
        return None
    return max(0.0, deadline - asyncio.get_event_loop().time())


def short_id(container_id: Optional[str]) -> str:
    """Truncate a container id for logging."""
    return container_id[:12] if container_id else "none"
