"""Timeout helper for collaborator calls."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await a collaborator call, giving up after `timeout` seconds.

    Args:
        awaitable: Pending store/issuer/notifier call
        timeout: Seconds to wait, or None for no bound

    Raises:
        TimeoutError: If the call did not finish in time
    """
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)
