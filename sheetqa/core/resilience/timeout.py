"""Hard timeouts for awaitables."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from sheetqa.core.exceptions import StepTimeoutError

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout_s: float, message: str) -> T:
    """
    Await ``awaitable`` for at most ``timeout_s`` seconds.

    The awaited task is cancelled on expiry and ``StepTimeoutError`` is raised
    with ``message``.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as e:
        raise StepTimeoutError(message, details={"timeout_s": timeout_s}) from e
