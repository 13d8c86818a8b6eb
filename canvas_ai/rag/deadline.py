"""Per-call timeouts for external collaborators."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from canvas_ai.rag.errors import ProviderError

T = TypeVar("T")


async def call_with_timeout(stage: str, awaitable: Awaitable[T], timeout_s: float) -> T:
    """Await an external call bounded by a timeout.

    Timeouts become ``ProviderError`` so callers handle them like any other
    provider failure. Cancellation is left to propagate.

    Args:
        stage: Pipeline stage name, carried on the raised error
        awaitable: Coroutine performing the external call
        timeout_s: Timeout in seconds

    Returns:
        The awaited result

    Raises:
        ProviderError: If the call does not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except TimeoutError as e:
        raise ProviderError(stage, f"timed out after {timeout_s:.1f}s") from e
