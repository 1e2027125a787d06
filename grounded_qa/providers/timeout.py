"""
Deadline for the evidence provider call.

The provider call is the only long suspension point in a request. On expiry
the provider coroutine is cancelled and ProviderTimeout is raised; nothing is
retried.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from grounded_qa.config import get
from grounded_qa.errors import ProviderTimeout
from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TIMEOUT_MESSAGE = "İstek zaman aşımına uğradı. Lütfen tekrar deneyin."


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: Optional[float] = None,
    label: str = "provider",
) -> T:
    """Await ``awaitable`` or raise ProviderTimeout after ``timeout_seconds``."""
    if timeout_seconds is None:
        timeout_seconds = float(get("providers", "request_timeout_seconds", fallback=60))
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(
            f"{label} call timed out after {timeout_seconds}s",
            extra={"data": {"timeout_seconds": timeout_seconds, "label": label}},
        )
        raise ProviderTimeout(TIMEOUT_MESSAGE) from None
