"""Caller-side retry with exponential backoff.

The generation service itself never retries: every model call is billed, and
only the caller knows whether another attempt is worth it. Wrap
``ReplyGenerationService.generate`` (or any coroutine function raising the
same errors) with ``retry_generation`` to opt in.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Optional, ParamSpec, TypeVar

from .errors import UpstreamError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retry_generation(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    on_retry: Optional[Callable[[int, UpstreamError], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry retryable ``UpstreamError``s with exponentially increasing delays.

    Validation errors, non-retryable provider errors and cancellation are
    raised straight away.

    Example:
        generate = retry_generation(max_attempts=3)(service.generate)
        result = await generate(request)
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except UpstreamError as exc:
                    if not exc.retryable:
                        raise
                    if attempt >= max_attempts:
                        logger.error("All %d attempts exhausted for %s: %s", max_attempts, name, exc.reason)
                        raise
                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                    logger.warning(
                        "Retry %d/%d for %s after %.1fs: %s",
                        attempt,
                        max_attempts - 1,
                        name,
                        delay,
                        exc.reason,
                    )
                    if on_retry:
                        on_retry(attempt, exc)
                    await sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
