"""
Shared helpers used across the autoblog codebase.

Provides:
    - utc_now(): Timezone-aware UTC datetime (Supabase TIMESTAMPTZ columns)
    - generate_id(): UUID4 string for run identifiers
    - epoch_millis(): Millisecond timestamp used for unique file names
    - @with_retry: Exponential backoff for transient collaborator failures
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from autoblog.exceptions import RetryExhaustedError

T = TypeVar("T")

logger = logging.getLogger(__name__)


# ===========================================================================
# TIME AND IDENTIFIERS
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of ``datetime.now()`` or ``datetime.utcnow()`` for
    anything that ends up in a Supabase TIMESTAMPTZ column.
    """
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Return a new UUID4 string (pipeline run ids, log correlation)."""
    return str(uuid.uuid4())


def epoch_millis() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


# ===========================================================================
# RETRY WITH EXPONENTIAL BACKOFF
# Only the research feed uses this. Pipeline stages call the model exactly
# once and turn failures into sentinels at their own boundary.
# ===========================================================================


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry an async callable, sleeping ``base_delay * 2 ** (n - 1)`` after
    failed attempt ``n``.

    Exceptions outside ``retryable_exceptions`` propagate immediately.

    Raises:
        RetryExhaustedError: When every attempt failed; the last exception
            is available as ``last_error``.

    Usage::

        @with_retry(max_attempts=2, base_delay=1.0,
                    retryable_exceptions=(httpx.TransportError,))
        async def fetch_json(url: str) -> dict:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as exc:
                    if attempt == max_attempts:
                        logger.error(
                            "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                            op_name,
                            max_attempts,
                            exc,
                        )
                        raise RetryExhaustedError(op_name, max_attempts, exc) from exc
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        "[RETRY] %s attempt %d/%d failed: %s. Retrying in %.1fs...",
                        op_name,
                        attempt,
                        max_attempts,
                        exc,
                        delay,
                    )
                    await asyncio.sleep(delay)
            raise RetryExhaustedError(op_name, 0, ValueError("max_attempts must be >= 1"))

        return wrapper

    return decorator
