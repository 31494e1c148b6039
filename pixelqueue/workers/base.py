"""
Worker Retry Helpers
Bounded retry with exponential backoff for transient failures.
"""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from pixelqueue.core.exceptions import QueueError, StoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def backoff_delay(attempt: int, base_delay: float, max_delay: Optional[float] = None) -> float:
    """Delay before retry number ``attempt`` (0-based), optionally capped."""
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def call_with_retry(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    max_delay: Optional[float] = None,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (StoreError, QueueError),
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``func`` and retry on retryable exceptions.

    Errors whose ``retryable`` attribute is False are raised immediately even
    if their type matches. After ``max_retries`` the last error is raised.
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)

        except retryable_exceptions as e:
            if not getattr(e, "retryable", True):
                raise

            if attempt >= max_retries:
                logger.error(f"[Failed] {name} exhausted all {max_retries} retries: {e}")
                raise

            delay = backoff_delay(attempt, retry_delay, max_delay)
            logger.warning(
                f"[Retry {attempt + 1}/{max_retries}] {name} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    max_delay: Optional[float] = None,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (StoreError, QueueError),
):
    """
    Decorator form of ``call_with_retry``.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Base delay between retries (seconds), doubled each attempt
        max_delay: Upper bound for a single delay
        retryable_exceptions: Tuple of exception types that should trigger retry
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return call_with_retry(
                func,
                *args,
                max_retries=max_retries,
                retry_delay=retry_delay,
                max_delay=max_delay,
                retryable_exceptions=retryable_exceptions,
                **kwargs,
            )
        return wrapper

    return decorator


__all__ = ["backoff_delay", "call_with_retry", "with_retry"]
