"""
Shared helpers for the order ingestion backend: retry on transient database
failures and text sanitizing for user-supplied values.
"""
import asyncio
import functools
import logging
import random
from typing import Callable, Optional, Tuple, Type

from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    TimeoutError as SQLAlchemyTimeoutError,
)

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS: Tuple[Type[Exception], ...] = (
    OperationalError,
    InterfaceError,
    SQLAlchemyTimeoutError,
    DisconnectionError,
    ConnectionError,
    TimeoutError,
)

TRANSIENT_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection timed out",
    "too many connections",
    "server closed the connection",
    "could not connect",
    "temporarily unavailable",
    "40001",  # serialization failure
)


def is_transient_error(exc: Exception) -> bool:
    """True for failures worth retrying (dropped connections, pool timeouts, serialization)."""
    if isinstance(exc, TRANSIENT_DB_ERRORS):
        return True
    error_msg = str(exc).lower()
    return any(pattern in error_msg for pattern in TRANSIENT_PATTERNS)


def retry_async(
    max_retries: int = 3,
    base_delay: float = 0.2,
    max_delay: float = 5.0,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
):
    """
    Retry an async callable with jittered exponential backoff.

    Only idempotent reads should be decorated: a retried write could be applied twice.

    Args:
        max_retries: attempts after the first call
        base_delay: first backoff in seconds
        max_delay: backoff ceiling in seconds
        retry_on: exception types to retry (defaults to is_transient_error)
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    should_retry = isinstance(e, retry_on) if retry_on else is_transient_error(e)
                    if not should_retry or attempt >= max_retries:
                        raise

                    delay = min(base_delay * (2 ** attempt), max_delay)
                    delay = delay * (0.5 + random.random())
                    logger.warning(
                        f"Retry {attempt + 1}/{max_retries} for {func.__name__} "
                        f"after {delay:.2f}s due to: {type(e).__name__}: {str(e)[:100]}"
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


def sanitize_string(value: Optional[str], max_length: int = 1000, default: str = "") -> str:
    """Strip NUL bytes and surrounding whitespace, truncate to max_length."""
    if value is None:
        return default
    cleaned = str(value).replace("\x00", "").strip()
    return cleaned[:max_length] if len(cleaned) > max_length else cleaned
