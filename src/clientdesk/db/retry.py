"""Retry helpers for transient database connection failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings seen in driver messages when the server is unreachable.
CONNECTION_ERROR_MARKERS = (
    "can't reach database server",
    "p1001",
    "p1000",
    "econnrefused",
    "connection",
    "timeout",
)


def is_connection_error(exc: BaseException) -> bool:
    """Return True if *exc* looks like a transient connectivity failure."""
    if isinstance(exc, (OperationalError, InterfaceError, ConnectionError, TimeoutError)):
        return True
    if isinstance(exc, OSError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in CONNECTION_ERROR_MARKERS)


async def retry_database_operation(
    operation: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay: float = 0.5,
) -> T:
    """Run *operation*, retrying connection errors with exponential backoff.

    Non-connection errors propagate on the first failure. After the final
    attempt the last connection error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            attempt += 1
            if not is_connection_error(exc) or attempt >= retries:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Database connection error (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                retries,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
