"""Bounded retry with early exit on unretryable failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from seatsnipe.errors import UnretryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    delay: float,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Await ``operation()`` up to ``attempts`` times, sleeping ``delay`` between tries.

    An ``UnretryableError`` stops immediately and its cause is raised instead.
    When every attempt fails the last error is raised.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except UnretryableError as e:
            logger.warning(
                "%s attempt %d/%d failed with unretryable error: %s",
                label, attempt, attempts, e.cause,
            )
            raise e.cause from None
        except Exception as e:
            if attempt == attempts:
                logger.warning("%s attempt %d/%d failed: %s", label, attempt, attempts, e)
                raise
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                label, attempt, attempts, e, delay,
            )
            await sleep(delay)

    raise AssertionError("unreachable")
