"""Bounded exponential-backoff retry for external API calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from indexer.exceptions import FetchError
from indexer.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def fetch_with_retry(
    fetch_fn: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    **kwargs,
) -> T:
    """Execute a fetch function, retrying retryable FetchErrors.

    Delays double on each attempt: base, 2*base, 4*base, ...
    Non-retryable errors are re-raised immediately; retryable ones are
    re-raised once max_retries attempts have been made.
    """
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            return await fetch_fn(*args, **kwargs)
        except FetchError as e:
            if not e.retryable or attempt == attempts - 1:
                logger.error(
                    "fetch_failed_permanently",
                    source=e.source,
                    error=e.detail,
                    attempts=attempt + 1,
                    retryable=e.retryable,
                )
                raise

            delay = base_delay * (2**attempt)
            logger.warning(
                "fetch_retry",
                source=e.source,
                attempt=attempt + 1,
                max_retries=attempts,
                delay=delay,
                error=e.detail,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
