from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from app.core.errors import TransportFailure


log = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_seconds(attempt: int, base: float = 0.5, factor: float = 2.0) -> float:
    # exponential backoff: base, base*2, base*4, ...
    return base * (factor ** max(0, attempt - 1))


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    initial_delay: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (TransportFailure,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call fn, retrying up to `retries` more times on the given exceptions.
    Anything else (including CredentialRefreshFailed) propagates immediately.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as e:
            if attempt >= retries:
                log.warning("giving up after %d retries: %s", retries, e)
                raise
            attempt += 1
            delay = compute_backoff_seconds(attempt, base=initial_delay)
            log.info("attempt %d failed (%s), retrying in %.2fs", attempt, e, delay)
            await sleep(delay)
