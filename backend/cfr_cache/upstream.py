"""Collaborator interfaces consumed by the cache, plus the shared retry policy."""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Awaitable, Callable, Protocol, Sequence, TypeVar

from cfr_cache.errors import RateLimited
from cfr_cache.metrics import UPSTREAM_RETRIES_TOTAL
from cfr_cache.schemas.ecfr import Agency, TitleInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpstreamFetcher(Protocol):
    async def fetch_title_content(self, title_number: int, when: date) -> str:
        """Raw XML of a title as of `when`; raises RateLimited / UpstreamUnavailable."""
        ...


class TitleCatalog(Protocol):
    async def list_titles(self) -> Sequence[TitleInfo]:
        ...


class AgencyCatalog(Protocol):
    async def list_agencies(self) -> Sequence[Agency]:
        ...


def backoff_delay(attempt: int, base_delay: float, retry_after: float | None = None) -> float:
    """Delay before retry number `attempt` (1-based): base * 2**(attempt-1).

    A server-provided Retry-After wins when it asks for longer.
    """
    delay = base_delay * (2 ** (attempt - 1))
    if retry_after is not None:
        delay = max(delay, retry_after)
    return delay


async def retry_rate_limited(
    call: Callable[[], Awaitable[T]],
    *,
    endpoint: str,
    max_attempts: int,
    base_delay: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run `call`, retrying only on RateLimited, at most `max_attempts` times in total."""
    attempt = 1
    while True:
        try:
            return await call()
        except RateLimited as exc:
            if attempt >= max_attempts:
                logger.warning(
                    "Rate limited on %s, giving up after %s attempts", endpoint, attempt
                )
                raise
            delay = backoff_delay(attempt, base_delay, exc.retry_after)
            UPSTREAM_RETRIES_TOTAL.labels(endpoint=endpoint).inc()
            logger.info(
                "Rate limited on %s (attempt %s/%s), retrying in %.1fs",
                endpoint,
                attempt,
                max_attempts,
                delay,
            )
            await sleep(delay)
            attempt += 1
