"""Exponential backoff for transient document store failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cardsync.domain.ports.persistence import TransientStoreError

log = logging.getLogger(__name__)

type Sleep = Callable[[float], Awaitable[None]]

DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Wait before retry number ``attempt + 1``: ``base_delay * 2**attempt``, capped."""

        return min(self.base_delay * (2**attempt), self.max_delay)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, TransientStoreError)


async def retry_transient[T](
    operation: Callable[[], Awaitable[T]],
    *,
    policy: BackoffPolicy,
    sleep: Sleep = asyncio.sleep,
    description: str = "store operation",
) -> T:
    """Run ``operation``, retrying transient store errors up to ``policy.max_retries`` times."""

    attempt = 0
    while True:
        try:
            return await operation()
        except TransientStoreError as exc:
            if attempt >= policy.max_retries:
                log.error("%s failed after %d retries: %s", description, attempt, exc)
                raise
            delay = policy.delay(attempt)
            log.warning(
                "%s failed (%s); retrying in %.1fs (%d/%d)",
                description,
                exc,
                delay,
                attempt + 1,
                policy.max_retries,
            )
        await sleep(delay)
        attempt += 1
