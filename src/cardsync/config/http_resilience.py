"""Transport settings shared by the catalog and image HTTP clients."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

ShouldCacheHook = Callable[[object], bool]

RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries handed to ``httpx_retries``.

    The card browser search is a POST without side effects, so it is retried
    alongside the page visit and image downloads.
    """

    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 60.0
    backoff_jitter: float = 1.0
    respect_retry_after_header: bool = True
    methods: frozenset[str] = frozenset({"GET", "POST"})
    statuses: frozenset[int] = RETRYABLE_STATUSES
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """In-memory response cache living as long as one client.

    ``should_cache`` sees the decoded JSON body; responses it rejects are
    never stored, so a failed catalog search is fetched again on retry.
    """

    ttl_seconds: float | None = None
    should_cache: ShouldCacheHook | None = None


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = None
    default_headers: Mapping[str, str] | None = None
