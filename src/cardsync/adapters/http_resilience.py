"""httpx client with rate limiting, transport retries and an optional in-memory cache."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, TypedDict, Unpack

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage, BaseFilter, FilterPolicy
from hishel import Response as HishelCacheResponse
from hishel.httpx import AsyncCacheTransport
from httpx_retries import Retry, RetryTransport

from cardsync.config.http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)

if TYPE_CHECKING:
    from types import TracebackType

    from httpx._types import HeaderTypes, QueryParamTypes, TimeoutTypes, URLTypes

__all__ = [
    "CacheConfig",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
    "build_retry",
]

log = logging.getLogger(__name__)

IN_MEMORY_DATABASE = ":memory:"


class RequestOptions(TypedDict, total=False):
    json: object
    params: QueryParamTypes | None
    headers: HeaderTypes | None


class AsyncClientOptions(TypedDict, total=False):
    base_url: str
    timeout: TimeoutTypes
    headers: HeaderTypes
    transport: httpx.AsyncBaseTransport
    follow_redirects: bool


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
        allowed_methods=tuple(sorted(policy.methods)),
        status_forcelist=tuple(sorted(policy.statuses)),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_jitter=policy.backoff_jitter,
    )


class ResilientClient:
    """Rate-limited, retrying client; responses are cached when ``config.cache`` is set."""

    def __init__(self, config: ResilienceConfig) -> None:
        self.config = config
        self._limiter: AsyncLimiter | None = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit
            else None
        )

        self._cache_storage: AsyncSqliteStorage | None = None
        transport: httpx.AsyncBaseTransport = RetryTransport(retry=build_retry(config.retry))
        if config.cache is not None:
            self._cache_storage, policy = _build_cache_components(config.cache)
            transport = AsyncCacheTransport(
                next_transport=transport, storage=self._cache_storage, policy=policy
            )

        client_kwargs: AsyncClientOptions = {
            "timeout": config.timeout_seconds,
            "transport": transport,
            "follow_redirects": True,
        }
        if config.base_url is not None:
            client_kwargs["base_url"] = config.base_url
        if config.default_headers:
            client_kwargs["headers"] = dict(config.default_headers)

        self._client = httpx.AsyncClient(**client_kwargs)
        log.debug(
            "Built %s client (cached=%s, ratelimited=%s)",
            config.name,
            config.cache is not None,
            self._limiter is not None,
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()
        if self._cache_storage is not None:
            await self._cache_storage.close()

    async def request(
        self,
        method: str,
        url: URLTypes,
        **kwargs: Unpack[RequestOptions],
    ) -> httpx.Response:
        if self._limiter is None:
            return await self._client.request(method, url, **kwargs)
        async with self._limiter:
            return await self._client.request(method, url, **kwargs)

    async def get(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: URLTypes, **kwargs: Unpack[RequestOptions]) -> httpx.Response:
        return await self.request("POST", url, **kwargs)


class _ShouldCacheResponseFilter(BaseFilter[HishelCacheResponse]):
    """Stores only responses whose JSON body passes the predicate."""

    def __init__(self, predicate: ShouldCacheHook) -> None:
        self._predicate = predicate

    def needs_body(self) -> bool:
        return True

    def apply(self, item: HishelCacheResponse, body: bytes | None) -> bool:  # noqa: ARG002
        if body is None:
            return True
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return False
        return bool(self._predicate(payload))


def _build_cache_components(
    config: CacheConfig,
) -> tuple[AsyncSqliteStorage, FilterPolicy | None]:
    storage = AsyncSqliteStorage(
        database_path=IN_MEMORY_DATABASE,
        default_ttl=config.ttl_seconds,
    )
    policy: FilterPolicy | None = None
    if config.should_cache is not None:
        policy = FilterPolicy(response_filters=[_ShouldCacheResponseFilter(config.should_cache)])
    return storage, policy
