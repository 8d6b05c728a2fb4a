from __future__ import annotations

import asyncio
import json
from typing import cast

import httpx
from hishel import Response as HishelCacheResponse
from hishel.httpx import AsyncCacheTransport

from cardsync.adapters.http_resilience import (
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    RetryPolicy,
    _ShouldCacheResponseFilter,  # type: ignore[reportPrivateUsage]
    build_retry,
)
from cardsync.config.catalog import get_catalog_config
from cardsync.config.http_resilience import CacheConfig
from cardsync.config.images import ImageStorageConfig

CARDS_URL = "https://cards.example/get-cards"


def _has_cards(payload: object) -> bool:
    return isinstance(payload, dict) and bool(payload.get("cards"))


def _transport(client: ResilientClient) -> httpx.AsyncBaseTransport:
    return client._client._transport  # noqa: SLF001  # type: ignore[reportPrivateUsage]


def test_retry_covers_the_catalog_search_post() -> None:
    retry = build_retry(RetryPolicy(total=2))

    assert retry.total == 2
    assert retry.is_retryable_method("POST")
    assert retry.is_retryable_method("GET")
    assert not retry.is_retryable_method("DELETE")
    assert retry.is_retryable_status_code(503)
    assert not retry.is_retryable_status_code(404)


def test_only_the_catalog_client_sits_behind_a_cache() -> None:
    catalog = ResilientClient(get_catalog_config().resilience)
    images = ResilientClient(ImageStorageConfig(bucket_name="cards").resilience)

    try:
        assert isinstance(_transport(catalog), AsyncCacheTransport)
        assert not isinstance(_transport(images), AsyncCacheTransport)
    finally:
        asyncio.run(catalog.aclose())
        asyncio.run(images.aclose())


def test_card_payloads_are_served_from_cache_and_empty_ones_are_refetched() -> None:
    payloads: list[dict[str, object]] = [
        {"cards": []},
        {"cards": [{"code": "1-001H"}]},
        {"cards": [{"code": "2-001H"}]},
    ]
    upstream: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        upstream.append(request)
        return httpx.Response(200, json=payloads[len(upstream) - 1])

    config = ResilienceConfig(name="catalog", cache=CacheConfig(should_cache=_has_cards))

    async def run() -> list[object]:
        async with ResilientClient(config) as client:
            transport = _transport(client)
            assert isinstance(transport, AsyncCacheTransport)
            transport.next_transport = httpx.MockTransport(handler)
            bodies: list[object] = []
            for _ in range(3):
                response = await client.post(CARDS_URL, json={"language": "en"})
                bodies.append(response.json())
            return bodies

    bodies = asyncio.run(run())

    assert len(upstream) == 2
    assert bodies == [payloads[0], payloads[1], payloads[1]]


def test_cache_filter_rejects_payloads_without_cards() -> None:
    cache_filter = _ShouldCacheResponseFilter(_has_cards)
    item = cast("HishelCacheResponse", None)

    assert cache_filter.needs_body()
    assert cache_filter.apply(item, b'{"cards": [{"code": "1-001H"}]}')
    assert not cache_filter.apply(item, b'{"cards": []}')
    assert not cache_filter.apply(item, b"<html>maintenance</html>")
    assert not cache_filter.apply(item, b"\xff\xfe")


def test_ratelimited_requests_reach_the_transport() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    config = ResilienceConfig(
        name="catalog",
        base_url="https://cards.example/",
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
    )

    async def run() -> list[int]:
        async with ResilientClient(config) as client:
            client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
                base_url="https://cards.example/", transport=httpx.MockTransport(handler)
            )
            first = await client.get("card-browser", headers={"accept": "text/html"})
            second = await client.post("get-cards", json={"language": "en"})
            return [first.status_code, second.status_code]

    assert asyncio.run(run()) == [200, 200]
    assert [(request.method, request.url.path) for request in seen] == [
        ("GET", "/card-browser"),
        ("POST", "/get-cards"),
    ]
    assert seen[0].headers["accept"] == "text/html"
    assert json.loads(seen[1].content) == {"language": "en"}
