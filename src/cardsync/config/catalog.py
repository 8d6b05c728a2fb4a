"""Reference catalog (official card browser) configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, ShouldCacheHook

CATALOG_BASE_URL = "https://fftcg.square-enix-games.com/en/"
CATALOG_TIMEOUT_SECONDS = 60.0
CATALOG_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/132.0.0.0 Safari/537.36"
)


@dataclass(frozen=True, slots=True)
class CatalogConfig:
    """Endpoints and transport settings for the card browser API."""

    resilience: ResilienceConfig
    session_path: str = "card-browser"
    cards_path: str = "get-cards"
    language: str = "en"
    search_filters: dict[str, object] = field(default_factory=dict)


def get_catalog_config(
    *,
    resilience: ResilienceConfig | None = None,
    cache_predicate: ShouldCacheHook | None = None,
) -> CatalogConfig:
    base_url = os.getenv("CATALOG_BASE_URL") or CATALOG_BASE_URL
    if not base_url.endswith("/"):
        base_url = f"{base_url}/"
    return CatalogConfig(
        resilience=resilience
        or ResilienceConfig(
            name="catalog",
            base_url=base_url,
            timeout_seconds=CATALOG_TIMEOUT_SECONDS,
            ratelimit=RateLimit(max_calls=2, per_seconds=1.0),
            cache=CacheConfig(should_cache=cache_predicate),
            default_headers={
                "accept-language": "en-US,en;q=0.9",
                "user-agent": CATALOG_USER_AGENT,
            },
        ),
    )
