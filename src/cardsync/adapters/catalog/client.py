"""HTTP client for the official card browser."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from cardsync.adapters.http_resilience import ResilienceConfig, ResilientClient
from cardsync.config.catalog import CATALOG_BASE_URL, CatalogConfig, get_catalog_config
from cardsync.domain.ports.fetching import CatalogFetcher, CatalogFetchError

from .schema import CardsEnvelope, CatalogCardPayload
from .translator import parse_canonical_card

if TYPE_CHECKING:
    from collections.abc import Callable

    from cardsync.domain.model import CanonicalCard

log = getLogger(__name__)

_EMPTY_SEARCH: dict[str, object] = {
    "text": "",
    "type": [],
    "element": [],
    "cost": [],
    "rarity": [],
    "power": [],
    "category_1": [],
    "set": [],
    "multicard": "",
    "ex_burst": "",
    "code": "",
    "special": "",
    "exactmatch": 0,
}


def _should_cache_payload(payload: object) -> bool:
    return isinstance(payload, dict) and bool(payload.get("cards"))


def _default_config() -> CatalogConfig:
    return get_catalog_config(cache_predicate=_should_cache_payload)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class CatalogClient:
    """Fetch the complete card list.

    The card browser only answers search requests that carry the session
    cookies of a prior page visit, so every fetch opens the browser page
    first and posts an unfiltered search afterwards.
    """

    config: CatalogConfig = field(default_factory=_default_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def fetch_all(self) -> list[CanonicalCard]:
        try:
            async with self.client_factory(self.config.resilience) as client:
                await self._establish_session(client)
                envelope = await self._request_cards(client)
        except httpx.HTTPError as exc:
            raise CatalogFetchError(f"Card browser request failed: {exc}") from exc

        cards: list[CanonicalCard] = []
        skipped = 0
        for raw_card in envelope.cards:
            try:
                payload = CatalogCardPayload.model_validate(raw_card)
            except ValidationError as exc:
                skipped += 1
                log.warning("Skipping malformed catalog card: %s", exc.errors()[0]["msg"])
                continue
            cards.append(parse_canonical_card(payload))

        log.info("Fetched %d catalog cards (%d skipped)", len(cards), skipped)
        return cards

    def _url(self, path: str) -> str:
        base_url = self.config.resilience.base_url or CATALOG_BASE_URL
        return f"{base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _establish_session(self, client: ResilientClient) -> None:
        response = await client.get(
            self._url(self.config.session_path),
            headers={"accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
        )
        response.raise_for_status()
        if not response.headers.get("set-cookie"):
            raise CatalogFetchError("Card browser did not hand out session cookies")
        log.debug("Established card browser session")

    async def _request_cards(self, client: ResilientClient) -> CardsEnvelope:
        session_url = self._url(self.config.session_path)
        origin = httpx.URL(session_url).copy_with(path="/", query=None, fragment=None)
        response = await client.post(
            self._url(self.config.cards_path),
            json={"language": self.config.language, **_EMPTY_SEARCH, **self.config.search_filters},
            headers={
                "accept": "*/*",
                "origin": str(origin).rstrip("/"),
                "referer": session_url,
                "x-requested-with": "XMLHttpRequest",
            },
        )
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogFetchError("Card browser returned a non-JSON response") from exc
        try:
            return CardsEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise CatalogFetchError("Card browser response has no cards array") from exc


if TYPE_CHECKING:
    _fetcher_check: CatalogFetcher = CatalogClient()
