"""Prefix search terms for the ``cards`` collection.

Each card gets the prefixes of its lower-cased clean name plus progressive
fragments of its card numbers (``"1"``, ``"1-"``, ``"1-0"``, ``"1-00"``...).
A hash of the sorted terms is kept per card so unchanged cards are not
rewritten on the next pass.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING

from cardsync.domain.batch_writes import (
    BackoffPolicy,
    retry_transient,
    set_document,
    update_document,
)
from cardsync.domain.model import CardField, LocalCard
from cardsync.domain.ports.persistence import SERVER_TIMESTAMP, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from cardsync.domain.batch_writes import BatchWriteCoordinator
    from cardsync.domain.batch_writes.retry import Sleep
    from cardsync.domain.ports.persistence import Document, DocumentStore

log = logging.getLogger(__name__)

CARDS_COLLECTION = "cards"
SEARCH_HASHES_COLLECTION = "searchHashes"
DEFAULT_PAGE_SIZE = 500


def name_terms(text: str | None) -> list[str]:
    if not text:
        return []
    clean = text.lower().strip()
    if not clean:
        return []
    terms = [clean]
    terms.extend(clean[:end] for end in range(1, len(clean)))
    return list(dict.fromkeys(terms))


def number_terms(numbers: Iterable[str] | None) -> list[str]:
    terms: list[str] = []
    for number in numbers or ():
        clean = "".join(number.lower().split())
        if not clean:
            continue
        terms.append(clean[0])
        if "-" not in clean:
            terms.append(clean)
            continue
        prefix, suffix = clean.split("-")[:2]
        if prefix:
            terms.extend((prefix, f"{prefix}-"))
            terms.extend(f"{prefix}-{suffix[:end]}" for end in range(1, len(suffix) + 1))
    return list(dict.fromkeys(terms))


def search_terms(card: LocalCard) -> list[str] | None:
    """Terms for ``card``, or ``None`` when the card should not be indexed."""

    if card.card_numbers is None:
        return None
    names = name_terms(card.clean_name)
    if not card.is_non_card and not names:
        return None
    return list(dict.fromkeys([*names, *number_terms(card.card_numbers)]))


def terms_fingerprint(terms: Iterable[str]) -> str:
    payload = json.dumps(sorted(terms), separators=(",", ":"), ensure_ascii=False)
    return hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest()


@dataclass(slots=True, kw_only=True)
class SearchIndexResult:
    success: bool
    total_processed: int = 0
    total_updated: int = 0
    duration_seconds: float = 0.0
    error: str | None = None


@dataclass(slots=True)
class SearchIndexer:
    store: DocumentStore
    coordinator: BatchWriteCoordinator
    page_size: int = DEFAULT_PAGE_SIZE
    page_backoff: BackoffPolicy = field(
        default_factory=lambda: BackoffPolicy(max_retries=3, base_delay=1.0)
    )
    sleep: Sleep = asyncio.sleep

    async def run(self, *, force: bool = False, limit: int | None = None) -> SearchIndexResult:
        started = time.monotonic()
        result = SearchIndexResult(success=True)
        log.info("Starting search index update (force=%s, limit=%s)", force, limit)

        try:
            await self._index_all(result, force=force, limit=limit)
        except StoreError as exc:
            log.error("Search index update failed: %s", exc)
            result.success = False
            result.error = str(exc)

        result.duration_seconds = time.monotonic() - started
        return result

    async def _index_all(
        self,
        result: SearchIndexResult,
        *,
        force: bool,
        limit: int | None,
    ) -> None:
        cursor: str | None = None
        while limit is None or result.total_processed < limit:
            page_limit = self.page_size
            if limit is not None:
                page_limit = min(page_limit, limit - result.total_processed)
            page = await self._read_page(cursor, page_limit)
            if not page:
                break
            result.total_updated += await retry_transient(
                partial(self._index_page, page, force=force),
                policy=self.page_backoff,
                sleep=self.sleep,
                description=f"Search index page starting at {page[0].key!r}",
            )
            result.total_processed += len(page)
            cursor = page[-1].key
            log.info(
                "Search index progress: processed=%s, updated=%s",
                result.total_processed,
                result.total_updated,
            )
            if len(page) < page_limit:
                break

    async def _read_page(self, cursor: str | None, page_limit: int) -> list[Document]:
        return await retry_transient(
            lambda: self.store.query(CARDS_COLLECTION, limit=page_limit, start_after=cursor),
            policy=self.page_backoff,
            sleep=self.sleep,
            description="Card page query",
        )

    async def _index_page(self, page: Sequence[Document], *, force: bool) -> int:
        """Look up stored hashes, submit changed cards and flush; safe to run again."""

        keys = [document.key for document in page]
        hash_documents = await self.store.get_all(SEARCH_HASHES_COLLECTION, keys)
        stored_hashes = {
            key: (document.data.get("hash") if document is not None else None)
            for key, document in zip(keys, hash_documents, strict=True)
        }

        updated = 0
        for document in page:
            card = LocalCard.from_document(document)
            terms = search_terms(card)
            if terms is None:
                continue
            digest = terms_fingerprint(terms)
            if not force and card.search_terms and stored_hashes.get(card.id) == digest:
                continue
            await self.coordinator.submit(
                update_document(
                    CARDS_COLLECTION,
                    card.id,
                    {
                        CardField.SEARCH_TERMS.value: terms,
                        CardField.SEARCH_LAST_UPDATED.value: SERVER_TIMESTAMP,
                    },
                )
            )
            await self.coordinator.submit(
                set_document(
                    SEARCH_HASHES_COLLECTION,
                    card.id,
                    {"hash": digest, "lastUpdated": SERVER_TIMESTAMP},
                )
            )
            updated += 1

        if updated:
            await self.coordinator.flush()
        return updated
