"""Reconciliation run: catalog in, minimal field updates out through the batch writer."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, cast

from cardsync.domain.batch_writes import (
    BackoffPolicy,
    retry_transient,
    set_document,
    update_document,
)
from cardsync.domain.catalog_snapshot import load_catalog_snapshot
from cardsync.domain.model import CardField, LocalCard
from cardsync.domain.ports.fetching import CatalogFetchError
from cardsync.domain.ports.persistence import SERVER_TIMESTAMP, StoreError

from .contracts import ReconcileOptions, ReconciliationResult
from .fingerprint import extension_codes, fingerprint
from .identifiers import CanonicalIndex
from .normalize import sanitize_key
from .resolve import clear_identifiers, resolve_fields, resolve_image_updates

if TYPE_CHECKING:
    from cardsync.domain.batch_writes import BatchWriteCoordinator
    from cardsync.domain.batch_writes.retry import Sleep
    from cardsync.domain.model import CanonicalCard
    from cardsync.domain.ports.fetching import CatalogFetcher
    from cardsync.domain.ports.images import CardImageProcessor
    from cardsync.domain.ports.persistence import DocumentStore

    from .contracts import FieldUpdates
    from .policy import MergeRules

log = logging.getLogger(__name__)

CARDS_COLLECTION = "cards"
FINGERPRINTS_COLLECTION = "catalogHashes"
DEFAULT_PAGE_SIZE = 500


class CardOutcome(StrEnum):
    UNMATCHED = "unmatched"
    UNCHANGED = "unchanged"
    NO_CHANGES = "no_changes"
    UPDATED = "updated"
    CLEARED = "cleared"


_MATCHED = frozenset({CardOutcome.UNCHANGED, CardOutcome.NO_CHANGES, CardOutcome.UPDATED})


@dataclass(slots=True)
class ReconciliationEngine:
    """Reconcile the ``cards`` collection against the reference catalog.

    Per local record: find its catalog entry, skip it when the stored
    fingerprint says nothing relevant changed, otherwise resolve the field
    updates and submit them followed by the new fingerprint. Records that
    fail on their own are logged and counted; fetch and store failures end
    the run with ``success=False``.
    """

    store: DocumentStore
    coordinator: BatchWriteCoordinator
    rules: MergeRules
    fetcher: CatalogFetcher | None = None
    images: CardImageProcessor | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    read_backoff: BackoffPolicy = field(
        default_factory=lambda: BackoffPolicy(max_retries=3, base_delay=1.0, max_delay=10.0)
    )
    sleep: Sleep = asyncio.sleep
    clock: Callable[[], float] = time.monotonic

    async def run(self, options: ReconcileOptions | None = None) -> ReconciliationResult:
        options = options or ReconcileOptions()
        started = self.clock()
        result = ReconciliationResult(success=True)
        log.info(
            "Starting reconciliation: force=%s, dry_run=%s, limit=%s, group_id=%s, snapshot=%s",
            options.force,
            options.dry_run,
            options.limit,
            options.group_id,
            options.from_snapshot,
        )

        try:
            canonicals = await self._load_catalog(options)
            index = CanonicalIndex(canonicals)
            local_cards = await self._load_local_cards(options)
            result.total_cards = len(local_cards)
            prior = await self._load_fingerprints(canonicals)

            for local in local_cards:
                try:
                    outcome = await self._reconcile_card(local, index, prior, options)
                except StoreError:
                    raise
                except Exception:
                    log.exception("Failed to reconcile card %s", local.id)
                    result.errors += 1
                    continue
                if outcome in _MATCHED:
                    result.matches_found += 1
                if outcome in {CardOutcome.UPDATED, CardOutcome.CLEARED}:
                    result.cards_updated += 1
                elif outcome is CardOutcome.UNCHANGED:
                    result.unchanged += 1

            if not options.dry_run:
                await self.coordinator.flush()
        except (CatalogFetchError, StoreError) as exc:
            log.error("Reconciliation failed: %s", exc)
            result.success = False
            result.error = str(exc)

        result.duration_seconds = self.clock() - started
        log.info(
            "Reconciliation finished: success=%s, cards=%s, matched=%s, updated=%s, "
            "unchanged=%s, errors=%s, duration=%.1fs",
            result.success,
            result.total_cards,
            result.matches_found,
            result.cards_updated,
            result.unchanged,
            result.errors,
            result.duration_seconds,
        )
        return result

    async def _reconcile_card(
        self,
        local: LocalCard,
        index: CanonicalIndex,
        prior: dict[str, str],
        options: ReconcileOptions,
    ) -> CardOutcome:
        if local.is_non_card:
            updates = clear_identifiers(local)
            if updates.is_empty:
                return CardOutcome.UNMATCHED
            await self._submit_updates(local, updates, options)
            return CardOutcome.CLEARED

        canonical = index.find_match(local)
        if canonical is None:
            return CardOutcome.UNMATCHED

        key = sanitize_key(canonical.code)
        current = fingerprint(canonical, extension_codes(local.card_numbers))
        if not options.force and prior.get(key) == current:
            return CardOutcome.UNCHANGED

        updates = resolve_fields(local, canonical, self.rules)
        updates.update(await resolve_image_updates(local, canonical, self.rules, self.images))
        if updates.is_empty:
            return CardOutcome.NO_CHANGES

        await self._submit_updates(local, updates, options)
        await self._submit_fingerprint(local, canonical, updates, options)
        return CardOutcome.UPDATED

    async def _submit_updates(
        self,
        local: LocalCard,
        updates: FieldUpdates,
        options: ReconcileOptions,
    ) -> None:
        if options.dry_run:
            log.info("Would update card %s: %s", local.id, ", ".join(sorted(updates)))
            return
        await self.coordinator.submit(
            update_document(CARDS_COLLECTION, local.id, updates.to_fields())
        )

    async def _submit_fingerprint(
        self,
        local: LocalCard,
        canonical: CanonicalCard,
        updates: FieldUpdates,
        options: ReconcileOptions,
    ) -> None:
        if options.dry_run:
            return
        card_numbers = local.card_numbers
        if CardField.CARD_NUMBERS in updates:
            card_numbers = cast("list[str] | None", updates[CardField.CARD_NUMBERS])
        digest = fingerprint(canonical, extension_codes(card_numbers))
        await self.coordinator.submit(
            set_document(
                FINGERPRINTS_COLLECTION,
                sanitize_key(canonical.code),
                {"hash": digest, "lastUpdated": SERVER_TIMESTAMP},
                merge=True,
            )
        )

    async def _load_catalog(self, options: ReconcileOptions) -> list[CanonicalCard]:
        if options.from_snapshot:
            canonicals = await retry_transient(
                lambda: load_catalog_snapshot(self.store, page_size=self.page_size),
                policy=self.read_backoff,
                sleep=self.sleep,
                description="Catalog snapshot load",
            )
        elif self.fetcher is None:
            raise CatalogFetchError("No catalog fetcher configured")
        else:
            canonicals = await self.fetcher.fetch_all()
        if not canonicals:
            raise CatalogFetchError("Reference catalog returned no cards")
        log.info("Loaded %d catalog cards", len(canonicals))
        return canonicals

    async def _load_local_cards(self, options: ReconcileOptions) -> list[LocalCard]:
        where: dict[str, object] | None = None
        if options.group_id is not None:
            group_id = options.group_id
            where = {CardField.GROUP_ID.value: int(group_id) if group_id.isdigit() else group_id}

        cards: list[LocalCard] = []
        cursor: str | None = None
        while options.limit is None or len(cards) < options.limit:
            page_limit = self.page_size
            if options.limit is not None:
                page_limit = min(page_limit, options.limit - len(cards))
            page = await retry_transient(
                lambda: self.store.query(
                    CARDS_COLLECTION, where=where, limit=page_limit, start_after=cursor
                ),
                policy=self.read_backoff,
                sleep=self.sleep,
                description="Card page query",
            )
            cards.extend(LocalCard.from_document(document) for document in page)
            if len(page) < page_limit:
                break
            cursor = page[-1].key
        log.info("Loaded %d local cards", len(cards))
        return cards

    async def _load_fingerprints(self, canonicals: list[CanonicalCard]) -> dict[str, str]:
        keys = list(dict.fromkeys(sanitize_key(canonical.code) for canonical in canonicals))
        documents = await retry_transient(
            lambda: self.store.get_all(FINGERPRINTS_COLLECTION, keys),
            policy=self.read_backoff,
            sleep=self.sleep,
            description="Fingerprint lookup",
        )
        prior: dict[str, str] = {}
        for key, document in zip(keys, documents, strict=True):
            if document is None:
                continue
            digest = document.data.get("hash")
            if isinstance(digest, str):
                prior[key] = digest
        return prior
