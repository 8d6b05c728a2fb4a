from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from cardsync.adapters.catalog import parse_canonical_card
from cardsync.domain.batch_writes import BatchWriteCoordinator, CoordinatorSettings
from cardsync.domain.catalog_snapshot import store_catalog_snapshot
from cardsync.domain.ports.fetching import CatalogFetchError
from cardsync.domain.ports.persistence import StoreError, StoreUnavailableError
from cardsync.domain.reconciliation import MergeRules, ReconcileOptions, fingerprint
from cardsync.domain.reconciliation import engine as engine_module
from cardsync.domain.reconciliation.engine import (
    CARDS_COLLECTION,
    FINGERPRINTS_COLLECTION,
    ReconciliationEngine,
)
from tests.support.cards import local_card_data, make_canonical
from tests.support.documents import COMMIT_TIMESTAMP, InMemoryDocumentStore
from tests.support.sleep import RecordingSleep

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cardsync.domain.model import CanonicalCard, LocalCard
    from cardsync.domain.reconciliation import FieldUpdates


class _StaticFetcher:
    def __init__(self, cards: Sequence[CanonicalCard], *, error: Exception | None = None) -> None:
        self.cards = list(cards)
        self.error = error
        self.calls = 0

    async def fetch_all(self) -> list[CanonicalCard]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.cards)


def _engine(
    store: InMemoryDocumentStore,
    fetcher: _StaticFetcher | None,
    *,
    page_size: int = 500,
    sleep: RecordingSleep | None = None,
) -> ReconciliationEngine:
    recorder = sleep or RecordingSleep()
    return ReconciliationEngine(
        store=store,
        coordinator=BatchWriteCoordinator(
            store,
            CoordinatorSettings(max_concurrent_batches=2, max_operations_per_batch=10),
            sleep=recorder,
        ),
        rules=MergeRules(placeholder_url="https://img.example/placeholder.jpeg"),
        fetcher=fetcher,
        page_size=page_size,
        sleep=recorder,
    )


def _catalog_card() -> CanonicalCard:
    return parse_canonical_card(
        {
            "code": "1-001H",
            "name_en": "Auron",
            "type_en": "Forward",
            "job_en": "Guardian",
            "element": ["火"],
            "rarity": "C",
            "cost": "5",
            "power": "7000",
            "category_1": "X",
            "set": ["Opus I"],
        }
    )


def test_run_fills_missing_fields_and_records_the_fingerprint() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None, rarity=None))
    canonical = _catalog_card()

    result = asyncio.run(_engine(store, _StaticFetcher([canonical])).run())

    assert result.success
    assert result.error is None
    assert (result.total_cards, result.matches_found, result.cards_updated) == (1, 1, 1)
    assert result.unchanged == 0
    card = store.data(CARDS_COLLECTION, "100001")
    assert card is not None
    assert card["power"] == 7000
    assert card["rarity"] == "Common"
    assert card["lastUpdated"] == COMMIT_TIMESTAMP
    assert store.data(FINGERPRINTS_COLLECTION, "1-001H") == {
        "hash": fingerprint(canonical),
        "lastUpdated": COMMIT_TIMESTAMP,
    }


def test_fingerprint_write_follows_the_update_in_the_same_stream() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))

    asyncio.run(_engine(store, _StaticFetcher([_catalog_card()])).run())

    assert [(write.collection, write.kind) for write in store.committed_writes] == [
        (CARDS_COLLECTION, "update"),
        (FINGERPRINTS_COLLECTION, "set"),
    ]
    assert store.committed_writes[1].merge


def test_second_run_skips_cards_whose_fingerprint_is_unchanged() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))
    fetcher = _StaticFetcher([_catalog_card()])
    asyncio.run(_engine(store, fetcher).run())
    writes_after_first_run = len(store.committed_writes)

    result = asyncio.run(_engine(store, fetcher).run())

    assert result.success
    assert (result.matches_found, result.unchanged, result.cards_updated) == (1, 1, 0)
    assert len(store.committed_writes) == writes_after_first_run


def test_force_re_resolves_but_writes_nothing_when_already_current() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))
    fetcher = _StaticFetcher([_catalog_card()])
    asyncio.run(_engine(store, fetcher).run())
    writes_after_first_run = len(store.committed_writes)

    result = asyncio.run(_engine(store, fetcher).run(ReconcileOptions(force=True)))

    assert (result.matches_found, result.unchanged, result.cards_updated) == (1, 0, 0)
    assert len(store.committed_writes) == writes_after_first_run


def test_fingerprint_covers_local_reprint_codes() -> None:
    store = InMemoryDocumentStore()
    store.seed(
        CARDS_COLLECTION,
        "100001",
        local_card_data(cardNumbers=["1-001H", "Re-001H"], power=None),
    )
    canonical = make_canonical()

    asyncio.run(_engine(store, _StaticFetcher([canonical])).run())

    stored = store.data(FINGERPRINTS_COLLECTION, "1-001H")
    assert stored is not None
    assert stored["hash"] == fingerprint(canonical, ["Re-001H"])
    assert stored["hash"] != fingerprint(canonical)


def test_non_cards_are_stripped_of_identifiers_without_counting_as_matches() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "200001", local_card_data(isNonCard=True))

    result = asyncio.run(_engine(store, _StaticFetcher([make_canonical()])).run())

    assert (result.matches_found, result.cards_updated) == (0, 1)
    card = store.data(CARDS_COLLECTION, "200001")
    assert card is not None
    assert card["cardNumbers"] is None
    assert card["number"] is None
    assert store.data(FINGERPRINTS_COLLECTION, "1-001H") is None


def test_unmatched_cards_are_left_untouched() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(cardNumbers=["9-999L"], power=None))
    store.seed(
        CARDS_COLLECTION,
        "100002",
        local_card_data(
            cardNumbers=["9-999L"], fullCardNumber="9-999L", number=None, primaryCardNumber=None
        ),
    )

    result = asyncio.run(_engine(store, _StaticFetcher([make_canonical("2-001H")])).run())

    assert result.success
    assert (result.total_cards, result.matches_found, result.cards_updated) == (2, 0, 0)
    assert store.committed_writes == []


def test_dry_run_submits_nothing() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))

    result = asyncio.run(
        _engine(store, _StaticFetcher([make_canonical()])).run(ReconcileOptions(dry_run=True))
    )

    assert result.cards_updated == 1
    assert store.committed_writes == []
    card = store.data(CARDS_COLLECTION, "100001")
    assert card is not None
    assert card["power"] is None


def test_group_filter_and_limit_restrict_the_local_cards() -> None:
    store = InMemoryDocumentStore()
    for key, group in (("1", 10), ("2", 20), ("3", 10), ("4", 10)):
        store.seed(CARDS_COLLECTION, key, local_card_data(groupId=group, power=None))
    fetcher = _StaticFetcher([make_canonical()])

    grouped = asyncio.run(
        _engine(store, fetcher).run(ReconcileOptions(group_id="10", dry_run=True))
    )
    limited = asyncio.run(
        _engine(store, fetcher, page_size=1).run(ReconcileOptions(limit=2, dry_run=True))
    )

    assert grouped.total_cards == 3
    assert limited.total_cards == 2


def test_run_from_snapshot_does_not_call_the_fetcher() -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))
    canonical = make_canonical()
    asyncio.run(store_catalog_snapshot([canonical], BatchWriteCoordinator(store)))
    fetcher = _StaticFetcher([], error=CatalogFetchError("must not be called"))

    result = asyncio.run(_engine(store, fetcher).run(ReconcileOptions(from_snapshot=True)))

    assert result.success
    assert fetcher.calls == 0
    assert result.cards_updated == 1
    card = store.data(CARDS_COLLECTION, "100001")
    assert card is not None
    assert card["power"] == 9000


def test_fetch_failure_is_reported_not_raised() -> None:
    store = InMemoryDocumentStore()
    fetcher = _StaticFetcher([], error=CatalogFetchError("Card browser request failed: 503"))

    result = asyncio.run(_engine(store, fetcher).run())

    assert not result.success
    assert result.error == "Card browser request failed: 503"


def test_empty_catalog_fails_the_run() -> None:
    result = asyncio.run(_engine(InMemoryDocumentStore(), _StaticFetcher([])).run())

    assert not result.success
    assert result.error is not None


def test_store_failure_is_reported_not_raised() -> None:
    store = InMemoryDocumentStore(read_failures=[StoreError("permission denied")])

    result = asyncio.run(_engine(store, _StaticFetcher([make_canonical()])).run())

    assert not result.success
    assert result.error == "permission denied"


def test_transient_read_failures_are_retried() -> None:
    store = InMemoryDocumentStore(read_failures=[StoreUnavailableError("busy")])
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))
    sleep = RecordingSleep()

    result = asyncio.run(_engine(store, _StaticFetcher([make_canonical()]), sleep=sleep).run())

    assert result.success
    assert result.cards_updated == 1
    assert sleep.delays[0] == 1.0


def test_per_card_failures_are_counted_and_the_run_continues(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = InMemoryDocumentStore()
    store.seed(CARDS_COLLECTION, "100001", local_card_data(power=None))
    store.seed(CARDS_COLLECTION, "100002", local_card_data(power=None))
    original = engine_module.resolve_fields

    def flaky_resolve(
        local: LocalCard, canonical: CanonicalCard, rules: MergeRules
    ) -> FieldUpdates:
        if local.id == "100001":
            raise ValueError("corrupt record")
        return original(local, canonical, rules)

    monkeypatch.setattr(engine_module, "resolve_fields", flaky_resolve)

    result = asyncio.run(_engine(store, _StaticFetcher([make_canonical()])).run())

    assert result.success
    assert (result.errors, result.cards_updated) == (1, 1)
    first = store.data(CARDS_COLLECTION, "100001")
    second = store.data(CARDS_COLLECTION, "100002")
    assert first is not None
    assert second is not None
    assert first["power"] is None
    assert second["power"] == 9000
