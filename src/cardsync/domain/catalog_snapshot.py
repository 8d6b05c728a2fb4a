"""Keep a copy of the reference catalog in the document store.

Reconciliation can then run against the stored snapshot instead of hitting
the catalog API again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from cardsync.domain.batch_writes import set_document
from cardsync.domain.model import CanonicalCard, CardImages
from cardsync.domain.ports.persistence import SERVER_TIMESTAMP
from cardsync.domain.reconciliation.normalize import sanitize_key, unsanitize_key

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from cardsync.domain.batch_writes import BatchWriteCoordinator
    from cardsync.domain.ports.persistence import Document, DocumentStore

log = logging.getLogger(__name__)

CATALOG_COLLECTION = "catalogCards"


@dataclass(slots=True)
class SnapshotResult:
    stored: int
    fetched: int


def card_to_document(card: CanonicalCard) -> dict[str, object]:
    return {
        "code": card.code,
        "name": card.name,
        "type": card.type,
        "job": card.job,
        "text": card.text,
        "element": list(card.elements),
        "rarity": card.rarity,
        "cost": card.cost,
        "power": card.power,
        "category_1": card.category_1,
        "category_2": card.category_2,
        "multicard": card.multicard,
        "ex_burst": card.ex_burst,
        "set": list(card.sets),
        "images": {"thumbs": list(card.images.thumbs), "full": list(card.images.full)},
        "lastUpdated": SERVER_TIMESTAMP,
    }


def _strings(value: object) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in cast("Sequence[object]", value) if item is not None)


def _optional_int(value: object) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def card_from_document(document: Document) -> CanonicalCard:
    data = document.data
    raw_images = data.get("images")
    images = cast("Mapping[str, object]", raw_images) if isinstance(raw_images, dict) else {}
    category_2 = data.get("category_2")
    return CanonicalCard(
        code=str(data.get("code") or unsanitize_key(document.key)),
        name=str(data.get("name") or ""),
        type=str(data.get("type") or ""),
        job=str(data.get("job") or ""),
        text=str(data.get("text") or ""),
        elements=_strings(data.get("element")),
        rarity=str(data.get("rarity") or ""),
        cost=_optional_int(data.get("cost")),
        power=_optional_int(data.get("power")),
        category_1=str(data.get("category_1") or ""),
        category_2=str(category_2) if category_2 else None,
        multicard=bool(data.get("multicard")),
        ex_burst=bool(data.get("ex_burst")),
        sets=_strings(data.get("set")),
        images=CardImages(
            thumbs=_strings(images.get("thumbs")),
            full=_strings(images.get("full")),
        ),
    )


async def store_catalog_snapshot(
    cards: Sequence[CanonicalCard],
    coordinator: BatchWriteCoordinator,
) -> SnapshotResult:
    """Write every catalog card into the snapshot collection, merging into existing documents."""

    stored = 0
    seen: set[str] = set()
    for card in cards:
        key = sanitize_key(card.code)
        if key in seen:
            log.warning("Duplicate catalog code %s; keeping the first listing", card.code)
            continue
        seen.add(key)
        await coordinator.submit(
            set_document(CATALOG_COLLECTION, key, card_to_document(card), merge=True)
        )
        stored += 1
    await coordinator.flush()
    log.info("Stored catalog snapshot: stored=%s, fetched=%s", stored, len(cards))
    return SnapshotResult(stored=stored, fetched=len(cards))


async def load_catalog_snapshot(
    store: DocumentStore,
    *,
    page_size: int = 500,
) -> list[CanonicalCard]:
    cards: list[CanonicalCard] = []
    cursor: str | None = None
    while True:
        page = await store.query(CATALOG_COLLECTION, limit=page_size, start_after=cursor)
        cards.extend(card_from_document(document) for document in page)
        if len(page) < page_size:
            break
        cursor = page[-1].key
    log.info("Loaded %d catalog cards from snapshot", len(cards))
    return cards
