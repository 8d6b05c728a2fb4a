from __future__ import annotations

import pytest

from cardsync.domain.batch_writes import (
    BatchFullError,
    BatchState,
    BatchUnit,
    set_document,
    update_document,
)
from tests.support.documents import InMemoryDocumentStore


def test_unit_records_operations_into_its_batch() -> None:
    store = InMemoryDocumentStore()
    batch = store.batch()
    unit = BatchUnit(batch=batch, max_operations=2)

    unit.record(set_document("cards", "1", {"name": "Auron"}, merge=True))
    unit.record(update_document("cards", "2", {"power": 7000}))

    assert unit.is_full
    assert not unit.accepts_operations
    assert [(write.kind, write.key, write.merge) for write in batch.writes] == [
        ("set", "1", True),
        ("update", "2", False),
    ]


def test_full_or_committing_units_reject_operations() -> None:
    store = InMemoryDocumentStore()
    full = BatchUnit(batch=store.batch(), max_operations=1)
    full.record(set_document("cards", "1", {}))
    committing = BatchUnit(batch=store.batch(), max_operations=5, state=BatchState.COMMITTING)

    with pytest.raises(BatchFullError):
        full.record(set_document("cards", "2", {}))
    with pytest.raises(BatchFullError):
        committing.record(set_document("cards", "3", {}))
    assert full.operations == 1
    assert committing.is_empty
