from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, cast

import pytest
from google.api_core import exceptions as api_exceptions

from cardsync.adapters.firestore import FirestoreWriteBatch, translate_error
from cardsync.domain.ports.persistence import (
    DocumentNotFoundError,
    StoreDeadlineExceededError,
    StoreError,
    StoreUnavailableError,
    TransientStoreError,
)

if TYPE_CHECKING:
    from google.cloud import firestore

DOCUMENTS = "projects/cards/databases/(default)/documents"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (api_exceptions.DeadlineExceeded("slow"), StoreDeadlineExceededError),
        (api_exceptions.ServiceUnavailable("down"), StoreUnavailableError),
        (api_exceptions.ResourceExhausted("quota"), StoreUnavailableError),
        (api_exceptions.Aborted("contention"), StoreUnavailableError),
        (api_exceptions.InternalServerError("oops"), StoreUnavailableError),
    ],
)
def test_transient_firestore_errors(
    error: api_exceptions.GoogleAPICallError, expected: type[StoreError]
) -> None:
    translated = translate_error(error, "Commit")

    assert type(translated) is expected
    assert isinstance(translated, TransientStoreError)


def test_permanent_firestore_errors_are_fatal() -> None:
    translated = translate_error(api_exceptions.PermissionDenied("no access"), "Query of cards")

    assert type(translated) is StoreError
    assert str(translated).startswith("Query of cards failed")


class _FailingBatch:
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.writes: list[str] = []

    def set(self, reference: str, fields: object, *, merge: bool = False) -> None:
        self.writes.append(reference)

    def update(self, reference: str, fields: object) -> None:
        self.writes.append(reference)

    async def commit(self) -> None:
        raise self.error


class _Collection:
    def __init__(self, name: str) -> None:
        self.name = name

    def document(self, key: str) -> str:
        return f"{self.name}/{key}"


class _Client:
    def __init__(self, batch: _FailingBatch) -> None:
        self._batch = batch

    def batch(self) -> _FailingBatch:
        return self._batch

    def collection(self, name: str) -> _Collection:
        return _Collection(name)


def _commit_updates(error: Exception, *keys: str) -> None:
    client = _Client(_FailingBatch(error))
    batch = FirestoreWriteBatch(cast("firestore.AsyncClient", client))
    for key in keys:
        batch.update("cards", key, {"power": 7000})
    asyncio.run(batch.commit())


def test_not_found_names_the_missing_update() -> None:
    error = api_exceptions.NotFound(f"No document to update: {DOCUMENTS}/cards/20")

    with pytest.raises(DocumentNotFoundError) as excinfo:
        _commit_updates(error, "2", "20", "200")

    assert (excinfo.value.collection, excinfo.value.key) == ("cards", "20")


def test_not_found_without_a_known_document_is_a_plain_store_error() -> None:
    error = api_exceptions.NotFound("Requested entity was not found.")

    with pytest.raises(StoreError) as excinfo:
        _commit_updates(error, "1", "2")

    assert type(excinfo.value) is StoreError
    assert str(excinfo.value).startswith("Batch commit failed")
