"""Cloud Firestore implementation of the document store port."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from google.api_core import exceptions as api_exceptions
from google.cloud import firestore

from cardsync.domain.ports.persistence import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFoundError,
    StoreDeadlineExceededError,
    StoreError,
    StoreUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping, Sequence

    from google.cloud.firestore_v1.async_batch import AsyncWriteBatch
    from google.cloud.firestore_v1.base_document import DocumentSnapshot

    from cardsync.config.storage import DocumentStoreConfig
    from cardsync.domain.ports.persistence import Fields

log = logging.getLogger(__name__)

GET_ALL_CHUNK_SIZE = 300

_UNAVAILABLE = (
    api_exceptions.ServiceUnavailable,
    api_exceptions.ResourceExhausted,
    api_exceptions.Aborted,
    api_exceptions.InternalServerError,
)


def translate_error(exc: api_exceptions.GoogleAPICallError, action: str) -> StoreError:
    """Map a Firestore API failure onto the store error hierarchy."""

    if isinstance(exc, api_exceptions.DeadlineExceeded):
        return StoreDeadlineExceededError(f"{action} exceeded its deadline: {exc}")
    if isinstance(exc, _UNAVAILABLE):
        return StoreUnavailableError(f"{action} failed, Firestore unavailable: {exc}")
    return StoreError(f"{action} failed: {exc}")


def _document_path_pattern(collection: str, key: str) -> str:
    return rf"(?:^|[\s/]){re.escape(collection)}/{re.escape(key)}(?=$|[\s'\",.;)])"


def _to_firestore(fields: Fields) -> dict[str, Any]:
    return {
        name: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value)
        for name, value in fields.items()
    }


def _to_document(snapshot: DocumentSnapshot) -> Document | None:
    if not snapshot.exists:
        return None
    return Document(key=snapshot.id, data=snapshot.to_dict() or {})


class FirestoreWriteBatch:
    """Thin wrapper over ``AsyncWriteBatch``; writes survive a failed commit."""

    def __init__(self, client: firestore.AsyncClient) -> None:
        self._client = client
        self._batch: AsyncWriteBatch = client.batch()
        self._pending_updates: list[tuple[str, str]] = []

    def set(self, collection: str, key: str, fields: Fields, *, merge: bool = False) -> None:
        reference = self._client.collection(collection).document(key)
        self._batch.set(reference, _to_firestore(fields), merge=merge)

    def update(self, collection: str, key: str, fields: Fields) -> None:
        reference = self._client.collection(collection).document(key)
        self._batch.update(reference, _to_firestore(fields))
        self._pending_updates.append((collection, key))

    async def commit(self) -> None:
        try:
            await self._batch.commit()
        except api_exceptions.NotFound as exc:
            target = self._missing_target(str(exc))
            if target is None:
                raise translate_error(exc, "Batch commit") from exc
            raise DocumentNotFoundError(*target) from exc
        except api_exceptions.GoogleAPICallError as exc:
            raise translate_error(exc, "Batch commit") from exc

    def _missing_target(self, message: str) -> tuple[str, str] | None:
        """The pending update named by a NotFound message, if any."""

        for collection, key in self._pending_updates:
            if re.search(_document_path_pattern(collection, key), message):
                return collection, key
        return None


class FirestoreDocumentStore:
    def __init__(self, client: firestore.AsyncClient) -> None:
        self.client = client

    def batch(self) -> FirestoreWriteBatch:
        return FirestoreWriteBatch(self.client)

    async def get(self, collection: str, key: str) -> Document | None:
        reference = self.client.collection(collection).document(key)
        snapshot = await self._call(reference.get, f"Read of {collection}/{key}")
        return _to_document(snapshot)

    async def get_all(self, collection: str, keys: Sequence[str]) -> list[Document | None]:
        found: dict[str, Document] = {}
        unique_keys = list(dict.fromkeys(keys))
        for start in range(0, len(unique_keys), GET_ALL_CHUNK_SIZE):
            chunk = unique_keys[start : start + GET_ALL_CHUNK_SIZE]
            references = [self.client.collection(collection).document(key) for key in chunk]
            try:
                async for snapshot in self.client.get_all(references):
                    document = _to_document(snapshot)
                    if document is not None:
                        found[document.key] = document
            except api_exceptions.GoogleAPICallError as exc:
                raise translate_error(exc, f"Read of {len(chunk)} {collection} documents") from exc
        return [found.get(key) for key in keys]

    async def query(
        self,
        collection: str,
        *,
        where: Mapping[str, object] | None = None,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[Document]:
        reference = self.client.collection(collection)
        query = reference.order_by(firestore.FieldPath.document_id())
        for name, value in (where or {}).items():
            query = query.where(filter=firestore.FieldFilter(name, "==", value))
        if start_after is not None:
            query = query.start_after(
                {firestore.FieldPath.document_id(): reference.document(start_after)}
            )
        if limit is not None:
            query = query.limit(limit)

        documents: list[Document] = []
        try:
            async for snapshot in query.stream():
                document = _to_document(snapshot)
                if document is not None:
                    documents.append(document)
        except api_exceptions.GoogleAPICallError as exc:
            raise translate_error(exc, f"Query of {collection}") from exc
        return documents

    @staticmethod
    async def _call[T](operation: Callable[[], Awaitable[T]], action: str) -> T:
        try:
            return await operation()
        except api_exceptions.GoogleAPICallError as exc:
            raise translate_error(exc, action) from exc


def create_firestore_store(config: DocumentStoreConfig) -> FirestoreDocumentStore:
    client = firestore.AsyncClient(
        project=config.firestore_project,
        database=config.firestore_database,
    )
    log.debug(
        "Using Firestore project=%s database=%s",
        config.firestore_project or "<default>",
        config.firestore_database or "(default)",
    )
    return FirestoreDocumentStore(client)
