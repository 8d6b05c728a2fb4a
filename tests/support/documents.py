"""In-memory document store for exercising the batch writer and the sync passes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cardsync.domain.ports.persistence import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from cardsync.domain.ports.persistence import DocumentStore, Fields

COMMIT_TIMESTAMP = "2026-01-01T00:00:00+00:00"


@dataclass(frozen=True, slots=True)
class RecordedWrite:
    kind: str
    collection: str
    key: str
    fields: dict[str, object]
    merge: bool = False


class InMemoryWriteBatch:
    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self.writes: list[RecordedWrite] = []
        self.commit_attempts = 0

    def set(self, collection: str, key: str, fields: Fields, *, merge: bool = False) -> None:
        self.writes.append(RecordedWrite("set", collection, key, dict(fields), merge))

    def update(self, collection: str, key: str, fields: Fields) -> None:
        self.writes.append(RecordedWrite("update", collection, key, dict(fields)))

    async def commit(self) -> None:
        self.commit_attempts += 1
        await self._store.run_commit(self)


@dataclass
class InMemoryDocumentStore:
    """Collections of plain dicts plus hooks for failure injection and concurrency tracking.

    ``commit_failures`` and ``read_failures`` are consumed front to back, one
    per commit or read call; ``None`` entries let that call through.
    """

    collections: dict[str, dict[str, dict[str, object]]] = field(default_factory=dict)
    commit_failures: list[BaseException | None] = field(default_factory=list)
    read_failures: list[BaseException | None] = field(default_factory=list)
    commit_delay: float = 0.0
    active_commits: int = 0
    max_active_commits: int = 0
    commit_sizes: list[int] = field(default_factory=list)
    committed_writes: list[RecordedWrite] = field(default_factory=list)
    batches: list[InMemoryWriteBatch] = field(default_factory=list)

    def batch(self) -> InMemoryWriteBatch:
        batch = InMemoryWriteBatch(self)
        self.batches.append(batch)
        return batch

    def seed(self, collection: str, key: str, data: Mapping[str, object]) -> None:
        self.collections.setdefault(collection, {})[key] = dict(data)

    def data(self, collection: str, key: str) -> dict[str, object] | None:
        return self.collections.get(collection, {}).get(key)

    async def run_commit(self, batch: InMemoryWriteBatch) -> None:
        self.active_commits += 1
        self.max_active_commits = max(self.max_active_commits, self.active_commits)
        try:
            await asyncio.sleep(self.commit_delay)
            failure = self.commit_failures.pop(0) if self.commit_failures else None
            if failure is not None:
                raise failure
            self._apply(batch.writes)
            self.commit_sizes.append(len(batch.writes))
        finally:
            self.active_commits -= 1

    def _apply(self, writes: Sequence[RecordedWrite]) -> None:
        for write in writes:
            if write.kind == "update" and self.data(write.collection, write.key) is None:
                raise DocumentNotFoundError(write.collection, write.key)
        for write in writes:
            fields = {
                name: (COMMIT_TIMESTAMP if value is SERVER_TIMESTAMP else value)
                for name, value in write.fields.items()
            }
            collection = self.collections.setdefault(write.collection, {})
            existing = collection.get(write.key)
            if existing is None or (write.kind == "set" and not write.merge):
                collection[write.key] = fields
            else:
                existing.update(fields)
            self.committed_writes.append(write)

    def _check_read(self) -> None:
        failure = self.read_failures.pop(0) if self.read_failures else None
        if failure is not None:
            raise failure

    async def get(self, collection: str, key: str) -> Document | None:
        return (await self.get_all(collection, [key]))[0]

    async def get_all(self, collection: str, keys: Sequence[str]) -> list[Document | None]:
        self._check_read()
        documents = self.collections.get(collection, {})
        return [
            Document(key=key, data=dict(documents[key])) if key in documents else None
            for key in keys
        ]

    async def query(
        self,
        collection: str,
        *,
        where: Mapping[str, object] | None = None,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[Document]:
        self._check_read()
        documents = self.collections.get(collection, {})
        results: list[Document] = []
        for key in sorted(documents):
            if start_after is not None and key <= start_after:
                continue
            data = documents[key]
            if any(data.get(name) != value for name, value in (where or {}).items()):
                continue
            results.append(Document(key=key, data=dict(data)))
            if limit is not None and len(results) >= limit:
                break
        return results


if TYPE_CHECKING:
    _store_check: DocumentStore = InMemoryDocumentStore()
