"""Ports for the document store that holds cards, fingerprints and search hashes.

The store is deliberately small: keyed documents grouped into collections,
point reads, key-ordered paginated queries, and write batches that commit
atomically. Adapters translate their driver failures into the error classes
below so the batch write coordinator can tell transient conditions apart from
fatal ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Protocol, final, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


type Fields = Mapping[str, object]


@final
class _ServerTimestamp:
    """Sentinel resolved to the commit time by the store adapter."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Final = _ServerTimestamp()


class StoreError(RuntimeError):
    """Raised when the document store rejects a read or write."""


class TransientStoreError(StoreError):
    """A store failure that is expected to clear up when retried."""


class StoreUnavailableError(TransientStoreError):
    """The store is temporarily unreachable or overloaded."""


class StoreDeadlineExceededError(TransientStoreError):
    """An operation did not finish within its deadline."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Document {collection}/{key} does not exist")
        self.collection = collection
        self.key = key


@dataclass(frozen=True, slots=True)
class Document:
    key: str
    data: Mapping[str, object] = field(default_factory=dict)


@runtime_checkable
class WriteBatch(Protocol):
    """Operations recorded here are applied together by ``commit``."""

    def set(self, collection: str, key: str, fields: Fields, *, merge: bool = False) -> None: ...

    def update(self, collection: str, key: str, fields: Fields) -> None: ...

    async def commit(self) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    def batch(self) -> WriteBatch: ...

    async def get(self, collection: str, key: str) -> Document | None: ...

    async def get_all(self, collection: str, keys: Sequence[str]) -> list[Document | None]:
        """Return one entry per key, in input order, ``None`` where absent."""
        ...

    async def query(
        self,
        collection: str,
        *,
        where: Mapping[str, object] | None = None,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[Document]:
        """Return documents ordered by key, strictly after ``start_after`` when given."""
        ...


__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "Fields",
    "StoreDeadlineExceededError",
    "StoreError",
    "StoreUnavailableError",
    "TransientStoreError",
    "WriteBatch",
]
