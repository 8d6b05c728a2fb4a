"""Document store backed by a single SQLAlchemy ``documents`` table.

Each row holds one JSON document keyed by ``(collection, key)``. Batches are
buffered in memory and applied inside one transaction on ``commit``; the
blocking database work runs in a worker thread so the batch write coordinator
can keep several commits in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine, insert, select, update
from sqlalchemy import exc as sa_exc

from cardsync.adapters.sqlalchemy.mappings import documents_table
from cardsync.adapters.sqlalchemy.migrations import upgrade_head
from cardsync.config.storage import get_database_config
from cardsync.domain.ports.persistence import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFoundError,
    StoreDeadlineExceededError,
    StoreError,
    StoreUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from sqlalchemy import ColumnElement
    from sqlalchemy.engine import Connection, Engine

    from cardsync.domain.ports.persistence import Fields

log = logging.getLogger(__name__)

GET_ALL_CHUNK_SIZE = 500
_BUSY_MARKERS = ("database is locked", "database is busy", "could not connect")

type _WriteKind = Literal["set", "merge", "update"]


def _translate(exc: sa_exc.SQLAlchemyError, action: str) -> StoreError:
    if isinstance(exc, sa_exc.TimeoutError):
        return StoreDeadlineExceededError(f"{action} timed out: {exc}")
    if isinstance(exc, sa_exc.OperationalError):
        message = str(exc).lower()
        if any(marker in message for marker in _BUSY_MARKERS):
            return StoreUnavailableError(f"{action} failed, store busy: {exc}")
    return StoreError(f"{action} failed: {exc}")


def _failed(attempt: asyncio.Future[None]) -> bool:
    return attempt.done() and (attempt.cancelled() or attempt.exception() is not None)


def _resolve(fields: Fields, now: datetime) -> dict[str, object]:
    timestamp = now.isoformat()
    return {
        name: (timestamp if value is SERVER_TIMESTAMP else value) for name, value in fields.items()
    }


@dataclass(frozen=True, slots=True)
class _PendingWrite:
    kind: _WriteKind
    collection: str
    key: str
    fields: Fields


class SqlAlchemyWriteBatch:
    """Buffered writes applied in a single transaction.

    Writes stay buffered after a failed commit, so the same batch can be
    committed again. A worker thread cannot be cancelled: when the caller stops
    waiting (``asyncio.wait_for`` timing out), the attempt keeps running and the
    next ``commit`` waits for it instead of starting a second transaction. An
    attempt that finished successfully is not repeated.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._writes: list[_PendingWrite] = []
        self._attempt: asyncio.Future[None] | None = None

    def __len__(self) -> int:
        return len(self._writes)

    def set(self, collection: str, key: str, fields: Fields, *, merge: bool = False) -> None:
        kind: _WriteKind = "merge" if merge else "set"
        self._writes.append(_PendingWrite(kind, collection, key, dict(fields)))

    def update(self, collection: str, key: str, fields: Fields) -> None:
        self._writes.append(_PendingWrite("update", collection, key, dict(fields)))

    async def commit(self) -> None:
        if not self._writes:
            return
        attempt = self._attempt
        if attempt is None or _failed(attempt):
            attempt = self._attempt = asyncio.ensure_future(asyncio.to_thread(self._apply))
        elif not attempt.done():
            log.debug("Waiting for the running commit of %d writes", len(self._writes))
        try:
            await asyncio.shield(attempt)
        except sa_exc.SQLAlchemyError as exc:
            raise _translate(exc, f"Commit of {len(self._writes)} writes") from exc

    def _apply(self) -> None:
        now = datetime.now(UTC)
        with self._engine.begin() as connection:
            for write in self._writes:
                self._apply_one(connection, write, now)

    @staticmethod
    def _apply_one(connection: Connection, write: _PendingWrite, now: datetime) -> None:
        table = documents_table
        existing = connection.execute(
            select(table.c.data).where(
                table.c.collection == write.collection, table.c.key == write.key
            )
        ).scalar_one_or_none()

        if existing is None and write.kind == "update":
            raise DocumentNotFoundError(write.collection, write.key)

        fields = _resolve(write.fields, now)
        if existing is None:
            connection.execute(
                insert(table).values(
                    collection=write.collection, key=write.key, data=fields, updated_at=now
                )
            )
            return

        data = fields if write.kind == "set" else {**existing, **fields}
        connection.execute(
            update(table)
            .where(table.c.collection == write.collection, table.c.key == write.key)
            .values(data=data, updated_at=now)
        )


def _equals(name: str, value: object) -> ColumnElement[bool]:
    element = documents_table.c.data[name]
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    raise TypeError(f"Unsupported filter value for {name!r}: {value!r}")


class SqlAlchemyDocumentStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def batch(self) -> SqlAlchemyWriteBatch:
        return SqlAlchemyWriteBatch(self.engine)

    async def get(self, collection: str, key: str) -> Document | None:
        documents = await self.get_all(collection, [key])
        return documents[0]

    async def get_all(self, collection: str, keys: Sequence[str]) -> list[Document | None]:
        if not keys:
            return []
        found = await self._run(lambda: self._fetch_keys(collection, keys), "Read")
        return [found.get(key) for key in keys]

    async def query(
        self,
        collection: str,
        *,
        where: Mapping[str, object] | None = None,
        limit: int | None = None,
        start_after: str | None = None,
    ) -> list[Document]:
        table = documents_table
        stmt = select(table.c.key, table.c.data).where(table.c.collection == collection)
        for name, value in (where or {}).items():
            stmt = stmt.where(_equals(name, value))
        if start_after is not None:
            stmt = stmt.where(table.c.key > start_after)
        stmt = stmt.order_by(table.c.key)
        if limit is not None:
            stmt = stmt.limit(limit)

        def _execute() -> list[Document]:
            with self.engine.connect() as connection:
                rows = connection.execute(stmt).all()
            return [Document(key=row.key, data=row.data) for row in rows]

        return await self._run(_execute, f"Query of {collection}")

    def _fetch_keys(self, collection: str, keys: Sequence[str]) -> dict[str, Document]:
        table = documents_table
        found: dict[str, Document] = {}
        unique_keys = list(dict.fromkeys(keys))
        with self.engine.connect() as connection:
            for start in range(0, len(unique_keys), GET_ALL_CHUNK_SIZE):
                chunk = unique_keys[start : start + GET_ALL_CHUNK_SIZE]
                rows = connection.execute(
                    select(table.c.key, table.c.data).where(
                        table.c.collection == collection, table.c.key.in_(chunk)
                    )
                )
                for row in rows:
                    found[row.key] = Document(key=row.key, data=row.data)
        return found

    @staticmethod
    async def _run[T](operation: Callable[[], T], action: str) -> T:
        try:
            return await asyncio.to_thread(operation)
        except sa_exc.SQLAlchemyError as exc:
            raise _translate(exc, action) from exc


def create_document_store(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
) -> SqlAlchemyDocumentStore:
    """Create the store, migrating the schema to the latest revision first."""

    resolved_engine = engine or create_engine(database_uri or get_database_config().uri)
    upgrade_head(engine=resolved_engine)
    log.debug("Document store ready at %s", resolved_engine.url)
    return SqlAlchemyDocumentStore(resolved_engine)
