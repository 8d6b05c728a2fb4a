"""Batch units and the write operations recorded into them."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cardsync.domain.ports.persistence import Fields, WriteBatch

type WriteOperation = Callable[[WriteBatch], None]


class BatchState(StrEnum):
    OPEN = "open"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


class BatchFullError(RuntimeError):
    """Raised when an operation is recorded into a unit that has no capacity left."""


@dataclass(slots=True, eq=False)
class BatchUnit:
    """One store write batch plus the bookkeeping the coordinator needs around it."""

    batch: WriteBatch
    max_operations: int
    operations: int = 0
    state: BatchState = BatchState.OPEN
    filled_at: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.operations == 0

    @property
    def is_full(self) -> bool:
        return self.operations >= self.max_operations

    @property
    def accepts_operations(self) -> bool:
        return self.state is BatchState.OPEN and not self.is_full

    def record(self, operation: WriteOperation) -> None:
        if not self.accepts_operations:
            raise BatchFullError(
                f"Batch unit in state {self.state} holding {self.operations}/"
                f"{self.max_operations} operations cannot accept more"
            )
        operation(self.batch)
        self.operations += 1


def set_document(
    collection: str,
    key: str,
    fields: Fields,
    *,
    merge: bool = False,
) -> WriteOperation:
    def operation(batch: WriteBatch) -> None:
        batch.set(collection, key, fields, merge=merge)

    return operation


def update_document(collection: str, key: str, fields: Fields) -> WriteOperation:
    def operation(batch: WriteBatch) -> None:
        batch.update(collection, key, fields)

    return operation
