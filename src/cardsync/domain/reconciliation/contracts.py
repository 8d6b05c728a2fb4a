"""Values passed between the reconciliation stages and returned to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cardsync.domain.model import CardField
from cardsync.domain.ports.persistence import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(slots=True)
class FieldUpdates:
    """Minimal set of field changes for one local record.

    The write timestamp is added by ``to_fields`` and never counts towards
    emptiness: an empty instance means nothing needs writing.
    """

    changes: dict[CardField, object] = field(default_factory=dict)

    def set(self, card_field: CardField, value: object) -> None:
        self.changes[card_field] = value

    def update(self, other: FieldUpdates) -> None:
        self.changes.update(other.changes)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def __contains__(self, card_field: object) -> bool:
        return card_field in self.changes

    def __getitem__(self, card_field: CardField) -> object:
        return self.changes[card_field]

    def __iter__(self) -> Iterator[CardField]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def to_fields(self) -> dict[str, object]:
        fields = {str(card_field): value for card_field, value in self.changes.items()}
        fields[CardField.LAST_UPDATED.value] = SERVER_TIMESTAMP
        return fields


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconcileOptions:
    force: bool = False
    dry_run: bool = False
    limit: int | None = None
    group_id: str | None = None
    from_snapshot: bool = False


@dataclass(slots=True, kw_only=True)
class ReconciliationResult:
    """Outcome of one reconciliation run."""

    success: bool
    total_cards: int = 0
    matches_found: int = 0
    cards_updated: int = 0
    unchanged: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    error: str | None = None
