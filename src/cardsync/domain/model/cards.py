"""Card records on both sides of a reconciliation run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from .fields import IDENTIFIER_FIELDS, CardField

if TYPE_CHECKING:
    from cardsync.domain.ports.persistence import Document


@dataclass(frozen=True, slots=True, kw_only=True)
class CardImages:
    thumbs: tuple[str, ...] = ()
    full: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class CanonicalCard:
    """One card as the reference catalog lists it; never mutated after a fetch.

    ``code`` may join several printings with ``/`` (``"PR-001/1-001H"``).
    ``elements`` keeps whatever the catalog sent, glyphs included; translation
    happens during fingerprinting and merging.
    """

    code: str
    name: str = ""
    type: str = ""
    job: str = ""
    text: str = ""
    elements: tuple[str, ...] = ()
    rarity: str = ""
    cost: int | None = None
    power: int | None = None
    category_1: str = ""
    category_2: str | None = None
    multicard: bool = False
    ex_burst: bool = False
    sets: tuple[str, ...] = ()
    images: CardImages = field(default_factory=CardImages)

    @property
    def constituent_codes(self) -> tuple[str, ...]:
        return tuple(part.strip() for part in self.code.split("/") if part.strip())


_ATTRIBUTE_BY_FIELD: dict[CardField, str] = {
    CardField.NAME: "name",
    CardField.CLEAN_NAME: "clean_name",
    CardField.CARD_NUMBERS: "card_numbers",
    CardField.FULL_CARD_NUMBER: "full_card_number",
    CardField.NUMBER: "number",
    CardField.PRIMARY_CARD_NUMBER: "primary_card_number",
    CardField.COST: "cost",
    CardField.POWER: "power",
    CardField.JOB: "job",
    CardField.RARITY: "rarity",
    CardField.CARD_TYPE: "card_type",
    CardField.CATEGORY: "category",
    CardField.CATEGORIES: "categories",
    CardField.ELEMENTS: "elements",
    CardField.SET: "sets",
    CardField.FULL_RES_URL: "full_res_url",
    CardField.HIGH_RES_URL: "high_res_url",
    CardField.LOW_RES_URL: "low_res_url",
    CardField.GROUP_ID: "group_id",
    CardField.IS_NON_CARD: "is_non_card",
    CardField.SEARCH_TERMS: "search_terms",
}


@dataclass(slots=True, kw_only=True)
class LocalCard:
    """A product record from the ``cards`` collection; any field may be missing."""

    id: str
    name: str | None = None
    clean_name: str | None = None
    card_numbers: list[str] | None = None
    full_card_number: str | None = None
    number: str | None = None
    primary_card_number: str | None = None
    cost: int | None = None
    power: int | None = None
    job: str | None = None
    rarity: str | None = None
    card_type: str | None = None
    category: str | None = None
    categories: list[str] | None = None
    elements: list[str] | None = None
    sets: list[str] | None = None
    full_res_url: str | None = None
    high_res_url: str | None = None
    low_res_url: str | None = None
    group_id: str | None = None
    is_non_card: bool = False
    search_terms: list[str] | None = None

    @classmethod
    def from_document(cls, document: Document) -> LocalCard:
        data = document.data
        return cls(
            id=document.key,
            name=_as_str(data.get(CardField.NAME)),
            clean_name=_as_str(data.get(CardField.CLEAN_NAME)),
            card_numbers=_as_str_list(data.get(CardField.CARD_NUMBERS)),
            full_card_number=_as_str(data.get(CardField.FULL_CARD_NUMBER)),
            number=_as_str(data.get(CardField.NUMBER)),
            primary_card_number=_as_str(data.get(CardField.PRIMARY_CARD_NUMBER)),
            cost=_as_int(data.get(CardField.COST)),
            power=_as_int(data.get(CardField.POWER)),
            job=_as_str(data.get(CardField.JOB)),
            rarity=_as_str(data.get(CardField.RARITY)),
            card_type=_as_str(data.get(CardField.CARD_TYPE)),
            category=_as_str(data.get(CardField.CATEGORY)),
            categories=_as_str_list(data.get(CardField.CATEGORIES)),
            elements=_as_str_list(data.get(CardField.ELEMENTS)),
            sets=_as_str_list(data.get(CardField.SET)),
            full_res_url=_as_str(data.get(CardField.FULL_RES_URL)),
            high_res_url=_as_str(data.get(CardField.HIGH_RES_URL)),
            low_res_url=_as_str(data.get(CardField.LOW_RES_URL)),
            group_id=_as_str(data.get(CardField.GROUP_ID)),
            is_non_card=bool(data.get(CardField.IS_NON_CARD, False)),
            search_terms=_as_str_list(data.get(CardField.SEARCH_TERMS)),
        )

    def value_of(self, card_field: CardField) -> object:
        return getattr(self, _ATTRIBUTE_BY_FIELD[card_field])

    @property
    def identifier_codes(self) -> tuple[str, ...]:
        """Every code the record is known by, in field order, without duplicates."""

        if self.is_non_card:
            return ()
        codes: list[str] = []
        for card_field in IDENTIFIER_FIELDS:
            value = self.value_of(card_field)
            candidates = value if isinstance(value, list) else [value]
            for candidate in cast(list[object], candidates):
                if isinstance(candidate, str) and candidate.strip() and candidate not in codes:
                    codes.append(candidate)
        return tuple(codes)


def _as_str(value: object) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str_list(value: object) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        items = cast("list[object] | tuple[object, ...]", value)
        return [item if isinstance(item, str) else str(item) for item in items if item is not None]
    return None
