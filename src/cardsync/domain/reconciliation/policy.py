"""Declarative merge policy per card field.

``MERGE_POLICIES`` is the single source of truth for how a catalog value may
change a local field; the resolver loop in ``resolve`` only interprets it.
``CANONICAL_VALUES`` derives the storable catalog value for fields merged
one at a time.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from cardsync.domain.model import CardField

from . import normalize

if TYPE_CHECKING:
    from cardsync.domain.model import CanonicalCard, LocalCard


class MergePolicy(StrEnum):
    FILL_IF_EMPTY = "fill_if_empty"
    ALWAYS_OVERWRITE = "always_overwrite"
    PROTECTED_NAME = "protected_name"
    CATEGORICAL_COMPOSITE = "categorical_composite"
    IDENTIFIER_SET = "identifier_set"


GROUP_POLICIES: Final = frozenset({MergePolicy.CATEGORICAL_COMPOSITE, MergePolicy.IDENTIFIER_SET})

MERGE_POLICIES: Final[Mapping[CardField, MergePolicy]] = MappingProxyType(
    {
        CardField.NAME: MergePolicy.PROTECTED_NAME,
        CardField.CATEGORY: MergePolicy.CATEGORICAL_COMPOSITE,
        CardField.CATEGORIES: MergePolicy.CATEGORICAL_COMPOSITE,
        CardField.CARD_NUMBERS: MergePolicy.IDENTIFIER_SET,
        CardField.FULL_CARD_NUMBER: MergePolicy.IDENTIFIER_SET,
        CardField.NUMBER: MergePolicy.IDENTIFIER_SET,
        CardField.PRIMARY_CARD_NUMBER: MergePolicy.IDENTIFIER_SET,
        CardField.SET: MergePolicy.ALWAYS_OVERWRITE,
        CardField.ELEMENTS: MergePolicy.ALWAYS_OVERWRITE,
        CardField.CARD_TYPE: MergePolicy.ALWAYS_OVERWRITE,
        CardField.JOB: MergePolicy.ALWAYS_OVERWRITE,
        CardField.RARITY: MergePolicy.ALWAYS_OVERWRITE,
        CardField.COST: MergePolicy.FILL_IF_EMPTY,
        CardField.POWER: MergePolicy.FILL_IF_EMPTY,
    }
)

SUMMON_TYPE: Final = "Summon"

DEFAULT_PROTECTED_NAME_PATTERNS: Final[tuple[str, ...]] = (
    "Full Art",
    ".*Promo.*",
    "Road.*",
    "Champion.*",
    ".*Anniversary.*",
)
_PARENTHESISED = re.compile(r"\((.*?)\)")


def _job(canonical: CanonicalCard, _local: LocalCard) -> object:
    return "" if canonical.type == SUMMON_TYPE else canonical.job


def _rarity(canonical: CanonicalCard, local: LocalCard) -> object:
    if normalize.is_promo_card(local.identifier_codes):
        return normalize.PROMO_RARITY
    return normalize.rarity_name(canonical.rarity)


CANONICAL_VALUES: Final[Mapping[CardField, Callable[[CanonicalCard, LocalCard], object]]] = (
    MappingProxyType(
        {
            CardField.NAME: lambda canonical, _local: canonical.name,
            CardField.SET: lambda canonical, _local: list(canonical.sets),
            CardField.ELEMENTS: lambda canonical, _local: normalize.elements(canonical),
            CardField.CARD_TYPE: lambda canonical, _local: normalize.card_type(canonical),
            CardField.JOB: _job,
            CardField.RARITY: _rarity,
            CardField.COST: lambda canonical, _local: canonical.cost,
            CardField.POWER: lambda canonical, _local: canonical.power,
        }
    )
)


@dataclass(frozen=True, slots=True)
class MergeRules:
    """Run-level knobs for the resolver."""

    placeholder_url: str
    protected_name_patterns: tuple[str, ...] = DEFAULT_PROTECTED_NAME_PATTERNS

    def is_protected_name(self, name: str | None) -> bool:
        """Curated names carry a parenthesised marker such as ``(Full Art)``."""

        if not name or not _PARENTHESISED.search(name):
            return False
        return any(
            re.search(pattern, name, flags=re.IGNORECASE)
            for pattern in self.protected_name_patterns
        )
