"""Value normalization shared by matching, fingerprinting and merging.

Everything here is pure: catalog values in, comparable or storable values out.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cardsync.domain.model import CanonicalCard

CRYSTAL: Final = "Crystal"
CATEGORY_SEPARATOR: Final = "·"
PRIORITY_CATEGORY_MARKER: Final = "DFF"
EXTENSION_CODE_PREFIX: Final = "Re-"

ELEMENT_NAMES: Final[dict[str, str]] = {
    "火": "Fire",
    "氷": "Ice",
    "風": "Wind",
    "土": "Earth",
    "雷": "Lightning",
    "水": "Water",
    "光": "Light",
    "闇": "Dark",
}

RARITY_NAMES: Final[dict[str, str]] = {
    "C": "Common",
    "R": "Rare",
    "H": "Hero",
    "L": "Legend",
    "S": "Starter",
}
PROMO_RARITY: Final = "Promo"

_CODE_NOISE = re.compile(r"[-\s.,;/]")
_PROMO_CODE = re.compile(r"^(?:PR?|A)-\d{3}")
_PROMO_BASE = re.compile(r"PR-\d+/(.+)")
_VALID_CODE = re.compile(r"^(?:PR-\d{3}|[1-9]\d?-\d{3}[A-Z]|[A-C]-\d{3}|Re-\d{3}[A-Z])$")


def normalize_code(code: str) -> str:
    """Strip separators and whitespace, then upper-case: ``"1-001h"`` -> ``"1001H"``."""

    return _CODE_NOISE.sub("", code).upper()


def is_promo_code(code: str) -> bool:
    return bool(_PROMO_CODE.match(code.strip()))


def is_promo_card(codes: Iterable[str]) -> bool:
    return any(is_promo_code(code) for code in codes)


def promo_base_code(code: str) -> str | None:
    """Return the regular printing behind ``PR-nnn/<base>``, if the code names one."""

    match = _PROMO_BASE.search(code)
    if match is None:
        return None
    base = match.group(1).strip()
    return base or None


def is_valid_code(code: str) -> bool:
    return bool(_VALID_CODE.match(code))


def is_extension_code(code: str) -> bool:
    return code.startswith(EXTENSION_CODE_PREFIX)


def sanitize_key(code: str) -> str:
    """Document keys cannot contain ``/``."""

    return code.replace("/", ";")


def unsanitize_key(key: str) -> str:
    return key.replace(";", "/")


def normalize_text(value: str) -> str:
    return value.strip().casefold()


def is_crystal(card: CanonicalCard) -> bool:
    return card.type == CRYSTAL or card.code.startswith("C-")


def card_type(card: CanonicalCard) -> str:
    return CRYSTAL if is_crystal(card) else card.type


def elements(card: CanonicalCard) -> list[str]:
    """English element names, de-duplicated in catalog order."""

    if is_crystal(card):
        return [CRYSTAL]
    names: list[str] = []
    for raw in card.elements:
        name = ELEMENT_NAMES.get(raw.strip(), raw.strip())
        if name and name not in names:
            names.append(name)
    return names


def rarity_name(rarity: str) -> str:
    return RARITY_NAMES.get(rarity.strip(), rarity.strip())


def split_category(category: str | None) -> list[str]:
    if not category:
        return []
    decoded = category.replace("&middot;", CATEGORY_SEPARATOR)
    return [part.strip() for part in decoded.split(CATEGORY_SEPARATOR) if part.strip()]


def categories(card: CanonicalCard) -> list[str]:
    """Sub-categories of both catalog category fields, DFF group first, without duplicates."""

    combined = split_category(card.category_1) + split_category(card.category_2)
    ordered: list[str] = []
    for category in combined:
        if PRIORITY_CATEGORY_MARKER in category and category not in ordered:
            ordered.append(category)
    for category in combined:
        if category not in ordered:
            ordered.append(category)
    return ordered


def sorted_unique(values: Iterable[str]) -> list[str]:
    return sorted({value for value in values if value})


def same_members(left: Iterable[str] | None, right: Iterable[str] | None) -> bool:
    """Order-insensitive comparison after trim and case-fold."""

    left_values = sorted(normalize_text(value) for value in (left or ()))
    right_values = sorted(normalize_text(value) for value in (right or ()))
    return left_values == right_values


def parse_int(value: object) -> int | None:
    """Parse catalog numerics; blank, zero and invalid values become ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    text = str(value).strip()
    match = re.match(r"^[+-]?\d+", text)
    if match is None:
        return None
    return int(match.group(0)) or None
