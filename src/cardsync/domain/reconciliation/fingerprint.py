"""Content fingerprints of catalog cards.

A fingerprint covers exactly the fields whose change warrants revisiting the
local records; free text such as names and rules text is left out. Array
values are sorted and de-duplicated before hashing, so catalog ordering
noise never changes a digest.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

from . import normalize

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cardsync.domain.model import CanonicalCard


def extension_codes(codes: Iterable[str] | None) -> list[str]:
    """Local-only codes (reprint numbers) that the catalog does not list."""

    return [code for code in (codes or ()) if normalize.is_extension_code(code)]


def projection(
    canonical: CanonicalCard,
    local_extensions: Iterable[str] = (),
) -> dict[str, object]:
    card_numbers = normalize.sorted_unique([*canonical.constituent_codes, *local_extensions])
    categories = [canonical.category_1]
    if canonical.category_2:
        categories.append(canonical.category_2)
    return {
        "code": canonical.code,
        "element": normalize.sorted_unique(normalize.elements(canonical)),
        "rarity": canonical.rarity,
        "cost": canonical.cost,
        "power": canonical.power,
        "category_1": canonical.category_1,
        "category_2": canonical.category_2 or None,
        "categories": normalize.sorted_unique(categories),
        "multicard": canonical.multicard,
        "ex_burst": canonical.ex_burst,
        "set": normalize.sorted_unique(value.strip() for value in canonical.sets),
        "cardNumbers": card_numbers,
    }


def fingerprint(canonical: CanonicalCard, local_extensions: Iterable[str] = ()) -> str:
    """Return the 128-bit hex digest of the card's reconciliation-relevant content."""

    payload = json.dumps(
        projection(canonical, local_extensions),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest()
