"""Match local card records to reference catalog entries by identifier code."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from .normalize import (
    is_promo_code,
    normalize_code,
    normalize_text,
    promo_base_code,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from cardsync.domain.model import CanonicalCard, LocalCard

log = logging.getLogger(__name__)


def _lookup_keys(local: LocalCard) -> list[tuple[str, bool]]:
    """Normalized codes to look up, each flagged with whether it came from a promo code."""

    keys: list[tuple[str, bool]] = []
    for code in local.identifier_codes:
        if is_promo_code(code):
            base = promo_base_code(code)
            if base is not None:
                keys.append((normalize_code(base), True))
            continue
        keys.append((normalize_code(code), False))
    return keys


def _is_promo_listing(canonical: CanonicalCard) -> bool:
    return any(is_promo_code(code) for code in canonical.constituent_codes)


def _editions_overlap(local: LocalCard, canonical: CanonicalCard) -> bool:
    if not local.sets or not canonical.sets:
        return True
    local_sets = {normalize_text(value) for value in local.sets}
    return any(normalize_text(value) in local_sets for value in canonical.sets)


def _codes_match(keys: Iterable[tuple[str, bool]], canonical: CanonicalCard) -> bool:
    constituents = {normalize_code(code) for code in canonical.constituent_codes}
    promo_listing = _is_promo_listing(canonical)
    for key, from_promo in keys:
        # a regular printing never claims a promo listing
        if promo_listing and not from_promo:
            continue
        if key in constituents:
            return True
    return False


def match(local: LocalCard, canonical: CanonicalCard) -> bool:
    """Return whether ``local`` is a printing of ``canonical``.

    Codes are compared after normalization, against every ``/``-separated
    constituent of the catalog code. Local promo codes (``PR-012/1-001H``)
    are compared by their base code only; catalog entries that themselves
    carry a promo code are only claimed by local promo codes. When both sides
    list editions, they must share at least one.
    """

    keys = _lookup_keys(local)
    if not keys:
        return False
    return _codes_match(keys, canonical) and _editions_overlap(local, canonical)


class CanonicalIndex:
    """Catalog entries indexed by normalized constituent code.

    ``find_match`` returns the entry a linear first-match scan over the
    catalog would return, without scanning the whole catalog for each record.
    """

    def __init__(self, canonicals: Sequence[CanonicalCard]) -> None:
        self._canonicals = tuple(canonicals)
        self._positions: dict[str, list[int]] = defaultdict(list)
        for position, canonical in enumerate(self._canonicals):
            for code in {normalize_code(code) for code in canonical.constituent_codes}:
                self._positions[code].append(position)

    def __len__(self) -> int:
        return len(self._canonicals)

    def __iter__(self) -> Iterator[CanonicalCard]:
        return iter(self._canonicals)

    def find_match(self, local: LocalCard) -> CanonicalCard | None:
        keys = _lookup_keys(local)
        if not keys:
            return None
        candidates = sorted(
            {position for key, _ in keys for position in self._positions.get(key, ())}
        )
        matches = [
            self._canonicals[position]
            for position in candidates
            if _codes_match(keys, self._canonicals[position])
            and _editions_overlap(local, self._canonicals[position])
        ]
        if not matches:
            return None
        if len(matches) > 1:
            log.debug(
                "Card %s matches %d catalog entries; using %s",
                local.id,
                len(matches),
                matches[0].code,
            )
        return matches[0]


def find_match(local: LocalCard, canonicals: Iterable[CanonicalCard]) -> CanonicalCard | None:
    """First catalog entry in iteration order that ``local`` matches."""

    for canonical in canonicals:
        if match(local, canonical):
            return canonical
    return None
