"""Translate card browser payloads into catalog cards."""

from __future__ import annotations

from collections.abc import Mapping

from cardsync.domain.model import CanonicalCard, CardImages
from cardsync.domain.reconciliation.normalize import parse_int

from .schema import CatalogCardPayload


def parse_canonical_card(payload: CatalogCardPayload | Mapping[str, object]) -> CanonicalCard:
    model = (
        payload
        if isinstance(payload, CatalogCardPayload)
        else CatalogCardPayload.model_validate(payload)
    )
    return CanonicalCard(
        code=model.code,
        name=model.name,
        type=model.card_type,
        job=model.job,
        text=model.text,
        elements=tuple(value.strip() for value in model.element if value.strip()),
        rarity=model.rarity,
        cost=parse_int(model.cost),
        power=parse_int(model.power),
        category_1=model.category_1,
        category_2=model.category_2,
        multicard=model.multicard,
        ex_burst=model.ex_burst,
        sets=tuple(value.strip() for value in model.sets if value.strip()),
        images=CardImages(thumbs=tuple(model.images.thumbs), full=tuple(model.images.full)),
    )
