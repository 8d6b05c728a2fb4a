"""Field merge resolution: what should change on a local record, given its catalog match."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from cardsync.domain.model import IDENTIFIER_FIELDS, IMAGE_FIELDS, CardField

from . import normalize
from .contracts import FieldUpdates
from .fingerprint import extension_codes
from .policy import CANONICAL_VALUES, GROUP_POLICIES, MERGE_POLICIES, MergePolicy

if TYPE_CHECKING:
    from cardsync.domain.model import CanonicalCard, LocalCard
    from cardsync.domain.ports.images import CardImageProcessor, ImageResult

    from .policy import MergeRules

log = logging.getLogger(__name__)

type FieldChanges = dict[CardField, object]


def _is_empty(value: object) -> bool:
    return value is None or value == "" or value == []


def _differs(current: object, proposed: object) -> bool:
    if isinstance(proposed, list) or isinstance(current, list):
        current_values = cast(list[str] | None, current)
        proposed_values = cast(list[str] | None, proposed)
        return not normalize.same_members(current_values, proposed_values)
    return current != proposed


def _fill_if_empty(
    local: LocalCard, canonical: CanonicalCard, card_field: CardField
) -> FieldChanges:
    proposed = CANONICAL_VALUES[card_field](canonical, local)
    if _is_empty(local.value_of(card_field)) and not _is_empty(proposed):
        return {card_field: proposed}
    return {}


def _always_overwrite(
    local: LocalCard, canonical: CanonicalCard, card_field: CardField
) -> FieldChanges:
    proposed = CANONICAL_VALUES[card_field](canonical, local)
    if _differs(local.value_of(card_field), proposed):
        return {card_field: proposed}
    return {}


def _protected_name(
    local: LocalCard, canonical: CanonicalCard, card_field: CardField, rules: MergeRules
) -> FieldChanges:
    if rules.is_protected_name(local.name) or normalize.is_promo_card(local.identifier_codes):
        return {}
    proposed = CANONICAL_VALUES[card_field](canonical, local)
    if not _is_empty(proposed) and proposed != local.name:
        return {card_field: proposed}
    return {}


def _categorical_composite(local: LocalCard, canonical: CanonicalCard) -> FieldChanges:
    proposed = normalize.categories(canonical)
    if normalize.same_members(local.categories, proposed):
        return {}
    return {
        CardField.CATEGORY: normalize.CATEGORY_SEPARATOR.join(proposed),
        CardField.CATEGORIES: proposed,
    }


def merged_identifier_codes(local: LocalCard, canonical: CanonicalCard) -> list[str]:
    """Valid catalog codes followed by the local-only extension codes, de-duplicated."""

    valid = [code for code in canonical.constituent_codes if normalize.is_valid_code(code)]
    if not valid:
        return []
    return list(dict.fromkeys([*valid, *extension_codes(local.card_numbers)]))


def _identifier_set(local: LocalCard, canonical: CanonicalCard) -> FieldChanges:
    merged = merged_identifier_codes(local, canonical)
    proposed: FieldChanges
    if not merged:
        proposed = dict.fromkeys(IDENTIFIER_FIELDS)
    else:
        primary = next(
            (code for code in merged if not normalize.is_extension_code(code)), merged[0]
        )
        proposed = {
            CardField.CARD_NUMBERS: merged,
            CardField.FULL_CARD_NUMBER: "/".join(merged),
            CardField.PRIMARY_CARD_NUMBER: primary,
            CardField.NUMBER: primary,
        }
    # list order matters here: the first code is the display and primary form
    return {
        card_field: value
        for card_field, value in proposed.items()
        if local.value_of(card_field) != value
    }


def clear_identifiers(local: LocalCard) -> FieldUpdates:
    """Null every identifier field still set on a non-card product."""

    updates = FieldUpdates()
    for card_field in IDENTIFIER_FIELDS:
        if local.value_of(card_field) is not None:
            updates.set(card_field, None)
    return updates


def resolve_fields(local: LocalCard, canonical: CanonicalCard, rules: MergeRules) -> FieldUpdates:
    """Compute the field changes the catalog entry implies for ``local``.

    Non-card records only ever lose their identifier codes. For real cards,
    every field in ``MERGE_POLICIES`` is visited once, with the multi-field
    policies evaluated as a group the first time one of their fields comes up.
    """

    if local.is_non_card:
        return clear_identifiers(local)

    updates = FieldUpdates()
    evaluated_groups: set[MergePolicy] = set()
    for card_field, policy in MERGE_POLICIES.items():
        if policy in GROUP_POLICIES:
            if policy in evaluated_groups:
                continue
            evaluated_groups.add(policy)
            if policy is MergePolicy.CATEGORICAL_COMPOSITE:
                changes = _categorical_composite(local, canonical)
            else:
                changes = _identifier_set(local, canonical)
        elif policy is MergePolicy.FILL_IF_EMPTY:
            changes = _fill_if_empty(local, canonical, card_field)
        elif policy is MergePolicy.ALWAYS_OVERWRITE:
            changes = _always_overwrite(local, canonical, card_field)
        elif policy is MergePolicy.PROTECTED_NAME:
            changes = _protected_name(local, canonical, card_field, rules)
        else:
            raise ValueError(f"Unhandled merge policy {policy!r} for {card_field}")
        for changed_field, value in changes.items():
            updates.set(changed_field, value)
    return updates


def needs_images(local: LocalCard) -> bool:
    return not local.is_non_card and any(
        local.value_of(card_field) is None for card_field in IMAGE_FIELDS
    )


async def _process(
    processor: CardImageProcessor,
    source_url: str,
    *,
    local: LocalCard,
    canonical: CanonicalCard,
) -> ImageResult | None:
    try:
        return await processor.process_and_store(
            source_url,
            record_id=local.id,
            edition_id=str(local.group_id),
            identifier_code=canonical.constituent_codes[0] if canonical.constituent_codes else "",
        )
    except Exception:
        log.exception("Image processing failed for card %s (%s)", local.id, source_url)
        return None


async def resolve_image_updates(
    local: LocalCard,
    canonical: CanonicalCard,
    rules: MergeRules,
    processor: CardImageProcessor | None,
) -> FieldUpdates:
    """Fill missing image URLs, falling back to the placeholder instead of leaving nulls."""

    updates = FieldUpdates()
    if not needs_images(local):
        return updates

    high_res: str | None = None
    low_res: str | None = None
    if processor is not None and local.group_id:
        if canonical.images.full:
            result = await _process(
                processor, canonical.images.full[0], local=local, canonical=canonical
            )
            high_res = result.high_res_url if result is not None else None
        if canonical.images.thumbs:
            result = await _process(
                processor, canonical.images.thumbs[0], local=local, canonical=canonical
            )
            low_res = result.low_res_url if result is not None else None
    elif processor is not None:
        log.warning("Card %s has no group id; skipping image processing", local.id)

    proposed = {
        CardField.HIGH_RES_URL: high_res,
        CardField.LOW_RES_URL: low_res,
        CardField.FULL_RES_URL: high_res,
    }
    for card_field, url in proposed.items():
        if local.value_of(card_field) is None:
            updates.set(card_field, url or rules.placeholder_url)
    return updates
