"""Store field names of the ``cards`` collection."""

from __future__ import annotations

from enum import StrEnum


class CardField(StrEnum):
    NAME = "name"
    CLEAN_NAME = "cleanName"
    CARD_NUMBERS = "cardNumbers"
    FULL_CARD_NUMBER = "fullCardNumber"
    NUMBER = "number"
    PRIMARY_CARD_NUMBER = "primaryCardNumber"
    COST = "cost"
    POWER = "power"
    JOB = "job"
    RARITY = "rarity"
    CARD_TYPE = "cardType"
    CATEGORY = "category"
    CATEGORIES = "categories"
    ELEMENTS = "elements"
    SET = "set"
    FULL_RES_URL = "fullResUrl"
    HIGH_RES_URL = "highResUrl"
    LOW_RES_URL = "lowResUrl"
    GROUP_ID = "groupId"
    IS_NON_CARD = "isNonCard"
    SEARCH_TERMS = "searchTerms"
    SEARCH_LAST_UPDATED = "searchLastUpdated"
    LAST_UPDATED = "lastUpdated"


IDENTIFIER_FIELDS: tuple[CardField, ...] = (
    CardField.CARD_NUMBERS,
    CardField.FULL_CARD_NUMBER,
    CardField.NUMBER,
    CardField.PRIMARY_CARD_NUMBER,
)

IMAGE_FIELDS: tuple[CardField, ...] = (
    CardField.HIGH_RES_URL,
    CardField.LOW_RES_URL,
    CardField.FULL_RES_URL,
)
