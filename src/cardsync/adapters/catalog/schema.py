"""Pydantic models describing the card browser API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_empty(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _flag(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _as_list(value: object) -> object:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value]
    return value


class CatalogBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CardImagesPayload(CatalogBaseModel):
    thumbs: list[str] = Field(default_factory=list)
    full: list[str] = Field(default_factory=list)

    @field_validator("thumbs", "full", mode="before")
    @classmethod
    def _normalize_urls(cls, value: object) -> object:
        return _as_list(value)


class CatalogCardPayload(CatalogBaseModel):
    code: str
    name: str = Field(default="", alias="name_en")
    card_type: str = Field(default="", alias="type_en")
    job: str = Field(default="", alias="job_en")
    text: str = Field(default="", alias="text_en")
    element: list[str] = Field(default_factory=list)
    rarity: str = ""
    cost: str | int | None = None
    power: str | int | None = None
    category_1: str = ""
    category_2: str | None = None
    multicard: bool = False
    ex_burst: bool = False
    sets: list[str] = Field(default_factory=list, alias="set")
    images: CardImagesPayload = Field(default_factory=CardImagesPayload)

    @field_validator("code")
    @classmethod
    def _require_code(cls, value: str) -> str:
        code = value.strip()
        if not code:
            raise ValueError("card code must not be blank")
        return code

    @field_validator("name", "card_type", "job", "text", "rarity", "category_1", mode="before")
    @classmethod
    def _normalize_text(cls, value: object) -> object:
        return _blank_to_empty(value)

    @field_validator("category_2", mode="before")
    @classmethod
    def _normalize_optional_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("multicard", "ex_burst", mode="before")
    @classmethod
    def _normalize_flag(cls, value: object) -> bool:
        return _flag(value)

    @field_validator("element", "sets", mode="before")
    @classmethod
    def _normalize_list(cls, value: object) -> object:
        return _as_list(value)

    @field_validator("images", mode="before")
    @classmethod
    def _normalize_images(cls, value: object) -> object:
        return value if value else {}


class CardsEnvelope(CatalogBaseModel):
    """Outer response; cards are validated one at a time so a bad entry cannot sink the fetch."""

    cards: list[object]
