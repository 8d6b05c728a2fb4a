"""Adapter for the official card browser API."""

from __future__ import annotations

from .client import CatalogClient
from .schema import CardImagesPayload, CardsEnvelope, CatalogCardPayload
from .translator import parse_canonical_card

__all__ = [
    "CardImagesPayload",
    "CardsEnvelope",
    "CatalogCardPayload",
    "CatalogClient",
    "parse_canonical_card",
]
