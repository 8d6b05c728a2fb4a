"""Card domain model."""

from __future__ import annotations

from .cards import CanonicalCard, CardImages, LocalCard
from .fields import IDENTIFIER_FIELDS, IMAGE_FIELDS, CardField

__all__ = [
    "IDENTIFIER_FIELDS",
    "IMAGE_FIELDS",
    "CanonicalCard",
    "CardField",
    "CardImages",
    "LocalCard",
]
