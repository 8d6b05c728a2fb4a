"""Ports for processing and storing card images."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ImageResult:
    """Public URLs per resolution tier plus whatever the processor learned on the way."""

    high_res_url: str
    low_res_url: str
    metadata: dict[str, object] = field(default_factory=dict)


@runtime_checkable
class CardImageProcessor(Protocol):
    async def process_and_store(
        self,
        source_url: str,
        *,
        record_id: str,
        edition_id: str,
        identifier_code: str,
    ) -> ImageResult: ...


__all__ = ["CardImageProcessor", "ImageResult"]
