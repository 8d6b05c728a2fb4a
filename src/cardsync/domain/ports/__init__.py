"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import CatalogFetcher, CatalogFetchError
from .images import CardImageProcessor, ImageResult
from .persistence import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFoundError,
    DocumentStore,
    Fields,
    StoreDeadlineExceededError,
    StoreError,
    StoreUnavailableError,
    TransientStoreError,
    WriteBatch,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "CardImageProcessor",
    "CatalogFetchError",
    "CatalogFetcher",
    "Document",
    "DocumentNotFoundError",
    "DocumentStore",
    "Fields",
    "ImageResult",
    "StoreDeadlineExceededError",
    "StoreError",
    "StoreUnavailableError",
    "TransientStoreError",
    "WriteBatch",
]
