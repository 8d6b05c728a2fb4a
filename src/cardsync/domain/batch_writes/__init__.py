"""Batched, throttled writes to the document store."""

from __future__ import annotations

from .coordinator import BatchWriteCoordinator, CoordinatorSettings
from .retry import BackoffPolicy, is_retryable, retry_transient
from .units import (
    BatchFullError,
    BatchState,
    BatchUnit,
    WriteOperation,
    set_document,
    update_document,
)

__all__ = [
    "BackoffPolicy",
    "BatchFullError",
    "BatchState",
    "BatchUnit",
    "BatchWriteCoordinator",
    "CoordinatorSettings",
    "WriteOperation",
    "is_retryable",
    "retry_transient",
    "set_document",
    "update_document",
]
