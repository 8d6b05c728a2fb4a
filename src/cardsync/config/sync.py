"""Synchronization defaults for reconciliation and batched writes."""

from __future__ import annotations

from dataclasses import dataclass

from cardsync.domain.batch_writes.coordinator import (
    DEFAULT_COMMIT_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENT_BATCHES,
    DEFAULT_MAX_OPERATIONS_PER_BATCH,
)
from cardsync.domain.batch_writes.retry import DEFAULT_BASE_DELAY_SECONDS, DEFAULT_MAX_RETRIES
from cardsync.domain.reconciliation.engine import DEFAULT_PAGE_SIZE

from .env import optional_env_int


@dataclass(frozen=True, slots=True)
class SyncConfig:
    max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES
    max_operations_per_batch: int = DEFAULT_MAX_OPERATIONS_PER_BATCH
    commit_max_retries: int = DEFAULT_MAX_RETRIES
    commit_base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS
    commit_timeout_seconds: float = DEFAULT_COMMIT_TIMEOUT_SECONDS
    page_size: int = DEFAULT_PAGE_SIZE


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        max_concurrent_batches=optional_env_int(
            "CARDSYNC_MAX_CONCURRENT_BATCHES", DEFAULT_MAX_CONCURRENT_BATCHES
        ),
        max_operations_per_batch=optional_env_int(
            "CARDSYNC_MAX_OPERATIONS_PER_BATCH", DEFAULT_MAX_OPERATIONS_PER_BATCH
        ),
    )
