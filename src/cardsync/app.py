"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from cardsync.adapters.catalog import CatalogClient
from cardsync.config import (
    PLACEHOLDER_IMAGE_URL,
    MissingConfigurationError,
    StoreBackend,
    SyncConfig,
    get_document_store_config,
    get_image_storage_config,
    get_sync_config,
)
from cardsync.domain.batch_writes import BackoffPolicy, BatchWriteCoordinator, CoordinatorSettings
from cardsync.domain.catalog_snapshot import SnapshotResult, store_catalog_snapshot
from cardsync.domain.reconciliation import MergeRules, ReconcileOptions, ReconciliationResult
from cardsync.domain.reconciliation.engine import ReconciliationEngine
from cardsync.domain.search_index import SearchIndexer, SearchIndexResult

if TYPE_CHECKING:
    from cardsync.config import DocumentStoreConfig
    from cardsync.domain.ports.fetching import CatalogFetcher
    from cardsync.domain.ports.images import CardImageProcessor
    from cardsync.domain.ports.persistence import DocumentStore

log = getLogger(__name__)


def build_document_store(config: DocumentStoreConfig | None = None) -> DocumentStore:
    """Create the configured document store (SQLAlchemy unless ``CARDSYNC_STORE`` says otherwise)."""

    resolved = config or get_document_store_config()
    if resolved.backend is StoreBackend.FIRESTORE:
        from cardsync.adapters.firestore import create_firestore_store  # noqa: PLC0415

        return create_firestore_store(resolved)

    from cardsync.adapters.sqlalchemy import create_document_store  # noqa: PLC0415

    database_uri = resolved.database.uri if resolved.database is not None else None
    return create_document_store(database_uri=database_uri)


def build_image_processor() -> CardImageProcessor | None:
    try:
        config = get_image_storage_config()
    except MissingConfigurationError:
        log.info("IMAGE_BUCKET not set; missing card images fall back to the placeholder")
        return None

    from cardsync.adapters.images import create_image_processor  # noqa: PLC0415

    return create_image_processor(config)


def build_coordinator_settings(
    sync_config: SyncConfig,
    *,
    max_concurrent_batches: int | None = None,
    max_operations_per_batch: int | None = None,
) -> CoordinatorSettings:
    return CoordinatorSettings(
        max_concurrent_batches=max_concurrent_batches or sync_config.max_concurrent_batches,
        max_operations_per_batch=max_operations_per_batch
        or sync_config.max_operations_per_batch,
        backoff=BackoffPolicy(
            max_retries=sync_config.commit_max_retries,
            base_delay=sync_config.commit_base_delay_seconds,
        ),
        commit_timeout=sync_config.commit_timeout_seconds,
    )


def reconcile_catalog(
    options: ReconcileOptions | None = None,
    *,
    store: DocumentStore | None = None,
    fetcher: CatalogFetcher | None = None,
    images: CardImageProcessor | None = None,
    sync_config: SyncConfig | None = None,
    max_concurrent_batches: int | None = None,
    max_operations_per_batch: int | None = None,
) -> ReconciliationResult:
    """Reconcile the local ``cards`` collection against the reference catalog."""

    effective_options = options or ReconcileOptions()
    effective_sync = sync_config or get_sync_config()
    settings = build_coordinator_settings(
        effective_sync,
        max_concurrent_batches=max_concurrent_batches,
        max_operations_per_batch=max_operations_per_batch,
    )

    async def _run() -> ReconciliationResult:
        effective_store = store or build_document_store()
        engine = ReconciliationEngine(
            store=effective_store,
            coordinator=BatchWriteCoordinator(effective_store, settings),
            rules=MergeRules(placeholder_url=PLACEHOLDER_IMAGE_URL),
            fetcher=fetcher or CatalogClient(),
            images=images if images is not None else build_image_processor(),
            page_size=effective_sync.page_size,
        )
        return await engine.run(effective_options)

    return asyncio.run(_run())


def snapshot_catalog(
    *,
    store: DocumentStore | None = None,
    fetcher: CatalogFetcher | None = None,
    sync_config: SyncConfig | None = None,
) -> SnapshotResult:
    """Fetch the reference catalog and store it in the ``catalogCards`` collection."""

    settings = build_coordinator_settings(sync_config or get_sync_config())

    async def _run() -> SnapshotResult:
        effective_store = store or build_document_store()
        cards = await (fetcher or CatalogClient()).fetch_all()
        return await store_catalog_snapshot(
            cards, BatchWriteCoordinator(effective_store, settings)
        )

    return asyncio.run(_run())


def update_search_index(
    *,
    force: bool = False,
    limit: int | None = None,
    store: DocumentStore | None = None,
    sync_config: SyncConfig | None = None,
) -> SearchIndexResult:
    """Refresh prefix search terms on every card whose terms changed."""

    effective_sync = sync_config or get_sync_config()
    settings = build_coordinator_settings(effective_sync)

    async def _run() -> SearchIndexResult:
        effective_store = store or build_document_store()
        indexer = SearchIndexer(
            store=effective_store,
            coordinator=BatchWriteCoordinator(effective_store, settings),
            page_size=effective_sync.page_size,
        )
        return await indexer.run(force=force, limit=limit)

    return asyncio.run(_run())
