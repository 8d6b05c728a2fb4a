"""SQLAlchemy adapter package for cardsync."""

from __future__ import annotations

from .document_store import SqlAlchemyDocumentStore, SqlAlchemyWriteBatch, create_document_store
from .mappings import documents_table, metadata

__all__ = [
    "SqlAlchemyDocumentStore",
    "SqlAlchemyWriteBatch",
    "create_document_store",
    "documents_table",
    "metadata",
]
