from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from cardsync.adapters.sqlalchemy import SqlAlchemyDocumentStore, create_document_store

os.environ.setdefault("CARDSYNC_STORE", "sqlalchemy")

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    # file database: store work runs in worker threads, each with its own connection
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'cardsync.db'}", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_document_store(sqlite_engine: Engine) -> SqlAlchemyDocumentStore:
    return create_document_store(engine=sqlite_engine)
