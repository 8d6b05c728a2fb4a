"""Data storage configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Final

from .errors import ConfigurationError

APP_DIR_NAME: Final[str] = "cardsync"
DEFAULT_DB_FILENAME: Final[str] = "cardsync.db"


class StoreBackend(StrEnum):
    """Document store implementations selectable through ``CARDSYNC_STORE``."""

    SQLALCHEMY = "sqlalchemy"
    FIRESTORE = "firestore"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def ensure_data_dir(self) -> Path:
        data_dir = self.resolve_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def database_path(self, *, ensure: bool = True) -> Path:
        base = self.ensure_data_dir() if ensure else self.resolve_data_dir()
        return base / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


@dataclass(frozen=True, slots=True)
class DocumentStoreConfig:
    """Which document store backs the card collections, and how to reach it."""

    backend: StoreBackend
    database: DatabaseConfig | None = None
    firestore_project: str | None = None
    firestore_database: str | None = None


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("CARDSYNC_DATA_DIR")
    data_dir = Path(env_dir) if env_dir else _default_data_dir()
    return StorageConfig(data_dir=data_dir)


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    env_uri = os.getenv("DATABASE_URI")
    if env_uri:
        return DatabaseConfig(uri=env_uri)
    storage_config = storage or get_storage_config()
    return DatabaseConfig(uri=storage_config.database_uri())


def get_document_store_config() -> DocumentStoreConfig:
    raw_backend = (os.getenv("CARDSYNC_STORE") or StoreBackend.SQLALCHEMY.value).strip().lower()
    try:
        backend = StoreBackend(raw_backend)
    except ValueError as exc:
        choices = ", ".join(member.value for member in StoreBackend)
        raise ConfigurationError(
            f"Unsupported CARDSYNC_STORE {raw_backend!r} (expected one of: {choices})"
        ) from exc

    if backend is StoreBackend.FIRESTORE:
        return DocumentStoreConfig(
            backend=backend,
            firestore_project=os.getenv("FIRESTORE_PROJECT") or None,
            firestore_database=os.getenv("FIRESTORE_DATABASE") or None,
        )
    return DocumentStoreConfig(backend=backend, database=get_database_config())
