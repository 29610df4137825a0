"""Record store factory — creates the right adapter based on config."""

from __future__ import annotations

from famcoins.config import settings
from famcoins.ports.record_store import RecordStore
from famcoins.ports.template_catalog import TemplateCatalogPort


def create_record_store(db_path: str | None = None) -> RecordStore:
    """Return the record store matching the STORE_BACKEND setting.

    Args:
        db_path: Override for DATABASE_PATH (sqlite backend only).
    """
    backend = settings.STORE_BACKEND.lower()

    if backend == "sqlite":
        from famcoins.adapters.sqlite_store import SQLiteRecordStore

        return SQLiteRecordStore(db_path=db_path or settings.DATABASE_PATH)

    if backend == "memory":
        from famcoins.adapters.memory_store import MemoryRecordStore

        return MemoryRecordStore()

    raise ValueError(f"Unknown STORE_BACKEND: {backend!r}")


def create_template_catalog(store: RecordStore) -> TemplateCatalogPort:
    """Return a template catalog reading through the given store."""
    from famcoins.adapters.template_catalog import StoreTemplateCatalog

    return StoreTemplateCatalog(store)
