"""SQLite record store adapter — implements RecordStore on top of SequenceDB.

SequenceDB is synchronous; every call is wrapped with asyncio.to_thread.
A transaction pins one connection; store calls made while it is open run
on that connection and are committed or rolled back together.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from famcoins.data.db import SequenceDB
from famcoins.ports.record_store import StoreError

logger = logging.getLogger(__name__)


class SQLiteRecordStore:
    """RecordStore backed by a local SQLite file."""

    def __init__(self, db: SequenceDB | None = None, db_path: str | None = None) -> None:
        self._db = db or SequenceDB(db_path=db_path)
        self._tx_conn: sqlite3.Connection | None = None

    async def _run(self, action: str, func, *args, **kwargs):
        kwargs["conn"] = self._tx_conn
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (sqlite3.Error, ValueError) as exc:
            raise StoreError(f"Failed to {action}: {exc}") from exc

    async def insert(self, table: str, row: dict) -> dict:
        rows = await self._run(f"insert into {table}", self._db.insert, table, [row])
        return rows[0]

    async def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        return await self._run(f"insert into {table}", self._db.insert, table, rows)

    async def select(
        self, table: str, filters: dict | None = None, order_by: str | None = None,
    ) -> list[dict]:
        return await self._run(
            f"select from {table}", self._db.select, table, filters, order_by,
        )

    async def update(self, table: str, filters: dict, patch: dict) -> list[dict]:
        return await self._run(f"update {table}", self._db.update, table, filters, patch)

    async def delete(self, table: str, filters: dict) -> int:
        return await self._run(f"delete from {table}", self._db.delete, table, filters)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed store calls atomically. Nested use joins the outer one."""
        if self._tx_conn is not None:
            yield
            return

        try:
            conn = await asyncio.to_thread(self._db.begin)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to begin transaction: {exc}") from exc

        self._tx_conn = conn
        try:
            yield
        except BaseException:
            self._tx_conn = None
            # Synchronous on purpose: must complete even while being cancelled.
            self._db.rollback(conn)
            logger.info("Transaction rolled back")
            raise

        self._tx_conn = None
        try:
            await asyncio.to_thread(self._db.commit, conn)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to commit transaction: {exc}") from exc
