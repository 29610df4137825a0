"""In-memory record store adapter — implements RecordStore with plain dicts.

Used for tests and STORE_BACKEND=memory. Transactions snapshot every table
and restore the snapshot on failure.
"""

from __future__ import annotations

import copy
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum

from famcoins.ports.record_store import StoreError

logger = logging.getLogger(__name__)

TABLES = ("sequences", "groups", "task_templates", "task_instances", "task_completions")

# Child tables removed along with their parent row: parent -> [(child, fk)]
_CASCADES = {
    "sequences": [("groups", "sequence_id")],
    "groups": [("task_instances", "group_id")],
    "task_instances": [("task_completions", "task_instance_id")],
}


def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return value


def _matches(row: dict, filters: dict | None) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in {_plain(v) for v in expected}:
                return False
        elif actual != _plain(expected):
            return False
    return True


class MemoryRecordStore:
    """RecordStore that keeps every table in process memory."""

    def __init__(self) -> None:
        self._tables: dict[str, list[dict]] = {name: [] for name in TABLES}
        self._in_transaction = False

    def _table(self, table: str) -> list[dict]:
        if table not in self._tables:
            raise StoreError(f"Unknown table: {table!r}")
        return self._tables[table]

    async def insert(self, table: str, row: dict) -> dict:
        rows = await self.insert_many(table, [row])
        return rows[0]

    async def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        target = self._table(table)
        now = datetime.now().isoformat()
        taken = {r["id"] for r in target}
        stored: list[dict] = []
        for row in rows:
            record = {k: _plain(v) for k, v in row.items()}
            record.setdefault("id", str(uuid.uuid4()))
            record.setdefault("created_at", now)
            if table == "sequences":
                record.setdefault("updated_at", now)
            if record["id"] in taken:
                raise StoreError(f"Duplicate id {record['id']!r} in {table}")
            taken.add(record["id"])
            target.append(record)
            stored.append(dict(record))
        return stored

    async def select(
        self, table: str, filters: dict | None = None, order_by: str | None = None,
    ) -> list[dict]:
        rows = [dict(r) for r in self._table(table) if _matches(r, filters)]
        if order_by is not None:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        return rows

    async def update(self, table: str, filters: dict, patch: dict) -> list[dict]:
        updated: list[dict] = []
        values = {k: _plain(v) for k, v in patch.items()}
        if table == "sequences":
            values.setdefault("updated_at", datetime.now().isoformat())
        for row in self._table(table):
            if _matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    async def delete(self, table: str, filters: dict) -> int:
        if not filters:
            raise StoreError("Refusing to delete without filters")
        target = self._table(table)
        doomed = [r for r in target if _matches(r, filters)]
        for child, fk in _CASCADES.get(table, []):
            await self.delete(child, {fk: [r["id"] for r in doomed]})
        self._tables[table] = [r for r in target if not _matches(r, filters)]
        return len(doomed)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Snapshot all tables; restore them if the block fails."""
        if self._in_transaction:
            yield
            return

        snapshot = copy.deepcopy(self._tables)
        self._in_transaction = True
        try:
            yield
        except BaseException:
            self._tables = snapshot
            logger.info("Transaction rolled back")
            raise
        finally:
            self._in_transaction = False
