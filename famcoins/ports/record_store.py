"""Record store port — abstract interface for the hosted relational backend.

Core modules depend on this protocol, never on a specific backend.
Filter dicts match on equality; a list/tuple/set value means "IN".
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol


class StoreError(Exception):
    """Raised when any record store operation fails."""


class RecordStore(Protocol):
    """Abstract table-level store used by the sequence engine."""

    async def insert(self, table: str, row: dict) -> dict: ...

    async def insert_many(self, table: str, rows: list[dict]) -> list[dict]: ...

    async def select(
        self, table: str, filters: dict | None = None, order_by: str | None = None,
    ) -> list[dict]: ...

    async def update(self, table: str, filters: dict, patch: dict) -> list[dict]: ...

    async def delete(self, table: str, filters: dict) -> int: ...

    def transaction(self) -> AbstractAsyncContextManager[None]: ...
