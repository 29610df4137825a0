"""Task template catalog adapter — reads task_templates through a RecordStore."""

from __future__ import annotations

from typing import TYPE_CHECKING

from famcoins.data.models import TaskTemplate

if TYPE_CHECKING:
    from famcoins.ports.record_store import RecordStore


class StoreTemplateCatalog:
    """TemplateCatalogPort backed by the task_templates table."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def get_templates_by_ids(self, ids: list[str]) -> list[TaskTemplate]:
        if not ids:
            return []
        rows = await self._store.select("task_templates", {"id": list(dict.fromkeys(ids))})
        return [
            TaskTemplate(
                id=row["id"],
                name=row.get("name", ""),
                photo_proof_required=bool(row.get("photo_proof_required", False)),
                effort_score=row.get("effort_score"),
                description=row.get("description") or "",
                category=row.get("category") or "",
            )
            for row in rows
        ]
