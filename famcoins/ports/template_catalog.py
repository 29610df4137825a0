"""Template catalog port — read-only lookup of task templates.

The catalog is owned by another service; the engine only needs the scoring
attributes it snapshots onto each task instance.
"""

from __future__ import annotations

from typing import Protocol

from famcoins.data.models import TaskTemplate


class TemplateCatalogPort(Protocol):
    """Abstract task template lookup used by core modules."""

    async def get_templates_by_ids(self, ids: list[str]) -> list[TaskTemplate]: ...
