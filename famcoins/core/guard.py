"""Active-sequence guard — at most one active sequence per child.

Advisory check-then-act, run before creating a sequence and never before
updating one in place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from famcoins.core.errors import ConflictError

if TYPE_CHECKING:
    from famcoins.core.sequences import SequenceQueries

logger = logging.getLogger(__name__)


class ActiveSequenceGuard:
    def __init__(self, queries: SequenceQueries) -> None:
        self._queries = queries

    async def has_active_sequence(self, child_id: str) -> bool:
        return await self._queries.find_active_sequence(child_id) is not None

    async def ensure_can_create(self, child_id: str) -> None:
        """Raise ConflictError if the child already has an active sequence."""
        existing = await self._queries.find_active_sequence(child_id)
        if existing is not None:
            logger.info(
                "Create blocked: child %s already has active sequence %s",
                child_id, existing.id,
            )
            raise ConflictError(child_id, existing.id)
