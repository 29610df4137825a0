"""
FamCoins Sequencer — Sequence queries and lifecycle.

Read access to persisted sequences and everything they own, plus the status
transitions a parent can make (complete / cancel) and full deletion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from famcoins.core.errors import NotFoundError, ValidationError
from famcoins.data.models import (
    CompletionStatus,
    Group,
    Sequence,
    SequenceStatus,
    TaskCompletion,
    TaskInstance,
)

if TYPE_CHECKING:
    from famcoins.ports.record_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class EditingSnapshot:
    """A persisted sequence with the groups and instances the wizard needs."""

    sequence: Sequence
    groups: list[Group] = field(default_factory=list)
    task_instances: list[TaskInstance] = field(default_factory=list)


def _row_to_sequence(row: dict) -> Sequence:
    return Sequence(
        id=row["id"],
        child_id=row["child_id"],
        parent_id=row.get("parent_id"),
        name=row["name"],
        type=row["type"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        budget_currency=row["budget_currency"],
        budget_famcoins=row["budget_famcoins"],
        currency_code=row["currency_code"],
        status=SequenceStatus(row["status"]),
        is_ongoing=bool(row.get("is_ongoing", False)),
        created_at=row.get("created_at", ""),
        updated_at=row.get("updated_at", ""),
    )


def _row_to_group(row: dict) -> Group:
    return Group(
        id=row["id"],
        sequence_id=row["sequence_id"],
        name=row["name"],
        active_days=list(row["active_days"]),
        position=row.get("position", 0),
        created_at=row.get("created_at", ""),
    )


def _row_to_instance(row: dict) -> TaskInstance:
    return TaskInstance(
        id=row["id"],
        template_id=row["template_id"],
        group_id=row["group_id"],
        sequence_id=row["sequence_id"],
        famcoin_value=row["famcoin_value"],
        photo_proof_required=bool(row.get("photo_proof_required", False)),
        effort_score=row.get("effort_score"),
        is_bonus_task=bool(row.get("is_bonus_task", False)),
        created_at=row.get("created_at", ""),
    )


def _row_to_completion(row: dict) -> TaskCompletion:
    return TaskCompletion(
        id=row["id"],
        task_instance_id=row["task_instance_id"],
        child_id=row["child_id"],
        due_date=row["due_date"],
        status=CompletionStatus(row["status"]),
        famcoins_earned=row.get("famcoins_earned", 0),
        famcoin_bonus=row.get("famcoin_bonus", 0),
        completed_at=row.get("completed_at"),
        approved_at=row.get("approved_at"),
        created_at=row.get("created_at", ""),
    )


class SequenceQueries:
    """Reads and lifecycle updates for persisted sequences."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def get_sequence(self, sequence_id: str) -> Sequence | None:
        rows = await self._store.select("sequences", {"id": sequence_id})
        return _row_to_sequence(rows[0]) if rows else None

    async def find_active_sequence(self, child_id: str) -> Sequence | None:
        """The child's active sequence, newest first if there are several."""
        rows = await self._store.select(
            "sequences",
            {"child_id": child_id, "status": SequenceStatus.ACTIVE.value},
            order_by="created_at",
        )
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "Child %s has %d active sequences; using the newest", child_id, len(rows),
            )
        return _row_to_sequence(rows[-1])

    async def list_groups(self, sequence_id: str) -> list[Group]:
        rows = await self._store.select(
            "groups", {"sequence_id": sequence_id}, order_by="position",
        )
        return [_row_to_group(r) for r in rows]

    async def list_task_instances(self, sequence_id: str) -> list[TaskInstance]:
        rows = await self._store.select("task_instances", {"sequence_id": sequence_id})
        return [_row_to_instance(r) for r in rows]

    async def list_completions(self, sequence_id: str) -> list[TaskCompletion]:
        """All completions of a sequence, ordered by due date."""
        instances = await self.list_task_instances(sequence_id)
        if not instances:
            return []
        rows = await self._store.select(
            "task_completions",
            {"task_instance_id": [i.id for i in instances]},
            order_by="due_date",
        )
        return [_row_to_completion(r) for r in rows]

    async def load_for_editing(self, sequence_id: str) -> EditingSnapshot:
        """Fetch a sequence with its groups and task instances.

        Raises NotFoundError if the sequence no longer exists.
        """
        sequence = await self.get_sequence(sequence_id)
        if sequence is None:
            raise NotFoundError("sequence", sequence_id)
        return EditingSnapshot(
            sequence=sequence,
            groups=await self.list_groups(sequence_id),
            task_instances=await self.list_task_instances(sequence_id),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _finish(self, sequence_id: str, status: SequenceStatus) -> Sequence:
        sequence = await self.get_sequence(sequence_id)
        if sequence is None:
            raise NotFoundError("sequence", sequence_id)
        if sequence.status is not SequenceStatus.ACTIVE:
            raise ValidationError(
                f"Sequence is already {sequence.status.value} and cannot be "
                f"marked {status.value}"
            )
        rows = await self._store.update(
            "sequences", {"id": sequence_id}, {"status": status.value},
        )
        logger.info("Sequence %s marked %s", sequence_id, status.value)
        return _row_to_sequence(rows[0])

    async def complete_sequence(self, sequence_id: str) -> Sequence:
        return await self._finish(sequence_id, SequenceStatus.COMPLETED)

    async def cancel_sequence(self, sequence_id: str) -> Sequence:
        return await self._finish(sequence_id, SequenceStatus.CANCELLED)

    async def delete_sequence(self, sequence_id: str) -> bool:
        """Permanently delete a sequence and everything it owns."""
        async with self._store.transaction():
            if await self.get_sequence(sequence_id) is None:
                return False
            await delete_groups(self._store, sequence_id)
            await self._store.delete("sequences", {"id": sequence_id})
        logger.info("Sequence %s deleted", sequence_id)
        return True


async def delete_groups(store: RecordStore, sequence_id: str) -> int:
    """Remove a sequence's groups with their task instances and completions.

    Children are deleted explicitly so the result doesn't depend on the
    backend enforcing cascades.
    """
    groups = await store.select("groups", {"sequence_id": sequence_id})
    if not groups:
        return 0
    group_ids = [g["id"] for g in groups]
    instances = await store.select("task_instances", {"group_id": group_ids})
    if instances:
        await store.delete(
            "task_completions", {"task_instance_id": [i["id"] for i in instances]},
        )
        await store.delete("task_instances", {"group_id": group_ids})
    return await store.delete("groups", {"id": group_ids})
