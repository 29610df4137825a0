"""
FamCoins Sequencer — Sequence materializer.

Turns a submitted draft into persisted rows:

    sequence -> groups -> task instances (one per assigned template)
             -> task completions (one per instance per active day)

The whole write runs inside one store transaction, so a failure at any step
(or a cancelled task) leaves the store exactly as it was. On update the
previous groups, instances and completions are deleted and rebuilt from the
draft; children lose any progress on the replaced completions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Union

from famcoins.config import settings
from famcoins.core.currency import Allocation, GroupLoad, RemainderPolicy, allocate
from famcoins.core.date_expander import expand_active_dates
from famcoins.core.draft import SequenceDraft, calculate_famcoins, submission_problems
from famcoins.core.errors import NotFoundError, PersistenceError, ValidationError
from famcoins.core.periods import (
    Period,
    calculate_end_date,
    database_type,
    generate_sequence_name,
    period_from_draft,
    weeks_in_period,
)
from famcoins.core.sequences import delete_groups
from famcoins.data.models import CompletionStatus, SequenceStatus, TaskTemplate
from famcoins.ports.record_store import StoreError

if TYPE_CHECKING:
    from famcoins.ports.record_store import RecordStore
    from famcoins.ports.template_catalog import TemplateCatalogPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Create:
    """Insert a brand-new sequence."""


@dataclass(frozen=True)
class Update:
    """Replace the contents of an existing sequence in place."""

    sequence_id: str


MaterializeMode = Union[Create, Update]


@dataclass
class _Plan:
    """Values derived from the draft before anything is written."""

    period: Period
    start_date: date
    end_date: date
    name: str
    budget_famcoins: int


@contextmanager
def _step(name: str) -> Iterator[None]:
    """Tag store failures with the materialization step they happened in."""
    try:
        yield
    except StoreError as exc:
        logger.error("Materialization failed at step '%s': %s", name, exc)
        raise PersistenceError(name, str(exc)) from exc


class SequenceMaterializer:
    """Creates or rebuilds a sequence from a draft, atomically."""

    def __init__(
        self,
        store: RecordStore,
        catalog: TemplateCatalogPort,
        *,
        conversion_rate: int | None = None,
        monthly_weeks: float | None = None,
        ongoing_years: int | None = None,
        remainder_policy: RemainderPolicy | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._conversion_rate = conversion_rate or settings.FAMCOIN_CONVERSION_RATE
        self._monthly_weeks = monthly_weeks or settings.MONTHLY_WEEKS
        self._ongoing_years = ongoing_years or settings.ONGOING_YEARS
        self._remainder_policy = remainder_policy or RemainderPolicy(settings.REMAINDER_POLICY)

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    async def materialize(self, draft: SequenceDraft, mode: MaterializeMode) -> str:
        """Persist the draft and return the sequence id.

        Raises:
            ValidationError: the draft is incomplete; nothing was written.
            NotFoundError: a task template or the sequence being updated is gone.
            PersistenceError: a store operation failed; everything was rolled back.
        """
        problems = submission_problems(draft)
        if problems:
            raise ValidationError(problems)

        plan = self._plan(draft)
        templates = await self._fetch_templates(draft)

        try:
            async with self._store.transaction():
                sequence_id = await self._write(draft, mode, plan, templates)
        except StoreError as exc:
            logger.error("Materialization failed at step 'commit': %s", exc)
            raise PersistenceError("commit", str(exc)) from exc

        logger.info(
            "Sequence %s %s for child %s: %s -> %s",
            sequence_id, "updated" if isinstance(mode, Update) else "created",
            draft.selected_child_id, plan.start_date, plan.end_date,
        )
        return sequence_id

    # ------------------------------------------------------------------
    # Preparation (no writes)
    # ------------------------------------------------------------------

    def _plan(self, draft: SequenceDraft) -> _Plan:
        s = draft.settings
        period = period_from_draft(s.period, ongoing=s.ongoing)
        budget_famcoins = s.budget_famcoins
        if budget_famcoins is None:
            budget_famcoins = calculate_famcoins(s.budget, self._conversion_rate)
        return _Plan(
            period=period,
            start_date=s.start_date,
            end_date=calculate_end_date(s.start_date, period, self._ongoing_years),
            name=generate_sequence_name(s.start_date, period),
            budget_famcoins=budget_famcoins,
        )

    def _allocate(
        self, draft: SequenceDraft, plan: _Plan, loads: list[GroupLoad],
    ) -> Allocation:
        weeks = weeks_in_period(draft.settings.period, self._monthly_weeks)
        return allocate(plan.budget_famcoins, loads, weeks, self._remainder_policy)

    async def _fetch_templates(self, draft: SequenceDraft) -> dict[str, TaskTemplate]:
        wanted = list(dict.fromkeys(
            tid for g in draft.groups for tid in draft.tasks_for(g.id)
        ))
        with _step("task_templates"):
            found = await self._catalog.get_templates_by_ids(wanted)
        by_id = {t.id: t for t in found}
        missing = [tid for tid in wanted if tid not in by_id]
        if missing:
            raise NotFoundError("task_template", missing)
        return by_id

    # ------------------------------------------------------------------
    # Writes (inside the transaction)
    # ------------------------------------------------------------------

    def _sequence_fields(self, draft: SequenceDraft, plan: _Plan) -> dict:
        s = draft.settings
        return {
            "name": plan.name,
            "type": database_type(s.period),
            "is_ongoing": s.ongoing,
            "start_date": plan.start_date.isoformat(),
            "end_date": plan.end_date.isoformat(),
            "budget_currency": s.budget,
            "budget_famcoins": plan.budget_famcoins,
            "currency_code": s.currency_code,
        }

    async def _write(
        self,
        draft: SequenceDraft,
        mode: MaterializeMode,
        plan: _Plan,
        templates: dict[str, TaskTemplate],
    ) -> str:
        # 1. Sequence row (or retire the old contents of the existing one)
        if isinstance(mode, Update):
            sequence_id = mode.sequence_id
            with _step("retire_groups"):
                existing = await self._store.select("sequences", {"id": sequence_id})
                if not existing:
                    raise NotFoundError("sequence", sequence_id)
                if existing[0]["child_id"] != draft.selected_child_id:
                    raise ValidationError(
                        "The child of an existing sequence cannot be changed"
                    )
                removed = await delete_groups(self._store, sequence_id)
            with _step("sequence"):
                await self._store.update(
                    "sequences", {"id": sequence_id}, self._sequence_fields(draft, plan),
                )
            logger.debug("Sequence %s: retired %d groups", sequence_id, removed)
        else:
            with _step("sequence"):
                row = await self._store.insert("sequences", {
                    "child_id": draft.selected_child_id,
                    "parent_id": draft.parent_id,
                    "status": SequenceStatus.ACTIVE.value,
                    **self._sequence_fields(draft, plan),
                })
            sequence_id = row["id"]

        # 2. Groups, keeping the draft order
        with _step("groups"):
            created_groups = await self._store.insert_many("groups", [
                {
                    "sequence_id": sequence_id,
                    "name": g.name.strip(),
                    "active_days": g.active_days,
                    "position": index,
                }
                for index, g in enumerate(draft.groups)
            ])
        persisted_id = {
            draft_group.id: row["id"]
            for draft_group, row in zip(draft.groups, created_groups)
        }
        active_days_by_group = {row["id"]: row["active_days"] for row in created_groups}

        # 3. Value per completion, from the persisted groups
        allocation = self._allocate(draft, plan, [
            GroupLoad(
                tasks_assigned=len(draft.tasks_for(g.id)),
                active_days=len(active_days_by_group[persisted_id[g.id]]),
            )
            for g in draft.groups
        ])

        # 4. One task instance per (group, assigned template)
        instance_rows: list[dict] = []
        for g in draft.groups:
            for template_id in draft.tasks_for(g.id):
                template = templates[template_id]
                instance_rows.append({
                    "template_id": template_id,
                    "group_id": persisted_id[g.id],
                    "sequence_id": sequence_id,
                    "famcoin_value": allocation.value_per_completion,
                    "photo_proof_required": template.photo_proof_required,
                    "effort_score": template.effort_score,
                    "is_bonus_task": False,
                })
        with _step("task_instances"):
            instances = await self._store.insert_many("task_instances", instance_rows)

        # 5. One completion per instance per active date
        completion_rows = self._completion_rows(
            draft, plan, instances, active_days_by_group, allocation,
        )
        with _step("task_completions"):
            await self._store.insert_many("task_completions", completion_rows)

        logger.debug(
            "Sequence %s: %d groups, %d task instances, %d completions at %d FAMCOINS",
            sequence_id, len(created_groups), len(instances),
            len(completion_rows), allocation.value_per_completion,
        )
        return sequence_id

    def _completion_rows(
        self,
        draft: SequenceDraft,
        plan: _Plan,
        instances: list[dict],
        active_days_by_group: dict[str, list[int]],
        allocation: Allocation,
    ) -> list[dict]:
        dates_by_group = {
            group_id: expand_active_dates(plan.start_date, plan.end_date, days)
            for group_id, days in active_days_by_group.items()
        }
        keyed: list[tuple[date, int, dict]] = []
        for order, instance in enumerate(instances):
            for due in dates_by_group[instance["group_id"]]:
                keyed.append((due, order, {
                    "task_instance_id": instance["id"],
                    "child_id": draft.selected_child_id,
                    "due_date": due.isoformat(),
                    "status": CompletionStatus.PENDING.value,
                    "famcoins_earned": 0,
                    "famcoin_bonus": 0,
                }))

        keyed.sort(key=lambda item: (item[0], item[1]))
        rows = []
        for index, (_, _, row) in enumerate(keyed):
            row["famcoin_bonus"] = allocation.bonus_for(index)
            rows.append(row)
        return rows
