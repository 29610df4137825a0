"""
FamCoins Sequencer — Sequence creation wizard.

UI-agnostic, step-by-step accumulator for a SequenceDraft:

    SelectChild(0) -> SequenceSettings(1) -> GroupsSetup(2)
        -> AddTasksPerGroup(3, once per group) -> ReviewCreate(4)

Moving to a step is only allowed while every earlier step is valid; an
attempt to jump past an invalid step lands on the first invalid one instead.
Edit mode loads a complete draft at the review step and skips that guard.

Each UI adapter keeps one wizard per session and renders its state; the
wizard never talks to the user directly.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from famcoins.config import settings
from famcoins.core.currency import GroupLoad, count_completions, value_per_completion
from famcoins.core.date_expander import validate_active_days
from famcoins.core.draft import (
    DraftGroup,
    DraftSettings,
    SequenceDraft,
    WizardStep,
    calculate_famcoins,
    is_step_valid,
    step_problems,
    submission_problems,
)
from famcoins.core.errors import NotFoundError, SequenceError, ValidationError
from famcoins.core.guard import ActiveSequenceGuard
from famcoins.core.materializer import Create, Update
from famcoins.core.periods import (
    display_name,
    draft_period_from_database,
    period_from_draft,
    weeks_in_period,
)

if TYPE_CHECKING:
    from famcoins.core.materializer import SequenceMaterializer
    from famcoins.core.sequences import SequenceQueries
    from famcoins.data.db import DraftStore

logger = logging.getLogger(__name__)

TOTAL_STEPS = len(WizardStep)


def _same_name(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class SequenceWizard:
    """Holds one parent's in-flight draft and drives it to submission."""

    def __init__(
        self,
        materializer: SequenceMaterializer,
        queries: SequenceQueries,
        *,
        guard: ActiveSequenceGuard | None = None,
        draft: SequenceDraft | None = None,
        parent_id: str | None = None,
        draft_store: DraftStore | None = None,
        conversion_rate: int | None = None,
        monthly_weeks: float | None = None,
    ) -> None:
        self._materializer = materializer
        self._queries = queries
        self._guard = guard or ActiveSequenceGuard(queries)
        self._draft_store = draft_store
        self._parent_id = parent_id
        self.conversion_rate = conversion_rate or settings.FAMCOIN_CONVERSION_RATE
        self._monthly_weeks = monthly_weeks or settings.MONTHLY_WEEKS

        self.draft = draft or self._fresh_draft()
        self.current_step = WizardStep.SELECT_CHILD
        self.current_group_id: str | None = None
        self.is_loading = False
        self.error: str | None = None
        self.validation_errors: dict[str, str] = {}

    def _fresh_draft(self) -> SequenceDraft:
        return SequenceDraft(
            parent_id=self._parent_id,
            settings=DraftSettings(currency_code=settings.DEFAULT_CURRENCY_CODE),
        )

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------

    @classmethod
    def resume(
        cls,
        draft_id: str,
        draft_store: DraftStore,
        materializer: SequenceMaterializer,
        queries: SequenceQueries,
        **kwargs,
    ) -> SequenceWizard:
        """Rebuild a wizard from a draft saved with save_session().

        Raises NotFoundError if no draft is saved under draft_id.
        """
        saved = draft_store.load(draft_id)
        if saved is None:
            raise NotFoundError("draft", draft_id)
        payload, step = saved
        draft = SequenceDraft.model_validate_json(payload)
        wizard = cls(
            materializer, queries,
            draft=draft, draft_store=draft_store, parent_id=draft.parent_id, **kwargs,
        )
        wizard.go_to_step(step)
        return wizard

    def save_session(self) -> None:
        if self._draft_store is None:
            raise RuntimeError("No draft store configured for this wizard")
        self._draft_store.save(
            self.draft.draft_id, self.draft.model_dump_json(), int(self.current_step),
        )

    def _forget_session(self, draft_id: str) -> None:
        if self._draft_store is not None:
            self._draft_store.delete(draft_id)

    # ------------------------------------------------------------------
    # Step 0: child
    # ------------------------------------------------------------------

    def select_child(self, child_id: str) -> None:
        """Set the child. A sequence being edited keeps its child."""
        if self.draft.is_editing and child_id != self.draft.selected_child_id:
            self.validation_errors["child"] = "The child of an existing sequence cannot be changed"
            raise ValidationError(self.validation_errors["child"])
        self.draft.selected_child_id = child_id
        self.validation_errors.pop("child", None)

    # ------------------------------------------------------------------
    # Step 1: settings
    # ------------------------------------------------------------------

    def update_settings(self, **changes) -> DraftSettings:
        """Merge changes into the settings. A new budget recomputes FAMCOINS."""
        merged = {**self.draft.settings.model_dump(), **changes}
        if changes.get("budget") is not None:
            merged["budget_famcoins"] = calculate_famcoins(
                changes["budget"], self.conversion_rate,
            )
        elif "budget" in changes:
            merged["budget_famcoins"] = None
        try:
            self.draft.settings = DraftSettings.model_validate(merged)
        except PydanticValidationError as exc:
            self.validation_errors["settings"] = str(exc)
            raise ValidationError(f"Invalid sequence settings: {exc}") from exc
        self.validation_errors.pop("settings", None)
        return self.draft.settings

    # ------------------------------------------------------------------
    # Step 2: groups
    # ------------------------------------------------------------------

    def _reject_group(self, message: str) -> None:
        self.validation_errors["groups"] = message
        raise ValidationError(message)

    def _checked_days(self, active_days) -> list[int]:
        try:
            return validate_active_days(active_days)
        except ValueError as exc:
            self._reject_group(str(exc))

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        return any(
            g.id != exclude_id and _same_name(g.name, name) for g in self.draft.groups
        )

    def add_group(self, name: str, active_days=()) -> DraftGroup:
        if not name.strip():
            self._reject_group("Group name cannot be empty")
        if self._name_taken(name):
            self._reject_group("Group name must be unique")
        group = DraftGroup(name=name.strip(), active_days=self._checked_days(active_days))
        self.draft.groups.append(group)
        self.draft.selected_tasks_by_group[group.id] = []
        self.validation_errors.pop("groups", None)
        return group

    def update_group(
        self, group_id: str, *, name: str | None = None, active_days=None,
    ) -> DraftGroup:
        group = self.draft.group(group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        if name is not None:
            if not name.strip():
                self._reject_group("Group name cannot be empty")
            if self._name_taken(name, exclude_id=group_id):
                self._reject_group("Group name must be unique")
            group.name = name.strip()
        if active_days is not None:
            group.active_days = self._checked_days(active_days)
        self.validation_errors.pop("groups", None)
        return group

    def delete_group(self, group_id: str) -> None:
        self.draft.groups = [g for g in self.draft.groups if g.id != group_id]
        self.draft.selected_tasks_by_group.pop(group_id, None)
        if self.current_group_id == group_id:
            self.current_group_id = None

    # ------------------------------------------------------------------
    # Step 3: tasks per group
    # ------------------------------------------------------------------

    def _task_list(self, group_id: str) -> list[str]:
        if self.draft.group(group_id) is None:
            raise NotFoundError("group", group_id)
        return self.draft.selected_tasks_by_group.setdefault(group_id, [])

    def add_task_to_group(self, group_id: str, task_id: str) -> None:
        tasks = self._task_list(group_id)
        if task_id not in tasks:
            tasks.append(task_id)

    def remove_task_from_group(self, group_id: str, task_id: str) -> None:
        tasks = self._task_list(group_id)
        if task_id in tasks:
            tasks.remove(task_id)

    def set_tasks_for_group(self, group_id: str, task_ids: list[str]) -> None:
        self._task_list(group_id)
        self.draft.selected_tasks_by_group[group_id] = list(dict.fromkeys(task_ids))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def is_step_valid(self, step: int) -> bool:
        return is_step_valid(self.draft, step)

    @property
    def can_advance(self) -> bool:
        return self.is_step_valid(self.current_step)

    def go_to_step(self, step: int, group_id: str | None = None) -> WizardStep:
        """Move to ``step`` if every earlier step is valid.

        Returns the step the wizard actually landed on, which is the first
        invalid earlier step when the move is refused.
        """
        target = WizardStep(step)

        if not self.draft.is_editing:
            for earlier in range(target):
                if not self.is_step_valid(earlier):
                    blocked = WizardStep(earlier)
                    logger.info(
                        "Cannot enter %s while %s is incomplete", target.name, blocked.name,
                    )
                    self.validation_errors["navigation"] = "; ".join(
                        step_problems(self.draft, blocked)
                    )
                    self.current_step = blocked
                    self.current_group_id = None
                    return blocked

        self.validation_errors.pop("navigation", None)

        if target is WizardStep.ADD_TASKS:
            if group_id is None and self.draft.groups:
                group_id = self.draft.groups[0].id
            if group_id is None or self.draft.group(group_id) is None:
                self.current_step = WizardStep.GROUPS_SETUP
                self.current_group_id = None
                return self.current_step
            self.current_group_id = group_id
        else:
            self.current_group_id = None

        self.current_step = target
        return target

    def next_step(self) -> WizardStep:
        if self.current_step is WizardStep.ADD_TASKS and self.current_group_id:
            if not self.draft.tasks_for(self.current_group_id):
                self.validation_errors["tasks"] = "Add at least one task to this group"
                return self.current_step
            self.validation_errors.pop("tasks", None)
            ids = [g.id for g in self.draft.groups]
            index = ids.index(self.current_group_id)
            if index + 1 < len(ids):
                return self.go_to_step(WizardStep.ADD_TASKS, ids[index + 1])
            return self.go_to_step(WizardStep.REVIEW_CREATE)

        if self.current_step is WizardStep.REVIEW_CREATE:
            return self.current_step
        return self.go_to_step(self.current_step + 1)

    def previous_step(self) -> WizardStep:
        ids = [g.id for g in self.draft.groups]
        if self.current_step is WizardStep.ADD_TASKS and self.current_group_id in ids:
            index = ids.index(self.current_group_id)
            if index > 0:
                return self.go_to_step(WizardStep.ADD_TASKS, ids[index - 1])
        if self.current_step is WizardStep.REVIEW_CREATE and ids:
            return self.go_to_step(WizardStep.ADD_TASKS, ids[-1])
        if self.current_step is WizardStep.SELECT_CHILD:
            return self.current_step
        return self.go_to_step(self.current_step - 1)

    @property
    def progress(self) -> dict:
        step = int(self.current_step)
        return {
            "current_step": step,
            "total_steps": TOTAL_STEPS,
            "percentage": step / (TOTAL_STEPS - 1) * 100,
        }

    # ------------------------------------------------------------------
    # Derived values (recomputed on every read)
    # ------------------------------------------------------------------

    @property
    def period_label(self) -> str | None:
        """Display name of the chosen period, e.g. "2 Weeks" or "Ongoing"."""
        s = self.draft.settings
        if not s.period:
            return None
        return display_name(period_from_draft(s.period, ongoing=s.ongoing))

    @property
    def total_completions(self) -> int:
        period = self.draft.settings.period
        weeks = weeks_in_period(period, self._monthly_weeks) if period else 1
        loads = [
            GroupLoad(len(self.draft.tasks_for(g.id)), len(g.active_days))
            for g in self.draft.groups
        ]
        return count_completions(loads, weeks)

    @property
    def famcoin_per_task(self) -> int:
        return value_per_completion(
            self.draft.settings.budget_famcoins or 0, self.total_completions,
        )

    @property
    def famcoin_remainder(self) -> int:
        budget = self.draft.settings.budget_famcoins or 0
        total = self.total_completions
        if not budget or total == 0:
            return 0
        return budget % total

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    async def load_for_editing(self, sequence_id: str) -> SequenceDraft:
        """Load a persisted sequence into the wizard at the review step."""
        self.is_loading = True
        self.error = None
        try:
            snapshot = await self._queries.load_for_editing(sequence_id)
        except SequenceError as exc:
            self.error = exc.user_message
            raise
        finally:
            self.is_loading = False

        seq = snapshot.sequence
        groups = [
            DraftGroup(id=g.id, name=g.name, active_days=g.active_days)
            for g in snapshot.groups
        ]
        tasks: dict[str, list[str]] = {g.id: [] for g in groups}
        for instance in snapshot.task_instances:
            if instance.is_bonus_task:
                continue
            bucket = tasks.setdefault(instance.group_id, [])
            if instance.template_id not in bucket:
                bucket.append(instance.template_id)

        self.draft = SequenceDraft(
            draft_id=self.draft.draft_id,
            parent_id=seq.parent_id or self.draft.parent_id,
            selected_child_id=seq.child_id,
            settings=DraftSettings(
                period=draft_period_from_database(seq.type),
                start_date=date.fromisoformat(seq.start_date),
                budget=seq.budget_currency,
                currency_code=seq.currency_code,
                budget_famcoins=seq.budget_famcoins,
                ongoing=seq.is_ongoing,
            ),
            groups=groups,
            selected_tasks_by_group=tasks,
            is_editing=True,
            editing_sequence_id=seq.id,
        )
        self.current_step = WizardStep.REVIEW_CREATE
        self.current_group_id = None
        self.validation_errors = {}
        logger.info("Sequence %s loaded for editing", seq.id)
        return self.draft

    async def edit_existing(self) -> SequenceDraft:
        """Switch to editing the selected child's active sequence.

        This is the way out of a ConflictError raised by submit().
        """
        child_id = self.draft.selected_child_id
        if not child_id:
            raise ValidationError("Please select a child")
        existing = await self._queries.find_active_sequence(child_id)
        if existing is None:
            raise NotFoundError("sequence", f"active sequence for child {child_id}")
        return await self.load_for_editing(existing.id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self) -> str:
        """Create or update the sequence. Returns its id.

        Every failure is re-raised to the caller; ``error`` holds its
        user-facing message and ``is_loading`` is cleared either way.
        """
        draft = self.draft
        self.is_loading = True
        self.error = None
        try:
            problems = submission_problems(draft)
            if problems:
                raise ValidationError(problems)

            if draft.is_editing and draft.editing_sequence_id:
                mode = Update(draft.editing_sequence_id)
            else:
                await self._guard.ensure_can_create(draft.selected_child_id)
                mode = Create()

            sequence_id = await self._materializer.materialize(draft, mode)
        except Exception as exc:
            self.error = getattr(exc, "user_message", SequenceError.user_message)
            raise
        finally:
            self.is_loading = False

        self._forget_session(draft.draft_id)
        if isinstance(mode, Update):
            draft.is_editing = False
            draft.editing_sequence_id = None
        else:
            self.reset()
        return sequence_id

    def reset(self) -> None:
        """Back to an empty draft at the first step."""
        self.draft = self._fresh_draft()
        self.current_step = WizardStep.SELECT_CHILD
        self.current_group_id = None
        self.is_loading = False
        self.error = None
        self.validation_errors = {}
