"""
FamCoins Sequencer — Sequence draft.

The in-progress, client-held shape the wizard accumulates before submission.
It is a pydantic model so it can be saved as JSON between sessions.

JSON example:
{
    "draft_id": "5f0c...",
    "selected_child_id": "child-1",
    "settings": {"period": "weekly", "start_date": "2024-01-01",
                 "budget": 10.0, "currency_code": "GBP",
                 "budget_famcoins": 100, "ongoing": false},
    "groups": [{"id": "temp_ab12", "name": "Mornings", "active_days": [1, 3, 5]}],
    "selected_tasks_by_group": {"temp_ab12": ["tpl-brush-teeth"]},
    "is_editing": false,
    "editing_sequence_id": null
}
"""

from __future__ import annotations

import math
import uuid
from datetime import date
from enum import IntEnum
from typing import Literal, get_args

from pydantic import BaseModel, Field, field_validator

from famcoins.core.date_expander import validate_active_days


DraftPeriod = Literal["weekly", "fortnightly", "monthly"]


class WizardStep(IntEnum):
    SELECT_CHILD = 0
    SEQUENCE_SETTINGS = 1
    GROUPS_SETUP = 2
    ADD_TASKS = 3
    REVIEW_CREATE = 4


def new_group_id() -> str:
    """Temporary, draft-local group id."""
    return f"temp_{uuid.uuid4().hex[:12]}"


def calculate_famcoins(amount: float, conversion_rate: int) -> int:
    """Real-currency budget -> FAMCOINS, rounded down."""
    return math.floor(amount * conversion_rate)


class DraftGroup(BaseModel):
    id: str = Field(default_factory=new_group_id)
    name: str
    active_days: list[int] = Field(default_factory=list)   # 1=Mon .. 7=Sun

    @field_validator("active_days")
    @classmethod
    def normalize_days(cls, v: list[int]) -> list[int]:
        return validate_active_days(v)


class DraftSettings(BaseModel):
    period: DraftPeriod | None = None
    start_date: date | None = None
    budget: float | None = None        # real currency
    currency_code: str = "GBP"
    budget_famcoins: int | None = None
    ongoing: bool = False


class SequenceDraft(BaseModel):
    draft_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    parent_id: str | None = None
    selected_child_id: str | None = None
    settings: DraftSettings = Field(default_factory=DraftSettings)
    groups: list[DraftGroup] = Field(default_factory=list)
    selected_tasks_by_group: dict[str, list[str]] = Field(default_factory=dict)
    is_editing: bool = False
    editing_sequence_id: str | None = None

    def group(self, group_id: str) -> DraftGroup | None:
        return next((g for g in self.groups if g.id == group_id), None)

    def tasks_for(self, group_id: str) -> list[str]:
        return self.selected_tasks_by_group.get(group_id, [])


# ---------------------------------------------------------------------------
# Per-step validity
# ---------------------------------------------------------------------------


def step_problems(draft: SequenceDraft, step: int) -> list[str]:
    """Human-readable reasons why ``step`` is not complete (empty if valid)."""
    problems: list[str] = []

    if step == WizardStep.SELECT_CHILD:
        if not draft.selected_child_id:
            problems.append("Please select a child")

    elif step == WizardStep.SEQUENCE_SETTINGS:
        s = draft.settings
        if not s.period:
            problems.append("Please choose a period")
        elif s.period not in get_args(DraftPeriod):
            problems.append(f"Unknown period '{s.period}'")
        if s.start_date is None:
            problems.append("Please choose a start date")
        if not s.budget or s.budget <= 0:
            problems.append("Budget must be greater than 0")

    elif step == WizardStep.GROUPS_SETUP:
        if not draft.groups:
            problems.append("Add at least one group")
        for g in draft.groups:
            if not g.name.strip():
                problems.append("Every group needs a name")
            if not g.active_days:
                problems.append(f"Group '{g.name}' needs at least one active day")

    elif step == WizardStep.ADD_TASKS:
        for g in draft.groups:
            if not draft.tasks_for(g.id):
                problems.append(f"Group '{g.name}' needs at least one task")

    return problems


def is_step_valid(draft: SequenceDraft, step: int) -> bool:
    try:
        step = WizardStep(step)
    except ValueError:
        return False
    if step is WizardStep.REVIEW_CREATE:
        return True
    return not step_problems(draft, step)


def submission_problems(draft: SequenceDraft) -> list[str]:
    """Every invariant a draft must satisfy before anything is persisted."""
    problems: list[str] = []
    for step in (
        WizardStep.SELECT_CHILD,
        WizardStep.SEQUENCE_SETTINGS,
        WizardStep.GROUPS_SETUP,
        WizardStep.ADD_TASKS,
    ):
        problems.extend(step_problems(draft, step))
    return problems
