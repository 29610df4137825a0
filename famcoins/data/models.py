"""
FamCoins Sequencer — Data Models.

Persisted shapes of the sequence engine. A Sequence owns Groups, a Group owns
TaskInstances, and every TaskInstance owns one TaskCompletion per active day
inside the sequence window. TaskTemplates come from the task catalog and are
read-only here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SequenceStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CompletionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class TaskTemplate:
    """A catalog task a parent can assign to a group."""

    id: str
    name: str
    photo_proof_required: bool = False
    effort_score: int | None = None
    description: str = ""
    category: str = ""


@dataclass
class Sequence:
    """A time-boxed set of recurring tasks with a FAMCOIN budget, for one child."""

    id: str
    child_id: str
    name: str                         # e.g. "Week of Jan 1 - Jan 7"
    type: str                         # "weekly" | "fortnightly" | "monthly"
    start_date: str                   # ISO date YYYY-MM-DD
    end_date: str                     # ISO date YYYY-MM-DD, inclusive
    budget_currency: float
    budget_famcoins: int
    currency_code: str
    status: SequenceStatus = SequenceStatus.ACTIVE
    is_ongoing: bool = False
    parent_id: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Group:
    """A named subset of a sequence's tasks sharing one weekly pattern."""

    id: str
    sequence_id: str
    name: str
    active_days: list[int] = field(default_factory=list)  # 1=Mon .. 7=Sun
    position: int = 0
    created_at: str = ""


@dataclass
class TaskInstance:
    """A sequence-scoped occurrence of a template, with its computed value."""

    id: str
    template_id: str
    group_id: str
    sequence_id: str
    famcoin_value: int
    photo_proof_required: bool = False
    effort_score: int | None = None
    is_bonus_task: bool = False
    created_at: str = ""


@dataclass
class TaskCompletion:
    """One due-date occurrence of a task instance."""

    id: str
    task_instance_id: str
    child_id: str
    due_date: str                     # ISO date YYYY-MM-DD
    status: CompletionStatus = CompletionStatus.PENDING
    famcoins_earned: int = 0
    famcoin_bonus: int = 0            # remainder share, see RemainderPolicy
    completed_at: str | None = None
    approved_at: str | None = None
    created_at: str = ""
