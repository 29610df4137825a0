"""Currency allocator — splits a FAMCOIN budget across task completions.

The completion count is an estimate: tasks x active days x weeks per period,
summed over groups and rounded once at the end. Every completion is worth
floor(budget / completions). What happens to the remainder is a policy.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class RemainderPolicy(Enum):
    UNALLOCATED = "unallocated"              # remainder is simply not handed out
    FIRST_COMPLETIONS = "first_completions"  # +1 to the first `remainder` completions


@dataclass
class GroupLoad:
    """Per-group inputs to the allocator."""

    tasks_assigned: int
    active_days: int


@dataclass
class Allocation:
    """Result of splitting a budget."""

    budget_famcoins: int
    total_completions: int
    value_per_completion: int
    remainder: int
    policy: RemainderPolicy = RemainderPolicy.UNALLOCATED

    @property
    def total_allocated(self) -> int:
        base = self.value_per_completion * self.total_completions
        if self.policy is RemainderPolicy.FIRST_COMPLETIONS:
            return base + self.remainder
        return base

    def bonus_for(self, index: int) -> int:
        """Extra FAMCOINS for the completion at ``index`` (0-based, in due order)."""
        if self.policy is RemainderPolicy.FIRST_COMPLETIONS and index < self.remainder:
            return 1
        return 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def count_completions(groups: Iterable[GroupLoad], weeks: float) -> int:
    """Estimated completions across all groups for a period of ``weeks``."""
    raw = sum(g.tasks_assigned * g.active_days * weeks for g in groups)
    return _round_half_up(raw)


def value_per_completion(budget_famcoins: int, total_completions: int) -> int:
    if total_completions <= 0:
        return 0
    return budget_famcoins // total_completions


def allocate(
    budget_famcoins: int,
    groups: Iterable[GroupLoad],
    weeks: float,
    policy: RemainderPolicy = RemainderPolicy.UNALLOCATED,
) -> Allocation:
    """Compute the per-completion value for a budget.

    Raises ValueError on a negative budget.
    """
    if budget_famcoins < 0:
        raise ValueError(f"Budget must not be negative, got {budget_famcoins}")

    total = count_completions(groups, weeks)
    value = value_per_completion(budget_famcoins, total)
    remainder = budget_famcoins % total if total > 0 else 0

    allocation = Allocation(
        budget_famcoins=budget_famcoins,
        total_completions=total,
        value_per_completion=value,
        remainder=remainder,
        policy=policy,
    )
    logger.debug(
        "Allocated %d FAMCOINS over %d completions: %d each, remainder %d (%s)",
        budget_famcoins, total, value, remainder, policy.value,
    )
    return allocation
