"""Date expander — turns a weekly active-day pattern into calendar dates.

Active days use the domain convention 1=Monday .. 7=Sunday. The only place a
native weekday number is translated is ``domain_weekday``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta

MONDAY = 1
SUNDAY = 7


def domain_weekday(d: date) -> int:
    """Weekday of ``d`` as 1=Monday .. 7=Sunday."""
    # date.weekday() is 0=Monday .. 6=Sunday
    return d.weekday() + 1


def validate_active_days(active_days: Iterable[int]) -> list[int]:
    """Return the days sorted and de-duplicated. Raises ValueError if out of range."""
    days = sorted(set(active_days))
    bad = [d for d in days if not MONDAY <= d <= SUNDAY]
    if bad:
        raise ValueError(f"Active days must be between 1 and 7, got {bad}")
    return days


def iter_active_dates(
    start_date: date, end_date: date, active_days: Iterable[int],
) -> Iterator[date]:
    """Yield dates in [start_date, end_date] whose weekday is active, ascending."""
    wanted = set(validate_active_days(active_days))
    if not wanted:
        return
    current = start_date
    while current <= end_date:
        if domain_weekday(current) in wanted:
            yield current
        current += timedelta(days=1)


def expand_active_dates(
    start_date: date, end_date: date, active_days: Iterable[int],
) -> list[date]:
    """Eager form of iter_active_dates.

    >>> expand_active_dates(date(2024, 1, 1), date(2024, 1, 7), {1, 3, 5})
    [datetime.date(2024, 1, 1), datetime.date(2024, 1, 3), datetime.date(2024, 1, 5)]
    """
    return list(iter_active_dates(start_date, end_date, active_days))
