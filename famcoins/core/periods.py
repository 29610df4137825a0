"""Period calculator — pure business logic.

Converts a {period, start date} pair into an inclusive end date and a display
label, and maps periods between the three vocabularies in use:

- draft:    "weekly" | "fortnightly" | "monthly" (+ an ``ongoing`` flag)
- service:  Period enum, values "1week" | "2weeks" | "1month" | "ongoing"
- database: sequences.type "weekly" | "fortnightly" | "monthly" (+ is_ongoing)

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import date, timedelta
from enum import Enum

from dateutil.relativedelta import relativedelta

MONTHLY_AVERAGE_WEEKS = 4.34
ONGOING_YEARS = 10


class Period(Enum):
    WEEKLY = "1week"
    FORTNIGHTLY = "2weeks"
    MONTHLY = "1month"
    ONGOING = "ongoing"


_DRAFT_TO_PERIOD = {
    "weekly": Period.WEEKLY,
    "fortnightly": Period.FORTNIGHTLY,
    "monthly": Period.MONTHLY,
}

DISPLAY_NAMES = {
    Period.WEEKLY: "1 Week",
    Period.FORTNIGHTLY: "2 Weeks",
    Period.MONTHLY: "1 Month",
    Period.ONGOING: "Ongoing",
}


def period_from_draft(draft_period: str, ongoing: bool = False) -> Period:
    """Map the draft vocabulary to a service Period.

    Raises ValueError on an unknown draft period.
    """
    if ongoing:
        return Period.ONGOING
    try:
        return _DRAFT_TO_PERIOD[draft_period]
    except KeyError:
        raise ValueError(f"Unknown period: {draft_period!r}") from None


def database_type(draft_period: str) -> str:
    """The sequences.type value for a draft period (same spelling)."""
    period_from_draft(draft_period)
    return draft_period


def draft_period_from_database(db_type: str | None) -> str:
    """Map sequences.type back to the draft vocabulary, defaulting to weekly."""
    return db_type if db_type in _DRAFT_TO_PERIOD else "weekly"


def display_name(period: Period) -> str:
    return DISPLAY_NAMES[period]


def weeks_in_period(
    draft_period: str, monthly_weeks: float = MONTHLY_AVERAGE_WEEKS,
) -> float:
    """Weeks used for completion estimates. Months use an average, not a calendar count."""
    period = period_from_draft(draft_period)
    if period is Period.FORTNIGHTLY:
        return 2
    if period is Period.MONTHLY:
        return monthly_weeks
    return 1


def calculate_end_date(
    start_date: date, period: Period, ongoing_years: int = ONGOING_YEARS,
) -> date:
    """Return the end date of a period starting on start_date.

    Months clamp to the last day of the target month: Jan 31 -> Feb 28/29.
    """
    if period is Period.WEEKLY:
        return start_date + timedelta(days=7)
    if period is Period.FORTNIGHTLY:
        return start_date + timedelta(days=14)
    if period is Period.MONTHLY:
        return start_date + relativedelta(months=1)
    return start_date + relativedelta(years=ongoing_years)


def _short(d: date) -> str:
    return f"{d:%b} {d.day}"


def generate_sequence_name(start_date: date, period: Period) -> str:
    """Human-readable label, e.g. "Week of Jan 1 - Jan 7". Display only."""
    if period is Period.WEEKLY:
        end = start_date + timedelta(days=6)
        return f"Week of {_short(start_date)} - {_short(end)}"
    if period is Period.FORTNIGHTLY:
        end = start_date + timedelta(days=13)
        return f"Fortnight {_short(start_date)} - {_short(end)}"
    if period is Period.MONTHLY:
        return f"Month of {start_date:%B %Y}"
    return f"Ongoing from {_short(start_date)}"
