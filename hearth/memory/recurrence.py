"""
HEARTH Recurrence Model - Weekly Schedule Arithmetic

Pure date logic for the weekly-recurrence model.

Conventions:
- Weeks start on Sunday
- Weekday numbers run 1 (Sunday) .. 7 (Saturday)
- All datetimes are naive, system local time
"""

import calendar
from datetime import date, datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

SUNDAY = 1
MONDAY = 2
TUESDAY = 3
WEDNESDAY = 4
THURSDAY = 5
FRIDAY = 6
SATURDAY = 7

WEEKDAY_NAMES = [
    "Sunday", "Monday", "Tuesday", "Wednesday",
    "Thursday", "Friday", "Saturday",
]

# Sunday-first weekday number -> dateutil weekday
_RRULE_DAYS = [SU, MO, TU, WE, TH, FR, SA]


def weekday_of(value: date) -> int:
    """
    Sunday-first weekday number of a date or datetime.

    Args:
        value: date or datetime

    Returns:
        1 for Sunday through 7 for Saturday
    """
    # isoweekday: Monday=1 .. Sunday=7
    return value.isoweekday() % 7 + 1


def weekday_name(weekday: int) -> str:
    """Human-readable name for a 1..7 weekday number"""
    if not 1 <= weekday <= 7:
        raise ValueError(f"Weekday must be 1..7, got {weekday}")
    return WEEKDAY_NAMES[weekday - 1]


def next_weekly_occurrence(
    weekday: int,
    hour: int,
    minute: int,
    after: Optional[datetime] = None
) -> datetime:
    """
    Next instant strictly after `after` on `weekday` at hour:minute.

    Args:
        weekday: Target weekday (1=Sunday .. 7=Saturday)
        hour: Hour of day (0-23)
        minute: Minute (0-59)
        after: Reference instant (default: datetime.now())

    Returns:
        Naive datetime of the next matching instant
    """
    if not 1 <= weekday <= 7:
        raise ValueError(f"Weekday must be 1..7, got {weekday}")
    if after is None:
        after = datetime.now()

    candidate = after + relativedelta(
        weekday=_RRULE_DAYS[weekday - 1],
        hour=hour, minute=minute, second=0, microsecond=0
    )
    if candidate <= after:
        candidate += relativedelta(weeks=1)
    return candidate


def occurrences(event, start: datetime, end: datetime) -> List[datetime]:
    """
    Materialize the concrete instants of an event inside [start, end).

    Non-recurring events have exactly one occurrence at event.date.
    Recurring events repeat weekly from event.date and stop after
    recurrence_end_date (inclusive) when one is set.

    Args:
        event: Event-like object (date, is_recurring, recurrence_end_date)
        start: Window start (inclusive)
        end: Window end (exclusive)

    Returns:
        Sorted list of occurrence datetimes
    """
    if end <= start:
        return []

    if not event.is_recurring:
        return [event.date] if start <= event.date < end else []

    rule = rrule(WEEKLY, dtstart=event.date, until=event.recurrence_end_date)
    # between() is inclusive on both ends when inc=True
    return [dt for dt in rule.between(start, end, inc=True) if dt < end]


def week_of(value: date) -> List[date]:
    """The seven dates of the Sunday-first week containing `value`"""
    day = value.date() if isinstance(value, datetime) else value
    sunday = day - timedelta(days=weekday_of(day) - 1)
    return [sunday + timedelta(days=offset) for offset in range(7)]


def month_days(value: date) -> List[date]:
    """Every calendar day of the month containing `value`"""
    _, last_day = calendar.monthrange(value.year, value.month)
    return [date(value.year, value.month, day) for day in range(1, last_day + 1)]
