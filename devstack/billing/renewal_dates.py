"""Renewal date arithmetic for recurring subscriptions.

Every value is reduced to a UTC calendar day before any arithmetic, so the
same stored timestamp yields the same day regardless of the server's local
timezone.  Naive datetimes are treated as UTC.

Occurrences are always computed as ``anchor + k * cycle`` from the original
anchor, which keeps the anchor's day-of-month where the target month has it
and clamps to the month's last day otherwise (Jan 31 -> Feb 28/29 -> Mar 31).
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from devstack.core.constants import CYCLE_MONTHS, BillingCycle

DateLike = date | datetime | str


# ---------------------------------------------------------------------------
# UTC day helpers
# ---------------------------------------------------------------------------

def to_utc_date(value: DateLike) -> date:
    """Return the UTC calendar day of *value*."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(timezone.utc).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid date value {value!r}") from exc
        return to_utc_date(parsed)
    raise TypeError(f"Unsupported date value of type {type(value).__name__}")


def utc_today(now: DateLike | None = None) -> date:
    if now is None:
        return datetime.now(timezone.utc).date()
    return to_utc_date(now)


def utc_midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole UTC days from *start* to *end* (negative when *end* is earlier)."""
    return (to_utc_date(end) - to_utc_date(start)).days


def add_months(day: date, months: int) -> date:
    """Shift *day* by *months*, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


# ---------------------------------------------------------------------------
# Occurrences
# ---------------------------------------------------------------------------

def next_occurrence(
    anchor: DateLike,
    cycle: BillingCycle | str,
    today: DateLike | None = None,
) -> date | None:
    """Return the first occurrence of *anchor* + k cycles strictly after *today*.

    Non-recurring cycles return ``None``.  Raises ``ValueError`` for an
    unknown cycle.
    """
    months = CYCLE_MONTHS.get(BillingCycle(cycle))
    if months is None:
        return None

    start = to_utc_date(anchor)
    reference = utc_today(today)

    step = 0
    if start <= reference:
        # Skip whole cycles that are certainly in the past.
        elapsed = (reference.year - start.year) * 12 + reference.month - start.month
        step = max(elapsed // months - 1, 0)

    candidate = add_months(start, months * step)
    while candidate <= reference:
        step += 1
        candidate = add_months(start, months * step)
    return candidate


def upcoming_occurrence(
    anchor: DateLike,
    cycle: BillingCycle | str,
    today: DateLike | None = None,
) -> date | None:
    """Like :func:`next_occurrence` but an occurrence falling on *today* counts."""
    reference = utc_today(today)
    return next_occurrence(anchor, cycle, today=reference - timedelta(days=1))


@dataclass(frozen=True)
class NextOccurrence:
    date: date
    days_from_today: int
    is_overdue: bool


def describe_next_occurrence(
    anchor: DateLike,
    cycle: BillingCycle | str,
    today: DateLike | None = None,
) -> NextOccurrence | None:
    """Describe the next occurrence strictly after *today*.

    ``days_from_today`` is therefore always at least 1 and ``is_overdue`` is
    always ``False``; the flag is kept for callers that display it.
    """
    reference = utc_today(today)
    occurrence = next_occurrence(anchor, cycle, today=reference)
    if occurrence is None:
        return None
    days = days_between(reference, occurrence)
    return NextOccurrence(date=occurrence, days_from_today=days, is_overdue=days < 0)


def is_renewal_upcoming(
    anchor: DateLike,
    cycle: BillingCycle | str,
    days_threshold: int = 7,
    today: DateLike | None = None,
) -> bool:
    described = describe_next_occurrence(anchor, cycle, today=today)
    if described is None:
        return False
    return 0 <= described.days_from_today <= days_threshold


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def format_display_date(value: DateLike | None) -> str:
    """Format as ``30 Sep 2025``; empty string for ``None``."""
    if value is None:
        return ""
    day = to_utc_date(value)
    return f"{day.day} {day:%b} {day.year}"


def relative_day_label(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    if days == -1:
        return "yesterday"
    if days > 0:
        return f"in {days} days"
    return f"{abs(days)} days ago"


def renewal_description(
    anchor: DateLike,
    cycle: BillingCycle | str,
    today: DateLike | None = None,
) -> str:
    """Dashboard label such as ``Nov 3, 2026 (in 5 days)``."""
    if BillingCycle(cycle) == BillingCycle.ONE_TIME:
        return "One-time payment (no renewal)"

    described = describe_next_occurrence(anchor, cycle, today=today)
    if described is None:
        return "Unable to calculate renewal date"

    occurrence = described.date
    label = f"{occurrence:%b} {occurrence.day}, {occurrence.year}"
    days = described.days_from_today
    if days == 1:
        return f"{label} (tomorrow)"
    if days <= 7:
        return f"{label} (in {days} days)"
    return label
