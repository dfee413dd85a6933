"""
Billing period arithmetic and UTC helpers.
"""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.fsm.states import BillingCycle

# One-time purchases grant effectively permanent access
LIFETIME_YEARS = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_end(start: datetime, billing_cycle: str, trial_days: int = 0) -> datetime:
    """End of the first billing period starting at `start`."""
    if trial_days > 0:
        return start + timedelta(days=trial_days)

    cycle = BillingCycle(billing_cycle)
    if cycle == BillingCycle.MONTHLY:
        return add_months(start, 1)
    if cycle == BillingCycle.YEARLY:
        return add_months(start, 12)
    return add_months(start, 12 * LIFETIME_YEARS)


def next_period_end(current_end: datetime, billing_cycle: str) -> datetime:
    """Extend a period by one billing cycle (renewals never get a trial)."""
    return period_end(current_end, billing_cycle)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC, for JSON payloads."""
    value = as_utc(value)
    return value.isoformat() if value else None
