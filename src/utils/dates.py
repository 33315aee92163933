"""Clock and calendar helpers.

All timestamps handled by the core are naive datetimes in UTC, which is what
both PostgreSQL ``timestamp`` columns and SQLite hand back.
"""

import calendar
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def month_key(moment: datetime) -> str:
    """Calendar month key in ``YYYY-MM`` form."""
    return moment.strftime("%Y-%m")


def subtract_months(moment: datetime, months: int) -> datetime:
    """
    Step back a number of calendar months, keeping the time of day.

    The day is clamped to the length of the target month, so 31 March minus
    one month is 28 (or 29) February.
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
