from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional


@dataclass(frozen=True)
class Period:
    """Half-open interval of instants: start <= t < end."""

    slug: str
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1)


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    month_index = (year * 12) + (month - 1) + count
    return month_index // 12, (month_index % 12) + 1


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def month_period(year: int, month: int) -> Period:
    next_year, next_month = add_months(year, month, 1)
    return Period(
        f"{year:04d}-{month:02d}",
        month_start(year, month),
        month_start(next_year, next_month),
    )


def year_period(year: int) -> Period:
    return Period(str(year), datetime(year, 1, 1), datetime(year + 1, 1, 1))


def previous_month_period(now: datetime) -> Period:
    year, month = add_months(now.year, now.month, -1)
    return month_period(year, month)


def month_to_date_period(now: datetime) -> Period:
    """From the first instant of now's month up to and including now."""
    start = month_start(now.year, now.month)
    return Period("month_to_date", start, now + timedelta(microseconds=1))


def _day_end(day: date) -> datetime:
    return datetime.combine(day + timedelta(days=1), time.min)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    now: datetime,
) -> Period:
    if period == "all":
        return Period("all", datetime(1970, 1, 1), now + timedelta(microseconds=1))
    if period == "last_month":
        return previous_month_period(now)
    if period == "this_month":
        return month_period(now.year, now.month)
    if period == "custom" or (not period and (start or end)):
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period(
            "custom", datetime.combine(start_date, time.min), _day_end(end_date)
        )
    if period:
        raise ValueError(f"Unknown period: {period}")

    # month to date
    return month_to_date_period(now)
