from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Month:
    start: date
    end: date

    @property
    def slug(self) -> str:
        return self.start.strftime("%Y-%m")


def month_start(value: date) -> date:
    """Truncate a civil date to the first day of its calendar month."""
    return value.replace(day=1)


def month_end(value: date) -> date:
    first = month_start(value)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def month_of(value: date) -> Month:
    return Month(month_start(value), month_end(value))


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Month:
    """Parse ``this_month``, ``last_month``, ``YYYY-MM`` or an ISO date."""
    today = today or date.today()
    if not value or value == "this_month":
        return month_of(today)
    if value == "last_month":
        return month_of(month_start(today) - date.resolution)
    try:
        if len(value) == 7:
            return month_of(date.fromisoformat(f"{value}-01"))
        return month_of(date.fromisoformat(value))
    except ValueError as exc:
        raise ValueError(f"Invalid month: {value}") from exc
