from dataclasses import dataclass
from datetime import date
from typing import Optional

ANALYTICS_RANGES = {
    "1month": 1,
    "3months": 3,
    "6months": 6,
    "12months": 12,
}
DEFAULT_RANGE = "6months"


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def current_month(today: Optional[date] = None) -> Period:
    today = today or date.today()
    return Period("this_month", month_start(today), month_end(today))


def previous_month(today: Optional[date] = None) -> Period:
    today = today or date.today()
    last_month_end = month_start(today) - date.resolution
    return Period("last_month", month_start(last_month_end), last_month_end)


def resolve_range(
    range_slug: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    today: Optional[date] = None,
) -> Period:
    """Map an analytics range preset (or a custom start/end) to a Period.

    Presets cover whole calendar months ending with the current one, so
    "3months" in mid-March is January 1st through March 31st.
    """
    today = today or date.today()
    if range_slug == "custom":
        if not start or not end:
            raise ValueError("Custom range requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    slug = range_slug or DEFAULT_RANGE
    if slug not in ANALYTICS_RANGES:
        raise ValueError(f"Unknown range: {slug}")
    months = ANALYTICS_RANGES[slug]
    first = add_months(month_start(today), -(months - 1))
    return Period(slug, first, month_end(today))
