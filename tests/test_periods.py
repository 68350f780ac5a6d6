from datetime import date

import pytest

from periods import (
    add_months,
    current_month,
    month_end,
    previous_month,
    resolve_range,
)


def test_month_end_handles_december_and_leap_years() -> None:
    assert month_end(date(2024, 12, 5)) == date(2024, 12, 31)
    assert month_end(date(2024, 2, 10)) == date(2024, 2, 29)
    assert month_end(date(2023, 2, 10)) == date(2023, 2, 28)


def test_add_months_crosses_year_boundaries() -> None:
    assert add_months(date(2024, 1, 1), -1) == date(2023, 12, 1)
    assert add_months(date(2024, 11, 1), 3) == date(2025, 2, 1)


def test_previous_month_of_january_is_december() -> None:
    period = previous_month(date(2025, 1, 15))
    assert period.start == date(2024, 12, 1)
    assert period.end == date(2024, 12, 31)


def test_current_month_covers_whole_month() -> None:
    period = current_month(date(2024, 2, 14))
    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))
    assert period.contains(date(2024, 2, 29))
    assert not period.contains(date(2024, 3, 1))


@pytest.mark.parametrize(
    "slug, expected_start",
    [
        ("1month", date(2024, 3, 1)),
        ("3months", date(2024, 1, 1)),
        ("6months", date(2023, 10, 1)),
        ("12months", date(2023, 4, 1)),
        (None, date(2023, 10, 1)),
    ],
)
def test_resolve_range_presets_end_with_current_month(slug, expected_start) -> None:
    period = resolve_range(slug, today=date(2024, 3, 17))
    assert period.start == expected_start
    assert period.end == date(2024, 3, 31)


def test_resolve_range_custom_validates_order() -> None:
    period = resolve_range("custom", "2024-01-01", "2024-01-31")
    assert (period.start, period.end) == (date(2024, 1, 1), date(2024, 1, 31))

    with pytest.raises(ValueError):
        resolve_range("custom", "2024-02-01", "2024-01-01")
    with pytest.raises(ValueError):
        resolve_range("custom", "2024-02-01", None)


def test_resolve_range_rejects_unknown_slug() -> None:
    with pytest.raises(ValueError):
        resolve_range("forever")
