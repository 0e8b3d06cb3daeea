from datetime import datetime, timezone

import pytest

from spendsync.utils.date_utils import compute_period_range, get_month_start_date, previous_range, subtract_months

NOW = datetime(2024, 3, 31, 15, 30, tzinfo=timezone.utc)


def test_subtract_months_clamps_day():
    assert subtract_months(NOW, 1) == datetime(2024, 2, 29, 15, 30, tzinfo=timezone.utc)
    assert subtract_months(NOW, 13) == datetime(2023, 2, 28, 15, 30, tzinfo=timezone.utc)


def test_month_start():
    assert get_month_start_date(NOW) == datetime(2024, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "period, start",
    [
        ("week", datetime(2024, 3, 24, tzinfo=timezone.utc)),
        ("month", datetime(2024, 2, 29, tzinfo=timezone.utc)),
        ("quarter", datetime(2023, 12, 31, tzinfo=timezone.utc)),
        ("year", datetime(2023, 3, 31, tzinfo=timezone.utc)),
    ],
)
def test_period_range_starts_at_midnight(period, start):
    assert compute_period_range(period, NOW) == (start, NOW)


def test_unknown_period_is_rejected():
    with pytest.raises(ValueError):
        compute_period_range("decade", NOW)


def test_previous_range_has_equal_length():
    start, end = compute_period_range("week", NOW)
    prev_start, prev_end = previous_range(start, end)

    assert prev_end == start
    assert end - start == prev_end - prev_start
