# tests/unit/libs/nav-analytics-engine/test_date_alignment.py
import pytest
from datetime import date, timedelta
from decimal import Decimal

from nav_analytics_engine.date_alignment import NavIndex, resolve_on_or_after, resolve_on_or_before
from nav_analytics_engine.exceptions import InvalidInputDataError
from nav_analytics_engine.models import NavPoint


@pytest.fixture
def holiday_series():
    """Fri 2024-03-01, then a gap over the weekend and a holiday Monday."""
    return [
        NavPoint(date=date(2024, 3, 5), nav=Decimal("10.4")),
        NavPoint(date=date(2024, 3, 1), nav=Decimal("10.0")),
        NavPoint(date=date(2024, 3, 6), nav=Decimal("10.6")),
    ]


def test_on_or_after_rolls_forward_over_gap(holiday_series):
    point = resolve_on_or_after(holiday_series, date(2024, 3, 2))
    assert point.date == date(2024, 3, 5)
    assert point.nav == Decimal("10.4")


def test_on_or_before_rolls_back_over_gap(holiday_series):
    point = resolve_on_or_before(holiday_series, date(2024, 3, 4))
    assert point.date == date(2024, 3, 1)


def test_exact_date_matches_both_policies(holiday_series):
    assert resolve_on_or_after(holiday_series, date(2024, 3, 5)).date == date(2024, 3, 5)
    assert resolve_on_or_before(holiday_series, date(2024, 3, 5)).date == date(2024, 3, 5)


def test_targets_outside_series_return_none(holiday_series):
    assert resolve_on_or_after(holiday_series, date(2024, 3, 7)) is None
    assert resolve_on_or_before(holiday_series, date(2024, 2, 29)) is None


def test_empty_series_returns_none():
    assert resolve_on_or_after([], date(2024, 1, 1)) is None
    assert resolve_on_or_before([], date(2024, 1, 1)) is None


def test_index_sorts_input(holiday_series):
    index = NavIndex(holiday_series)
    assert index.dates == [date(2024, 3, 1), date(2024, 3, 5), date(2024, 3, 6)]
    assert index.first.date == date(2024, 3, 1)
    assert index.last.date == date(2024, 3, 6)
    assert len(index) == 3


def test_duplicate_dates_are_rejected():
    series = [
        NavPoint(date=date(2024, 1, 2), nav=Decimal("10")),
        NavPoint(date=date(2024, 1, 2), nav=Decimal("11")),
    ]
    with pytest.raises(InvalidInputDataError):
        NavIndex(series)


def test_between_is_inclusive(holiday_series):
    index = NavIndex(holiday_series)
    assert [p.date for p in index.between(date(2024, 3, 1), date(2024, 3, 5))] == [
        date(2024, 3, 1),
        date(2024, 3, 5),
    ]


def test_resolution_bounds_hold_for_every_date_in_range(flat_series):
    series = flat_series(date(2024, 1, 1), date(2024, 3, 31), weekdays_only=True)
    index = NavIndex(series)
    current = index.first.date
    while current <= index.last.date:
        assert index.on_or_after(current).date >= current
        assert index.on_or_before(current).date <= current
        current += timedelta(days=1)
