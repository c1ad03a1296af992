# tests/unit/libs/nav-analytics-engine/conftest.py
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, List

import pytest

from nav_analytics_engine.models import NavPoint


def _daily_dates(start: date, end: date, weekdays_only: bool = False) -> List[date]:
    days = []
    current = start
    while current <= end:
        if not weekdays_only or current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


@pytest.fixture
def flat_series() -> Callable[..., List[NavPoint]]:
    """Constant NAV on every calendar day (or weekday) in [start, end]."""
    def _build(start: date, end: date, nav: str = "10", weekdays_only: bool = False) -> List[NavPoint]:
        return [NavPoint(date=d, nav=Decimal(nav)) for d in _daily_dates(start, end, weekdays_only)]
    return _build


@pytest.fixture
def compounding_series() -> Callable[..., List[NavPoint]]:
    """NAV growing at a constant annual rate on an actual/365 basis: nav = base * (1 + rate) ^ (days / 365)."""
    def _build(start: date, end: date, annual_rate: float, base: float = 10.0) -> List[NavPoint]:
        return [
            NavPoint(date=d, nav=Decimal(str(base * (1 + annual_rate) ** ((d - start).days / 365))))
            for d in _daily_dates(start, end)
        ]
    return _build


@pytest.fixture
def linear_series() -> Callable[..., List[NavPoint]]:
    """NAV moving linearly from start_nav to end_nav across every calendar day, rounded to 4 places."""
    def _build(start: date, end: date, start_nav: str, end_nav: str) -> List[NavPoint]:
        span = (end - start).days
        first, last = Decimal(start_nav), Decimal(end_nav)
        return [
            NavPoint(
                date=d,
                nav=(first + (last - first) * Decimal((d - start).days) / Decimal(span)).quantize(Decimal("0.0001")),
            )
            for d in _daily_dates(start, end)
        ]
    return _build
