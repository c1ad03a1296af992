# tests/unit/libs/nav-common/test_nav_store.py
import logging
from datetime import date
from decimal import Decimal

import pytest

from nav_analytics_engine.models import NavPoint
from nav_common.nav_store import InMemoryNavStore, normalize_nav_payload, parse_nav_date

pytestmark = pytest.mark.asyncio


@pytest.fixture
def vendor_payload() -> dict:
    """A vendor response: newest first, DD-MM-YYYY dates, NAVs as strings."""
    return {
        "meta": {"scheme_code": 120503},
        "data": [
            {"date": "05-01-2024", "nav": "12.5000"},
            {"date": "04-01-2024", "nav": "12.2500"},
            {"date": "04-01-2024", "nav": "99.0000"},
            {"date": "03-01-2024", "nav": "0.0000"},
            {"date": "not-a-date", "nav": "12.0000"},
            {"date": "02-01-2024", "nav": "12.0000"},
        ],
    }


async def test_normalize_sorts_and_drops_bad_rows(vendor_payload, caplog):
    with caplog.at_level(logging.WARNING):
        points = normalize_nav_payload(vendor_payload)

    assert [p.date for p in points] == [date(2024, 1, 2), date(2024, 1, 4), date(2024, 1, 5)]
    assert points[1].nav == Decimal("12.2500")
    assert "Skipped 2 NAV row(s)" in caplog.text


async def test_normalize_accepts_a_bare_row_list():
    points = normalize_nav_payload([{"date": "2024-01-02", "nav": 10}])
    assert points == [NavPoint(date=date(2024, 1, 2), nav=Decimal("10"))]


async def test_parse_nav_date_formats():
    assert parse_nav_date("31-12-2023") == date(2023, 12, 31)
    assert parse_nav_date("2023-12-31") == date(2023, 12, 31)
    with pytest.raises(ValueError):
        parse_nav_date("12/31/2023")


async def test_store_filters_by_range(vendor_payload):
    store = InMemoryNavStore()
    assert store.load_payload("120503", vendor_payload) == 3

    series = await store.get_nav_series("120503", start=date(2024, 1, 3), end=date(2024, 1, 4))
    assert [p.date for p in series] == [date(2024, 1, 4)]
    assert len(await store.get_nav_series("120503")) == 3


async def test_unknown_fund_yields_an_empty_series():
    store = InMemoryNavStore({"A": [NavPoint(date=date(2024, 1, 1), nav=Decimal("10"))]})
    assert await store.get_nav_series("B") == []
