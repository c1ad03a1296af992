# src/nav_common/nav_store.py
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Union

from nav_analytics_engine.models import NavPoint

logger = logging.getLogger(__name__)

_DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d")


class NavSeriesStore(Protocol):
    async def get_nav_series(
        self, fund_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[NavPoint]: ...


class InMemoryNavStore:
    """
    A NavSeriesStore over series held in memory, for tests and for hosts that
    fetch and cache NAV history themselves. An unknown fund yields an empty
    series, the same as a fund with no history in the requested range.
    """

    def __init__(self, series_by_fund: Optional[Mapping[str, Sequence[NavPoint]]] = None):
        self._series: Dict[str, List[NavPoint]] = {}
        for fund_id, series in (series_by_fund or {}).items():
            self.put(fund_id, series)

    def put(self, fund_id: str, series: Sequence[NavPoint]) -> None:
        self._series[fund_id] = sorted(series, key=lambda p: p.date)

    def load_payload(self, fund_id: str, raw: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> int:
        """Normalizes a vendor payload and stores it; returns the number of points kept."""
        points = normalize_nav_payload(raw)
        self.put(fund_id, points)
        return len(points)

    async def get_nav_series(
        self, fund_id: str, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[NavPoint]:
        series = self._series.get(fund_id, [])
        return [
            p for p in series
            if (start is None or p.date >= start) and (end is None or p.date <= end)
        ]


def parse_nav_date(value: Union[str, date]) -> date:
    """Parses vendor dates (DD-MM-YYYY) as well as ISO dates."""
    if isinstance(value, date):
        return value
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized NAV date: {value!r}")


def normalize_nav_payload(raw: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[NavPoint]:
    """
    Converts a vendor NAV payload into an ascending, date-unique list of
    NavPoints. Accepts either the full response ({"meta": ..., "data": [...]})
    or the bare list of {"date", "nav"} rows.

    Rows with an unparseable date or a missing / non-positive NAV are skipped.
    When a date repeats, the first row seen wins.
    """
    rows: Iterable[Mapping[str, Any]] = (raw.get("data") or []) if isinstance(raw, Mapping) else raw
    by_date: Dict[date, NavPoint] = {}
    skipped = 0
    for row in rows:
        try:
            nav_date = parse_nav_date(row["date"])
            nav = Decimal(str(row["nav"]).strip())
        except (KeyError, ValueError, InvalidOperation, AttributeError):
            skipped += 1
            continue
        if not nav.is_finite() or nav <= 0:
            skipped += 1
            continue
        if nav_date in by_date:
            continue
        by_date[nav_date] = NavPoint(date=nav_date, nav=nav)

    if skipped:
        logger.warning(f"Skipped {skipped} NAV row(s) with an invalid date or non-positive NAV.")
    return [by_date[d] for d in sorted(by_date)]
