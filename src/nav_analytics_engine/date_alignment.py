# src/nav_analytics_engine/date_alignment.py
from bisect import bisect_left, bisect_right
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

from .exceptions import InvalidInputDataError
from .models import NavPoint


class NavIndex:
    """
    An ascending, date-deduplicated view over one fund's NAV series that
    answers alignment queries by binary search.

    NAVs are only published on trading days, so an intent dated on a weekend
    or holiday must be aligned explicitly. Two policies exist and they are not
    interchangeable:
      - on_or_after: the earliest NAV dated on/after the target (an
        installment due on a holiday is executed on the next trading day).
      - on_or_before: the latest NAV dated on/before the target (a valuation
        "as of" a date uses the most recent prior trading day).
    Both return None when the target falls outside the series.
    """

    def __init__(self, series: Sequence[NavPoint]):
        # Input order is not trusted; Timsort is linear on already-sorted input.
        points = sorted(series, key=lambda p: p.date)
        for previous, current in zip(points, points[1:]):
            if previous.date == current.date:
                raise InvalidInputDataError(
                    f"NAV series contains duplicate entries for {current.date.isoformat()}."
                )
        self._points: List[NavPoint] = points
        self._dates: List[date] = [p.date for p in points]

    def __len__(self) -> int:
        return len(self._points)

    def __bool__(self) -> bool:
        return bool(self._points)

    @property
    def points(self) -> List[NavPoint]:
        return list(self._points)

    @property
    def dates(self) -> List[date]:
        return list(self._dates)

    @property
    def first(self) -> Optional[NavPoint]:
        return self._points[0] if self._points else None

    @property
    def last(self) -> Optional[NavPoint]:
        return self._points[-1] if self._points else None

    def on_or_after(self, target: date) -> Optional[NavPoint]:
        i = bisect_left(self._dates, target)
        if i == len(self._points):
            return None
        return self._points[i]

    def on_or_before(self, target: date) -> Optional[NavPoint]:
        i = bisect_right(self._dates, target)
        if i == 0:
            return None
        return self._points[i - 1]

    def between(self, start: date, end: date) -> List[NavPoint]:
        """Points with start <= date <= end."""
        return self._points[bisect_left(self._dates, start):bisect_right(self._dates, end)]


def resolve_on_or_after(series: Sequence[NavPoint], target_date: date) -> Optional[NavPoint]:
    """Returns the earliest point dated on or after target_date, or None."""
    return _as_index(series).on_or_after(target_date)


def resolve_on_or_before(series: Sequence[NavPoint], target_date: date) -> Optional[NavPoint]:
    """Returns the latest point dated on or before target_date, or None."""
    return _as_index(series).on_or_before(target_date)


def build_indexes(nav_series_by_fund: Mapping[str, Sequence[NavPoint]]) -> Dict[str, NavIndex]:
    """Builds one NavIndex per fund so repeated lookups do not re-sort."""
    return {fund_id: _as_index(series) for fund_id, series in nav_series_by_fund.items()}


def _as_index(series) -> NavIndex:
    if isinstance(series, NavIndex):
        return series
    return NavIndex(series)
