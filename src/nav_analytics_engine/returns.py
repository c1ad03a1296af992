# src/nav_analytics_engine/returns.py
import math
from datetime import date
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .constants import (
    CALENDAR_DAYS_IN_YEAR,
    DEFAULT_RISK_FREE_RATE_PCT,
    MIN_VOLATILITY_OBSERVATIONS,
    MONTHS_IN_YEAR,
)
from .date_alignment import NavIndex
from .models import DrawdownResult, NavPoint


def calculate_cagr(initial_value, final_value, years) -> Optional[float]:
    """
    Compound annual growth rate between two values, as a percentage.

    Formula: ((final / initial) ^ (1 / years)) - 1

    Returns None (never raises) when any input is non-positive, since the
    rate is undefined there. The result may be negative.
    """
    initial, final, years = float(initial_value), float(final_value), float(years)
    if initial <= 0 or final <= 0 or years <= 0:
        return None
    return ((final / initial) ** (1 / years) - 1) * 100


def calculate_absolute_return(initial_value, final_value) -> Tuple[float, Optional[float]]:
    """Absolute gain and simple percentage return; percentage is None for a non-positive base."""
    initial, final = float(initial_value), float(final_value)
    absolute = final - initial
    percentage = (absolute / initial) * 100 if initial > 0 else None
    return absolute, percentage


def calculate_periodic_returns(values: Sequence) -> pd.Series:
    """
    Period-over-period percentage changes of a value series. Periods whose
    previous value is not positive are skipped.
    """
    series = pd.Series([float(v) for v in values], dtype=float)
    previous = series.shift(1)
    mask = previous > 0
    return ((series[mask] / previous[mask]) - 1) * 100


def calculate_volatility(returns: Sequence, annualization_factor: int = MONTHS_IN_YEAR) -> Optional[float]:
    """
    Annualized sample standard deviation (n-1 denominator) of periodic
    returns given in percent. Returns None with fewer than two returns.
    """
    returns = pd.Series(returns, dtype=float)
    if len(returns) < 2:
        return None
    return float(returns.std(ddof=1) * np.sqrt(annualization_factor))


def calculate_value_series_volatility(values: Sequence) -> Optional[float]:
    """
    Volatility of a monthly value series: month-over-month percentage changes,
    sample standard deviation, annualized by sqrt(12).

    At least three monthly observations are required (two returns); below
    that the function returns None rather than a misleadingly precise number.
    """
    if len(values) < MIN_VOLATILITY_OBSERVATIONS:
        return None
    return calculate_volatility(calculate_periodic_returns(values))


def calculate_fund_cagr(series: Sequence[NavPoint]) -> Optional[float]:
    """Point-to-point CAGR of a NAV series (first to last published NAV)."""
    index = series if isinstance(series, NavIndex) else NavIndex(series)
    if len(index) < 2:
        return None
    first, last = index.first, index.last
    years = (last.date - first.date).days / CALENDAR_DAYS_IN_YEAR
    return calculate_cagr(first.nav, last.nav, years)


def calculate_fund_volatility(series: Sequence[NavPoint]) -> Optional[float]:
    """Annualized volatility of a NAV series resampled to its last NAV of each month."""
    index = series if isinstance(series, NavIndex) else NavIndex(series)
    if len(index) < MIN_VOLATILITY_OBSERVATIONS:
        return None
    points = index.points
    navs = pd.Series(
        [float(p.nav) for p in points],
        index=pd.to_datetime([p.date for p in points]),
    )
    month_end = navs.groupby(navs.index.to_period("M")).last()
    return calculate_value_series_volatility(month_end.tolist())


def calculate_sharpe_ratio(
    cagr: Optional[float],
    volatility: Optional[float],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE_PCT,
) -> Optional[float]:
    """(CAGR - risk free rate) / volatility, all in percent. None when volatility is 0 or unknown."""
    if cagr is None or volatility is None or volatility == 0:
        return None
    return (cagr - risk_free_rate) / volatility


def calculate_max_drawdown(values: Sequence, dates: Optional[Sequence[date]] = None) -> DrawdownResult:
    """
    Largest (peak - trough) / peak decline of a value series, in percent.

    A single linear pass tracks the running peak. When dates are supplied
    the peak and trough dates of the worst decline are reported as well.
    """
    if dates is not None and len(dates) != len(values):
        raise ValueError("dates and values must have the same length.")

    peak = -math.inf
    peak_at = None
    max_drawdown = 0.0
    worst_peak_value, worst_peak_at, worst_trough_at = 0.0, None, None

    for i, raw in enumerate(values):
        value = float(raw)
        if value > peak:
            peak, peak_at = value, i
        if peak <= 0:
            continue
        drawdown = (peak - value) / peak
        if drawdown > max_drawdown:
            max_drawdown = drawdown
            worst_peak_value, worst_peak_at, worst_trough_at = peak, peak_at, i

    if worst_trough_at is None:
        # No decline: report the highest value seen.
        return DrawdownResult(
            max_drawdown=0.0,
            peak_value=peak if peak_at is not None else 0.0,
            peak_date=dates[peak_at] if dates is not None and peak_at is not None else None,
        )

    return DrawdownResult(
        max_drawdown=max_drawdown * 100,
        peak_value=worst_peak_value,
        peak_date=dates[worst_peak_at] if dates is not None else None,
        trough_date=dates[worst_trough_at] if dates is not None else None,
    )


def calculate_weighted_average(
    metric_by_fund: Mapping[str, Optional[float]],
    weights: Mapping[str, float],
) -> Optional[float]:
    """Weight-averages a per-fund metric, skipping funds where the metric is unknown."""
    numerator = 0.0
    denominator = 0.0
    for fund_id, weight in weights.items():
        metric = metric_by_fund.get(fund_id)
        if metric is None:
            continue
        numerator += float(weight) * metric
        denominator += float(weight)
    if denominator <= 0:
        return None
    return numerator / denominator
