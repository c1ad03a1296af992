# src/nav_analytics_engine/rolling.py
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .cashflow_builder import (
    NavSeriesByFund,
    Weights,
    build_fund_ledger,
    coalesce_cash_flows,
    validate_fund_coverage,
    validate_weights,
    value_fund_ledger,
)
from .constants import (
    DEFAULT_MAX_GAP_DAYS,
    DEFAULT_ROLLING_NOTIONAL,
    ROLLING_DAYS_IN_YEAR,
    ROLLING_WINDOW_1Y_DAYS,
    ROLLING_WINDOW_3Y_DAYS,
    STATUS_INSUFFICIENT_HISTORY,
    STATUS_OK,
    WEIGHT_TOTAL,
    WINDOW_TYPE_1Y,
    WINDOW_TYPE_3Y,
    WINDOW_TYPE_INSUFFICIENT,
)
from .date_alignment import NavIndex, build_indexes
from .exceptions import InsufficientDataError, InvalidInputDataError, MissingConfigurationError
from .models import (
    BucketPerformanceResult,
    FlowKind,
    PlannedFlow,
    RollingMode,
    RollingReturnsResult,
    RollingWindow,
    RollingWindowSample,
    StepPolicy,
)
from .returns import calculate_cagr
from .schedule import add_calendar_months, iter_monthly_dates
from .stats import aggregate
from .xirr_calculator import XIRRCalculator

logger = logging.getLogger(__name__)

WINDOW_3Y = RollingWindow(days=ROLLING_WINDOW_3Y_DAYS)
WINDOW_1Y = RollingWindow(days=ROLLING_WINDOW_1Y_DAYS)


class RollingConfig(BaseModel):
    """
    Settings for one rolling-returns scan. In LUMPSUM mode `amount` is the
    notional invested at each window start; in SIP mode it is the monthly
    installment. `max_gap_days` bounds how far a fund's first/last NAV in a
    window may sit from the window edges before the window is discarded.
    """

    window: RollingWindow
    step: StepPolicy = StepPolicy.DAILY
    mode: RollingMode = RollingMode.LUMPSUM
    amount: Decimal = Field(DEFAULT_ROLLING_NOTIONAL, gt=0)
    max_gap_days: int = Field(DEFAULT_MAX_GAP_DAYS, ge=0)
    reference_fund_id: Optional[str] = None


class _WindowOutcome(NamedTuple):
    basket: RollingWindowSample
    funds: Dict[str, RollingWindowSample]


class RollingReturnsEngine:
    """
    Scans fixed-length windows across a basket's NAV history and records one
    annualized return per window, for the basket and for each fund.

    Windows are independent of each other, so a long scan can be split into
    chunks of window starts (see plan_window_starts) and the partial results
    combined with merge_rolling_results.
    """

    def __init__(self, config: Union[RollingConfig, Mapping[str, Any], None]):
        if not config:
            raise MissingConfigurationError("Rolling returns configuration cannot be empty.")
        self.config = config if isinstance(config, RollingConfig) else RollingConfig.model_validate(config)
        self._xirr = XIRRCalculator()
        logger.debug(
            f"Rolling engine configured for {self.config.window.label} windows "
            f"({self.config.step.value}, {self.config.mode.value})."
        )

    def plan_window_starts(self, nav_series_by_fund: NavSeriesByFund, weights: Weights) -> List[date]:
        """
        Candidate window starts on the reference fund's NAV dates, keeping only
        starts whose full window ends on or before the reference's last NAV.
        """
        weight_map = validate_weights(weights)
        validate_fund_coverage(weight_map, nav_series_by_fund)
        reference_id = self._reference_fund(weight_map)
        return self._plan(build_indexes({reference_id: nav_series_by_fund[reference_id]})[reference_id])

    def evaluate(
        self,
        nav_series_by_fund: NavSeriesByFund,
        weights: Weights,
        window_starts: Optional[Sequence[date]] = None,
    ) -> RollingReturnsResult:
        weight_map = validate_weights(weights)
        validate_fund_coverage(weight_map, nav_series_by_fund)
        reference_id = self._reference_fund(weight_map)
        indexes = build_indexes({f: nav_series_by_fund[f] for f in weight_map})
        active = {f: w for f, w in weight_map.items() if w > 0}

        starts = list(window_starts) if window_starts is not None else self._plan(indexes[reference_id])

        basket_samples: List[RollingWindowSample] = []
        fund_samples: Dict[str, List[RollingWindowSample]] = {f: [] for f in active}
        discarded = 0
        for start in starts:
            end = start + self.config.window.delta
            if self.config.mode == RollingMode.SIP:
                outcome = self._sip_window(start, end, active, indexes)
            else:
                outcome = self._lumpsum_window(start, end, active, indexes)
            if outcome is None:
                discarded += 1
                logger.debug(f"Window {start.isoformat()} to {end.isoformat()} discarded: incomplete NAV data.")
                continue
            basket_samples.append(outcome.basket)
            for fund_id, sample in outcome.funds.items():
                fund_samples[fund_id].append(sample)

        if discarded:
            logger.warning(
                f"Discarded {discarded} of {len(starts)} {self.config.window.label} window(s) "
                f"with missing NAV data for at least one fund."
            )
        return _finalize(self.config, reference_id, basket_samples, fund_samples, len(starts), discarded)

    def _reference_fund(self, weight_map: Mapping[str, Decimal]) -> str:
        reference_id = self.config.reference_fund_id or next(iter(weight_map))
        if reference_id not in weight_map:
            raise InvalidInputDataError(f"Reference fund {reference_id} is not part of the basket.")
        return reference_id

    def _plan(self, reference: NavIndex) -> List[date]:
        if not reference:
            return []
        delta = self.config.window.delta
        last = reference.last.date
        if self.config.step == StepPolicy.DAILY:
            return [d for d in reference.dates if d + delta <= last]

        starts: List[date] = []
        first = reference.first.date
        k = 0
        while True:
            point = reference.on_or_after(add_calendar_months(first, k))
            if point is None or point.date + delta > last:
                break
            if not starts or starts[-1] != point.date:
                starts.append(point.date)
            k += 1
        return starts

    def _edges_ok(self, start: date, end: date, first_nav_date: date, last_nav_date: date) -> bool:
        gap = self.config.max_gap_days
        return (
            (first_nav_date - start).days <= gap
            and (end - last_nav_date).days <= gap
            and last_nav_date > first_nav_date
        )

    def _lumpsum_window(
        self, start: date, end: date, weights: Dict[str, Decimal], indexes: Dict[str, NavIndex]
    ) -> Optional[_WindowOutcome]:
        initial_total = Decimal(0)
        final_total = Decimal(0)
        first_dates, last_dates = [], []
        funds: Dict[str, RollingWindowSample] = {}
        for fund_id, weight in weights.items():
            start_point = indexes[fund_id].on_or_after(start)
            end_point = indexes[fund_id].on_or_before(end)
            if start_point is None or end_point is None:
                return None
            if not self._edges_ok(start, end, start_point.date, end_point.date):
                return None
            invested = self.config.amount * weight / WEIGHT_TOTAL
            final = invested / start_point.nav * end_point.nav
            annualized = calculate_cagr(
                invested, final, (end_point.date - start_point.date).days / ROLLING_DAYS_IN_YEAR
            )
            if annualized is None:
                return None
            funds[fund_id] = RollingWindowSample(
                window_start_date=start, window_end_date=end, annualized_return=annualized
            )
            initial_total += invested
            final_total += final
            first_dates.append(start_point.date)
            last_dates.append(end_point.date)

        basket_return = calculate_cagr(
            initial_total, final_total, (max(last_dates) - min(first_dates)).days / ROLLING_DAYS_IN_YEAR
        )
        if basket_return is None:
            return None
        return _WindowOutcome(
            basket=RollingWindowSample(window_start_date=start, window_end_date=end, annualized_return=basket_return),
            funds=funds,
        )

    def _sip_window(
        self, start: date, end: date, weights: Dict[str, Decimal], indexes: Dict[str, NavIndex]
    ) -> Optional[_WindowOutcome]:
        planned = [
            PlannedFlow(planned_date=d, amount=self.config.amount, kind=FlowKind.SIP)
            for d in iter_monthly_dates(start, end - timedelta(days=1))
        ]
        flows = []
        funds: Dict[str, RollingWindowSample] = {}
        for fund_id, weight in weights.items():
            ledger = build_fund_ledger(fund_id, weight, planned, indexes[fund_id], cutoff=end)
            if ledger.dropped_periods or not ledger.entries:
                return None
            value_fund_ledger(ledger, indexes[fund_id], end)
            if ledger.valuation_point is None:
                return None
            if not self._edges_ok(start, end, ledger.entries[0].trade_date, ledger.valuation_point.date):
                return None
            annualized = self._xirr.compute_xirr(ledger.cash_flows)
            if annualized is None:
                return None
            funds[fund_id] = RollingWindowSample(
                window_start_date=start, window_end_date=end, annualized_return=annualized
            )
            flows.extend(ledger.cash_flows)

        basket_return = self._xirr.compute_xirr(coalesce_cash_flows(flows))
        if basket_return is None:
            return None
        return _WindowOutcome(
            basket=RollingWindowSample(window_start_date=start, window_end_date=end, annualized_return=basket_return),
            funds=funds,
        )


def compute_rolling_returns(
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    window: Union[RollingWindow, int],
    step: StepPolicy = StepPolicy.DAILY,
    mode: RollingMode = RollingMode.LUMPSUM,
    amount: Decimal = DEFAULT_ROLLING_NOTIONAL,
    max_gap_days: int = DEFAULT_MAX_GAP_DAYS,
    reference_fund_id: Optional[str] = None,
    window_starts: Optional[Sequence[date]] = None,
) -> RollingReturnsResult:
    """
    Rolling-window annualized returns of a weighted basket. An int window is
    read as a length in days. Never raises for thin history: when no window
    fits, the result carries status INSUFFICIENT_HISTORY and all-zero stats.
    """
    config = RollingConfig(
        window=window if isinstance(window, RollingWindow) else RollingWindow(days=window),
        step=step,
        mode=mode,
        amount=amount,
        max_gap_days=max_gap_days,
        reference_fund_id=reference_fund_id,
    )
    return RollingReturnsEngine(config).evaluate(nav_series_by_fund, weights, window_starts=window_starts)


def merge_rolling_results(parts: Sequence[RollingReturnsResult]) -> RollingReturnsResult:
    """Combines chunked scans of the same configuration into one result."""
    if not parts:
        raise InvalidInputDataError("At least one rolling result is required to merge.")
    head = parts[0]
    for part in parts[1:]:
        if (part.window, part.step, part.mode, part.reference_fund_id) != (
            head.window, head.step, head.mode, head.reference_fund_id
        ):
            raise InvalidInputDataError("Only rolling results computed with the same configuration can be merged.")

    basket = sorted((s for p in parts for s in p.basket_samples), key=lambda s: s.window_start_date)
    fund_samples: Dict[str, List[RollingWindowSample]] = {}
    for part in parts:
        for fund_id, samples in part.fund_samples.items():
            fund_samples.setdefault(fund_id, []).extend(samples)
    for samples in fund_samples.values():
        samples.sort(key=lambda s: s.window_start_date)

    config = RollingConfig(window=head.window, step=head.step, mode=head.mode, reference_fund_id=head.reference_fund_id)
    return _finalize(
        config,
        head.reference_fund_id,
        basket,
        fund_samples,
        sum(p.windows_evaluated for p in parts),
        sum(p.windows_discarded for p in parts),
    )


def ensure_sufficient_history(result: RollingReturnsResult) -> RollingReturnsResult:
    """For callers that treat an empty scan as an error rather than a status."""
    if result.status == STATUS_INSUFFICIENT_HISTORY:
        raise InsufficientDataError(result.message)
    return result


def compute_bucket_performance(
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    amount: Decimal = DEFAULT_ROLLING_NOTIONAL,
    max_gap_days: int = DEFAULT_MAX_GAP_DAYS,
) -> BucketPerformanceResult:
    """
    Daily lumpsum rolling returns over the period when every fund in the
    basket has NAV history: a 3-year (1095-day) window when the history
    allows it, otherwise a 1-year (365-day) window.
    """
    weight_map = validate_weights(weights)
    validate_fund_coverage(weight_map, nav_series_by_fund)
    indexes = build_indexes({f: nav_series_by_fund[f] for f in weight_map})
    if not all(indexes.values()):
        empty = [f for f, index in indexes.items() if not index]
        raise InvalidInputDataError(f"No NAV data available for fund(s): {', '.join(empty)}.")

    analysis_start = max(index.first.date for index in indexes.values())
    analysis_end = max(index.last.date for index in indexes.values())
    # Only start windows once every fund exists.
    trimmed = {f: NavIndex(index.between(analysis_start, analysis_end)) for f, index in indexes.items()}

    window_type, window = WINDOW_TYPE_3Y, WINDOW_3Y
    rolling = compute_rolling_returns(trimmed, weight_map, window, amount=amount, max_gap_days=max_gap_days)
    message = None
    if rolling.total_periods == 0:
        window_type, window = WINDOW_TYPE_1Y, WINDOW_1Y
        rolling = compute_rolling_returns(trimmed, weight_map, window, amount=amount, max_gap_days=max_gap_days)
        message = "Insufficient data for 3-year rolling returns. Showing 1-year rolling returns instead."
    if rolling.total_periods == 0:
        window_type = WINDOW_TYPE_INSUFFICIENT
        message = (
            "Not enough historical NAV data available. "
            "Need at least 1 year of data for rolling returns calculation."
        )

    logger.info(
        f"Bucket performance computed with {window_type} window: {rolling.total_periods} period(s).",
        extra={"analysis_start_date": analysis_start.isoformat(), "analysis_end_date": analysis_end.isoformat()},
    )
    return BucketPerformanceResult(
        window_type=window_type,
        window_days=window.days if window_type != WINDOW_TYPE_INSUFFICIENT else 0,
        analysis_start_date=analysis_start,
        analysis_end_date=analysis_end,
        total_periods=rolling.total_periods,
        basket_stats=rolling.basket_stats,
        fund_stats=rolling.fund_stats,
        rolling=rolling,
        message=message,
    )


def _finalize(
    config: RollingConfig,
    reference_id: str,
    basket_samples: List[RollingWindowSample],
    fund_samples: Dict[str, List[RollingWindowSample]],
    evaluated: int,
    discarded: int,
) -> RollingReturnsResult:
    status, message = STATUS_OK, None
    if not basket_samples:
        status = STATUS_INSUFFICIENT_HISTORY
        if evaluated == 0:
            message = f"Insufficient history: no complete {config.window.label} window fits the available NAV data."
        else:
            message = (
                f"Insufficient history: all {evaluated} {config.window.label} window(s) "
                f"were missing NAV data for at least one fund."
            )
    return RollingReturnsResult(
        window=config.window,
        step=config.step,
        mode=config.mode,
        reference_fund_id=reference_id,
        basket_samples=basket_samples,
        fund_samples=fund_samples,
        basket_stats=aggregate([s.annualized_return for s in basket_samples]),
        fund_stats={f: aggregate([s.annualized_return for s in samples]) for f, samples in fund_samples.items()},
        windows_evaluated=evaluated,
        windows_discarded=discarded,
        status=status,
        message=message,
    )
