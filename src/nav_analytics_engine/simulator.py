# src/nav_analytics_engine/simulator.py
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .cashflow_builder import NavSeriesByFund, Weights, materialize_strategy
from .constants import CALENDAR_DAYS_IN_YEAR, DEFAULT_LOOKAHEAD_DAYS, DEFAULT_RISK_FREE_RATE_PCT
from .date_alignment import NavIndex, build_indexes
from .exceptions import InvalidInputDataError
from .models import (
    CashFlowLedger,
    FundLedger,
    FundResult,
    GrowthPoint,
    PerformerSummary,
    PortfolioSimulationResult,
    PortfolioSummary,
    SwpStrategy,
)
from .returns import (
    calculate_absolute_return,
    calculate_cagr,
    calculate_max_drawdown,
    calculate_sharpe_ratio,
    calculate_value_series_volatility,
)
from .schedule import build_schedule, iter_monthly_dates
from .xirr_calculator import XIRRCalculator

logger = logging.getLogger(__name__)


def simulate_portfolio(
    strategy,
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE_PCT,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> PortfolioSimulationResult:
    """
    Simulates a SIP, lumpsum or SIP+lumpsum strategy over a weighted basket
    and summarizes it per fund and for the whole basket.

    CAGR uses calendar years (days / 365.25) from the first planned date to
    the valuation date; volatility and max drawdown are read from the
    month-by-month growth series.
    """
    if isinstance(strategy, SwpStrategy):
        raise InvalidInputDataError("Withdrawal plans are simulated with simulate_withdrawals().")

    planned = build_schedule(strategy)
    ledger = materialize_strategy(strategy, nav_series_by_fund, weights, lookahead_days=lookahead_days)
    indexes = build_indexes({f: nav_series_by_fund[f] for f in ledger.per_fund})

    start_date = planned[0].planned_date
    end_date = ledger.valuation_date
    years = (end_date - start_date).days / CALENDAR_DAYS_IN_YEAR

    growth = build_growth_series(ledger, indexes, start_date, end_date)
    calculator = XIRRCalculator()

    breakdown = [
        _fund_result(fund_ledger, [p.value_by_fund[fund_id] for p in growth], years, risk_free_rate, calculator)
        for fund_id, fund_ledger in ledger.per_fund.items()
    ]

    total_values = [p.total_value for p in growth]
    _, return_pct = calculate_absolute_return(ledger.total_invested, ledger.current_value)
    cagr = calculate_cagr(ledger.total_invested, ledger.current_value, years)
    volatility = calculate_value_series_volatility(total_values)
    ranked = [r for r in breakdown if r.cagr is not None]

    summary = PortfolioSummary(
        total_invested=ledger.total_invested,
        current_value=ledger.current_value,
        profit=ledger.current_value - ledger.total_invested,
        return_percentage=return_pct,
        cagr=cagr,
        xirr=calculator.compute_xirr(ledger.basket_cash_flows),
        volatility=volatility,
        sharpe_ratio=calculate_sharpe_ratio(cagr, volatility, risk_free_rate),
        max_drawdown=calculate_max_drawdown(total_values).max_drawdown,
        installments=len({(e.planned_date, e.kind) for l in ledger.per_fund.values() for e in l.entries}),
        dropped_periods=ledger.dropped_periods,
        best_performer=_performer(max(ranked, key=lambda r: r.cagr)) if ranked else None,
        worst_performer=_performer(min(ranked, key=lambda r: r.cagr)) if ranked else None,
    )

    logger.info(
        f"Simulated {strategy.type} strategy over {len(breakdown)} fund(s) "
        f"from {start_date.isoformat()} to {end_date.isoformat()}.",
        extra={"installments": summary.installments, "dropped_periods": summary.dropped_periods},
    )

    return PortfolioSimulationResult(
        strategy_type=strategy.type,
        start_date=start_date,
        end_date=end_date,
        summary=summary,
        breakdown=breakdown,
        growth=growth,
        basket_cash_flows=ledger.basket_cash_flows,
    )


def build_growth_series(
    ledger: CashFlowLedger,
    indexes: Dict[str, NavIndex],
    start_date: date,
    end_date: date,
) -> List[GrowthPoint]:
    """Month-by-month snapshot of holdings, anchored on the first planned date and closed at end_date."""
    snapshot_dates = list(iter_monthly_dates(start_date, end_date))
    if not snapshot_dates or snapshot_dates[-1] != end_date:
        snapshot_dates.append(end_date)

    growth = []
    for as_of in snapshot_dates:
        invested = Decimal(0)
        value_by_fund = {}
        for fund_id, fund_ledger in ledger.per_fund.items():
            units = Decimal(0)
            for entry in fund_ledger.entries:
                if entry.trade_date <= as_of:
                    units += entry.units
                    invested += entry.amount
            point = indexes[fund_id].on_or_before(as_of)
            value_by_fund[fund_id] = units * point.nav if point is not None else Decimal(0)
        growth.append(
            GrowthPoint(
                date=as_of,
                invested=invested,
                value_by_fund=value_by_fund,
                total_value=sum(value_by_fund.values(), Decimal(0)),
            )
        )
    return growth


def _fund_result(
    fund_ledger: FundLedger,
    values: List[Decimal],
    years: float,
    risk_free_rate: float,
    calculator: XIRRCalculator,
) -> FundResult:
    _, return_pct = calculate_absolute_return(fund_ledger.invested, fund_ledger.current_value)
    cagr = calculate_cagr(fund_ledger.invested, fund_ledger.current_value, years)
    volatility = calculate_value_series_volatility(values)
    return FundResult(
        fund_id=fund_ledger.fund_id,
        weight=fund_ledger.weight,
        units_held=fund_ledger.units,
        total_invested=fund_ledger.invested,
        current_value=fund_ledger.current_value,
        profit=fund_ledger.current_value - fund_ledger.invested,
        return_percentage=return_pct,
        cagr=cagr,
        xirr=calculator.compute_xirr(fund_ledger.cash_flows),
        volatility=volatility,
        sharpe_ratio=calculate_sharpe_ratio(cagr, volatility, risk_free_rate),
        max_drawdown=calculate_max_drawdown(values).max_drawdown,
        dropped_periods=fund_ledger.dropped_periods,
    )


def _performer(result: FundResult) -> Optional[PerformerSummary]:
    return PerformerSummary(fund_id=result.fund_id, cagr=result.cagr)
