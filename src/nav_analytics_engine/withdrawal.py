# src/nav_analytics_engine/withdrawal.py
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from .cashflow_builder import NavSeriesByFund, Weights, coalesce_cash_flows, materialize
from .constants import DEFAULT_LOOKAHEAD_DAYS, WEIGHT_TOTAL, WITHDRAWAL_EPSILON
from .date_alignment import NavIndex, build_indexes
from .exceptions import InvalidInputDataError
from .models import (
    CashFlow,
    FlowKind,
    FundSale,
    NavPoint,
    PlannedFlow,
    SwpStrategy,
    TimelineEntry,
    WithdrawalAllocation,
    WithdrawalFundResult,
    WithdrawalResult,
    WithdrawalTotals,
)
from .returns import calculate_max_drawdown
from .schedule import build_schedule
from .xirr_calculator import XIRRCalculator

logger = logging.getLogger(__name__)


class HoldingsBook:
    """
    Units held per fund plus the NAV each fund trades at for the current
    withdrawal. Allocators sell through this book; it never lets units go
    below zero.
    """

    def __init__(self, units: Dict[str, Decimal], target_weights: Dict[str, Decimal]):
        self.units = dict(units)
        self.target_weights = target_weights
        self.trade_points: Dict[str, NavPoint] = {}
        self.sales: List[FundSale] = []

    def open_period(self, trade_points: Dict[str, NavPoint]) -> None:
        self.trade_points = trade_points
        self.sales = []

    def tradable(self) -> List[str]:
        """Funds that hold units and have a NAV to sell at, in basket order."""
        return [f for f in self.target_weights if f in self.trade_points and self.units.get(f, 0) > 0]

    def value(self, fund_id: str) -> Decimal:
        point = self.trade_points.get(fund_id)
        if point is None:
            return Decimal(0)
        return self.units.get(fund_id, Decimal(0)) * point.nav

    def sell(self, fund_id: str, amount: Decimal) -> Decimal:
        """Sells up to `amount` of a fund and returns the amount actually raised."""
        available = self.value(fund_id)
        amount = min(amount, available)
        if amount <= 0:
            return Decimal(0)
        point = self.trade_points[fund_id]
        if amount == available:
            units_sold = self.units[fund_id]
        else:
            units_sold = amount / point.nav
        self.units[fund_id] -= units_sold
        self.sales.append(
            FundSale(fund_id=fund_id, trade_date=point.date, nav=point.nav, units_sold=units_sold, amount=amount)
        )
        return amount

    def sell_value_proportional(self, funds: List[str], amount: Decimal) -> Decimal:
        """Splits `amount` across funds by current value; returns what is left unfunded."""
        values = {f: self.value(f) for f in funds}
        total = sum(values.values(), Decimal(0))
        remaining = amount
        if total <= 0:
            return remaining
        for fund_id, value in values.items():
            if remaining <= WITHDRAWAL_EPSILON:
                break
            if value <= 0:
                continue
            share = min(amount * value / total, remaining)
            remaining -= self.sell(fund_id, share)
        return remaining


class WithdrawalAllocator(Protocol):
    def allocate(self, amount: Decimal, book: HoldingsBook) -> Decimal: ...


class ProportionalAllocator:
    """Sells by target weight among funds still holding units; remainder by value."""

    def allocate(self, amount: Decimal, book: HoldingsBook) -> Decimal:
        active = book.tradable()
        if not active:
            return amount
        weight_sum = sum((book.target_weights[f] for f in active), Decimal(0))
        if weight_sum > 0:
            shares = {f: book.target_weights[f] / weight_sum for f in active}
        else:
            shares = {f: Decimal(1) / len(active) for f in active}

        remaining = amount
        for fund_id in active:
            if remaining <= WITHDRAWAL_EPSILON:
                break
            if shares[fund_id] <= 0:
                continue
            remaining -= book.sell(fund_id, min(amount * shares[fund_id], remaining))

        if remaining > WITHDRAWAL_EPSILON:
            remaining = book.sell_value_proportional(book.tradable(), remaining)
        return remaining


class OverweightFirstAllocator:
    """Trims funds sitting above their target value first; remainder by value."""

    def allocate(self, amount: Decimal, book: HoldingsBook) -> Decimal:
        active = book.tradable()
        values = {f: book.value(f) for f in active}
        total = sum(values.values(), Decimal(0))
        overweight = {f: values[f] - total * book.target_weights[f] / WEIGHT_TOTAL for f in active}

        remaining = amount
        for fund_id in sorted(active, key=lambda f: overweight[f], reverse=True):
            if remaining <= WITHDRAWAL_EPSILON or overweight[fund_id] <= 0:
                break
            remaining -= book.sell(fund_id, min(overweight[fund_id], remaining))

        if remaining > WITHDRAWAL_EPSILON:
            remaining = book.sell_value_proportional(book.tradable(), remaining)
        return remaining


class RiskBucketAllocator:
    """Exhausts risk buckets in order (e.g. LOW before HIGH), value-weighted within a bucket."""

    def __init__(self, risk_order: List[str], fund_risk: Dict[str, str]):
        self.risk_order = risk_order
        self.fund_risk = fund_risk

    def allocate(self, amount: Decimal, book: HoldingsBook) -> Decimal:
        remaining = amount
        for bucket in self.risk_order:
            if remaining <= WITHDRAWAL_EPSILON:
                break
            funds = [f for f in book.tradable() if self.fund_risk.get(f) == bucket]
            if funds:
                remaining = book.sell_value_proportional(funds, remaining)
        return remaining


def get_allocator(strategy: SwpStrategy, fund_ids: List[str]) -> WithdrawalAllocator:
    if strategy.allocation == WithdrawalAllocation.RISK_BUCKET:
        unassigned = [f for f in fund_ids if strategy.fund_risk.get(f) not in strategy.risk_order]
        if unassigned:
            raise InvalidInputDataError(
                f"RISK_BUCKET allocation needs a risk bucket from {strategy.risk_order} "
                f"for every fund; missing for {', '.join(unassigned)}."
            )
        return RiskBucketAllocator(strategy.risk_order, strategy.fund_risk)
    allocators = {
        WithdrawalAllocation.PROPORTIONAL: ProportionalAllocator(),
        WithdrawalAllocation.OVERWEIGHT_FIRST: OverweightFirstAllocator(),
    }
    return allocators[strategy.allocation]


def simulate_withdrawals(
    strategy: SwpStrategy,
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
) -> WithdrawalResult:
    """
    Runs a systematic withdrawal plan over a basket.

    The corpus is bought on the investment date (first NAV on/after it).
    Each scheduled withdrawal trades every fund at its first NAV on/after the
    planned date; a period where no fund has a NAV within the look-ahead of
    the horizon is dropped and counted. When the basket can no longer fund a
    withdrawal, whatever is left is withdrawn, the shortfall is recorded and
    the schedule stops with `depleted_on` set. Units never go negative.
    """
    purchase = materialize(
        [PlannedFlow(planned_date=strategy.investment_date, amount=strategy.corpus, kind=FlowKind.PURCHASE)],
        nav_series_by_fund,
        weights,
        horizon_end=strategy.end_date,
        lookahead_days=lookahead_days,
    )
    fund_ids = list(purchase.per_fund)
    allocator = get_allocator(strategy, fund_ids)
    indexes = build_indexes({f: nav_series_by_fund[f] for f in fund_ids})
    target_weights = {f: purchase.per_fund[f].weight for f in fund_ids}
    cutoff = strategy.end_date + timedelta(days=lookahead_days)

    initial_units = {f: purchase.per_fund[f].units for f in fund_ids}
    book = HoldingsBook(initial_units, target_weights)
    cash_flows: Dict[str, List[CashFlow]] = {
        f: [CashFlow(date=e.trade_date, amount=-e.amount) for e in purchase.per_fund[f].entries] for f in fund_ids
    }
    sales_by_fund: Dict[str, List[FundSale]] = {f: [] for f in fund_ids}

    purchase_dates = [e.trade_date for l in purchase.per_fund.values() for e in l.entries]
    if not purchase_dates:
        logger.warning(f"SWP corpus could not be invested: no NAV on or after {strategy.investment_date}.")
    start_date = max(purchase_dates) if purchase_dates else strategy.investment_date

    timeline = [
        TimelineEntry(
            date=start_date,
            action="INIT_STATE",
            portfolio_value=_portfolio_value(book.units, indexes, start_date),
            units_by_fund=dict(book.units),
        )
    ]

    withdrawn = Decimal(0)
    shortfall_total = Decimal(0)
    periods_run = 0
    dropped = 0
    depleted_on: Optional[date] = None
    last_trade = start_date

    for planned in build_schedule(strategy):
        if all(units <= 0 for units in book.units.values()):
            depleted_on = planned.planned_date
            break

        # Holdings are valued at the NAV each fund would actually trade at.
        trade_points = _trade_points(book.units, indexes, planned.planned_date, cutoff)
        if not trade_points:
            dropped += 1
            continue
        if _value_at(book.units, trade_points) <= WITHDRAWAL_EPSILON:
            depleted_on = planned.planned_date
            break

        book.open_period(trade_points)
        shortfall = allocator.allocate(planned.amount, book)
        if shortfall <= WITHDRAWAL_EPSILON:
            shortfall = Decimal(0)
        raised = sum((s.amount for s in book.sales), Decimal(0))
        trade_date = max(p.date for p in trade_points.values())
        last_trade = max(last_trade, trade_date)

        for sale in book.sales:
            sales_by_fund[sale.fund_id].append(sale)
            cash_flows[sale.fund_id].append(CashFlow(date=sale.trade_date, amount=sale.amount))

        periods_run += 1
        withdrawn += raised
        shortfall_total += shortfall
        value_after = _portfolio_value(book.units, indexes, trade_date)
        timeline.append(
            TimelineEntry(
                date=planned.planned_date,
                action="WITHDRAWAL",
                portfolio_value=value_after,
                units_by_fund=dict(book.units),
                amount=raised,
                shortfall=shortfall,
                sales=list(book.sales),
            )
        )

        if shortfall > 0 and value_after <= WITHDRAWAL_EPSILON:
            depleted_on = trade_date
            break

    if dropped:
        logger.warning(
            f"Dropped {dropped} withdrawal period(s) with no NAV on or after the planned date.",
            extra={"cutoff": cutoff.isoformat()},
        )
    if depleted_on is not None:
        logger.warning(
            f"SWP corpus depleted on {depleted_on.isoformat()} after {periods_run} withdrawal(s).",
            extra={"shortfall_total": str(shortfall_total)},
        )

    valuation_date = max(strategy.end_date, last_trade)
    fund_results = []
    calculator = XIRRCalculator()
    ending_value = Decimal(0)
    for fund_id in fund_ids:
        remaining_value = _fund_value(book.units[fund_id], indexes[fund_id], valuation_date)
        ending_value += remaining_value
        if remaining_value > 0:
            cash_flows[fund_id].append(CashFlow(date=valuation_date, amount=remaining_value))
        fund_results.append(
            WithdrawalFundResult(
                fund_id=fund_id,
                initial_units=initial_units[fund_id],
                remaining_units=book.units[fund_id],
                remaining_value=remaining_value,
                total_withdrawn=sum((s.amount for s in sales_by_fund[fund_id]), Decimal(0)),
                sales=sales_by_fund[fund_id],
                cash_flows=cash_flows[fund_id],
                xirr=calculator.compute_xirr(cash_flows[fund_id]),
            )
        )

    overall = coalesce_cash_flows(f for flows in cash_flows.values() for f in flows)
    drawdown = calculate_max_drawdown(
        [entry.portfolio_value for entry in timeline], [entry.date for entry in timeline]
    )

    return WithdrawalResult(
        timeline=timeline,
        totals=WithdrawalTotals(
            corpus=purchase.total_invested,
            withdrawn=withdrawn,
            ending_value=ending_value,
            periods_run=periods_run,
            dropped_periods=dropped + purchase.dropped_periods,
            depleted_on=depleted_on,
            shortfall_total=shortfall_total,
            max_drawdown=drawdown.max_drawdown,
            peak_value=drawdown.peak_value,
        ),
        fund_results=fund_results,
        cash_flows=overall,
        xirr=calculator.compute_xirr(overall),
    )


def _trade_points(
    units: Dict[str, Decimal], indexes: Dict[str, NavIndex], planned_date: date, cutoff: date
) -> Dict[str, NavPoint]:
    points = {}
    for fund_id, held in units.items():
        if held <= 0:
            continue
        point = indexes[fund_id].on_or_after(planned_date)
        if point is not None and point.date <= cutoff:
            points[fund_id] = point
    return points


def _value_at(units: Dict[str, Decimal], trade_points: Dict[str, NavPoint]) -> Decimal:
    return sum((units[f] * point.nav for f, point in trade_points.items()), Decimal(0))


def _fund_value(units: Decimal, index: NavIndex, as_of: date) -> Decimal:
    if units <= 0:
        return Decimal(0)
    point = index.on_or_before(as_of)
    return units * point.nav if point is not None else Decimal(0)


def _portfolio_value(units: Dict[str, Decimal], indexes: Dict[str, NavIndex], as_of: date) -> Decimal:
    return sum((_fund_value(u, indexes[f], as_of) for f, u in units.items()), Decimal(0))
