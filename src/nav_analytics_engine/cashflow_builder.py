# src/nav_analytics_engine/cashflow_builder.py
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .constants import DEFAULT_LOOKAHEAD_DAYS, WEIGHT_TOLERANCE, WEIGHT_TOTAL
from .date_alignment import NavIndex, build_indexes
from .exceptions import InvalidInputDataError
from .models import (
    CashFlow,
    CashFlowLedger,
    FlowKind,
    FundLedger,
    FundWeight,
    LedgerEntry,
    NavPoint,
    PlannedFlow,
)
from .schedule import build_schedule

logger = logging.getLogger(__name__)

Weights = Union[Mapping[str, object], Sequence[FundWeight]]
NavSeriesByFund = Mapping[str, Union[Sequence[NavPoint], NavIndex]]

_PURCHASE_KINDS = {FlowKind.SIP, FlowKind.LUMPSUM, FlowKind.PURCHASE}


def coerce_weights(weights: Weights) -> Dict[str, Decimal]:
    """Accepts either a {fund_id: weight} mapping or a list of FundWeight."""
    if isinstance(weights, Mapping):
        return {str(fund_id): Decimal(str(weight)) for fund_id, weight in weights.items()}
    coerced: Dict[str, Decimal] = {}
    for item in weights:
        if item.fund_id in coerced:
            raise InvalidInputDataError(f"Fund {item.fund_id} appears more than once in the basket.")
        coerced[item.fund_id] = Decimal(item.weight)
    return coerced


def validate_weights(weights: Weights) -> Dict[str, Decimal]:
    """
    Validates a basket allocation before any calculation starts.
    Weights must lie in [0, 100] and sum to 100 within 0.01; the core never
    re-normalizes a bad allocation.
    """
    coerced = coerce_weights(weights)
    if not coerced:
        raise InvalidInputDataError("At least one fund weight is required.")
    for fund_id, weight in coerced.items():
        if weight < 0 or weight > WEIGHT_TOTAL:
            raise InvalidInputDataError(f"Weight for fund {fund_id} must be between 0 and 100, got {weight}.")
    total = sum(coerced.values(), Decimal(0))
    if abs(total - WEIGHT_TOTAL) > WEIGHT_TOLERANCE:
        raise InvalidInputDataError(f"Fund weights must sum to 100, got {total}.")
    return coerced


def validate_fund_coverage(weights: Mapping[str, Decimal], nav_series_by_fund: NavSeriesByFund) -> None:
    missing = [fund_id for fund_id in weights if fund_id not in nav_series_by_fund]
    if missing:
        raise InvalidInputDataError(f"NAV series missing for fund(s): {', '.join(sorted(missing))}.")


def coalesce_cash_flows(flows: Iterable[CashFlow]) -> List[CashFlow]:
    """Sums flows sharing a date into one bucket and returns them in date order."""
    buckets: Dict[date, Decimal] = defaultdict(Decimal)
    for flow in flows:
        buckets[flow.date] += flow.amount
    return [CashFlow(date=d, amount=amount) for d, amount in sorted(buckets.items())]


def materialize(
    planned: Sequence[PlannedFlow],
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    horizon_end: date,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    valuation_date: Optional[date] = None,
) -> CashFlowLedger:
    """
    Aligns planned purchases to tradable NAV dates and builds the per-fund and
    basket cash-flow ledgers.

    - Each planned date trades on the first NAV on/after it. A period with no
      NAV up to horizon_end + lookahead_days is dropped (never fabricated)
      and counted per fund.
    - units = (amount * weight / 100) / NAV
    - Holdings are valued with the latest NAV on/before the valuation date
      (horizon_end by default, pushed out to the last trade date if an
      installment rolled past the horizon) and booked as one positive flow.
    """
    weight_map = validate_weights(weights)
    validate_fund_coverage(weight_map, nav_series_by_fund)
    if any(flow.kind not in _PURCHASE_KINDS for flow in planned):
        raise InvalidInputDataError("Withdrawal flows are handled by the withdrawal simulation, not materialize().")
    if lookahead_days < 0:
        raise InvalidInputDataError("lookahead_days cannot be negative.")

    indexes = build_indexes({fund_id: nav_series_by_fund[fund_id] for fund_id in weight_map})
    cutoff = horizon_end + timedelta(days=lookahead_days)

    ledgers: Dict[str, FundLedger] = {}
    for fund_id, weight in weight_map.items():
        ledgers[fund_id] = build_fund_ledger(fund_id, weight, planned, indexes[fund_id], cutoff)

    val_date = valuation_date or horizon_end
    last_trade = max((e.trade_date for l in ledgers.values() for e in l.entries), default=None)
    if valuation_date is None and last_trade is not None and last_trade > val_date:
        val_date = last_trade

    for fund_id, ledger in ledgers.items():
        value_fund_ledger(ledger, indexes[fund_id], val_date)

    dropped = sum(l.dropped_periods for l in ledgers.values())
    if dropped:
        logger.warning(
            f"Dropped {dropped} planned period(s) with no NAV on or after the planned date "
            f"before {cutoff.isoformat()}.",
            extra={"dropped_by_fund": {f: l.dropped_periods for f, l in ledgers.items() if l.dropped_periods}},
        )

    return CashFlowLedger(
        per_fund=ledgers,
        basket_cash_flows=coalesce_cash_flows(f for l in ledgers.values() for f in l.cash_flows),
        final_units_by_fund={fund_id: l.units for fund_id, l in ledgers.items()},
        total_invested=sum((l.invested for l in ledgers.values()), Decimal(0)),
        current_value=sum((l.current_value for l in ledgers.values()), Decimal(0)),
        dropped_periods=dropped,
        horizon_end=horizon_end,
        valuation_date=val_date,
    )


def materialize_strategy(
    descriptor,
    nav_series_by_fund: NavSeriesByFund,
    weights: Weights,
    lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
    valuation_date: Optional[date] = None,
) -> CashFlowLedger:
    """Schedules and materializes a SIP, lumpsum or SIP+lumpsum descriptor in one step."""
    planned = build_schedule(descriptor)
    horizon_end = descriptor.horizon_end
    if horizon_end is None:
        # Open-ended lumpsum: value at the latest NAV any fund has.
        indexes = build_indexes(nav_series_by_fund)
        last_dates = [index.last.date for index in indexes.values() if index]
        if not last_dates:
            raise InvalidInputDataError("Cannot value an open-ended lumpsum without any NAV data.")
        horizon_end = max(last_dates)
        nav_series_by_fund = indexes
    return materialize(
        planned,
        nav_series_by_fund,
        weights,
        horizon_end=horizon_end,
        lookahead_days=lookahead_days,
        valuation_date=valuation_date,
    )


def build_fund_ledger(
    fund_id: str,
    weight: Decimal,
    planned: Sequence[PlannedFlow],
    index: NavIndex,
    cutoff: date,
) -> FundLedger:
    """Buys one fund's share of every planned flow; flows with no NAV by `cutoff` are dropped."""
    ledger = FundLedger(fund_id=fund_id, weight=weight)
    for flow in planned:
        amount = flow.amount * weight / WEIGHT_TOTAL
        if amount == 0:
            continue
        point = index.on_or_after(flow.planned_date)
        if point is None or point.date > cutoff:
            ledger.dropped_periods += 1
            logger.debug(
                f"No NAV for fund {fund_id} on or after {flow.planned_date.isoformat()}; period dropped."
            )
            continue
        units = amount / point.nav
        ledger.entries.append(
            LedgerEntry(
                planned_date=flow.planned_date,
                trade_date=point.date,
                nav=point.nav,
                amount=amount,
                units=units,
                kind=flow.kind,
            )
        )
        ledger.units += units
        ledger.invested += amount
        ledger.cash_flows.append(CashFlow(date=point.date, amount=-amount))
    return ledger


def value_fund_ledger(ledger: FundLedger, index: NavIndex, valuation_date: date) -> None:
    if ledger.units == 0:
        return
    point = index.on_or_before(valuation_date)
    if point is None:
        logger.warning(
            f"No NAV on or before {valuation_date.isoformat()} to value fund {ledger.fund_id}."
        )
        return
    ledger.valuation_point = point
    ledger.current_value = ledger.units * point.nav
    ledger.cash_flows.append(CashFlow(date=valuation_date, amount=ledger.current_value))
