# src/nav_analytics_engine/schedule.py
from datetime import date, timedelta
from typing import Iterator, List

from dateutil.relativedelta import relativedelta

from .exceptions import InvalidInputDataError
from .models import (
    FlowKind,
    LumpsumStrategy,
    PlannedFlow,
    SipLumpsumStrategy,
    SipStrategy,
    SwpStrategy,
    WithdrawalFrequency,
)

_FREQUENCY_MONTHS = {
    WithdrawalFrequency.MONTHLY: 1,
    WithdrawalFrequency.QUARTERLY: 3,
}


def add_calendar_months(anchor: date, months: int) -> date:
    """
    Adds calendar months to a date, clamping to the last day of shorter months
    (Jan 31 + 1 month = Feb 28/29, never Mar 2/3).
    """
    return anchor + relativedelta(months=months)


def iter_monthly_dates(anchor: date, end: date, step_months: int = 1) -> Iterator[date]:
    """
    Yields anchor, anchor + step, anchor + 2*step ... up to and including end.
    Every date is derived from the anchor, so a 31st-of-month schedule returns
    to the 31st after passing through a short month.
    """
    if step_months <= 0:
        raise InvalidInputDataError("Month step must be positive.")
    k = 0
    current = anchor
    while current <= end:
        yield current
        k += 1
        current = add_calendar_months(anchor, k * step_months)


def build_schedule(descriptor) -> List[PlannedFlow]:
    """Expands a strategy descriptor into its planned (calendar) flows, ordered by date."""
    if isinstance(descriptor, SipStrategy):
        return [
            PlannedFlow(planned_date=d, amount=descriptor.amount, kind=FlowKind.SIP)
            for d in iter_monthly_dates(descriptor.start_date, descriptor.end_date)
        ]
    if isinstance(descriptor, LumpsumStrategy):
        return [PlannedFlow(planned_date=descriptor.date, amount=descriptor.amount, kind=FlowKind.LUMPSUM)]
    if isinstance(descriptor, SipLumpsumStrategy):
        flows = build_schedule(descriptor.lumpsum) + build_schedule(descriptor.sip)
        # sorted() is stable: a lumpsum sharing a date with an installment stays first.
        return sorted(flows, key=lambda f: f.planned_date)
    if isinstance(descriptor, SwpStrategy):
        return [
            PlannedFlow(planned_date=d, amount=descriptor.withdrawal, kind=FlowKind.WITHDRAWAL)
            for d in _withdrawal_dates(descriptor)
        ]
    raise InvalidInputDataError(f"Unsupported strategy descriptor: {type(descriptor).__name__}.")


def build_schedule_dates(descriptor) -> List[date]:
    """The ordered planned calendar dates of a strategy (pure date arithmetic)."""
    return [flow.planned_date for flow in build_schedule(descriptor)]


def _withdrawal_dates(descriptor: SwpStrategy) -> List[date]:
    if descriptor.frequency == WithdrawalFrequency.CUSTOM:
        interval = timedelta(days=descriptor.custom_interval_days)
        dates = []
        current = descriptor.start_date
        while current <= descriptor.end_date:
            dates.append(current)
            current += interval
        return dates
    step = _FREQUENCY_MONTHS[descriptor.frequency]
    return list(iter_monthly_dates(descriptor.start_date, descriptor.end_date, step_months=step))
