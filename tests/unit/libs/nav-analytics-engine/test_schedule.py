# tests/unit/libs/nav-analytics-engine/test_schedule.py
import pytest
from datetime import date
from decimal import Decimal

from nav_analytics_engine.exceptions import InvalidInputDataError
from nav_analytics_engine.models import (
    FlowKind,
    LumpsumStrategy,
    SipLumpsumStrategy,
    SipStrategy,
    SwpStrategy,
    WithdrawalFrequency,
)
from nav_analytics_engine.schedule import (
    add_calendar_months,
    build_schedule,
    build_schedule_dates,
    iter_monthly_dates,
)


@pytest.mark.parametrize(
    "anchor, months, expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 3, 31), 1, date(2024, 4, 30)),
        (date(2024, 1, 15), 12, date(2025, 1, 15)),
    ],
)
def test_add_calendar_months_clamps_to_month_end(anchor, months, expected):
    assert add_calendar_months(anchor, months) == expected


def test_monthly_dates_return_to_anchor_day_after_short_month():
    dates = list(iter_monthly_dates(date(2024, 1, 31), date(2024, 4, 30)))
    assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_monthly_dates_reject_non_positive_step():
    with pytest.raises(InvalidInputDataError):
        list(iter_monthly_dates(date(2024, 1, 1), date(2024, 6, 1), step_months=0))


def test_sip_schedule_is_inclusive_of_end_date():
    sip = SipStrategy(amount=Decimal("10000"), start_date=date(2020, 1, 1), end_date=date(2023, 1, 1))
    dates = build_schedule_dates(sip)
    assert len(dates) == 37
    assert dates[0] == date(2020, 1, 1)
    assert dates[-1] == date(2023, 1, 1)


def test_lumpsum_schedule_is_a_single_flow():
    flows = build_schedule(LumpsumStrategy(amount=Decimal("50000"), date=date(2021, 6, 15)))
    assert len(flows) == 1
    assert flows[0].kind == FlowKind.LUMPSUM
    assert flows[0].amount == Decimal("50000")


def test_sip_lumpsum_merges_and_keeps_lumpsum_first_on_shared_date():
    combined = SipLumpsumStrategy(
        sip=SipStrategy(amount=Decimal("1000"), start_date=date(2022, 1, 1), end_date=date(2022, 3, 1)),
        lumpsum=LumpsumStrategy(amount=Decimal("20000"), date=date(2022, 2, 1)),
    )
    flows = build_schedule(combined)
    assert [f.planned_date for f in flows] == [
        date(2022, 1, 1),
        date(2022, 2, 1),
        date(2022, 2, 1),
        date(2022, 3, 1),
    ]
    assert flows[1].kind == FlowKind.LUMPSUM
    assert flows[2].kind == FlowKind.SIP


def test_swp_quarterly_schedule():
    swp = SwpStrategy(
        corpus=Decimal("1000000"),
        withdrawal=Decimal("25000"),
        frequency=WithdrawalFrequency.QUARTERLY,
        start_date=date(2024, 1, 15),
        end_date=date(2024, 12, 31),
    )
    flows = build_schedule(swp)
    assert [f.planned_date for f in flows] == [
        date(2024, 1, 15),
        date(2024, 4, 15),
        date(2024, 7, 15),
        date(2024, 10, 15),
    ]
    assert all(f.kind == FlowKind.WITHDRAWAL for f in flows)


def test_swp_custom_interval_schedule():
    swp = SwpStrategy(
        corpus=Decimal("100000"),
        withdrawal=Decimal("1000"),
        frequency=WithdrawalFrequency.CUSTOM,
        custom_interval_days=10,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    )
    assert build_schedule_dates(swp) == [
        date(2024, 1, 1),
        date(2024, 1, 11),
        date(2024, 1, 21),
        date(2024, 1, 31),
    ]


def test_unknown_descriptor_is_rejected():
    with pytest.raises(InvalidInputDataError):
        build_schedule(object())
