# tests/unit/libs/nav-analytics-engine/test_xirr_calculator.py
import logging
from datetime import date
from decimal import Decimal

import pytest

from nav_analytics_engine.models import CashFlow
from nav_analytics_engine.xirr_calculator import XIRRCalculator, calculate_xirr


@pytest.fixture
def calculator() -> XIRRCalculator:
    """Provides a solver with default settings."""
    return XIRRCalculator()


def _two_flows(rate: float, start: date, end: date, invested: float = 1000.0):
    days = (end - start).days
    terminal = invested * (1 + rate) ** (days / 365)
    return [(start, Decimal(str(-invested))), (end, Decimal(str(terminal)))]


@pytest.mark.parametrize(
    "rate, start, end",
    [
        (0.12, date(2020, 1, 1), date(2022, 6, 15)),
        (0.0, date(2021, 3, 1), date(2021, 9, 1)),
        (-0.3, date(2019, 5, 10), date(2020, 5, 9)),
        (0.075, date(2020, 2, 29), date(2030, 2, 28)),
    ],
)
def test_two_flow_series_recovers_rate(calculator, rate, start, end):
    result = calculator.compute_xirr(_two_flows(rate, start, end))
    assert result == pytest.approx(rate * 100, abs=1e-4)


def test_large_positive_rate_is_not_clamped(calculator):
    # 500% annualized over a 30-day window.
    result = calculator.compute_xirr(_two_flows(5.0, date(2024, 1, 1), date(2024, 1, 31)))
    assert result == pytest.approx(500.0, abs=1e-3)


def test_rate_is_floored_at_minus_99_percent(calculator):
    flows = [(date(2023, 1, 1), Decimal("-100")), (date(2024, 1, 1), Decimal("1"))]
    solution = calculator.solve(flows)
    assert solution.converged
    assert solution.rate == Decimal("-0.99")
    assert calculator.compute_xirr(flows) == pytest.approx(-99.0)


def test_single_flow_returns_none(calculator):
    assert calculator.compute_xirr([]) is None
    assert calculator.compute_xirr([(date(2024, 1, 1), Decimal("-100"))]) is None


def test_single_signed_flows_return_none(calculator):
    all_negative = [(date(2024, 1, 1), Decimal("-100")), (date(2024, 6, 1), Decimal("-200"))]
    all_positive = [(date(2024, 1, 1), Decimal("100")), (date(2024, 6, 1), Decimal("200"))]
    assert calculator.compute_xirr(all_negative) is None
    assert calculator.compute_xirr(all_positive) is None


def test_accepts_cash_flow_models_in_any_order(calculator):
    flows = [
        CashFlow(date=date(2025, 1, 1), amount=Decimal("1100")),
        CashFlow(date=date(2024, 1, 1), amount=Decimal("-1000")),
    ]
    # 366 days in the leap year: 1.1 ^ (365 / 366) - 1
    expected = (1.1 ** (365 / 366) - 1) * 100
    assert calculator.compute_xirr(flows) == pytest.approx(expected, abs=1e-4)


def test_sip_style_flows_with_growth_give_positive_rate():
    flows = [(date(2024, m, 1), Decimal("-1000")) for m in range(1, 13)]
    flows.append((date(2025, 1, 1), Decimal("12800")))
    assert calculate_xirr(flows) > 0


def test_iteration_cap_returns_best_estimate_with_warning(caplog):
    calculator = XIRRCalculator(max_iter=1)
    flows = _two_flows(0.25, date(2020, 1, 1), date(2023, 1, 1))
    with caplog.at_level(logging.WARNING):
        solution = calculator.solve(flows)
    assert solution is not None
    assert not solution.converged
    assert solution.iterations == 1
    assert "did not converge" in caplog.text


def test_stalled_derivative_returns_best_estimate(caplog):
    calculator = XIRRCalculator(derivative_tol=Decimal("1e9"))
    flows = _two_flows(0.2, date(2020, 1, 1), date(2021, 1, 1))
    with caplog.at_level(logging.WARNING):
        solution = calculator.solve(flows)
    assert not solution.converged
    assert solution.rate == Decimal("0.1")
    assert "stalled" in caplog.text
