# src/nav_analytics_engine/xirr_calculator.py
import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

from .constants import (
    XIRR_DAYS_IN_YEAR,
    XIRR_DERIVATIVE_TOLERANCE,
    XIRR_INITIAL_GUESS,
    XIRR_MAX_ITERATIONS,
    XIRR_MIN_RATE,
    XIRR_TOLERANCE,
)
from .models import CashFlow

logger = logging.getLogger(__name__)

# Set precision for Decimal calculations
getcontext().prec = 28

DatedFlow = Union[CashFlow, Tuple[date, Decimal]]


class XIRRSolution(NamedTuple):
    rate: Decimal
    iterations: int
    converged: bool


class XIRRCalculator:
    """
    Solves the annualized internal rate of return (XIRR) of an irregularly
    dated cash-flow series with Newton-Raphson on

        NPV(r) = sum(amount_i / (1 + r) ^ (days_i / 365))

    where days_i counts actual days from the earliest flow (actual/365).
    The rate is floored at -0.99 after every step; there is no upper bound,
    large positive rates on short windows are legitimate results.
    """

    def __init__(
        self,
        tol: Decimal = XIRR_TOLERANCE,
        derivative_tol: Decimal = XIRR_DERIVATIVE_TOLERANCE,
        max_iter: int = XIRR_MAX_ITERATIONS,
        initial_guess: Decimal = XIRR_INITIAL_GUESS,
    ):
        self.tol = Decimal(tol)
        self.derivative_tol = Decimal(derivative_tol)
        self.max_iter = max_iter
        self.initial_guess = Decimal(initial_guess)

    def _npv(self, rate: Decimal, exponents: List[Decimal], cashflows: List[Decimal]) -> Decimal:
        """Calculates the Net Present Value for a given rate."""
        base = Decimal(1) + rate
        total = Decimal(0)
        for exponent, cashflow in zip(exponents, cashflows):
            total += cashflow / (base ** exponent)
        return total

    def _npv_derivative(self, rate: Decimal, exponents: List[Decimal], cashflows: List[Decimal]) -> Decimal:
        """Calculates the derivative of the NPV function with respect to the rate."""
        base = Decimal(1) + rate
        total = Decimal(0)
        for exponent, cashflow in zip(exponents, cashflows):
            if exponent == 0:
                continue
            total -= cashflow * exponent / (base ** (exponent + 1))
        return total

    def solve(self, dated_cashflows: Sequence[DatedFlow]) -> Optional[XIRRSolution]:
        """
        Returns the solved rate as a decimal fraction, or None when no root can
        exist (fewer than two flows, or all flows share one sign).

        When the derivative stalls or the iteration cap is reached, the rate
        with the smallest |NPV| seen so far is returned with converged=False.
        """
        flows = _as_pairs(dated_cashflows)
        if len(flows) < 2:
            return None

        # A sign change is required for a solution to exist
        if all(cf >= 0 for _, cf in flows) or all(cf <= 0 for _, cf in flows):
            return None

        flows.sort(key=lambda x: x[0])
        start_date = flows[0][0]
        exponents = [Decimal((d - start_date).days) / XIRR_DAYS_IN_YEAR for d, _ in flows]
        cashflows = [cf for _, cf in flows]

        rate = self.initial_guess
        best_rate, best_npv = rate, None
        for iteration in range(1, self.max_iter + 1):
            npv_val = self._npv(rate, exponents, cashflows)
            if best_npv is None or abs(npv_val) < best_npv:
                best_rate, best_npv = rate, abs(npv_val)
            if abs(npv_val) < self.tol:
                return XIRRSolution(rate=rate, iterations=iteration, converged=True)

            derivative_val = self._npv_derivative(rate, exponents, cashflows)
            if abs(derivative_val) < self.derivative_tol:
                logger.warning(
                    f"XIRR derivative stalled after {iteration} iteration(s); returning best estimate.",
                    extra={"rate": str(best_rate), "npv": str(best_npv)},
                )
                return XIRRSolution(rate=best_rate, iterations=iteration, converged=False)

            rate = rate - (npv_val / derivative_val)
            if rate < XIRR_MIN_RATE:
                rate = XIRR_MIN_RATE

        logger.warning(
            f"XIRR did not converge within {self.max_iter} iterations; returning best estimate.",
            extra={"rate": str(best_rate), "npv": str(best_npv)},
        )
        return XIRRSolution(rate=best_rate, iterations=self.max_iter, converged=False)

    def compute_xirr(self, dated_cashflows: Sequence[DatedFlow]) -> Optional[float]:
        """
        XIRR as a percentage (can be negative). Input cash flows must be in
        investor sign (outflows negative, inflows positive). Returns None when
        the series is degenerate; never raises for numerical reasons.
        """
        solution = self.solve(dated_cashflows)
        if solution is None:
            return None
        return float(solution.rate * 100)


def calculate_xirr(dated_cashflows: Sequence[DatedFlow]) -> Optional[float]:
    """Module-level shortcut using the default solver settings."""
    return XIRRCalculator().compute_xirr(dated_cashflows)


def _as_pairs(dated_cashflows: Sequence[DatedFlow]) -> List[Tuple[date, Decimal]]:
    pairs = []
    for flow in dated_cashflows or []:
        if isinstance(flow, CashFlow):
            pairs.append((flow.date, Decimal(flow.amount)))
        else:
            flow_date, amount = flow
            pairs.append((flow_date, amount if isinstance(amount, Decimal) else Decimal(str(amount))))
    return pairs
