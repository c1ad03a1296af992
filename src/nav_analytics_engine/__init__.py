"""NAV-aligned cash-flow building and return analytics for mutual-fund baskets."""

from .cashflow_builder import materialize, materialize_strategy, validate_weights
from .date_alignment import NavIndex, resolve_on_or_after, resolve_on_or_before
from .exceptions import (
    InsufficientDataError,
    InvalidInputDataError,
    MissingConfigurationError,
    NavAnalyticsError,
)
from .models import (
    CashFlow,
    DistributionStats,
    FundWeight,
    LumpsumStrategy,
    NavPoint,
    RollingMode,
    RollingWindow,
    SipLumpsumStrategy,
    SipStrategy,
    StepPolicy,
    SwpStrategy,
    parse_strategy,
)
from .returns import calculate_cagr, calculate_max_drawdown, calculate_sharpe_ratio, calculate_value_series_volatility
from .rolling import (
    RollingConfig,
    RollingReturnsEngine,
    compute_bucket_performance,
    compute_rolling_returns,
    merge_rolling_results,
)
from .schedule import add_calendar_months, build_schedule_dates
from .simulator import simulate_portfolio
from .stats import aggregate
from .withdrawal import simulate_withdrawals
from .xirr_calculator import XIRRCalculator, calculate_xirr

__all__ = [
    "materialize",
    "materialize_strategy",
    "validate_weights",
    "NavIndex",
    "resolve_on_or_after",
    "resolve_on_or_before",
    "InsufficientDataError",
    "InvalidInputDataError",
    "MissingConfigurationError",
    "NavAnalyticsError",
    "CashFlow",
    "DistributionStats",
    "FundWeight",
    "LumpsumStrategy",
    "NavPoint",
    "RollingMode",
    "RollingWindow",
    "SipLumpsumStrategy",
    "SipStrategy",
    "StepPolicy",
    "SwpStrategy",
    "parse_strategy",
    "calculate_cagr",
    "calculate_max_drawdown",
    "calculate_sharpe_ratio",
    "calculate_value_series_volatility",
    "RollingConfig",
    "RollingReturnsEngine",
    "compute_bucket_performance",
    "compute_rolling_returns",
    "merge_rolling_results",
    "add_calendar_months",
    "build_schedule_dates",
    "simulate_portfolio",
    "aggregate",
    "simulate_withdrawals",
    "XIRRCalculator",
    "calculate_xirr",
]
