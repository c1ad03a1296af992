# src/nav_analytics_engine/models.py
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .constants import DEFAULT_RISK_ORDER

# --- Enums ---


class FlowKind(str, Enum):
    """What a planned or materialized flow represents."""
    SIP = "SIP"
    LUMPSUM = "LUMPSUM"
    PURCHASE = "PURCHASE"
    WITHDRAWAL = "WITHDRAWAL"


class WithdrawalFrequency(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    CUSTOM = "CUSTOM"


class WithdrawalAllocation(str, Enum):
    """How a single withdrawal is split across the funds of a basket."""
    PROPORTIONAL = "PROPORTIONAL"
    OVERWEIGHT_FIRST = "OVERWEIGHT_FIRST"
    RISK_BUCKET = "RISK_BUCKET"


class StepPolicy(str, Enum):
    DAILY = "DAILY"
    MONTHLY = "MONTHLY"


class RollingMode(str, Enum):
    LUMPSUM = "LUMPSUM"
    SIP = "SIP"


# --- NAV input ---


class NavPoint(BaseModel):
    """A single published NAV for one fund on one trading day."""

    date: date
    nav: Decimal = Field(..., gt=0, description="Per-unit price; always positive.")

    model_config = ConfigDict(frozen=True)


class FundWeight(BaseModel):
    """Allocation of a basket to one fund, expressed in percent."""

    fund_id: str
    weight: Decimal = Field(..., ge=0, le=100)


class CashFlow(BaseModel):
    """
    A dated money movement in investor sign: money invested is negative,
    money received (redemption, withdrawal, terminal value) is positive.
    """

    date: date
    amount: Decimal

    model_config = ConfigDict(frozen=True)


# --- Strategy descriptors ---


class SipStrategy(BaseModel):
    """Fixed monthly purchase from start_date through end_date (inclusive)."""

    type: Literal["SIP"] = "SIP"
    amount: Decimal = Field(..., gt=0, description="Installment amount for the whole basket.")
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_dates(self) -> "SipStrategy":
        if self.start_date >= self.end_date:
            raise ValueError("SIP start_date must be before end_date.")
        return self

    @property
    def horizon_end(self) -> date:
        return self.end_date


class LumpsumStrategy(BaseModel):
    """One purchase on `date`, valued at `end_date` (latest NAV when omitted)."""

    type: Literal["LUMPSUM"] = "LUMPSUM"
    amount: Decimal = Field(..., gt=0)
    date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "LumpsumStrategy":
        if self.end_date is not None and self.date >= self.end_date:
            raise ValueError("Lumpsum date must be before end_date.")
        return self

    @property
    def horizon_end(self) -> Optional[date]:
        return self.end_date


class SipLumpsumStrategy(BaseModel):
    """A SIP and a lumpsum run together into the same basket."""

    type: Literal["SIP_LUMPSUM"] = "SIP_LUMPSUM"
    sip: SipStrategy
    lumpsum: LumpsumStrategy

    @property
    def horizon_end(self) -> date:
        if self.lumpsum.end_date is None:
            return self.sip.end_date
        return max(self.sip.end_date, self.lumpsum.end_date)


class SwpStrategy(BaseModel):
    """
    Systematic withdrawal plan: `corpus` is bought on `purchase_date`
    (defaults to start_date) and `withdrawal` is redeemed on every scheduled
    date from start_date through end_date.
    """

    type: Literal["SWP"] = "SWP"
    corpus: Decimal = Field(..., gt=0)
    withdrawal: Decimal = Field(..., gt=0)
    frequency: WithdrawalFrequency = WithdrawalFrequency.MONTHLY
    start_date: date
    end_date: date
    purchase_date: Optional[date] = None
    custom_interval_days: Optional[int] = Field(None, gt=0)
    allocation: WithdrawalAllocation = WithdrawalAllocation.PROPORTIONAL
    fund_risk: Dict[str, str] = Field(
        default_factory=dict, description="Risk bucket per fund, required for RISK_BUCKET."
    )
    risk_order: List[str] = Field(default_factory=lambda: list(DEFAULT_RISK_ORDER))

    @model_validator(mode="after")
    def _check_schedule(self) -> "SwpStrategy":
        if self.start_date >= self.end_date:
            raise ValueError("SWP start_date must be before end_date.")
        if self.purchase_date is not None and self.purchase_date > self.start_date:
            raise ValueError("SWP purchase_date must be on or before start_date.")
        if self.frequency == WithdrawalFrequency.CUSTOM and not self.custom_interval_days:
            raise ValueError("CUSTOM frequency requires custom_interval_days.")
        return self

    @property
    def investment_date(self) -> date:
        return self.purchase_date or self.start_date

    @property
    def horizon_end(self) -> date:
        return self.end_date


StrategyDescriptor = Annotated[
    Union[SipStrategy, LumpsumStrategy, SipLumpsumStrategy, SwpStrategy],
    Field(discriminator="type"),
]

_STRATEGY_ADAPTER = TypeAdapter(StrategyDescriptor)


def parse_strategy(payload: Dict[str, Any]):
    """Validates a loosely-typed payload into one of the strategy descriptors."""
    return _STRATEGY_ADAPTER.validate_python(payload)


# --- Cash-flow ledger ---


class PlannedFlow(BaseModel):
    planned_date: date
    amount: Decimal
    kind: FlowKind

    model_config = ConfigDict(frozen=True)


class LedgerEntry(BaseModel):
    """A planned flow after alignment to a tradable NAV date."""

    planned_date: date
    trade_date: date
    nav: Decimal
    amount: Decimal = Field(..., description="Money invested into the fund (positive).")
    units: Decimal
    kind: FlowKind


class FundLedger(BaseModel):
    fund_id: str
    weight: Decimal
    entries: List[LedgerEntry] = Field(default_factory=list)
    units: Decimal = Decimal(0)
    invested: Decimal = Decimal(0)
    cash_flows: List[CashFlow] = Field(default_factory=list)
    dropped_periods: int = 0
    valuation_point: Optional[NavPoint] = None
    current_value: Decimal = Decimal(0)


class CashFlowLedger(BaseModel):
    """Per-fund ledgers plus the basket-level flow timeline used by XIRR."""

    per_fund: Dict[str, FundLedger]
    basket_cash_flows: List[CashFlow]
    final_units_by_fund: Dict[str, Decimal]
    total_invested: Decimal
    current_value: Decimal
    dropped_periods: int
    horizon_end: date
    valuation_date: date


# --- Return solver outputs ---


class DrawdownResult(BaseModel):
    max_drawdown: float = Field(0.0, description="Largest peak-to-trough decline, in percent.")
    peak_value: float = 0.0
    peak_date: Optional[date] = None
    trough_date: Optional[date] = None


class DistributionStats(BaseModel):
    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std_dev: float = 0.0
    positive_percentage: float = 0.0


# --- Portfolio simulation ---


class GrowthPoint(BaseModel):
    date: date
    invested: Decimal
    value_by_fund: Dict[str, Decimal]
    total_value: Decimal


class FundResult(BaseModel):
    fund_id: str
    weight: Decimal
    units_held: Decimal
    total_invested: Decimal
    current_value: Decimal
    profit: Decimal
    return_percentage: Optional[float] = None
    cagr: Optional[float] = None
    xirr: Optional[float] = None
    volatility: Optional[float] = None
    sharpe_ratio: Optional[float] = None
    max_drawdown: float = 0.0
    dropped_periods: int = 0


class PerformerSummary(BaseModel):
    fund_id: str
    cagr: Optional[float] = None


class PortfolioSummary(BaseModel):
    total_invested: Decimal
    current_value: Decimal
    profit: Decimal
    return_percentage: Optional[float] = None
    cagr: Optional[float] = None
    xirr: Optional[float] = None
    volatility: Optional[float] = None
    sharpe_ratio: Optional[float] = None
    max_drawdown: float = 0.0
    installments: int = 0
    dropped_periods: int = 0
    best_performer: Optional[PerformerSummary] = None
    worst_performer: Optional[PerformerSummary] = None


class PortfolioSimulationResult(BaseModel):
    strategy_type: str
    start_date: date
    end_date: date
    summary: PortfolioSummary
    breakdown: List[FundResult]
    growth: List[GrowthPoint]
    basket_cash_flows: List[CashFlow]


# --- Withdrawal simulation ---


class FundSale(BaseModel):
    fund_id: str
    trade_date: date
    nav: Decimal
    units_sold: Decimal
    amount: Decimal


class TimelineEntry(BaseModel):
    date: date
    action: Literal["INIT_STATE", "WITHDRAWAL"]
    portfolio_value: Decimal
    units_by_fund: Dict[str, Decimal]
    amount: Decimal = Decimal(0)
    shortfall: Decimal = Decimal(0)
    sales: List[FundSale] = Field(default_factory=list)


class WithdrawalFundResult(BaseModel):
    fund_id: str
    initial_units: Decimal
    remaining_units: Decimal
    remaining_value: Decimal
    total_withdrawn: Decimal
    sales: List[FundSale]
    cash_flows: List[CashFlow]
    xirr: Optional[float] = None


class WithdrawalTotals(BaseModel):
    corpus: Decimal
    withdrawn: Decimal
    ending_value: Decimal
    periods_run: int
    dropped_periods: int
    depleted_on: Optional[date] = None
    shortfall_total: Decimal
    max_drawdown: float
    peak_value: float


class WithdrawalResult(BaseModel):
    timeline: List[TimelineEntry]
    totals: WithdrawalTotals
    fund_results: List[WithdrawalFundResult]
    cash_flows: List[CashFlow]
    xirr: Optional[float] = None


# --- Rolling windows ---


class RollingWindow(BaseModel):
    """A fixed-duration analysis window; calendar units are combined."""

    years: int = Field(0, ge=0)
    months: int = Field(0, ge=0)
    days: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_length(self) -> "RollingWindow":
        if self.years == 0 and self.months == 0 and self.days == 0:
            raise ValueError("A rolling window must have a positive length.")
        return self

    @property
    def delta(self) -> relativedelta:
        return relativedelta(years=self.years, months=self.months, days=self.days)

    @property
    def label(self) -> str:
        parts = []
        if self.years:
            parts.append(f"{self.years}Y")
        if self.months:
            parts.append(f"{self.months}M")
        if self.days:
            parts.append(f"{self.days}D")
        return "".join(parts)


class RollingWindowSample(BaseModel):
    window_start_date: date
    window_end_date: date
    annualized_return: float


class RollingReturnsResult(BaseModel):
    window: RollingWindow
    step: StepPolicy
    mode: RollingMode
    reference_fund_id: str
    basket_samples: List[RollingWindowSample] = Field(default_factory=list)
    fund_samples: Dict[str, List[RollingWindowSample]] = Field(default_factory=dict)
    basket_stats: DistributionStats = Field(default_factory=DistributionStats)
    fund_stats: Dict[str, DistributionStats] = Field(default_factory=dict)
    windows_evaluated: int = 0
    windows_discarded: int = 0
    status: str
    message: Optional[str] = None

    @property
    def total_periods(self) -> int:
        return len(self.basket_samples)


class BucketPerformanceResult(BaseModel):
    window_type: str
    window_days: int
    analysis_start_date: Optional[date] = None
    analysis_end_date: Optional[date] = None
    total_periods: int
    basket_stats: DistributionStats
    fund_stats: Dict[str, DistributionStats]
    rolling: Optional[RollingReturnsResult] = None
    message: Optional[str] = None
