# src/analytics_service/service.py
import asyncio
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from nav_analytics_engine.cashflow_builder import Weights, coerce_weights
from nav_analytics_engine.exceptions import InsufficientDataError
from nav_analytics_engine.models import (
    BucketPerformanceResult,
    NavPoint,
    PortfolioSimulationResult,
    RollingMode,
    RollingReturnsResult,
    RollingWindow,
    StepPolicy,
    SwpStrategy,
    WithdrawalResult,
    parse_strategy,
)
from nav_analytics_engine.rolling import (
    RollingConfig,
    RollingReturnsEngine,
    compute_bucket_performance,
    ensure_sufficient_history,
    merge_rolling_results,
)
from nav_analytics_engine.simulator import simulate_portfolio
from nav_analytics_engine.withdrawal import simulate_withdrawals
from nav_common import config
from nav_common.logging_utils import with_correlation_id
from nav_common.monitoring import async_timed, observe_dropped_periods, observe_rolling_windows
from nav_common.nav_store import NavSeriesStore

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Async facade over the engine: fetches the basket's NAV series from the
    injected store concurrently, runs the synchronous engine on them and
    records metrics from the counts the engine reports.
    """

    def __init__(
        self,
        store: NavSeriesStore,
        risk_free_rate: Optional[float] = None,
        lookahead_days: Optional[int] = None,
        rolling_amount: Optional[Decimal] = None,
        max_gap_days: Optional[int] = None,
        chunk_size: Optional[int] = None,
    ):
        self.store = store
        self.risk_free_rate = config.RISK_FREE_RATE_PCT if risk_free_rate is None else risk_free_rate
        self.lookahead_days = config.SIP_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
        self.rolling_amount = Decimal(
            str(config.ROLLING_NOTIONAL_AMOUNT if rolling_amount is None else rolling_amount)
        )
        self.max_gap_days = config.ROLLING_MAX_GAP_DAYS if max_gap_days is None else max_gap_days
        self.chunk_size = chunk_size or config.ROLLING_CHUNK_SIZE

    @with_correlation_id("SIM")
    @async_timed(operation="simulate_strategy")
    async def simulate_strategy(
        self, strategy: Union[Mapping[str, Any], Any], weights: Weights
    ) -> Union[PortfolioSimulationResult, WithdrawalResult]:
        descriptor = parse_strategy(dict(strategy)) if isinstance(strategy, Mapping) else strategy
        horizon_end = descriptor.horizon_end
        end = horizon_end + timedelta(days=self.lookahead_days) if horizon_end else None
        nav_series = await self._load_series(list(coerce_weights(weights)), end=end)

        if isinstance(descriptor, SwpStrategy):
            result = simulate_withdrawals(descriptor, nav_series, weights, lookahead_days=self.lookahead_days)
            observe_dropped_periods(descriptor.type, result.totals.dropped_periods)
            return result

        result = simulate_portfolio(
            descriptor,
            nav_series,
            weights,
            risk_free_rate=self.risk_free_rate,
            lookahead_days=self.lookahead_days,
        )
        observe_dropped_periods(descriptor.type, result.summary.dropped_periods)
        return result

    @with_correlation_id("ROLL")
    @async_timed(operation="rolling_returns")
    async def rolling_returns(
        self,
        weights: Weights,
        window: RollingWindow,
        step: StepPolicy = StepPolicy.DAILY,
        mode: RollingMode = RollingMode.LUMPSUM,
        strict: bool = False,
    ) -> RollingReturnsResult:
        """
        Scans the basket in chunks of window starts, yielding to the event loop
        between chunks so a caller-side timeout can cancel a long scan.
        With strict=True an empty scan raises InsufficientDataError.
        """
        nav_series = await self._load_series(list(coerce_weights(weights)))
        engine = RollingReturnsEngine(
            RollingConfig(
                window=window,
                step=step,
                mode=mode,
                amount=self.rolling_amount,
                max_gap_days=self.max_gap_days,
            )
        )
        starts = engine.plan_window_starts(nav_series, weights)
        parts = []
        for i in range(0, len(starts), self.chunk_size):
            parts.append(engine.evaluate(nav_series, weights, window_starts=starts[i:i + self.chunk_size]))
            await asyncio.sleep(0)
        result = merge_rolling_results(parts) if parts else engine.evaluate(nav_series, weights, window_starts=[])

        observe_rolling_windows(window.label, result.windows_evaluated, result.windows_discarded)
        logger.info(
            f"Rolling {window.label} scan finished with {result.total_periods} sample(s).",
            extra={"status": result.status, "windows_discarded": result.windows_discarded},
        )
        return ensure_sufficient_history(result) if strict else result

    @with_correlation_id("BUCKET")
    @async_timed(operation="bucket_performance")
    async def bucket_performance(self, weights: Weights) -> BucketPerformanceResult:
        nav_series = await self._load_series(list(coerce_weights(weights)))
        result = compute_bucket_performance(
            nav_series, weights, amount=self.rolling_amount, max_gap_days=self.max_gap_days
        )
        if result.rolling is not None:
            observe_rolling_windows(
                result.rolling.window.label, result.rolling.windows_evaluated, result.rolling.windows_discarded
            )
        return result

    async def _load_series(
        self, fund_ids: List[str], start: Optional[date] = None, end: Optional[date] = None
    ) -> Dict[str, List[NavPoint]]:
        tasks = [self.store.get_nav_series(fund_id, start, end) for fund_id in fund_ids]
        results = await asyncio.gather(*tasks)

        missing = [fund_id for fund_id, series in zip(fund_ids, results) if not series]
        if missing:
            raise InsufficientDataError(f"No NAV data available for fund(s): {', '.join(missing)}.")
        return dict(zip(fund_ids, results))
