# tests/unit/services/analytics_service/test_analytics_service.py
import asyncio
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from analytics_service.service import AnalyticsService
from nav_analytics_engine.constants import STATUS_INSUFFICIENT_HISTORY
from nav_analytics_engine.exceptions import InsufficientDataError
from nav_analytics_engine.models import (
    NavPoint,
    PortfolioSimulationResult,
    RollingWindow,
    WithdrawalResult,
)
from nav_analytics_engine.rolling import WINDOW_1Y, compute_rolling_returns
from nav_common.logging_utils import NO_CORRELATION_ID, correlation_id_var
from nav_common.nav_store import InMemoryNavStore

pytestmark = pytest.mark.asyncio


def _flat(start: date, end: date, nav: str = "10"):
    days = (end - start).days
    return [NavPoint(date=start + timedelta(days=i), nav=Decimal(nav)) for i in range(days + 1)]


@pytest.fixture
def store() -> InMemoryNavStore:
    return InMemoryNavStore(
        {
            "A": _flat(date(2020, 1, 1), date(2021, 12, 31), "10"),
            "B": _flat(date(2020, 1, 1), date(2021, 12, 31), "20"),
        }
    )


@pytest.fixture
def service(store: InMemoryNavStore) -> AnalyticsService:
    return AnalyticsService(store, chunk_size=40)


async def test_simulate_strategy_routes_sip_payloads(service: AnalyticsService):
    """A SIP payload is validated and simulated as a purchase strategy."""
    # ARRANGE
    payload = {"type": "SIP", "amount": "1000", "start_date": "2020-01-01", "end_date": "2020-12-01"}

    # ACT
    result = await service.simulate_strategy(payload, {"A": 60, "B": 40})

    # ASSERT
    assert isinstance(result, PortfolioSimulationResult)
    assert result.summary.installments == 12
    assert result.summary.total_invested == Decimal("12000")
    assert result.summary.current_value == Decimal("12000")


async def test_simulate_strategy_routes_withdrawal_payloads(service: AnalyticsService):
    """An SWP payload runs the withdrawal simulation."""
    # ARRANGE
    payload = {
        "type": "SWP",
        "corpus": 100000,
        "withdrawal": 5000,
        "start_date": "2020-01-01",
        "end_date": "2020-06-01",
    }

    # ACT
    result = await service.simulate_strategy(payload, {"A": 50, "B": 50})

    # ASSERT
    assert isinstance(result, WithdrawalResult)
    assert result.totals.periods_run == 6
    assert result.totals.withdrawn == Decimal("30000")


async def test_simulate_strategy_requests_series_up_to_the_lookahead():
    """The store is asked for every fund concurrently, bounded by horizon + look-ahead."""
    # ARRANGE
    mock_store = AsyncMock()
    mock_store.get_nav_series.side_effect = lambda fund_id, start, end: _flat(date(2020, 1, 1), end)
    service = AnalyticsService(mock_store, lookahead_days=5)
    payload = {"type": "LUMPSUM", "amount": 1000, "date": "2020-01-01", "end_date": "2020-03-01"}

    # ACT
    await service.simulate_strategy(payload, {"A": 50, "B": 50})

    # ASSERT
    assert mock_store.get_nav_series.await_count == 2
    ends = {call.args[2] for call in mock_store.get_nav_series.await_args_list}
    assert ends == {date(2020, 3, 6)}


async def test_missing_fund_history_raises(service: AnalyticsService):
    with pytest.raises(InsufficientDataError, match="C"):
        await service.rolling_returns({"A": 50, "C": 50}, WINDOW_1Y)


async def test_chunked_rolling_scan_matches_the_engine(service: AnalyticsService, store: InMemoryNavStore):
    """Chunking window starts must not change the outcome."""
    # ARRANGE
    weights = {"A": 60, "B": 40}
    navs = {f: await store.get_nav_series(f) for f in weights}
    expected = compute_rolling_returns(navs, weights, WINDOW_1Y)

    # ACT
    with patch("analytics_service.service.observe_rolling_windows") as mock_observe:
        result = await service.rolling_returns(weights, WINDOW_1Y)

    # ASSERT
    assert result.basket_samples == expected.basket_samples
    assert result.basket_stats == expected.basket_stats
    assert result.windows_evaluated == 366
    mock_observe.assert_called_once_with("365D", 366, 0)


async def test_rolling_returns_status_and_strict_mode(service: AnalyticsService):
    """Thin history is a status by default and an error in strict mode."""
    three_years = RollingWindow(years=3)

    result = await service.rolling_returns({"A": 100}, three_years)
    assert result.status == STATUS_INSUFFICIENT_HISTORY

    with pytest.raises(InsufficientDataError):
        await service.rolling_returns({"A": 100}, three_years, strict=True)


async def test_rolling_scan_yields_to_the_event_loop(service: AnalyticsService):
    """A caller-side timeout can interrupt a long scan between chunks."""
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0)

    task = asyncio.create_task(ticker())
    try:
        await service.rolling_returns({"A": 60, "B": 40}, WINDOW_1Y)
    finally:
        task.cancel()
    assert ticks > 1


async def test_bucket_performance_falls_back_to_one_year(service: AnalyticsService):
    result = await service.bucket_performance({"A": 50, "B": 50})
    assert result.window_type == "1Y"
    assert result.total_periods == 366


async def test_each_call_runs_under_its_own_correlation_id():
    """Store lookups made during one call share that call's correlation ID."""
    # ARRANGE
    seen = []

    def record(fund_id, start, end):
        seen.append(correlation_id_var.get())
        return _flat(date(2020, 1, 1), date(2021, 12, 31))

    mock_store = AsyncMock()
    mock_store.get_nav_series.side_effect = record
    service = AnalyticsService(mock_store)

    # ACT
    await service.rolling_returns({"A": 50, "B": 50}, WINDOW_1Y)
    await service.bucket_performance({"A": 100})

    # ASSERT
    assert seen[0] == seen[1]
    assert seen[0].startswith("ROLL:")
    assert seen[2].startswith("BUCKET:")
    assert correlation_id_var.get() == NO_CORRELATION_ID
