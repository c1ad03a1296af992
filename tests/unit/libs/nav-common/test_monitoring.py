# tests/unit/libs/nav-common/test_monitoring.py
import asyncio

import pytest
from prometheus_client import REGISTRY

from nav_common.monitoring import async_timed, observe_dropped_periods, observe_rolling_windows


def _sample(name: str, labels: dict) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_dropped_periods_counter_only_moves_on_drops():
    before = _sample("nav_dropped_periods_total", {"operation": "SIP"})
    observe_dropped_periods("SIP", 0)
    assert _sample("nav_dropped_periods_total", {"operation": "SIP"}) == before
    observe_dropped_periods("SIP", 3)
    assert _sample("nav_dropped_periods_total", {"operation": "SIP"}) == before + 3


def test_rolling_window_counters():
    labels = {"window": "365D"}
    evaluated = _sample("rolling_windows_evaluated_total", labels)
    discarded = _sample("rolling_windows_discarded_total", labels)

    observe_rolling_windows("365D", 366, 13)

    assert _sample("rolling_windows_evaluated_total", labels) == evaluated + 366
    assert _sample("rolling_windows_discarded_total", labels) == discarded + 13


@pytest.mark.asyncio
async def test_async_timed_records_duration_even_on_error():
    labels = {"operation": "unit_test_op"}
    before = _sample("analytics_operation_duration_seconds_count", labels)

    @async_timed(operation="unit_test_op")
    async def failing():
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await failing()

    assert _sample("analytics_operation_duration_seconds_count", labels) == before + 1
