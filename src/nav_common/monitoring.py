# src/nav_common/monitoring.py
import functools
import time
from typing import Any, Callable

from prometheus_client import Counter, Histogram

ANALYTICS_OPERATION_DURATION_SECONDS = Histogram(
    "analytics_operation_duration_seconds",
    "Duration of NAV analytics operations in seconds",
    labelnames=("operation",),
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)

NAV_DROPPED_PERIODS_TOTAL = Counter(
    "nav_dropped_periods_total",
    "Planned periods dropped because no NAV existed on or after the planned date",
    labelnames=("operation",),
)

ROLLING_WINDOWS_EVALUATED_TOTAL = Counter(
    "rolling_windows_evaluated_total",
    "Rolling windows evaluated",
    labelnames=("window",),
)

ROLLING_WINDOWS_DISCARDED_TOTAL = Counter(
    "rolling_windows_discarded_total",
    "Rolling windows discarded because a fund lacked NAV data",
    labelnames=("window",),
)


def observe_dropped_periods(operation: str, count: int) -> None:
    if count > 0:
        NAV_DROPPED_PERIODS_TOTAL.labels(operation).inc(count)


def observe_rolling_windows(window: str, evaluated: int, discarded: int) -> None:
    ROLLING_WINDOWS_EVALUATED_TOTAL.labels(window).inc(evaluated)
    if discarded > 0:
        ROLLING_WINDOWS_DISCARDED_TOTAL.labels(window).inc(discarded)


def async_timed(operation: str) -> Callable:
    """
    A decorator that times an async function and records the latency in the
    ANALYTICS_OPERATION_DURATION_SECONDS histogram.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            start_time = time.monotonic()
            try:
                return await func(*args, **kwargs)
            finally:
                ANALYTICS_OPERATION_DURATION_SECONDS.labels(operation=operation).observe(
                    time.monotonic() - start_time
                )
        return wrapper
    return decorator
