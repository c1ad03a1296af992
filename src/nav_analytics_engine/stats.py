# src/nav_analytics_engine/stats.py
from typing import Sequence

import numpy as np

from .models import DistributionStats


def aggregate(samples: Sequence[float]) -> DistributionStats:
    """
    Summarizes a set of returns (rolling-window annualized returns or XIRRs).

    std_dev is the population standard deviation (n denominator): it describes
    the dispersion of the rolling-return population itself, unlike the per-fund
    volatility which estimates an unknown true volatility with n-1.
    An empty input returns all-zero stats; telling "no data" apart from
    "zero dispersion" is the caller's job.
    """
    values = np.asarray(list(samples), dtype=float)
    if values.size == 0:
        return DistributionStats()

    return DistributionStats(
        mean=float(values.mean()),
        median=float(np.median(values)),
        min=float(values.min()),
        max=float(values.max()),
        std_dev=float(values.std(ddof=0)),
        positive_percentage=float((values > 0).sum() / values.size * 100),
    )
