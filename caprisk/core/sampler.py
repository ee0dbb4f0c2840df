# caprisk/core/sampler.py
"""
Draws the stochastic assumptions for a block of trials:
- sample_normal: independent Normal(mean, std_dev) variates for one period.
- sample_exit_cap: terminal exit cap rates, reflected to be non-negative.
- sample_rent_growth: a (trials x years) matrix of cumulative rent growth rates.

All functions take an explicit numpy Generator; they advance its state and do
nothing else.
"""

import numpy as np
import logging

from .inputs import AssumptionPeriod, AssumptionSeries

logger = logging.getLogger(__name__)


def sample_normal(period: AssumptionPeriod, size: int, rng: np.random.Generator) -> np.ndarray:
    """Returns `size` independent draws from Normal(period.mean, period.std_dev)."""
    return rng.normal(loc=period.mean, scale=period.std_dev, size=size)


def sample_exit_cap(period: AssumptionPeriod, size: int, rng: np.random.Generator) -> np.ndarray:
    """
    Draws terminal exit cap rates.

    A negative draw is reflected to its absolute value rather than rejected. This
    keeps every trial but thickens the left tail of the cap rate distribution
    when the mean is within a few standard deviations of zero.
    """
    draws = sample_normal(period, size, rng)
    negatives = int(np.count_nonzero(draws < 0))
    if negatives:
        logger.debug(f"Reflected {negatives}/{size} negative exit cap draws (mean={period.mean}, sd={period.std_dev}).")
    return np.abs(draws)


def sample_rent_growth(series: AssumptionSeries, hold_period: int, size: int, rng: np.random.Generator) -> np.ndarray:
    """
    Draws cumulative-since-purchase rent growth for years 1..hold_period.

    Column t-1 is drawn from the year-t forecast. Values are signed and never
    clamped: a deep negative draw is a legitimate weak-market outcome.
    """
    series.require_horizon(hold_period)
    growth = np.empty((size, hold_period), dtype=float)
    for year in range(1, hold_period + 1):
        growth[:, year - 1] = sample_normal(series.at(year), size, rng)
    return growth
