# caprisk/data/assumption_tables.py
"""
Functions for turning a forecasting step's output into AssumptionSeries.

A forecast arrives as a DataFrame with one row per forecast step (monthly,
quarterly or annual) holding a point forecast and either a standard deviation
or a confidence bound. Rows are labelled with the holding year they fall in and
the last step of each complete year is kept, so the engine always looks
forecasts up by year rather than by row offset.
"""

import numpy as np
import pandas as pd
import logging
from typing import Optional

from caprisk.core.inputs import AssumptionPeriod, AssumptionSeries
from caprisk.core.exceptions import InvalidAssumption
from caprisk.core.constants import (
    DEFAULT_CI_Z_SCORE, CALIBRATION_SHIFT_MEAN, CALIBRATION_SHIFT_SD, PERCENT_SCALE,
)

logger = logging.getLogger(__name__)


def _std_dev_column(
    forecast: pd.DataFrame,
    mean_col: str,
    sd_col: Optional[str],
    upper_col: Optional[str],
    lower_col: Optional[str],
    z_score: float,
) -> pd.Series:
    if sd_col is not None:
        return pd.to_numeric(forecast[sd_col], errors="coerce")
    if z_score <= 0:
        raise InvalidAssumption(f"z_score must be positive, got {z_score}.")
    if upper_col is not None:
        # SD = (Upper Bound - Point Forecast) / z
        return (pd.to_numeric(forecast[upper_col], errors="coerce") - forecast[mean_col]) / z_score
    if lower_col is not None:
        return (forecast[mean_col] - pd.to_numeric(forecast[lower_col], errors="coerce")) / z_score
    raise InvalidAssumption("One of sd_col, upper_col or lower_col is required to derive a standard deviation.")


def series_from_forecast(
    forecast: pd.DataFrame,
    name: str,
    periods_per_year: int = 1,
    mean_col: str = "mean",
    sd_col: Optional[str] = None,
    upper_col: Optional[str] = None,
    lower_col: Optional[str] = None,
    z_score: float = DEFAULT_CI_Z_SCORE,
    percent: bool = False,
) -> AssumptionSeries:
    """
    Builds an annual AssumptionSeries from a forecast table.

    Args:
        forecast: Rows ordered by forecast step; step 1 is the first period after purchase.
        name: Label for the series (used in error messages).
        periods_per_year: 12 for monthly, 4 for quarterly, 1 for annual forecasts.
        mean_col: Column with the point forecast.
        sd_col: Column with the standard deviation, if the forecaster reports it directly.
        upper_col / lower_col: Confidence bound columns used when sd_col is absent.
        z_score: z-score of the confidence bound (1.96 for a 95% interval).
        percent: True if values are in percent (5.0) rather than decimals (0.05).

    Returns:
        AssumptionSeries with one period per complete holding year.

    Raises:
        InvalidAssumption: Missing columns, no usable rows, or fewer rows than one year.
    """
    if not isinstance(periods_per_year, int) or periods_per_year < 1:
        raise InvalidAssumption(f"periods_per_year must be a positive integer, got {periods_per_year!r}.")
    if forecast is None or forecast.empty:
        raise InvalidAssumption(f"Forecast for '{name}' is empty.")

    # --- Validation ---
    required_columns = [c for c in (mean_col, sd_col, upper_col, lower_col) if c is not None]
    missing_cols = [col for col in required_columns if col not in forecast.columns]
    if missing_cols:
        raise InvalidAssumption(f"Forecast for '{name}' is missing columns: {', '.join(missing_cols)}")

    # --- Data Cleaning & Type Conversion ---
    forecast = forecast.reset_index(drop=True)
    forecast = forecast.assign(**{mean_col: pd.to_numeric(forecast[mean_col], errors="coerce")})
    frame = pd.DataFrame({
        "mean": forecast[mean_col],
        "std_dev": _std_dev_column(forecast, mean_col, sd_col, upper_col, lower_col, z_score),
    })
    if frame.isnull().any().any():
        raise InvalidAssumption(
            f"Forecast for '{name}' has non-numeric values at steps {frame.index[frame.isnull().any(axis=1)].tolist()}."
        )

    # Confidence-interval arithmetic can produce negative spreads; the engine requires SD >= 0.
    negative = frame["std_dev"] < 0
    if negative.any():
        logger.warning(
            f"Forecast '{name}': {int(negative.sum())} negative standard deviations corrected to 0 "
            f"(steps {frame.index[negative].tolist()})."
        )
        frame.loc[negative, "std_dev"] = 0.0

    if percent:
        frame[["mean", "std_dev"]] = frame[["mean", "std_dev"]] / PERCENT_SCALE

    # --- Align Steps to Holding Years ---
    frame["year"] = frame.index // periods_per_year + 1
    complete_years = len(frame) // periods_per_year
    if complete_years == 0:
        raise InvalidAssumption(
            f"Forecast for '{name}' has {len(frame)} steps, fewer than one year at {periods_per_year} per year."
        )
    if len(frame) % periods_per_year:
        logger.info(f"Forecast '{name}': dropping {len(frame) % periods_per_year} steps of an incomplete final year.")
    annual = frame[frame["year"] <= complete_years].groupby("year").tail(1)

    periods = tuple(
        AssumptionPeriod(period=int(row.year), mean=float(row.mean), std_dev=float(row.std_dev))
        for row in annual.itertuples(index=False)
    )
    logger.info(f"Built assumption series '{name}' with {len(periods)} annual periods from {len(frame)} forecast steps.")
    return AssumptionSeries(name=name, periods=periods)


def terminal_assumption(forecast: pd.DataFrame, hold_period: int, name: str = "exit_cap", **kwargs) -> AssumptionPeriod:
    """The year-`hold_period` forecast of a series, e.g. the exit cap rate at sale."""
    return series_from_forecast(forecast, name=name, **kwargs).at(hold_period)


def apply_growth_calibration(
    series: AssumptionSeries,
    rng: np.random.Generator,
    shift_mean: float = CALIBRATION_SHIFT_MEAN,
    shift_sd: float = CALIBRATION_SHIFT_SD,
    scale: float = PERCENT_SCALE,
) -> AssumptionSeries:
    """
    Opt-in demonstration knob: shifts each period's mean by a Normal(shift_mean, shift_sd)
    draw expressed in percentage points (divided by `scale`).

    This does not model any market behaviour. It exists to widen an otherwise
    flat example forecast and is never applied by the engine itself.
    """
    shifts = rng.normal(loc=shift_mean, scale=shift_sd, size=len(series)) / scale
    logger.warning(
        f"Applying demonstration calibration shift to '{series.name}': "
        f"Normal({shift_mean}, {shift_sd}) / {scale} per period."
    )
    periods = tuple(
        AssumptionPeriod(period=p.period, mean=p.mean + float(shift), std_dev=p.std_dev)
        for p, shift in zip(series, shifts)
    )
    return AssumptionSeries(name=f"{series.name} (calibrated)", periods=periods)
