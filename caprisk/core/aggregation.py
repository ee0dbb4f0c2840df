# caprisk/core/aggregation.py
"""
Reduces per-trial outcomes into distributions and summary statistics:
- distribution_table: bucketed counts/probabilities for one metric.
- summary_statistics: mean, std dev and quantiles over finite values.
- probability_below: P(X < threshold) queries such as probability of loss.
- risk_metrics: IRR risk figures (Sharpe, VaR, CVaR, probability below hurdle).
- path_percentiles: per-year percentile fan for annual paths such as NOI.
- aggregate: bundles the above for IRR, ROI, sale price and terminal NOI.

Every reduction sorts the finite values first, so results do not depend on the
order in which trials finished.
"""

import numpy as np
import pandas as pd
import logging
from typing import Dict, Any, Sequence

from .constants import DEFAULT_QUANTILES, DEFAULT_PATH_PERCENTILES, FLOAT_ATOL
from .inputs import SimulationInputs
from .utils import finite_values, get_valid_paths

logger = logging.getLogger(__name__)

METRIC_COLUMNS: Dict[str, str] = {
    "irr": "irr",
    "roi": "roi",
    "sale_price": "sale_price",
    "noi": "terminal_noi",
}

RISK_METRIC_KEYS = [
    "Std Dev IRR", "Sharpe Ratio", "Coefficient of Variation", "Prob. Loss (IRR < 0%)",
    "Prob. Below Hurdle", "Value at Risk (VaR 95%)", "Cond. VaR (CVaR 95%)",
]


def _percentile_key(p: float) -> str:
    """p05, p50, p95 for whole percentiles; p2.5 style keys keep any fraction."""
    p = round(float(p), 6)
    if p.is_integer():
        return f"p{int(p):02d}"
    return f"p{p:g}"


def _quantile_key(q: float) -> str:
    return _percentile_key(q * 100)


def distribution_table(values: Sequence[float], bucket_width: float) -> pd.DataFrame:
    """
    Buckets finite values to the nearest multiple of `bucket_width`.

    Args:
        values: Per-trial outcomes; NaN/inf entries (excluded trials) are ignored.
        bucket_width: Bucket size, e.g. 0.001 to round IRRs to 3 decimal places.

    Returns:
        DataFrame with columns bucket, count, probability, sorted by bucket.
    """
    if not np.isfinite(bucket_width) or bucket_width <= 0:
        raise ValueError(f"bucket_width must be positive, got {bucket_width!r}.")
    finite = finite_values(values)
    if finite.size == 0:
        logger.warning("No finite values to bucket.")
        return pd.DataFrame({"bucket": pd.Series(dtype=float), "count": pd.Series(dtype=int), "probability": pd.Series(dtype=float)})
    # rounding again removes representation noise like 0.10300000000000001
    decimals = max(0, int(np.ceil(-np.log10(bucket_width))) + 2)
    buckets = np.round(np.round(finite / bucket_width) * bucket_width, decimals)
    counts = pd.Series(buckets).value_counts().sort_index()
    table = pd.DataFrame({"bucket": counts.index.to_numpy(dtype=float), "count": counts.to_numpy(dtype=int)})
    table["probability"] = table["count"] / finite.size
    return table


def summary_statistics(values: Sequence[float], quantiles: Sequence[float] = DEFAULT_QUANTILES) -> Dict[str, float]:
    """Count, excluded count, mean, std dev, min, max and quantiles of the finite values."""
    arr = np.asarray(values, dtype=float).ravel()
    finite = finite_values(arr)
    stats: Dict[str, float] = {"count": int(finite.size), "excluded": int(arr.size - finite.size)}
    if finite.size:
        stats["mean"] = float(np.mean(finite))
        stats["std"] = float(np.std(finite))
        stats["min"] = float(finite[0])
        stats["max"] = float(finite[-1])
        for q in quantiles:
            stats[_quantile_key(q)] = float(np.quantile(finite, q))
    else:
        logger.warning("No finite data for summary statistics.")
        for key in ["mean", "std", "min", "max"] + [_quantile_key(q) for q in quantiles]:
            stats[key] = np.nan
    return stats


def probability_below(values: Sequence[float], threshold: float) -> float:
    """Share of finite values strictly below `threshold` (NaN when there are none)."""
    finite = finite_values(values)
    if finite.size == 0:
        return np.nan
    return float(np.count_nonzero(finite < threshold) / finite.size)


def risk_metrics(irrs: Sequence[float], risk_free_rate: float, hurdle_rate: float) -> Dict[str, float]:
    """IRR dispersion and downside figures; all NaN when no trial produced an IRR."""
    finite = finite_values(irrs)
    if finite.size == 0:
        logger.warning("No finite IRR data for risk metrics.")
        return {k: np.nan for k in RISK_METRIC_KEYS}
    mean_irr = float(np.mean(finite))
    std_irr = float(np.std(finite))
    p05_irr = float(np.quantile(finite, 0.05))
    tail = finite[finite <= p05_irr]
    return {
        "Std Dev IRR": std_irr,
        "Sharpe Ratio": (mean_irr - risk_free_rate) / std_irr if std_irr > FLOAT_ATOL else np.nan,
        "Coefficient of Variation": std_irr / abs(mean_irr) if abs(mean_irr) > FLOAT_ATOL else np.nan,
        "Prob. Loss (IRR < 0%)": float(np.mean(finite < 0.0)),
        "Prob. Below Hurdle": float(np.mean(finite < hurdle_rate)),
        "Value at Risk (VaR 95%)": p05_irr,
        "Cond. VaR (CVaR 95%)": float(np.mean(tail)) if tail.size else np.nan,
    }


def path_percentiles(paths: np.ndarray, percentiles: Sequence[float] = DEFAULT_PATH_PERCENTILES) -> pd.DataFrame:
    """
    Per-year percentile fan of annual paths (e.g. NOI), indexed by year 1..N.

    Rows containing non-finite values are skipped. Sorting each column first
    keeps the result independent of trial order.
    """
    arr = np.atleast_2d(np.asarray(paths, dtype=float))
    years = arr.shape[1]
    valid = np.sort(get_valid_paths(arr, years), axis=0)
    index = pd.Index(range(1, years + 1), name="year")
    if valid.shape[0] == 0:
        logger.warning("No valid paths found for percentile fan.")
        columns = ["mean"] + [_percentile_key(p) for p in percentiles]
        return pd.DataFrame(np.nan, index=index, columns=columns)
    fan = {"mean": valid.mean(axis=0)}
    for p in percentiles:
        fan[_percentile_key(p)] = np.percentile(valid, p, axis=0)
    return pd.DataFrame(fan, index=index)


def aggregate(trials: pd.DataFrame, inputs: SimulationInputs, noi: np.ndarray = None) -> Dict[str, Any]:
    """
    Builds the full set of aggregate outputs from a per-trial table.

    Args:
        trials: Per-trial table with irr, roi, sale_price and terminal_noi columns.
        inputs: Run parameters (bucket widths, risk-free and hurdle rates).
        noi: Optional (trials x N) matrix of operating NOI for the fan chart data.
    """
    widths = {
        "irr": inputs.irr_bucket_width,
        "roi": inputs.roi_bucket_width,
        "sale_price": inputs.sale_price_bucket_width,
        "noi": inputs.noi_bucket_width,
    }
    metrics: Dict[str, Dict[str, float]] = {}
    distributions: Dict[str, pd.DataFrame] = {}
    for metric, column in METRIC_COLUMNS.items():
        values = trials[column].to_numpy(dtype=float) if column in trials else np.array([])
        metrics[metric] = summary_statistics(values)
        distributions[metric] = distribution_table(values, widths[metric])

    irrs = trials["irr"].to_numpy(dtype=float) if "irr" in trials else np.array([])
    excluded = int(trials["irr_failed"].sum()) if "irr_failed" in trials else 0
    if excluded:
        logger.warning(f"{excluded}/{len(trials)} trials excluded from the IRR distribution (no root found).")
    result: Dict[str, Any] = {
        "metrics": metrics,
        "distributions": distributions,
        "risk_metrics": risk_metrics(irrs, inputs.risk_free_rate, inputs.hurdle_rate),
        "excluded_trials": excluded,
    }
    if noi is not None:
        result["noi_fan"] = path_percentiles(noi)
    return result
