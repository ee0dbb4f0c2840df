import numpy as np
import pandas as pd
import pytest

from caprisk.core.aggregation import (
    aggregate, distribution_table, path_percentiles, probability_below, risk_metrics, summary_statistics,
)
from caprisk.core.inputs import SimulationInputs


def test_distribution_buckets_and_probabilities():
    table = distribution_table([0.1001, 0.1004, 0.1016, np.nan], bucket_width=0.001)
    assert table["bucket"].tolist() == [0.1, 0.102]
    assert table["count"].tolist() == [2, 1]
    assert table["probability"].sum() == pytest.approx(1.0)
    assert table["probability"].tolist() == pytest.approx([2 / 3, 1 / 3])


def test_distribution_of_nothing_is_empty():
    table = distribution_table([np.nan, np.inf], bucket_width=0.01)
    assert table.empty
    assert list(table.columns) == ["bucket", "count", "probability"]


def test_distribution_rejects_bad_width():
    with pytest.raises(ValueError):
        distribution_table([0.1], bucket_width=0.0)


def test_summary_statistics_counts_exclusions():
    stats = summary_statistics([1.0, 2.0, 3.0, 4.0, 5.0, np.nan])
    assert stats["count"] == 5
    assert stats["excluded"] == 1
    assert stats["mean"] == pytest.approx(3.0)
    assert stats["p50"] == pytest.approx(3.0)
    assert stats["min"] == 1.0 and stats["max"] == 5.0
    assert stats["p05"] == pytest.approx(1.2)
    assert stats["p95"] == pytest.approx(4.8)


def test_summary_statistics_without_data_is_nan():
    stats = summary_statistics([np.nan])
    assert stats["count"] == 0
    assert np.isnan(stats["mean"]) and np.isnan(stats["p95"])


def test_fractional_quantiles_get_distinct_keys():
    values = np.arange(1.0, 201.0)
    stats = summary_statistics(values, quantiles=(0.02, 0.025, 0.975))
    assert stats["p02"] == pytest.approx(np.quantile(values, 0.02))
    assert stats["p2.5"] == pytest.approx(np.quantile(values, 0.025))
    assert stats["p97.5"] == pytest.approx(np.quantile(values, 0.975))
    assert stats["p02"] != stats["p2.5"]


def test_aggregation_is_order_independent():
    values = np.random.default_rng(5).normal(0.06, 0.03, 5_000)
    values[::97] = np.nan
    shuffled = np.random.default_rng(6).permutation(values)
    pd.testing.assert_frame_equal(distribution_table(values, 0.001), distribution_table(shuffled, 0.001))
    assert summary_statistics(values) == summary_statistics(shuffled)
    assert risk_metrics(values, 0.04, 0.08) == risk_metrics(shuffled, 0.04, 0.08)


def test_probability_below_threshold():
    values = [-0.02, -0.01, 0.0, 0.03, np.nan]
    assert probability_below(values, 0.0) == pytest.approx(0.5)
    assert np.isnan(probability_below([np.nan], 0.0))


def test_risk_metrics_values():
    irrs = np.array([-0.05, -0.03, -0.01, 0.01, 0.03, 0.05, 0.07, 0.09, 0.11, 0.13])
    metrics = risk_metrics(irrs, risk_free_rate=0.02, hurdle_rate=0.08)
    assert metrics["Prob. Loss (IRR < 0%)"] == pytest.approx(0.3)
    assert metrics["Prob. Below Hurdle"] == pytest.approx(0.7)
    assert metrics["Value at Risk (VaR 95%)"] == pytest.approx(np.quantile(irrs, 0.05))
    assert metrics["Cond. VaR (CVaR 95%)"] <= metrics["Value at Risk (VaR 95%)"]
    assert metrics["Sharpe Ratio"] == pytest.approx((0.04 - 0.02) / np.std(irrs))


def test_risk_metrics_without_irrs_are_nan():
    metrics = risk_metrics([np.nan, np.nan], 0.04, 0.08)
    assert all(np.isnan(v) for v in metrics.values())


def test_path_percentiles_skip_broken_paths():
    paths = np.array([
        [1.0, 2.0, 3.0],
        [3.0, 4.0, 5.0],
        [np.nan, 100.0, 100.0],
    ])
    fan = path_percentiles(paths, percentiles=(50.0,))
    assert fan.index.tolist() == [1, 2, 3]
    assert fan["mean"].tolist() == pytest.approx([2.0, 3.0, 4.0])
    assert fan["p50"].tolist() == pytest.approx([2.0, 3.0, 4.0])


def test_path_percentiles_keep_fractional_columns():
    paths = np.arange(1.0, 41.0).reshape(20, 2)
    fan = path_percentiles(paths, percentiles=(2, 2.5, 50))
    assert fan.columns.tolist() == ["mean", "p02", "p2.5", "p50"]
    assert fan["p2.5"].tolist() == pytest.approx(np.percentile(paths, 2.5, axis=0).tolist())


def test_aggregate_bundles_every_metric():
    trials = pd.DataFrame({
        "irr": [0.05, 0.07, np.nan],
        "roi": [0.4, 0.6, -1.0],
        "sale_price": [30e6, 32e6, np.inf],
        "terminal_noi": [1.3e6, 1.4e6, 1.35e6],
        "irr_failed": [False, False, True],
    })
    noi = np.array([[1.2e6, 1.3e6], [1.25e6, 1.4e6], [1.1e6, 1.35e6]])
    result = aggregate(trials, SimulationInputs(), noi=noi)
    assert set(result["metrics"]) == {"irr", "roi", "sale_price", "noi"}
    assert result["metrics"]["irr"]["excluded"] == 1
    assert result["excluded_trials"] == 1
    assert result["distributions"]["sale_price"]["count"].sum() == 2
    assert result["noi_fan"].shape[0] == 2
    assert "Sharpe Ratio" in result["risk_metrics"]
