import numpy as np
import pytest

from caprisk.core.exceptions import InvalidAssumption
from caprisk.core.inputs import AssumptionPeriod, AssumptionSeries
from caprisk.core.sampler import sample_exit_cap, sample_normal, sample_rent_growth


def test_zero_std_dev_returns_the_mean(rng):
    period = AssumptionPeriod(period=1, mean=0.053, std_dev=0.0)
    draws = sample_normal(period, 500, rng)
    assert draws.shape == (500,)
    assert np.all(draws == 0.053)


def test_draws_follow_the_requested_normal(rng):
    period = AssumptionPeriod(period=1, mean=0.05, std_dev=0.01)
    draws = sample_normal(period, 20_000, rng)
    assert draws.mean() == pytest.approx(0.05, abs=5e-4)
    assert draws.std() == pytest.approx(0.01, rel=0.05)


def test_exit_cap_reflects_negative_draws():
    period = AssumptionPeriod(period=10, mean=0.002, std_dev=0.01)
    raw = sample_normal(period, 1000, np.random.default_rng(3))
    caps = sample_exit_cap(period, 1000, np.random.default_rng(3))
    assert (raw < 0).any()
    assert np.all(caps >= 0)
    np.testing.assert_array_equal(caps, np.abs(raw))


def test_rent_growth_columns_follow_their_year():
    series = AssumptionSeries.from_pairs("rent_growth", [(0.01, 0.0), (0.03, 0.0), (-0.02, 0.0)])
    growth = sample_rent_growth(series, 3, 4, np.random.default_rng(0))
    assert growth.shape == (4, 3)
    np.testing.assert_array_equal(growth[:, 0], 0.01)
    np.testing.assert_array_equal(growth[:, 1], 0.03)
    np.testing.assert_array_equal(growth[:, 2], -0.02)


def test_rent_growth_keeps_deep_negative_draws():
    series = AssumptionSeries.from_pairs("rent_growth", [(-1.5, 0.0)])
    growth = sample_rent_growth(series, 1, 10, np.random.default_rng(0))
    assert np.all(growth == -1.5)


def test_rent_growth_uses_only_the_holding_period(rent_growth):
    growth = sample_rent_growth(rent_growth, 5, 8, np.random.default_rng(0))
    assert growth.shape == (8, 5)


def test_rent_growth_rejects_short_series(rent_growth):
    with pytest.raises(InvalidAssumption):
        sample_rent_growth(rent_growth, 12, 8, np.random.default_rng(0))


def test_same_seed_same_draws(rent_growth):
    first = sample_rent_growth(rent_growth, 10, 100, np.random.default_rng(99))
    second = sample_rent_growth(rent_growth, 10, 100, np.random.default_rng(99))
    np.testing.assert_array_equal(first, second)
