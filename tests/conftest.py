import numpy as np
import pytest

from caprisk.core.inputs import AssumptionPeriod, AssumptionSeries, SimulationInputs

PURCHASE_PRICE = 31_500_000.0
CURRENT_NOI = 1_200_000.0
HOLD_PERIOD = 10


@pytest.fixture
def reference_inputs() -> SimulationInputs:
    """Reference scenario, run in-process with small chunks."""
    return SimulationInputs(
        purchase_price=PURCHASE_PRICE,
        current_noi=CURRENT_NOI,
        hold_period=HOLD_PERIOD,
        num_simulations=200,
        random_seed=20240101,
        n_jobs=1,
        chunk_size=50,
    )


@pytest.fixture
def rent_growth() -> AssumptionSeries:
    """Cumulative growth of 2% a year with widening uncertainty."""
    return AssumptionSeries.from_pairs(
        "rent_growth",
        [(0.02 * year, 0.01 * np.sqrt(year)) for year in range(1, HOLD_PERIOD + 1)],
    )


@pytest.fixture
def flat_rent_growth() -> AssumptionSeries:
    return AssumptionSeries.from_pairs("rent_growth", [(0.0, 0.0)] * HOLD_PERIOD)


@pytest.fixture
def exit_cap() -> AssumptionPeriod:
    return AssumptionPeriod(period=HOLD_PERIOD, mean=0.05, std_dev=0.005)


@pytest.fixture
def entry_exit_cap() -> AssumptionPeriod:
    """Exit at the going-in cap rate, with no uncertainty."""
    return AssumptionPeriod(period=HOLD_PERIOD, mean=CURRENT_NOI / PURCHASE_PRICE, std_dev=0.0)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(7)
