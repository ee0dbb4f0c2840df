# caprisk/core/cash_flows.py
"""
Cash flow assembly for blocks of trials.

For every trial the unlevered cash-flow vector over an N-year hold is
    [-PurchasePrice, NOI_1, ..., NOI_{N-1}, NOI_N + SalePrice]
where NOI_t = NOI_0 * (1 + g_t) with g_t the sampled cumulative rent growth for
year t, and SalePrice = NOI_N / exit cap. Trials never share state, so a block
is computed with array operations and blocks can run on separate workers.
"""

from dataclasses import dataclass, field
import numpy as np
import pandas as pd
import logging
from typing import List, Union

from .inputs import AssumptionPeriod, AssumptionSeries, SimulationInputs, resolve_terminal_assumption
from .sampler import sample_exit_cap, sample_rent_growth
from .irr import solve_irrs

logger = logging.getLogger(__name__)


@dataclass
class Trial:
    """One simulated future, as exposed to reporting code."""
    index: int
    exit_cap: float
    terminal_rent_growth: float
    noi_path: List[float]
    sale_price: float
    roi: float
    irr: float = np.nan
    irr_failed: bool = True


@dataclass
class TrialBatch:
    """
    A contiguous block of trials in array form (one row per trial).

    `cash_flows` has shape (size, N+1); `noi` has shape (size, N) and holds the
    operating income only, without sale proceeds.
    """
    first_index: int
    rent_growth: np.ndarray
    exit_caps: np.ndarray
    noi: np.ndarray
    sale_prices: np.ndarray
    cash_flows: np.ndarray
    roi: np.ndarray
    irr: np.ndarray = field(default=None)
    irr_failed: np.ndarray = field(default=None)

    def __post_init__(self):
        size = len(self.exit_caps)
        if self.irr is None:
            self.irr = np.full(size, np.nan)
        if self.irr_failed is None:
            self.irr_failed = np.ones(size, dtype=bool)

    def __len__(self) -> int:
        return len(self.exit_caps)

    @property
    def indices(self) -> np.ndarray:
        return np.arange(self.first_index, self.first_index + len(self))

    def solve(self) -> "TrialBatch":
        """Fills in the per-trial IRR and failure mask."""
        self.irr, self.irr_failed = solve_irrs(self.cash_flows)
        return self

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "trial": self.indices,
            "exit_cap": self.exit_caps,
            "terminal_rent_growth": self.rent_growth[:, -1],
            "noi_path": [row.tolist() for row in self.cash_flows],
            "terminal_noi": self.noi[:, -1],
            "sale_price": self.sale_prices,
            "roi": self.roi,
            "irr": self.irr,
            "irr_failed": self.irr_failed,
        })

    def to_trials(self) -> List[Trial]:
        return [
            Trial(
                index=int(idx),
                exit_cap=float(self.exit_caps[i]),
                terminal_rent_growth=float(self.rent_growth[i, -1]),
                noi_path=self.cash_flows[i].tolist(),
                sale_price=float(self.sale_prices[i]),
                roi=float(self.roi[i]),
                irr=float(self.irr[i]),
                irr_failed=bool(self.irr_failed[i]),
            )
            for i, idx in enumerate(self.indices)
        ]


def noi_paths(current_noi: float, rent_growth: np.ndarray) -> np.ndarray:
    """NOI_t = NOI_0 + NOI_0 * g_t, with g_t cumulative growth since purchase."""
    growth = np.asarray(rent_growth, dtype=float)
    return current_noi + current_noi * growth


def sale_prices(terminal_noi: np.ndarray, exit_caps: np.ndarray) -> np.ndarray:
    """
    Capitalises terminal NOI at the sampled exit cap rate.

    A zero cap rate produces an infinite (or NaN for zero NOI) price rather than
    an error; the IRR solver excludes those trials.
    """
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        prices = np.asarray(terminal_noi, dtype=float) / np.asarray(exit_caps, dtype=float)
    non_finite = int(np.count_nonzero(~np.isfinite(prices)))
    if non_finite:
        logger.warning(f"{non_finite} trials produced a non-finite sale price (exit cap at or near zero).")
    return prices


def assemble_cash_flows(purchase_price: float, noi: np.ndarray, sale_price: np.ndarray) -> np.ndarray:
    """Builds the (trials x (N+1)) matrix [-P, NOI_1, ..., NOI_N + SalePrice]."""
    noi = np.atleast_2d(np.asarray(noi, dtype=float))
    size, hold_period = noi.shape
    cash_flows = np.empty((size, hold_period + 1), dtype=float)
    cash_flows[:, 0] = -purchase_price
    cash_flows[:, 1:] = noi
    with np.errstate(over="ignore", invalid="ignore"):
        cash_flows[:, -1] += np.asarray(sale_price, dtype=float)
    return cash_flows


def simple_roi(purchase_price: float, cash_flows: np.ndarray) -> np.ndarray:
    """Undiscounted gain over the hold: (total inflows - price) / price."""
    with np.errstate(over="ignore", invalid="ignore"):
        return np.atleast_2d(cash_flows).sum(axis=1) / purchase_price


def build_trial_batch(
    inputs: SimulationInputs,
    rent_growth: AssumptionSeries,
    exit_cap: Union[AssumptionPeriod, AssumptionSeries],
    first_index: int,
    size: int,
    rng: np.random.Generator,
    solve: bool = True,
) -> TrialBatch:
    """
    Samples and assembles `size` trials starting at trial number `first_index`.

    Draw order on `rng` is fixed (rent growth years 1..N, then exit cap), so a
    block is reproducible from its generator alone.
    """
    hold_period = inputs.hold_period
    terminal = resolve_terminal_assumption(exit_cap, hold_period)
    growth = sample_rent_growth(rent_growth, hold_period, size, rng)
    caps = sample_exit_cap(terminal, size, rng)

    noi = noi_paths(inputs.current_noi, growth)
    prices = sale_prices(noi[:, -1], caps)
    cash_flows = assemble_cash_flows(inputs.purchase_price, noi, prices)
    batch = TrialBatch(
        first_index=first_index,
        rent_growth=growth,
        exit_caps=caps,
        noi=noi,
        sale_prices=prices,
        cash_flows=cash_flows,
        roi=simple_roi(inputs.purchase_price, cash_flows),
    )
    logger.debug(f"Assembled trials {first_index}..{first_index + size - 1} ({hold_period}-year hold).")
    return batch.solve() if solve else batch
