# caprisk/core/inputs.py
"""
Define the input data structures for a simulation run:
- AssumptionPeriod / AssumptionSeries: per-year (mean, std dev) forecasts for one stochastic assumption.
- SimulationInputs: the scalar run parameters, with validation and dict conversion.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Any, Iterable, Optional, Sequence, Tuple, Union
import numpy as np
import pandas as pd
import logging

from .constants import (
    DEFAULT_PURCHASE_PRICE, DEFAULT_CURRENT_NOI, DEFAULT_HOLD_PERIOD,
    DEFAULT_NUM_SIMULATIONS, DEFAULT_CHUNK_SIZE, DEFAULT_N_JOBS,
    DEFAULT_RISK_FREE_RATE, DEFAULT_HURDLE_RATE, DEFAULT_IRR_BUCKET_WIDTH,
    DEFAULT_ROI_BUCKET_WIDTH, DEFAULT_SALE_PRICE_BUCKET_WIDTH, DEFAULT_NOI_BUCKET_WIDTH,
)
from .exceptions import InvalidAssumption, InvalidParameter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssumptionPeriod:
    """One holding year's forecast for one assumption: Normal(mean, std_dev)."""
    period: int
    mean: float
    std_dev: float

    def __post_init__(self):
        try:
            mean, std_dev = float(self.mean), float(self.std_dev)
            valid_period = int(self.period) == self.period and self.period >= 1
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidAssumption(
                f"Period {self.period!r}: period, mean and std dev must be numeric ({e})."
            ) from e
        if not valid_period:
            raise InvalidAssumption(f"Period index must be a positive integer, got {self.period!r}.")
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "std_dev", std_dev)
        if not np.isfinite(self.mean):
            raise InvalidAssumption(f"Period {self.period}: mean must be finite, got {self.mean!r}.")
        if not np.isfinite(self.std_dev):
            raise InvalidAssumption(f"Period {self.period}: std dev must be finite, got {self.std_dev!r}.")
        if self.std_dev < 0:
            raise InvalidAssumption(
                f"Period {self.period}: std dev must be non-negative, got {self.std_dev!r}. "
                "Correct negative values before passing forecasts to the engine."
            )


@dataclass(frozen=True)
class AssumptionSeries:
    """
    Ordered, immutable sequence of AssumptionPeriods indexed by holding year (1..N).

    Periods are looked up by their year index, never by row position, so a series
    built from monthly or quarterly forecasts behaves the same as an annual one.
    """
    name: str
    periods: Tuple[AssumptionPeriod, ...] = field(default_factory=tuple)

    def __post_init__(self):
        periods = tuple(self.periods)
        object.__setattr__(self, "periods", periods)
        if not periods:
            raise InvalidAssumption(f"Assumption series '{self.name}' is empty.")
        expected = list(range(1, len(periods) + 1))
        actual = [p.period for p in periods]
        if actual != expected:
            raise InvalidAssumption(
                f"Assumption series '{self.name}' must be indexed 1..{len(periods)} in order, got {actual}."
            )

    @classmethod
    def from_pairs(cls, name: str, pairs: Iterable[Sequence[float]]) -> "AssumptionSeries":
        """Builds a series from (mean, std_dev) pairs, numbering periods from 1."""
        periods = tuple(
            AssumptionPeriod(period=i, mean=float(mean), std_dev=float(sd))
            for i, (mean, sd) in enumerate(pairs, start=1)
        )
        return cls(name=name, periods=periods)

    @property
    def horizon(self) -> int:
        return len(self.periods)

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self):
        return iter(self.periods)

    def at(self, period: int) -> AssumptionPeriod:
        """Returns the forecast for holding year `period`."""
        if 1 <= period <= len(self.periods):
            return self.periods[period - 1]
        raise InvalidAssumption(
            f"Assumption series '{self.name}' has no period {period} (covers 1..{len(self.periods)})."
        )

    def require_horizon(self, hold_period: int) -> None:
        if len(self.periods) < hold_period:
            raise InvalidAssumption(
                f"Assumption series '{self.name}' covers {len(self.periods)} periods "
                f"but the holding period is {hold_period} years."
            )

    def truncate(self, hold_period: int) -> "AssumptionSeries":
        self.require_horizon(hold_period)
        return AssumptionSeries(name=self.name, periods=self.periods[:hold_period])

    def means(self) -> np.ndarray:
        return np.array([p.mean for p in self.periods], dtype=float)

    def std_devs(self) -> np.ndarray:
        return np.array([p.std_dev for p in self.periods], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {"mean": self.means(), "std_dev": self.std_devs()},
            index=pd.Index([p.period for p in self.periods], name="period"),
        )


def resolve_terminal_assumption(
    exit_cap: Union[AssumptionPeriod, AssumptionSeries], hold_period: int
) -> AssumptionPeriod:
    """
    Selects the exit cap forecast for the sale year.

    A bare AssumptionPeriod is taken as the terminal forecast; a series is looked
    up at `hold_period`.
    """
    if isinstance(exit_cap, AssumptionPeriod):
        return exit_cap
    if isinstance(exit_cap, AssumptionSeries):
        exit_cap.require_horizon(hold_period)
        return exit_cap.at(hold_period)
    raise InvalidAssumption(
        f"Exit cap assumption must be an AssumptionPeriod or AssumptionSeries, got {type(exit_cap).__name__}."
    )


@dataclass
class SimulationInputs:
    """Holds all scalar parameters for one simulation run."""
    # --- Property & Setup ---
    purchase_price: float = DEFAULT_PURCHASE_PRICE # Acquisition Price ($)
    current_noi: float = DEFAULT_CURRENT_NOI # Current Annual NOI ($)
    hold_period: int = DEFAULT_HOLD_PERIOD # Holding Period (Years)
    num_simulations: int = DEFAULT_NUM_SIMULATIONS # Number of Trials

    # --- Reproducibility & Execution ---
    random_seed: Optional[int] = None # Master Seed (None = non-reproducible)
    n_jobs: int = DEFAULT_N_JOBS # joblib workers (-1 = all cores)
    chunk_size: int = DEFAULT_CHUNK_SIZE # Trials per worker task

    # --- Risk Metrics ---
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE # Risk-Free Rate (%/Yr) for Sharpe Ratio
    hurdle_rate: float = DEFAULT_HURDLE_RATE # Hurdle Rate (% IRR) for Prob. Below Hurdle

    # --- Distribution Buckets ---
    irr_bucket_width: float = DEFAULT_IRR_BUCKET_WIDTH
    roi_bucket_width: float = DEFAULT_ROI_BUCKET_WIDTH
    sale_price_bucket_width: float = DEFAULT_SALE_PRICE_BUCKET_WIDTH
    noi_bucket_width: float = DEFAULT_NOI_BUCKET_WIDTH

    # --- Calculated Properties ---
    @property
    def entry_cap_rate(self) -> float:
        """Going-in cap rate implied by current NOI and purchase price."""
        return self.current_noi / self.purchase_price if self.purchase_price > 0 else np.nan

    def validate(self) -> None:
        """Raises InvalidParameter naming the first unusable field."""
        for name in ("purchase_price", "current_noi"):
            value = getattr(self, name)
            if (
                isinstance(value, bool) or not isinstance(value, (int, float, np.number))
                or not np.isfinite(value) or value <= 0
            ):
                raise InvalidParameter(f"{name} must be a positive finite number, got {value!r}.")
        for name in ("hold_period", "num_simulations", "chunk_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise InvalidParameter(f"{name} must be a positive integer, got {value!r}.")
        if self.random_seed is not None and (
            isinstance(self.random_seed, bool) or not isinstance(self.random_seed, (int, np.integer)) or self.random_seed < 0
        ):
            raise InvalidParameter(f"random_seed must be a non-negative integer or None, got {self.random_seed!r}.")
        if isinstance(self.n_jobs, bool) or not isinstance(self.n_jobs, (int, np.integer)) or self.n_jobs == 0:
            raise InvalidParameter(f"n_jobs must be a non-zero integer, got {self.n_jobs!r}.")
        for name in ("irr_bucket_width", "roi_bucket_width", "sale_price_bucket_width", "noi_bucket_width"):
            value = getattr(self, name)
            if not np.isfinite(value) or value <= 0:
                raise InvalidParameter(f"{name} must be positive, got {value!r}.")
        for name in ("risk_free_rate", "hurdle_rate"):
            if not np.isfinite(getattr(self, name)):
                raise InvalidParameter(f"{name} must be finite, got {getattr(self, name)!r}.")

    def to_dict(self) -> Dict[str, Any]:
        """Converts the dataclass instance to a dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationInputs":
        """Builds inputs from a dictionary, ignoring keys that are not input fields."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown simulation input keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known})
