# caprisk/core/simulation.py
"""
Contains the simulation orchestration:
- run_monte_carlo: validates inputs, fans chunks of trials out to joblib workers,
  and aggregates whatever completed into a SimulationResult.
- run_chunk: samples, assembles and solves one chunk of trials.

Each chunk owns a random stream spawned from the master seed, so a run is
bit-identical for the same seed and chunk size whatever the number of workers.
"""

from dataclasses import dataclass, field
import numpy as np
import pandas as pd
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Union
from joblib import Parallel, delayed

from .inputs import AssumptionPeriod, AssumptionSeries, SimulationInputs, resolve_terminal_assumption
from .cash_flows import Trial, TrialBatch, build_trial_batch
from .aggregation import aggregate, probability_below, METRIC_COLUMNS
from .utils import spawn_generators

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class SimulationResult:
    """Per-trial table plus aggregate outputs of one run (or a cancelled snapshot)."""
    inputs: SimulationInputs
    trials: pd.DataFrame
    cash_flows: np.ndarray
    noi: np.ndarray
    metrics: Dict[str, Dict[str, float]] = field(default_factory=dict)
    distributions: Dict[str, pd.DataFrame] = field(default_factory=dict)
    risk_metrics: Dict[str, float] = field(default_factory=dict)
    noi_fan: Optional[pd.DataFrame] = None
    excluded_trials: int = 0
    num_simulations_requested: int = 0
    cancelled: bool = False
    seed_entropy: Optional[int] = None
    elapsed_seconds: float = 0.0

    @property
    def num_simulations_completed(self) -> int:
        return len(self.trials)

    @property
    def irrs(self) -> np.ndarray:
        return self.trials["irr"].to_numpy(dtype=float)

    def probability_below(self, metric: str, threshold: float) -> float:
        """
        P(metric < threshold) over trials with a finite value, e.g.
        probability_below("roi", 0.0) or probability_below("irr", cost_of_debt).
        """
        if metric not in METRIC_COLUMNS:
            raise KeyError(f"Unknown metric '{metric}'. Choose from {sorted(METRIC_COLUMNS)}.")
        return probability_below(self.trials[METRIC_COLUMNS[metric]].to_numpy(dtype=float), threshold)

    def to_trials(self) -> List[Trial]:
        return [
            Trial(
                index=int(row.trial),
                exit_cap=float(row.exit_cap),
                terminal_rent_growth=float(row.terminal_rent_growth),
                noi_path=list(row.noi_path),
                sale_price=float(row.sale_price),
                roi=float(row.roi),
                irr=float(row.irr),
                irr_failed=bool(row.irr_failed),
            )
            for row in self.trials.itertuples(index=False)
        ]


def _chunk_sizes(num_simulations: int, chunk_size: int) -> List[int]:
    full, remainder = divmod(num_simulations, chunk_size)
    return [chunk_size] * full + ([remainder] if remainder else [])


def run_chunk(
    chunk_index: int,
    first_index: int,
    size: int,
    inputs: SimulationInputs,
    rent_growth: AssumptionSeries,
    exit_cap: AssumptionPeriod,
    rng: np.random.Generator,
) -> TrialBatch:
    """Runs one chunk of trials end to end on its own generator."""
    start = time.time()
    batch = build_trial_batch(inputs, rent_growth, exit_cap, first_index, size, rng)
    logger.debug(
        f"Chunk #{chunk_index}: {size} trials, {int(batch.irr_failed.sum())} excluded, "
        f"{time.time() - start:.2f}s."
    )
    return batch


def collect_results(
    inputs: SimulationInputs,
    batches: List[TrialBatch],
    cancelled: bool = False,
    seed_entropy: Optional[int] = None,
    elapsed_seconds: float = 0.0,
) -> SimulationResult:
    """Concatenates completed chunks (in trial order) and aggregates them."""
    batches = sorted(batches, key=lambda b: b.first_index)
    trials = pd.concat([b.to_frame() for b in batches], ignore_index=True)
    cash_flows = np.vstack([b.cash_flows for b in batches])
    noi = np.vstack([b.noi for b in batches])
    summary = aggregate(trials, inputs, noi=noi)
    return SimulationResult(
        inputs=inputs,
        trials=trials,
        cash_flows=cash_flows,
        noi=noi,
        metrics=summary["metrics"],
        distributions=summary["distributions"],
        risk_metrics=summary["risk_metrics"],
        noi_fan=summary.get("noi_fan"),
        excluded_trials=summary["excluded_trials"],
        num_simulations_requested=inputs.num_simulations,
        cancelled=cancelled,
        seed_entropy=seed_entropy,
        elapsed_seconds=elapsed_seconds,
    )


def run_monte_carlo(
    inputs: SimulationInputs,
    rent_growth: AssumptionSeries,
    exit_cap: Union[AssumptionPeriod, AssumptionSeries],
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> SimulationResult:
    """
    Runs the full Monte Carlo batch.

    Args:
        inputs: Run parameters; validated before anything is sampled.
        rent_growth: Cumulative rent growth forecast for years 1..hold_period (at least).
        exit_cap: Terminal exit cap forecast, or a per-year series looked up at hold_period.
        cancel_event: When set, no further chunks are collected and the result is a
            snapshot of the chunks completed so far (cancelled=True).
        progress_callback: Called as progress_callback(completed_trials, total_trials)
            after each chunk.

    Raises:
        InvalidParameter: Bad run parameters.
        InvalidAssumption: Bad or too-short assumption series.
    """
    inputs.validate()
    rent_growth.require_horizon(inputs.hold_period)
    terminal_exit_cap = resolve_terminal_assumption(exit_cap, inputs.hold_period)

    start_time = time.time()
    sizes = _chunk_sizes(inputs.num_simulations, inputs.chunk_size)
    seed_sequence = np.random.SeedSequence(inputs.random_seed)
    generators = spawn_generators(seed_sequence.entropy, len(sizes))
    first_indices = np.concatenate([[0], np.cumsum(sizes)[:-1]]).astype(int)
    logger.info(
        f"Starting Monte Carlo: {inputs.num_simulations} sims in {len(sizes)} chunks, "
        f"Hold: {inputs.hold_period} yrs, n_jobs={inputs.n_jobs}, seed entropy={seed_sequence.entropy}."
    )

    batches: List[TrialBatch] = []
    completed = 0
    cancelled = False
    parallel = Parallel(n_jobs=inputs.n_jobs, backend="loky", return_as="generator")
    results = parallel(
        delayed(run_chunk)(i, int(first_indices[i]), size, inputs, rent_growth, terminal_exit_cap, generators[i])
        for i, size in enumerate(sizes)
    )
    try:
        for batch in results:
            batches.append(batch)
            completed += len(batch)
            if progress_callback is not None:
                progress_callback(completed, inputs.num_simulations)
            if cancel_event is not None and cancel_event.is_set():
                if completed < inputs.num_simulations:
                    cancelled = True
                    logger.warning(f"Monte Carlo cancelled after {completed}/{inputs.num_simulations} trials.")
                break
    finally:
        # stops pending chunks once we stop consuming
        results.close()

    elapsed = time.time() - start_time
    result = collect_results(inputs, batches, cancelled=cancelled, seed_entropy=seed_sequence.entropy, elapsed_seconds=elapsed)
    logger.info(
        f"Monte Carlo finished. Completed: {result.num_simulations_completed}/{inputs.num_simulations}, "
        f"excluded: {result.excluded_trials}. Time: {elapsed:.2f}s."
    )
    return result
