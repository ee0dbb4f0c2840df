# caprisk/core/constants.py
"""
Define constants and default parameters shared by the simulation engine.
Logging is configured by the embedding application, not here.
"""

import logging
from typing import Tuple

logger = logging.getLogger(__name__)

# --- Reference Scenario Defaults ---
# DEFAULT_PURCHASE_PRICE: Acquisition price ($) of the reference asset.
DEFAULT_PURCHASE_PRICE = 31_500_000.0
# DEFAULT_CURRENT_NOI: Trailing annual Net Operating Income ($) at purchase.
DEFAULT_CURRENT_NOI = 1_200_000.0
DEFAULT_HOLD_PERIOD = 10
DEFAULT_NUM_SIMULATIONS = 1000

# --- Numerical Constants ---
# FLOAT_ATOL: Absolute tolerance for floating-point comparisons (e.g., checking if a value is close to zero).
FLOAT_ATOL = 1e-9

# --- IRR Solver ---
# IRR_LOWER_BOUND / IRR_UPPER_BOUND: Initial bracket for the root search (decimal rates).
IRR_LOWER_BOUND = 0.0
IRR_UPPER_BOUND = 1.0
# IRR_BRACKET_GROWTH: Factor applied to (1 + rate) each time the bracket is widened.
IRR_BRACKET_GROWTH = 2.0
# IRR_MAX_EXPANSIONS: Widening steps allowed before giving up on a trial.
IRR_MAX_EXPANSIONS = 60
# IRR_XTOL: Absolute tolerance on the returned rate.
IRR_XTOL = 1e-12
IRR_MAX_ITER = 200
# IRR_SCAN_POINTS: Grid steps used to look for a sign change inside a bracket whose ends share a sign
# (cash flows with several sign changes can have roots strictly inside).
IRR_SCAN_POINTS = 20
# IRR_RATE_FLOOR: Lowest rate the downward search may reach; -100% itself has no present value.
IRR_RATE_FLOOR = -1.0 + 1e-6

# --- Parallel Execution ---
# DEFAULT_CHUNK_SIZE: Trials per worker task. Each chunk owns one spawned random stream,
# so results depend on the chunk size but never on the number of workers.
DEFAULT_CHUNK_SIZE = 1000
DEFAULT_N_JOBS = -1

# --- Aggregation ---
DEFAULT_QUANTILES: Tuple[float, ...] = (0.05, 0.50, 0.95)
DEFAULT_PATH_PERCENTILES: Tuple[float, ...] = (5.0, 50.0, 95.0)
DEFAULT_IRR_BUCKET_WIDTH = 0.001
DEFAULT_ROI_BUCKET_WIDTH = 0.01
DEFAULT_SALE_PRICE_BUCKET_WIDTH = 500_000.0
DEFAULT_NOI_BUCKET_WIDTH = 25_000.0

# --- Risk Metrics ---
DEFAULT_RISK_FREE_RATE = 0.04
DEFAULT_HURDLE_RATE = 0.08

# --- Forecast Adapter ---
# DEFAULT_CI_Z_SCORE: z-score of the two-sided 95% interval reported by forecasting tools.
DEFAULT_CI_Z_SCORE = 1.96
# Demonstration-only rent growth calibration shift (percentage points).
CALIBRATION_SHIFT_MEAN = 0.8
CALIBRATION_SHIFT_SD = 0.3
PERCENT_SCALE = 100.0
