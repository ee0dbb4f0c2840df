# caprisk/core/irr.py
"""
IRR solver for a single cash-flow vector.

The rate is found by bracketing a sign change of NPV(r) and refining it with
Brent's method. The bracket starts at [IRR_LOWER_BOUND, IRR_UPPER_BOUND]. When
both ends share a sign, a coarse grid inside the bracket is searched first, since
flows with more than one sign change (e.g. a year of negative NOI) can have roots
strictly inside it. Otherwise the bracket is widened geometrically: the lower end
approaches -100% but stops at IRR_RATE_FLOOR, and the upper end grows without a
practical limit, so very profitable trials still resolve.
"""

import numpy as np
import numpy_financial as npf
import logging
from typing import Optional, Sequence, Tuple
from scipy.optimize import brentq

from .constants import (
    IRR_LOWER_BOUND, IRR_UPPER_BOUND, IRR_BRACKET_GROWTH, IRR_MAX_EXPANSIONS,
    IRR_XTOL, IRR_MAX_ITER, IRR_SCAN_POINTS, IRR_RATE_FLOOR,
)
from .exceptions import InvalidCashFlow, NoRootFound
from .utils import trial_error_handler

logger = logging.getLogger(__name__)

Bracket = Tuple[float, float, float, float]


def npv(rate: float, cash_flows: Sequence[float]) -> float:
    """Net present value with cash_flows[0] undiscounted (numpy-financial convention)."""
    with np.errstate(over="ignore", divide="ignore", invalid="ignore", under="ignore"):
        return float(npf.npv(rate, cash_flows))


def _has_sign_change(cash_flows: np.ndarray) -> bool:
    signs = np.sign(cash_flows[cash_flows != 0])
    return signs.size > 1 and bool(np.any(signs != signs[0]))


def _crosses(f_a: float, f_b: float) -> bool:
    return f_a == 0.0 or f_b == 0.0 or np.sign(f_a) != np.sign(f_b)


def _scan_segment(
    cash_flows: np.ndarray, a: float, b: float, f_a: float, f_b: float, points: int
) -> Optional[Bracket]:
    """Lowest grid cell of [a, b] where NPV crosses zero, or None."""
    if not (np.isfinite(f_a) and np.isfinite(f_b)):
        raise NoRootFound(f"NPV is not finite at the search bracket [{a:.6g}, {b:.6g}].")
    if _crosses(f_a, f_b):
        return a, b, f_a, f_b
    rates = np.linspace(a, b, points + 1)
    values = [f_a] + [npv(r, cash_flows) for r in rates[1:-1]] + [f_b]
    for i in range(points):
        if not np.isfinite(values[i + 1]):
            raise NoRootFound(f"NPV is not finite at rate {rates[i + 1]:.6g}.")
        if _crosses(values[i], values[i + 1]):
            return float(rates[i]), float(rates[i + 1]), values[i], values[i + 1]
    return None


def _expand_bracket(
    cash_flows: np.ndarray, lower: float, upper: float, growth: float, max_expansions: int,
    points: int = IRR_SCAN_POINTS,
) -> Bracket:
    f_lower = npv(lower, cash_flows)
    f_upper = npv(upper, cash_flows)
    found = _scan_segment(cash_flows, lower, upper, f_lower, f_upper, points)
    expansion = 0
    while found is None:
        if expansion == max_expansions:
            raise NoRootFound(
                f"NPV does not change sign on [{lower:.6g}, {upper:.6g}] after {max_expansions} bracket expansions."
            )
        expansion += 1
        # NPV falls with the rate for an outlay followed by returns: a positive
        # NPV across the whole bracket puts the root above it.
        if f_upper > 0:
            new_upper = (1.0 + upper) * growth - 1.0
            f_new = npv(new_upper, cash_flows)
            found = _scan_segment(cash_flows, upper, new_upper, f_upper, f_new, points)
            upper, f_upper = new_upper, f_new
        else:
            new_lower = max(-1.0 + (1.0 + lower) / growth, IRR_RATE_FLOOR)
            if new_lower >= lower:
                raise NoRootFound(
                    f"NPV does not change sign on [{lower:.6g}, {upper:.6g}]; the search reached the rate floor."
                )
            f_new = npv(new_lower, cash_flows)
            found = _scan_segment(cash_flows, new_lower, lower, f_new, f_lower, points)
            lower, f_lower = new_lower, f_new
    return found


def solve_irr(
    cash_flows: Sequence[float],
    lower: float = IRR_LOWER_BOUND,
    upper: float = IRR_UPPER_BOUND,
    growth: float = IRR_BRACKET_GROWTH,
    max_expansions: int = IRR_MAX_EXPANSIONS,
    xtol: float = IRR_XTOL,
) -> float:
    """
    Finds the rate r with NPV(r) = 0 for one cash-flow vector.

    Args:
        cash_flows: CF_0..CF_N, CF_0 being the (negative) outlay.
        lower, upper: Initial bracket, with -1 < lower < upper.
        growth: Factor applied to (1 + rate) each time the bracket is widened.
        max_expansions: Widening steps allowed before giving up.
        xtol: Absolute tolerance on the returned rate.

    Returns:
        The internal rate of return as a decimal.

    Raises:
        InvalidCashFlow: Fewer than two cash flows.
        NoRootFound: Non-finite entries, no sign change, or no bracket within the expansion limit.
    """
    cf = np.asarray(cash_flows, dtype=float).ravel()
    if cf.size < 2:
        raise InvalidCashFlow(f"A cash-flow vector needs at least 2 entries, got {cf.size}.")
    if not np.all(np.isfinite(cf)):
        raise NoRootFound(f"Cash-flow vector contains non-finite values: {cf.tolist()}")
    if not _has_sign_change(cf):
        raise NoRootFound("Cash-flow vector has no sign change; IRR is undefined.")
    if not (-1.0 < lower < upper) or growth <= 1.0:
        raise ValueError(f"Invalid IRR search settings: lower={lower}, upper={upper}, growth={growth}.")

    lower, upper, f_lower, f_upper = _expand_bracket(cf, lower, upper, growth, max_expansions)
    if f_lower == 0.0:
        return float(lower)
    if f_upper == 0.0:
        return float(upper)
    root = brentq(npv, lower, upper, args=(cf,), xtol=xtol, maxiter=IRR_MAX_ITER)
    logger.debug(f"IRR solved: {root:.8f} on bracket [{lower:.6g}, {upper:.6g}]")
    return float(root)


@trial_error_handler(NoRootFound)
def irr_or_nan(cash_flows: Sequence[float]) -> float:
    """solve_irr for one trial inside a batch: NoRootFound becomes NaN."""
    return solve_irr(cash_flows)


def solve_irrs(cash_flow_matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solves every row of a (trials x (N+1)) cash-flow matrix.

    Returns:
        (irrs, failed): IRR per trial (NaN where excluded) and the boolean failure mask.
    """
    matrix = np.atleast_2d(np.asarray(cash_flow_matrix, dtype=float))
    irrs = np.array([irr_or_nan(row) for row in matrix], dtype=float)
    failed = ~np.isfinite(irrs)
    if failed.any():
        logger.debug(f"{int(failed.sum())}/{len(irrs)} trials excluded: no IRR root found.")
    return irrs, failed
