# caprisk/core/utils.py
"""
Utility functions for the caprisk simulation engine.
"""
import numpy as np
import logging
from typing import List, Optional, Sequence, Type
from functools import wraps

logger = logging.getLogger(__name__)


def spawn_generators(seed: Optional[int], count: int) -> List[np.random.Generator]:
    """
    Creates `count` statistically independent generators from one master seed.

    Args:
        seed: Master seed, or None to draw fresh entropy from the OS.
        count: Number of child streams (one per chunk of trials).

    Returns:
        A list of numpy Generators; child i is the same for a given seed no matter
        how many workers later consume the list.
    """
    children = np.random.SeedSequence(seed).spawn(count)
    return [np.random.default_rng(child) for child in children]


def finite_values(values: Sequence[float]) -> np.ndarray:
    """Returns the finite entries of `values` as a sorted float array."""
    arr = np.asarray(values, dtype=float).ravel()
    return np.sort(arr[np.isfinite(arr)])


def get_valid_paths(paths: np.ndarray, expected_len: int) -> np.ndarray:
    """
    Keeps the rows of a 2-D array of per-trial annual paths that are fully finite.

    Args:
        paths: Array of shape (trials, years).
        expected_len: The expected number of years per path.

    Returns:
        The subset of rows with the expected length and no NaN/inf entries.
    """
    arr = np.asarray(paths, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != expected_len:
        logger.warning(f"get_valid_paths: expected paths of length {expected_len}, got array of shape {arr.shape}.")
        return np.empty((0, expected_len))
    mask = np.isfinite(arr).all(axis=1)
    if not mask.all():
        logger.debug(f"Skipping {int((~mask).sum())} non-finite paths out of {len(mask)}.")
    return arr[mask]


def trial_error_handler(*recoverable: Type[BaseException]):
    """
    Decorator for per-trial computations: the listed exceptions are logged and
    turned into NaN so one degenerate trial never aborts the batch. Any other
    exception propagates.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except recoverable as e:
                logger.debug(f"{func.__name__} excluded trial: {e}")
                return np.nan
        return wrapper
    return decorator
