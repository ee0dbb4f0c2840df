# caprisk/core/exceptions.py
"""Error types raised by the simulation engine."""


class CapRiskError(Exception):
    """Base class for all engine errors."""


class InvalidParameter(CapRiskError, ValueError):
    """A run parameter (price, NOI, horizon, trial count, ...) is unusable."""


class InvalidAssumption(CapRiskError, ValueError):
    """An assumption series has a bad standard deviation, index or length."""


class InvalidCashFlow(CapRiskError, ValueError):
    """A cash-flow vector is malformed (fewer than two entries)."""


class NoRootFound(CapRiskError):
    """No discount rate zeroes the NPV of a cash-flow vector inside the search domain."""
