"""Error types raised by mwstein.

All errors derive from :class:`MultiwayLossError`, itself a ``ValueError``, so
callers that already guard numerical code with ``except ValueError`` keep
working.
"""

from __future__ import annotations


class MultiwayLossError(ValueError):
    """Base class for invalid inputs to the loss functions."""


class ShapeMismatchError(MultiwayLossError):
    """Estimate and truth disagree in number of modes or per-mode dimension."""


class InvalidScaleError(MultiwayLossError):
    """A scale parameter is not a finite positive number."""


class NotTriangularError(MultiwayLossError):
    """A factor is not square lower-triangular, or a covariance has no Cholesky factor."""


class NumericalInstabilityError(MultiwayLossError):
    """A triangular factor has a zero or near-zero diagonal pivot."""
