"""Input validation and sanitization helpers for mwstein.

This module provides standardized validation functions so that every loss
entry point rejects malformed factors, covariances and scales at the boundary,
with error messages that name the offending argument and mode.
"""

from __future__ import annotations

import math
import numbers
from collections.abc import Sequence
from typing import Any

import numpy as np

from .exceptions import (
    InvalidScaleError,
    MultiwayLossError,
    NotTriangularError,
    NumericalInstabilityError,
    ShapeMismatchError,
)


def _as_square_matrix(A: Any, *, name: str, index: int | None = None) -> np.ndarray:
    """Convert ``A`` to a finite, square ``float64`` array.

    Parameters
    ----------
    A : array-like
        Candidate matrix.
    name : str
        Variable name for error messages.
    index : int, optional
        Mode index for error messages when ``A`` belongs to a list.

    Returns
    -------
    np.ndarray
        ``A`` as a 2D array. No copy is made when ``A`` is already ``float64``.

    Raises
    ------
    MultiwayLossError
        If ``A`` is not numeric or has non-finite entries.
    NotTriangularError
        If ``A`` is not a square 2D array.
    """
    label = name if index is None else f"{name}[{index}]"
    try:
        A_arr = np.asarray(A, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise MultiwayLossError(f"{label} cannot be converted to numeric array: {e}") from e

    if A_arr.ndim != 2 or A_arr.shape[0] != A_arr.shape[1]:
        raise NotTriangularError(
            f"{label} must be a square 2D matrix, got shape {A_arr.shape}."
        )
    if A_arr.shape[0] == 0:
        raise NotTriangularError(f"{label} must have at least one row and column.")
    if not np.all(np.isfinite(A_arr)):
        raise MultiwayLossError(f"{label} contains NaN or infinite entries.")

    return A_arr


def _check_lower_triangular(
    L: np.ndarray, *, name: str, index: int | None = None, tri_tol: float = 0.0
) -> None:
    """Raise ``NotTriangularError`` if ``L`` has strictly-upper entries above ``tri_tol``."""
    upper = np.triu(L, k=1)
    worst = float(np.max(np.abs(upper))) if upper.size else 0.0
    if worst > tri_tol:
        label = name if index is None else f"{name}[{index}]"
        raise NotTriangularError(
            f"{label} must be lower-triangular; largest strictly-upper entry is "
            f"{worst:.3g} (tolerance {tri_tol:.3g}). "
            f"Pass np.tril({label}) if the upper part is round-off."
        )


def _validate_factor_list(
    factors: Any, *, name: str, tri_tol: float = 0.0
) -> list[np.ndarray]:
    """Validate a sequence of lower-triangular mode factors.

    Parameters
    ----------
    factors : sequence of array-like
        One square lower-triangular matrix per tensor mode.
    name : str
        Variable name for error messages.
    tri_tol : float, optional
        Largest tolerated absolute value above the main diagonal.

    Returns
    -------
    list[np.ndarray]
        Validated 2D arrays, one per mode.

    Raises
    ------
    MultiwayLossError
        If ``factors`` is empty or not a sequence.
    NotTriangularError
        If any factor is not square lower-triangular.
    """
    if not isinstance(factors, Sequence) or isinstance(factors, str) or len(factors) == 0:
        raise MultiwayLossError(
            f"{name} must be a non-empty list or tuple of matrices, one per mode. "
            f"Got {type(factors).__name__}."
        )

    validated = []
    for k, L in enumerate(factors):
        L_arr = _as_square_matrix(L, name=name, index=k)
        _check_lower_triangular(L_arr, name=name, index=k, tri_tol=tri_tol)
        validated.append(L_arr)
    return validated


def _validate_covariance_list(
    covariances: Any, *, name: str, sym_tol: float = 1e-8
) -> list[np.ndarray]:
    """Validate a sequence of per-mode covariance matrices.

    Symmetry is checked relative to the largest absolute entry of each matrix.
    Positive definiteness is left to the Cholesky factorization.
    """
    if (
        not isinstance(covariances, Sequence)
        or isinstance(covariances, str)
        or len(covariances) == 0
    ):
        raise MultiwayLossError(
            f"{name} must be a non-empty list or tuple of covariance matrices. "
            f"Got {type(covariances).__name__}."
        )

    validated = []
    for k, S in enumerate(covariances):
        S_arr = _as_square_matrix(S, name=name, index=k)
        scale = max(float(np.max(np.abs(S_arr))), 1e-300)
        asym = float(np.max(np.abs(S_arr - S_arr.T))) / scale
        if asym > sym_tol:
            raise NotTriangularError(
                f"{name}[{k}] must be symmetric; relative asymmetry is {asym:.3g} "
                f"(tolerance {sym_tol:.3g}). Try 0.5 * ({name}[{k}] + {name}[{k}].T)."
            )
        validated.append(S_arr)
    return validated


def _check_mode_compatibility(
    estimate: Sequence[np.ndarray],
    truth: Sequence[np.ndarray],
    *,
    estimate_name: str = "B",
    truth_name: str = "Psi",
) -> tuple[int, ...]:
    """Check that estimate and truth agree mode by mode and return the dimensions.

    Raises
    ------
    ShapeMismatchError
        If the number of modes or any per-mode dimension differs.
    """
    if len(estimate) != len(truth):
        raise ShapeMismatchError(
            f"{estimate_name} has {len(estimate)} modes but {truth_name} has {len(truth)}. "
            f"Both must describe the same tensor modes in the same order."
        )

    dims = []
    for k, (E, T) in enumerate(zip(estimate, truth)):
        if E.shape[0] != T.shape[0]:
            raise ShapeMismatchError(
                f"Mode {k}: {estimate_name}[{k}] is {E.shape[0]}x{E.shape[0]} but "
                f"{truth_name}[{k}] is {T.shape[0]}x{T.shape[0]}."
            )
        dims.append(E.shape[0])
    return tuple(dims)


def _check_pivots(
    L: np.ndarray, *, name: str, index: int | None = None, pivot_tol: float = 1e-12
) -> None:
    """Raise ``NumericalInstabilityError`` on a zero or relatively tiny diagonal pivot."""
    d = np.abs(np.diagonal(L))
    d_max = float(np.max(d))
    if float(np.min(d)) <= pivot_tol * d_max or d_max == 0.0:
        label = name if index is None else f"{name}[{index}]"
        j = int(np.argmin(d))
        raise NumericalInstabilityError(
            f"{label} has a near-zero diagonal pivot {float(np.diagonal(L)[j]):.3g} "
            f"at position {j} (relative tolerance {pivot_tol:.3g}). "
            f"Try regularizing the covariance, e.g. Sigma + eps * I."
        )


def _validate_scale(value: Any, *, name: str) -> float:
    """Validate a scale parameter and return it as a float.

    Raises
    ------
    InvalidScaleError
        If ``value`` is not a finite positive real number.
    """
    if isinstance(value, bool):
        raise InvalidScaleError(f"{name} must be a positive number, got {value!r}.")
    try:
        v = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidScaleError(
            f"{name} must be a positive number, got {type(value).__name__}."
        ) from e

    if not math.isfinite(v) or v <= 0.0:
        raise InvalidScaleError(
            f"{name} must be finite and positive, got {v}. "
            f"Scales are standard deviations; pass sqrt(variance)."
        )
    return v


def _validate_tolerance(value: Any, *, name: str) -> float:
    """Validate a non-negative tolerance parameter."""
    if (
        isinstance(value, bool)
        or not isinstance(value, numbers.Real)
        or not math.isfinite(value)
        or value < 0
    ):
        raise ValueError(
            f"{name} must be a finite non-negative number, got {value!r}. "
            f"Try {name}=0.0 for exact checks."
        )
    return float(value)
