from __future__ import annotations

import math
from collections.abc import Sequence
from functools import reduce

import numpy as np
from scipy.linalg import LinAlgError, cholesky, solve_triangular

from .exceptions import NotTriangularError, ShapeMismatchError


def relative_factor(B_k: np.ndarray, Psi_k: np.ndarray) -> np.ndarray:
    """
    Return M = B_k^{-1} Psi_k by forward substitution.

    Both inputs must already be validated lower-triangular with nonzero diagonals;
    the result is lower-triangular with diag(M) = diag(Psi_k) / diag(B_k).
    """
    return solve_triangular(B_k, Psi_k, lower=True, check_finite=False)


def cholesky_lower(
    Sigma: np.ndarray, *, name: str = "Sigma", index: int | None = None
) -> np.ndarray:
    """
    Lower Cholesky factor L with Sigma = L L^T.

    Raises
    ------
    NotTriangularError
        If Sigma is not positive definite.
    """
    try:
        return cholesky(Sigma, lower=True, check_finite=False)
    except LinAlgError as exc:
        label = name if index is None else f"{name}[{index}]"
        raise NotTriangularError(
            f"{label} is not symmetric positive-definite; Cholesky factorization failed. "
            f"Try adding a small ridge, e.g. {label} + 1e-8 * I."
        ) from exc


def logdet_from_triangular(L: np.ndarray) -> float:
    """log det(L L^T) = 2 * sum(log|diag L|), never forming the determinant."""
    return 2.0 * float(np.sum(np.log(np.abs(np.diagonal(L)))))


def trace_gram(M: np.ndarray) -> float:
    """tr(M M^T) as the squared Frobenius norm, without forming M M^T."""
    return float(np.vdot(M, M))


def mode_weights(dims: Sequence[int]) -> list[int]:
    """Exact integer weights p / p_k (product of the other modes' dimensions)."""
    p = math.prod(dims)
    return [p // p_k for p_k in dims]


def factors_to_covariances(factors: Sequence[np.ndarray]) -> list[np.ndarray]:
    """Return [L_k L_k^T] for each mode."""
    return [np.asarray(L) @ np.asarray(L).T for L in factors]


def kron_covariance(factors: Sequence[np.ndarray], scale: float = 1.0) -> np.ndarray:
    """
    Dense scale^2 * (Sigma_N ⊗ ... ⊗ Sigma_1) for small problems and checks.

    Mode 1 varies fastest, so the Kronecker product runs from the last mode to the
    first. The result is p×p with p = prod(p_k); only use this for small p.
    """
    covs = factors_to_covariances(factors)
    return float(scale) ** 2 * reduce(np.kron, reversed(covs))


def transform_factors(
    A: Sequence[np.ndarray], factors: Sequence[np.ndarray]
) -> list[np.ndarray]:
    """Apply the lower-triangular group action L_k -> A_k L_k mode by mode."""
    if len(A) != len(factors):
        raise ShapeMismatchError(
            f"Got {len(A)} transforms for {len(factors)} modes; provide one per mode."
        )
    return [np.asarray(A_k) @ np.asarray(L_k) for A_k, L_k in zip(A, factors)]


def normalize_factors(
    factors: Sequence[np.ndarray], scale: float = 1.0
) -> tuple[list[np.ndarray], float]:
    """
    Rescale each factor to |det L_k| = 1 and absorb the change into the scale.

    Scaling L_k by c_k multiplies the Kronecker product by c_k^2, so dividing the
    scale by prod(c_k) leaves scale^2 * (Sigma_N ⊗ ... ⊗ Sigma_1) unchanged.

    Returns
    -------
    normalized : list of arrays
    scale_out : float
    """
    mats = [np.asarray(L, dtype=np.float64) for L in factors]
    normalized = []
    log_scale = math.log(float(scale))
    for L in mats:
        # log|det L_k| / p_k is the log of the geometric-mean pivot
        log_c = -0.5 * logdet_from_triangular(L) / L.shape[0]
        normalized.append(L * math.exp(log_c))
        log_scale -= log_c
    return normalized, math.exp(log_scale)
