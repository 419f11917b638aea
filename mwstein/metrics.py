from __future__ import annotations

import math
from typing import Any

import numpy as np

from ._validation import (
    _check_mode_compatibility,
    _check_pivots,
    _validate_covariance_list,
    _validate_factor_list,
    _validate_scale,
)
from .exceptions import NumericalInstabilityError
from .ops import (
    cholesky_lower,
    logdet_from_triangular,
    mode_weights,
    relative_factor,
    trace_gram,
)
from .types import FactorCollection


def _prepare_factors(
    B: Any, Psi: Any, *, tri_tol: float, pivot_tol: float
) -> tuple[list[np.ndarray], list[np.ndarray], tuple[int, ...]]:
    """Validate both factor lists and return them with the shared mode dimensions."""
    if isinstance(B, FactorCollection):
        B_list = B.matrices
    else:
        B_list = _validate_factor_list(B, name="B", tri_tol=tri_tol)
    if isinstance(Psi, FactorCollection):
        Psi_list = Psi.matrices
    else:
        Psi_list = _validate_factor_list(Psi, name="Psi", tri_tol=tri_tol)

    dims = _check_mode_compatibility(B_list, Psi_list)
    for k, B_k in enumerate(B_list):
        # only B_k is divided by in the triangular solve
        _check_pivots(B_k, name="B", index=k, pivot_tol=pivot_tol)
    return B_list, Psi_list, dims


def _mode_statistics(
    B_list: list[np.ndarray], Psi_list: list[np.ndarray]
) -> tuple[list[float], list[float]]:
    """Per-mode tr(M_k M_k^T) and log det(M_k M_k^T) with M_k = B_k^{-1} Psi_k."""
    traces, logdets = [], []
    for B_k, Psi_k in zip(B_list, Psi_list):
        M_k = relative_factor(B_k, Psi_k)
        traces.append(trace_gram(M_k))
        # a zero truth pivot gives -inf here; callers reject non-finite losses
        with np.errstate(divide="ignore"):
            logdets.append(logdet_from_triangular(M_k))
    return traces, logdets


def multiway_stein_terms(
    B: Any,
    Psi: Any,
    b: Any,
    psi: Any,
    *,
    tri_tol: float = 0.0,
    pivot_tol: float = 1e-12,
) -> tuple[list[float], float]:
    """
    Separable pieces of multiway Stein's loss.

    Returns
    -------
    mode_terms : list of float
        (p / p_k) * [tr(M_k M_k^T) - log det(M_k M_k^T) - p_k] for each mode k.
    scale_term : float
        p * [r - log r - 1] with r = (psi / b)^2, the total-variation mode.

    Every term is a classical Stein's loss times a positive weight, so each is
    non-negative and the loss is their sum.
    """
    b_val = _validate_scale(b, name="b")
    psi_val = _validate_scale(psi, name="psi")
    B_list, Psi_list, dims = _prepare_factors(
        B, Psi, tri_tol=tri_tol, pivot_tol=pivot_tol
    )
    p = float(math.prod(dims))

    traces, logdets = _mode_statistics(B_list, Psi_list)
    mode_terms = [
        float(w_k) * (t_k - l_k - p_k)
        for w_k, t_k, l_k, p_k in zip(mode_weights(dims), traces, logdets, dims)
    ]

    # log r from the log-scales so tiny or huge ratios do not under/overflow
    log_r = 2.0 * (math.log(psi_val) - math.log(b_val))
    if log_r > 700.0:
        raise NumericalInstabilityError(
            f"Scale ratio (psi / b)^2 = exp({log_r:.1f}) overflows double precision."
        )
    scale_term = p * (math.expm1(log_r) - log_r)

    if not all(math.isfinite(x) for x in mode_terms) or not math.isfinite(scale_term):
        raise NumericalInstabilityError(
            "Multiway Stein's loss overflowed; estimate and truth are too far apart "
            "in scale for double precision."
        )
    return mode_terms, scale_term


def multiway_stein_loss(
    B: Any,
    Psi: Any,
    b: Any,
    psi: Any,
    *,
    tri_tol: float = 0.0,
    pivot_tol: float = 1e-12,
) -> float:
    """
    Multiway Stein's loss between an estimate (B, b) and a truth (Psi, psi).

    The array normal covariance is b^2 * (B_N B_N^T ⊗ ... ⊗ B_1 B_1^T). With
    M_k = B_k^{-1} Psi_k and p = prod(p_k),

        loss = sum_k (p / p_k) [tr(M_k M_k^T) - log det(M_k M_k^T) - p_k]
               + p [r - log r - 1],          r = (psi / b)^2.

    The ratio r is oriented like the mode terms, tr(Sigma_hat^{-1} Sigma), so it
    is (psi / b)^2 rather than (b / psi)^2.

    The loss is zero when the estimate equals the truth and is unchanged when
    every B_k and Psi_k is left-multiplied by the same invertible lower-triangular
    A_k and b, psi are multiplied by the same positive constant.

    Parameters
    ----------
    B, Psi : sequence of (p_k × p_k) lower-triangular arrays, or FactorCollection
        Estimate and truth factors, one per mode, in the same mode order.
    b, psi : float or ScaleParameter
        Positive standard-deviation scales of the estimate and the truth.
    tri_tol : float
        Largest tolerated absolute strictly-upper entry in any factor.
    pivot_tol : float
        Relative threshold below which a diagonal pivot counts as zero.

    Returns
    -------
    float
        The loss value (non-negative).

    Raises
    ------
    ShapeMismatchError, InvalidScaleError, NotTriangularError, NumericalInstabilityError
    """
    mode_terms, scale_term = multiway_stein_terms(
        B, Psi, b, psi, tri_tol=tri_tol, pivot_tol=pivot_tol
    )
    return float(math.fsum(mode_terms) + scale_term)


def multiway_stein_loss_from_covariances(
    Sigma_hat: Any,
    Sigma: Any,
    b: Any,
    psi: Any,
    *,
    sym_tol: float = 1e-8,
    pivot_tol: float = 1e-12,
) -> float:
    """
    Multiway Stein's loss for per-mode covariance matrices instead of factors.

    Each Sigma_hat[k] and Sigma[k] is factored by lower Cholesky and the result
    is ``multiway_stein_loss`` on the factors.
    """
    b_val = _validate_scale(b, name="b")
    psi_val = _validate_scale(psi, name="psi")
    S_hat = _validate_covariance_list(Sigma_hat, name="Sigma_hat", sym_tol=sym_tol)
    S_true = _validate_covariance_list(Sigma, name="Sigma", sym_tol=sym_tol)
    _check_mode_compatibility(S_hat, S_true, estimate_name="Sigma_hat", truth_name="Sigma")

    B = [cholesky_lower(S, name="Sigma_hat", index=k) for k, S in enumerate(S_hat)]
    Psi = [cholesky_lower(S, name="Sigma", index=k) for k, S in enumerate(S_true)]
    return multiway_stein_loss(B, Psi, b_val, psi_val, pivot_tol=pivot_tol)


def kronecker_stein_loss(
    B: Any,
    Psi: Any,
    b: Any,
    psi: Any,
    *,
    tri_tol: float = 0.0,
    pivot_tol: float = 1e-12,
) -> float:
    """
    Classical Stein's loss of the full Kronecker-structured covariance.

    Equals stein_loss(b^2 ⊗ B_k B_k^T, psi^2 ⊗ Psi_k Psi_k^T) but never forms the
    p×p matrices:

        r * prod_k tr(M_k M_k^T) - p log r - sum_k (p / p_k) log det(M_k M_k^T) - p.
    """
    b_val = _validate_scale(b, name="b")
    psi_val = _validate_scale(psi, name="psi")
    B_list, Psi_list, dims = _prepare_factors(
        B, Psi, tri_tol=tri_tol, pivot_tol=pivot_tol
    )
    p = float(math.prod(dims))
    traces, logdets = _mode_statistics(B_list, Psi_list)

    if min(traces) <= 0.0:
        raise NumericalInstabilityError(
            "Kronecker Stein's loss is not finite; a truth factor is entirely zero."
        )
    log_r = 2.0 * (math.log(psi_val) - math.log(b_val))
    # r * prod(traces) in log space
    log_tr = log_r + math.fsum(math.log(t) for t in traces)
    if log_tr > 700.0:
        raise NumericalInstabilityError(
            f"Trace term exp({log_tr:.1f}) overflows double precision."
        )
    logdet = p * log_r + math.fsum(
        float(w_k) * l_k for w_k, l_k in zip(mode_weights(dims), logdets)
    )
    loss = math.exp(log_tr) - logdet - p
    if not math.isfinite(loss):
        raise NumericalInstabilityError(
            "Kronecker Stein's loss is not finite; a truth factor has a zero pivot."
        )
    return float(loss)


def stein_loss(Sigma_hat: Any, Sigma: Any, *, sym_tol: float = 1e-8) -> float:
    """
    Stein's loss tr(Sigma_hat^{-1} Sigma) - log det(Sigma_hat^{-1} Sigma) - p
    for a single pair of SPD matrices, via Cholesky factors.
    """
    (S_hat,) = _validate_covariance_list([Sigma_hat], name="Sigma_hat", sym_tol=sym_tol)
    (S_true,) = _validate_covariance_list([Sigma], name="Sigma", sym_tol=sym_tol)
    _check_mode_compatibility([S_hat], [S_true], estimate_name="Sigma_hat", truth_name="Sigma")

    L_hat = cholesky_lower(S_hat, name="Sigma_hat")
    L_true = cholesky_lower(S_true, name="Sigma")
    M = relative_factor(L_hat, L_true)
    return float(trace_gram(M) - logdet_from_triangular(M) - S_hat.shape[0])
