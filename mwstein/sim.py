import numpy as np

from .ops import factors_to_covariances, normalize_factors


def random_lower_triangular(p, rng, diag_low=0.5, diag_high=1.5):
    L = np.tril(rng.standard_normal((p, p)), k=-1)
    L[np.diag_indices(p)] = rng.uniform(diag_low, diag_high, size=p)
    return L


def simulate_factors(dims, scale=1.0, seed=0, normalize=False):
    rng = np.random.default_rng(seed)
    factors = [random_lower_triangular(p, rng) for p in dims]
    if normalize:
        return normalize_factors(factors, scale)
    return factors, float(scale)


def simulate_covariances(dims, seed=0):
    factors, _ = simulate_factors(dims, seed=seed)
    return factors_to_covariances(factors)


def simulate_array_normal(Psi, psi, n, seed=0):
    """
    Draw n arrays of shape (p_1, ..., p_N) with vec-covariance
    psi^2 * (Psi_N Psi_N^T ⊗ ... ⊗ Psi_1 Psi_1^T), mode 1 varying fastest.

    Returns an array of shape (n, p_1, ..., p_N).
    """
    rng = np.random.default_rng(seed)
    dims = [np.asarray(L).shape[0] for L in Psi]
    Z = rng.standard_normal((n, *dims))
    X = Z
    for k, L in enumerate(Psi):
        # mode-k product: multiply axis k+1 by L
        X = np.moveaxis(np.tensordot(np.asarray(L), X, axes=([1], [k + 1])), 0, k + 1)
    return float(psi) * X
