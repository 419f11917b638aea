import numpy as np

from mwstein import kronecker_stein_loss, multiway_stein_loss
from mwstein.ops import transform_factors
from mwstein.sim import random_lower_triangular, simulate_factors


def test_loss_invariant_under_lower_triangular_group_action():
    rng = np.random.default_rng(5)
    dims = (3, 4, 2)
    B, b = simulate_factors(dims, scale=1.2, seed=6)
    Psi, psi = simulate_factors(dims, scale=0.7, seed=7)
    base = multiway_stein_loss(B, Psi, b, psi)

    A = [random_lower_triangular(p, rng, diag_low=0.2, diag_high=3.0) for p in dims]
    a = float(rng.uniform(0.1, 10.0))
    moved = multiway_stein_loss(
        transform_factors(A, B), transform_factors(A, Psi), a * b, a * psi
    )

    assert np.isclose(base, moved, rtol=5e-8, atol=5e-9)


def test_kronecker_loss_invariant_under_group_action():
    rng = np.random.default_rng(8)
    dims = (2, 3)
    B, b = simulate_factors(dims, scale=0.9, seed=9)
    Psi, psi = simulate_factors(dims, scale=1.5, seed=10)
    base = kronecker_stein_loss(B, Psi, b, psi)

    A = [random_lower_triangular(p, rng) for p in dims]
    moved = kronecker_stein_loss(
        transform_factors(A, B), transform_factors(A, Psi), 3.0 * b, 3.0 * psi
    )

    assert np.isclose(base, moved, rtol=5e-8, atol=5e-9)


def test_negative_diagonal_transform_keeps_loss():
    # A_k = -I flips diagonal signs; log|diag| keeps the loss defined
    dims = (3, 3)
    B, b = simulate_factors(dims, seed=11)
    Psi, psi = simulate_factors(dims, seed=12)
    A = [-np.eye(p) for p in dims]

    base = multiway_stein_loss(B, Psi, b, psi)
    moved = multiway_stein_loss(transform_factors(A, B), transform_factors(A, Psi), b, psi)
    assert np.isclose(base, moved, rtol=1e-12, atol=1e-12)
