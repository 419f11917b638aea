import numpy as np
import numpy.linalg as npl

from mwstein.metrics import kronecker_stein_loss, multiway_stein_loss, stein_loss
from mwstein.ops import kron_covariance, normalize_factors
from mwstein.sim import simulate_factors

RTOL = 5e-8
ATOL = 5e-9


def test_kronecker_loss_equals_stein_loss_of_assembled_covariances():
    dims = (2, 2, 3)
    B, b = simulate_factors(dims, scale=0.7, seed=42)
    Psi, psi = simulate_factors(dims, scale=1.3, seed=43)

    dense = stein_loss(kron_covariance(B, b), kron_covariance(Psi, psi))
    assert np.isclose(kronecker_stein_loss(B, Psi, b, psi), dense, rtol=RTOL, atol=ATOL)


def test_normalization_preserves_kronecker_loss():
    dims = (3, 4)
    B, b = simulate_factors(dims, scale=2.0, seed=7)
    Psi, psi = simulate_factors(dims, scale=0.5, seed=8)
    B_n, b_n = normalize_factors(B, b)
    Psi_n, psi_n = normalize_factors(Psi, psi)

    assert np.isclose(
        kronecker_stein_loss(B, Psi, b, psi),
        kronecker_stein_loss(B_n, Psi_n, b_n, psi_n),
        rtol=RTOL, atol=ATOL,
    )


def test_multiway_loss_bounds_zero_only_at_truth():
    dims = (3, 3)
    Psi, psi = simulate_factors(dims, seed=19)
    rng = np.random.default_rng(19)
    for _ in range(20):
        B = [L + 0.1 * np.tril(rng.standard_normal(L.shape)) for L in Psi]
        b = psi * float(np.exp(0.1 * rng.standard_normal()))
        assert multiway_stein_loss(B, Psi, b, psi) > 0.0


def test_log_determinants_agree_with_slogdet():
    dims = (4, 2)
    B, b = simulate_factors(dims, seed=3)
    Psi, psi = simulate_factors(dims, seed=4)
    p = 8

    # kronecker loss - r * prod(traces) + p = -(log det of the p×p ratio)
    S_hat = kron_covariance(B, b)
    S = kron_covariance(Psi, psi)
    ratio = npl.solve(S_hat, S)
    trace = float(np.trace(ratio))
    logdet = float(npl.slogdet(ratio)[1])

    assert np.isclose(
        kronecker_stein_loss(B, Psi, b, psi), trace - logdet - p, rtol=RTOL, atol=ATOL
    )
