import logging

import numpy as np
import pytest

from mwstein import (
    InvalidScaleError,
    LossBreakdown,
    StructuredCovarianceLoss,
    kronecker_stein_loss,
    multiway_stein_loss,
    multiway_stein_loss_from_covariances,
)
from mwstein.ops import factors_to_covariances
from mwstein.sim import simulate_factors


def _draws(truth, psi, n, noise, seed):
    rng = np.random.default_rng(seed)
    out = []
    for _ in range(n):
        B = [np.tril(L + noise * rng.standard_normal(L.shape)) for L in truth]
        for L in B:
            L[np.diag_indices(L.shape[0])] = np.abs(np.diag(L)) + 0.1
        out.append((B, psi * float(np.exp(noise * rng.standard_normal()))))
    return out


def test_component_matches_functions():
    Psi, psi = simulate_factors((3, 2), scale=1.0, seed=0)
    B, b = simulate_factors((3, 2), scale=1.4, seed=1)
    loss = StructuredCovarianceLoss()

    assert loss.evaluate(B, Psi, b, psi) == multiway_stein_loss(B, Psi, b, psi)
    assert loss.evaluate_kronecker(B, Psi, b, psi) == kronecker_stein_loss(B, Psi, b, psi)
    S_hat, S = factors_to_covariances(B), factors_to_covariances(Psi)
    assert loss.evaluate_from_covariances(S_hat, S, b, psi) == pytest.approx(
        multiway_stein_loss_from_covariances(S_hat, S, b, psi)
    )

    terms = loss.evaluate_terms(B, Psi, b, psi)
    assert isinstance(terms, LossBreakdown)
    assert len(terms.mode_terms) == 2
    assert np.isclose(terms.total, loss.evaluate(B, Psi, b, psi))


def test_params_roundtrip_and_validation():
    loss = StructuredCovarianceLoss(pivot_tol=1e-10)
    assert loss.get_params() == {"tri_tol": 0.0, "pivot_tol": 1e-10, "sym_tol": 1e-8}

    assert loss.set_params(tri_tol=1e-12) is loss
    assert loss.tri_tol == 1e-12
    assert "tri_tol=1e-12" in repr(loss)

    with pytest.raises(ValueError, match="Unknown parameter"):
        loss.set_params(rank=3)
    with pytest.raises(ValueError, match="non-negative"):
        StructuredCovarianceLoss(sym_tol=-1.0)


def test_tri_tol_is_applied_by_component():
    Psi, psi = simulate_factors((3,), seed=2)
    B = [Psi[0].copy()]
    B[0][0, 1] = 1e-14

    with pytest.raises(ValueError):
        StructuredCovarianceLoss().evaluate(B, Psi, psi, psi)
    assert StructuredCovarianceLoss(tri_tol=1e-12).evaluate(B, Psi, psi, psi) == pytest.approx(
        0.0, abs=1e-10
    )


def test_risk_averages_losses():
    Psi, psi = simulate_factors((3, 3), scale=1.0, seed=3)
    draws = _draws(Psi, psi, n=25, noise=0.1, seed=4)
    loss = StructuredCovarianceLoss()

    summary = loss.risk(draws, Psi, psi)
    expected = [multiway_stein_loss(B, Psi, b, psi) for B, b in draws]

    assert summary.n_evaluated == 25
    assert summary.n_skipped == 0
    assert np.allclose(summary.losses, expected)
    assert np.isclose(summary.mean, np.mean(expected))
    assert np.isclose(summary.std_error, np.std(expected, ddof=1) / 5.0)
    assert summary.summary_dict()["n_evaluated"] == 25


def test_risk_skip_and_raise(caplog):
    Psi, psi = simulate_factors((2, 2), seed=5)
    draws = _draws(Psi, psi, n=4, noise=0.05, seed=6)
    draws[2] = (draws[2][0], -1.0)
    loss = StructuredCovarianceLoss()

    with pytest.raises(InvalidScaleError):
        loss.risk(draws, Psi, psi)

    with caplog.at_level(logging.WARNING, logger="mwstein.api"):
        summary = loss.risk(draws, Psi, psi, on_error="skip")
    assert summary.n_evaluated == 3
    assert summary.n_skipped == 1
    assert "Skipping draw 2" in caplog.text

    with pytest.raises(ValueError, match="on_error"):
        loss.risk(draws, Psi, psi, on_error="ignore")


def test_empty_risk_is_nan():
    Psi, psi = simulate_factors((2,), seed=7)
    summary = StructuredCovarianceLoss().risk([], Psi, psi)
    assert summary.n_evaluated == 0
    assert np.isnan(summary.mean)
    assert np.isnan(summary.std_error)


def test_compare_orders_by_mean_risk():
    Psi, psi = simulate_factors((3, 2), seed=8)
    candidates = {
        "noisy": _draws(Psi, psi, n=20, noise=0.5, seed=9),
        "exact": [(Psi, psi)] * 3,
        "close": _draws(Psi, psi, n=20, noise=0.05, seed=10),
    }
    results = StructuredCovarianceLoss().compare(candidates, Psi, psi)

    assert list(results) == ["exact", "close", "noisy"]
    assert results["exact"].mean == pytest.approx(0.0, abs=1e-10)

    with pytest.raises(ValueError, match="at least one"):
        StructuredCovarianceLoss().compare({}, Psi, psi)


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), "1e-8", None])
def test_non_finite_or_non_numeric_tolerances_are_rejected(bad):
    with pytest.raises(ValueError, match="finite non-negative"):
        StructuredCovarianceLoss(tri_tol=bad)
    with pytest.raises(ValueError, match="finite non-negative"):
        StructuredCovarianceLoss(pivot_tol=bad)
    loss = StructuredCovarianceLoss()
    with pytest.raises(ValueError, match="finite non-negative"):
        loss.set_params(sym_tol=bad)
    assert loss.sym_tol == 1e-8


def test_numpy_scalar_tolerance_is_accepted():
    loss = StructuredCovarianceLoss(tri_tol=np.float64(1e-10))
    assert loss.tri_tol == 1e-10
    assert type(loss.tri_tol) is float


def test_risk_skips_draw_with_overflowing_scale(caplog):
    Psi, psi = simulate_factors((2, 2), seed=9)
    draws = [(Psi, 1e-200), (Psi, psi)]
    loss = StructuredCovarianceLoss()

    with caplog.at_level(logging.WARNING, logger="mwstein.api"):
        summary = loss.risk(draws, Psi, psi, on_error="skip")
    assert summary.n_skipped == 1
    assert summary.n_evaluated == 1
    assert summary.mean == pytest.approx(0.0, abs=1e-10)
    assert "Skipping draw 0" in caplog.text
