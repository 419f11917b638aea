"""High-level component API for multiway Stein's loss evaluation."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from ._validation import _validate_tolerance
from .exceptions import MultiwayLossError
from .metrics import (
    kronecker_stein_loss,
    multiway_stein_loss,
    multiway_stein_loss_from_covariances,
    multiway_stein_terms,
)

logger = logging.getLogger(__name__)

_ON_ERROR = ("raise", "skip")


@dataclass(frozen=True)
class LossBreakdown:
    """Separable decomposition of one multiway Stein's loss evaluation."""

    mode_terms: tuple[float, ...]
    scale_term: float

    @property
    def total(self) -> float:
        return float(math.fsum(self.mode_terms) + self.scale_term)


@dataclass
class RiskSummary:
    """Monte Carlo estimate of the risk (expected loss) over a set of draws."""

    losses: np.ndarray
    n_skipped: int = 0
    errors: list[str] = field(default_factory=list, repr=False)

    @property
    def n_evaluated(self) -> int:
        return int(self.losses.size)

    @property
    def mean(self) -> float:
        if self.losses.size == 0:
            return float("nan")
        return float(np.mean(self.losses))

    @property
    def std_error(self) -> float:
        n = self.losses.size
        if n < 2:
            return float("nan")
        return float(np.std(self.losses, ddof=1) / np.sqrt(n))

    def summary_dict(self) -> dict[str, Any]:
        return {
            "mean": self.mean,
            "std_error": self.std_error,
            "n_evaluated": self.n_evaluated,
            "n_skipped": self.n_skipped,
        }


class StructuredCovarianceLoss:
    """Stateless evaluator of multiway Stein's loss with configurable tolerances.

    Parameters
    ----------
    tri_tol : float
        Largest tolerated absolute strictly-upper entry of a factor.
    pivot_tol : float
        Relative threshold below which a diagonal pivot is treated as zero.
    sym_tol : float
        Relative asymmetry tolerated in covariance inputs.
    """

    def __init__(
        self,
        *,
        tri_tol: float = 0.0,
        pivot_tol: float = 1e-12,
        sym_tol: float = 1e-8,
    ) -> None:
        self.tri_tol = _validate_tolerance(tri_tol, name="tri_tol")
        self.pivot_tol = _validate_tolerance(pivot_tol, name="pivot_tol")
        self.sym_tol = _validate_tolerance(sym_tol, name="sym_tol")

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{type(self).__name__}({params})"

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def get_params(self) -> dict[str, float]:
        return {
            "tri_tol": self.tri_tol,
            "pivot_tol": self.pivot_tol,
            "sym_tol": self.sym_tol,
        }

    def set_params(self, **params: Any) -> StructuredCovarianceLoss:
        for key, value in params.items():
            if key not in self.get_params():
                raise ValueError(f"Unknown parameter {key!r}")
            setattr(self, key, _validate_tolerance(value, name=key))
        return self

    # ------------------------------------------------------------------
    # Single evaluations
    # ------------------------------------------------------------------
    def evaluate(self, B: Any, Psi: Any, b: Any, psi: Any) -> float:
        """Multiway Stein's loss of estimate ``(B, b)`` against truth ``(Psi, psi)``."""
        return multiway_stein_loss(
            B, Psi, b, psi, tri_tol=self.tri_tol, pivot_tol=self.pivot_tol
        )

    def evaluate_from_covariances(
        self, Sigma_hat: Any, Sigma: Any, b: Any, psi: Any
    ) -> float:
        """Same as :meth:`evaluate` for per-mode covariance matrices."""
        return multiway_stein_loss_from_covariances(
            Sigma_hat, Sigma, b, psi, sym_tol=self.sym_tol, pivot_tol=self.pivot_tol
        )

    def evaluate_terms(self, B: Any, Psi: Any, b: Any, psi: Any) -> LossBreakdown:
        mode_terms, scale_term = multiway_stein_terms(
            B, Psi, b, psi, tri_tol=self.tri_tol, pivot_tol=self.pivot_tol
        )
        return LossBreakdown(mode_terms=tuple(mode_terms), scale_term=scale_term)

    def evaluate_kronecker(self, B: Any, Psi: Any, b: Any, psi: Any) -> float:
        """Classical Stein's loss of the assembled Kronecker covariance."""
        return kronecker_stein_loss(
            B, Psi, b, psi, tri_tol=self.tri_tol, pivot_tol=self.pivot_tol
        )

    # ------------------------------------------------------------------
    # Risk over many draws
    # ------------------------------------------------------------------
    def risk(
        self,
        estimates: Iterable[tuple[Any, Any]],
        Psi: Any,
        psi: Any,
        *,
        on_error: str = "raise",
    ) -> RiskSummary:
        """
        Average loss of a stream of ``(B, b)`` estimates against one truth.

        Parameters
        ----------
        estimates : iterable of (B, b)
            For example point estimates from repeated simulations, or posterior
            draws.
        Psi, psi : truth factors and scale
        on_error : {"raise", "skip"}
            ``"skip"`` drops draws that fail validation and logs a warning for each.
        """
        if on_error not in _ON_ERROR:
            raise ValueError(f"on_error must be one of {_ON_ERROR}, got {on_error!r}")

        losses: list[float] = []
        errors: list[str] = []
        for i, (B, b) in enumerate(estimates):
            try:
                losses.append(self.evaluate(B, Psi, b, psi))
            except MultiwayLossError as e:
                if on_error == "raise":
                    raise
                logger.warning("Skipping draw %d: %s", i, e)
                errors.append(f"{i}: {e}")

        summary = RiskSummary(
            losses=np.asarray(losses, dtype=np.float64),
            n_skipped=len(errors),
            errors=errors,
        )
        logger.debug(
            "risk: mean=%.6g se=%.3g evaluated=%d skipped=%d",
            summary.mean,
            summary.std_error,
            summary.n_evaluated,
            summary.n_skipped,
        )
        return summary

    def compare(
        self,
        candidates: Mapping[str, Iterable[tuple[Any, Any]]],
        Psi: Any,
        psi: Any,
        *,
        on_error: str = "raise",
    ) -> dict[str, RiskSummary]:
        """Risk of each named estimator, ordered from lowest to highest mean risk."""
        if len(candidates) == 0:
            raise ValueError("candidates must contain at least one estimator")

        results = {
            name: self.risk(draws, Psi, psi, on_error=on_error)
            for name, draws in candidates.items()
        }
        ordered = sorted(
            results.items(),
            key=lambda item: (math.isnan(item[1].mean), item[1].mean),
        )
        for name, summary in ordered:
            logger.debug("compare: %s mean=%.6g", name, summary.mean)
        return dict(ordered)
