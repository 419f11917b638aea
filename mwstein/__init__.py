from .api import LossBreakdown, RiskSummary, StructuredCovarianceLoss
from .exceptions import (
    InvalidScaleError,
    MultiwayLossError,
    NotTriangularError,
    NumericalInstabilityError,
    ShapeMismatchError,
)
from .metrics import (
    kronecker_stein_loss,
    multiway_stein_loss,
    multiway_stein_loss_from_covariances,
    multiway_stein_terms,
    stein_loss,
)
from .ops import kron_covariance, normalize_factors, transform_factors
from .sim import simulate_array_normal, simulate_covariances, simulate_factors
from .types import FactorCollection, ModeFactor, ScaleParameter

__all__ = [
    "FactorCollection",
    "InvalidScaleError",
    "LossBreakdown",
    "ModeFactor",
    "MultiwayLossError",
    "NotTriangularError",
    "NumericalInstabilityError",
    "RiskSummary",
    "ScaleParameter",
    "ShapeMismatchError",
    "StructuredCovarianceLoss",
    "kron_covariance",
    "kronecker_stein_loss",
    "multiway_stein_loss",
    "multiway_stein_loss_from_covariances",
    "multiway_stein_terms",
    "normalize_factors",
    "simulate_array_normal",
    "simulate_covariances",
    "simulate_factors",
    "stein_loss",
    "transform_factors",
]

__version__ = "0.1.0"
