"""Typed value objects for Kronecker-structured covariance factors."""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, overload

import numpy as np

from ._validation import (
    _as_square_matrix,
    _check_lower_triangular,
    _validate_covariance_list,
    _validate_factor_list,
    _validate_scale,
)
from .exceptions import MultiwayLossError
from .ops import cholesky_lower, logdet_from_triangular


@dataclass(frozen=True, eq=False)
class ModeFactor:
    """Lower-triangular square root ``L`` of one mode's covariance ``L @ L.T``.

    Parameters
    ----------
    matrix:
        Square lower-triangular array. Stored as a read-only ``float64`` array.
    tri_tol:
        Largest tolerated absolute value above the main diagonal.
    """

    matrix: np.ndarray
    tri_tol: float = field(default=0.0, repr=False, compare=False)

    def __post_init__(self) -> None:
        L = _as_square_matrix(self.matrix, name="matrix")
        _check_lower_triangular(L, name="matrix", tri_tol=self.tri_tol)
        L = L.copy()
        L.flags.writeable = False
        object.__setattr__(self, "matrix", L)

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        if dtype is None and not copy:
            return self.matrix
        return np.array(self.matrix, dtype=dtype)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModeFactor):
            return NotImplemented
        return bool(np.array_equal(self.matrix, other.matrix))

    def __hash__(self) -> int:
        # + 0.0 folds -0.0 into 0.0 so equal factors hash equally
        return hash((self.matrix.shape, (self.matrix + 0.0).tobytes()))

    @property
    def dim(self) -> int:
        return self.matrix.shape[0]

    @property
    def diagonal(self) -> np.ndarray:
        return np.diagonal(self.matrix)

    def log_abs_det(self) -> float:
        """``log|det L|``, from the diagonal."""
        return 0.5 * logdet_from_triangular(self.matrix)

    def covariance(self) -> np.ndarray:
        return self.matrix @ self.matrix.T


@dataclass(frozen=True)
class FactorCollection(Sequence):
    """Ordered, non-empty sequence of :class:`ModeFactor`, one per tensor mode."""

    factors: tuple[ModeFactor, ...]

    def __post_init__(self) -> None:
        factors = tuple(
            f if isinstance(f, ModeFactor) else ModeFactor(f) for f in self.factors
        )
        if len(factors) == 0:
            raise MultiwayLossError("factors must contain at least one mode.")
        object.__setattr__(self, "factors", factors)

    @classmethod
    def from_arrays(cls, arrays: Sequence[Any], *, tri_tol: float = 0.0) -> FactorCollection:
        mats = _validate_factor_list(arrays, name="arrays", tri_tol=tri_tol)
        return cls(tuple(ModeFactor(L, tri_tol=tri_tol) for L in mats))

    @classmethod
    def from_covariances(
        cls, covariances: Sequence[Any], *, sym_tol: float = 1e-8
    ) -> FactorCollection:
        """Build a collection from per-mode SPD covariances via Cholesky."""
        mats = _validate_covariance_list(covariances, name="covariances", sym_tol=sym_tol)
        return cls(
            tuple(
                ModeFactor(cholesky_lower(S, name="covariances", index=k))
                for k, S in enumerate(mats)
            )
        )

    @overload
    def __getitem__(self, index: int) -> ModeFactor: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[ModeFactor, ...]: ...

    def __getitem__(self, index):
        return self.factors[index]

    def __len__(self) -> int:
        return len(self.factors)

    def __iter__(self) -> Iterator[ModeFactor]:
        return iter(self.factors)

    @property
    def n_modes(self) -> int:
        return len(self.factors)

    @property
    def dims(self) -> tuple[int, ...]:
        return tuple(f.dim for f in self.factors)

    @property
    def total_dim(self) -> int:
        """``p = prod(p_k)``, the number of entries of one array observation."""
        return math.prod(self.dims)

    @property
    def matrices(self) -> list[np.ndarray]:
        return [f.matrix for f in self.factors]

    def covariances(self) -> list[np.ndarray]:
        return [f.covariance() for f in self.factors]


@dataclass(frozen=True)
class ScaleParameter:
    """Positive standard-deviation form of the total-variation parameter."""

    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _validate_scale(self.value, name="value"))

    def __float__(self) -> float:
        return self.value

    @property
    def variance(self) -> float:
        return self.value**2
