"""Non-uniform rational B-splines.

A NURBS function is the quotient ``R_i = w_i N_i / W`` of a weighted B-spline
by the weight function ``W = sum_j w_j N_j``; each component of a vector
basis has its own weight function. Derivatives follow from differentiating
``R W = w N``.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import numpy.typing as npt

from .bspline import BasisKind, BSpline, SplineBasis, UnivariateCache
from .errors import InputDataError, dimension_mismatch
from .grid import Grid


class NURBS(SplineBasis):
    """Rational basis built from a :class:`BSpline` and one positive weight per basis function."""

    kind = BasisKind.NURBS

    def __init__(self, bspline: BSpline, weights: npt.ArrayLike) -> None:
        """Initialize the basis.

        Args:
            bspline (BSpline): The underlying B-spline basis.
            weights (npt.ArrayLike): Weights indexed by global dof.

        Raises:
            InputDataError: If the number of weights does not match the number
                of basis functions or a weight is not positive.
        """
        super().__init__(bspline.space)
        w = np.array(weights, dtype=np.float64).reshape(-1)
        n_basis = bspline.get_num_basis()
        if w.shape[0] != n_basis:
            raise InputDataError(dimension_mismatch("weights", n_basis, w.shape[0]))
        if np.any(w <= 0.0):
            raise InputDataError(f"NURBS weights must be positive, got minimum {w.min()}")
        w.flags.writeable = False
        self._bspline = bspline
        self._weights = w

    @property
    def bspline(self) -> BSpline:
        """The underlying B-spline basis."""
        return self._bspline

    @property
    def weights(self) -> npt.NDArray[np.float64]:
        """Read-only weights indexed by global dof."""
        return self._weights

    def build_univariate_cache(
        self,
        coords_per_dir: Sequence[npt.ArrayLike],
        max_order: int,
        intervals_per_dir: Sequence[Sequence[int]] | None = None,
    ) -> UnivariateCache:
        """Univariate cache of the underlying B-spline basis."""
        return self._bspline.build_univariate_cache(coords_per_dir, max_order, intervals_per_dir)

    def refined(self, grid: Grid) -> NURBS:
        """The NURBS basis of the refined B-spline with the weight functions unchanged.

        The weights are prolongated like coefficients, so each weight function,
        and therefore every function of the current basis, is represented
        exactly in the refined one.
        """
        fine = self._bspline.refined(grid)
        return NURBS(fine, self._bspline.get_prolongation(fine) @ self._weights)

    def prolongate(
        self, fine: SplineBasis, coefficients: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        if not isinstance(fine, NURBS):
            raise TypeError(f"Expected a NURBS basis, got {type(fine).__name__}")
        # The weighted coefficients are those of the polynomial numerator.
        weighted = self._weights * np.asarray(coefficients, dtype=np.float64)
        return (self._bspline.get_prolongation(fine.bspline) @ weighted) / fine.weights

    def __repr__(self) -> str:
        return f"NURBS({self._bspline.space})"


def apply_nurbs_quotient(
    tables: Sequence[npt.NDArray[np.float64]],
    local_weights: npt.ArrayLike,
    blocks: Sequence[slice],
) -> list[npt.NDArray[np.float64]]:
    """Turn B-spline derivative tables of an element into NURBS ones.

    Args:
        tables (Sequence[npt.NDArray[np.float64]]): B-spline derivatives of
            orders ``0..len(tables) - 1`` (at most 2), each of shape
            ``(n_local_basis, n_points, range) + (dim,) * order``.
        local_weights (npt.ArrayLike): Weights of the local basis functions.
        blocks (Sequence[slice]): Rows of each component.

    Returns:
        list[npt.NDArray[np.float64]]: The NURBS tables, same shapes.

    Raises:
        ValueError: If derivatives of order higher than 2 are given.
    """
    max_order = len(tables) - 1
    if max_order > 2:  # noqa: PLR2004
        raise ValueError(f"NURBS derivatives are available up to order 2, got {max_order}")
    w = np.asarray(local_weights, dtype=np.float64)
    result = [np.zeros_like(table) for table in tables]

    for comp, rows in enumerate(blocks):
        wc = w[rows]
        N0 = tables[0][rows, :, comp]
        W0 = np.einsum("b,bq->q", wc, N0)
        R0 = wc[:, None] * N0 / W0
        result[0][rows, :, comp] = R0
        if max_order < 1:
            continue

        N1 = tables[1][rows, :, comp]
        W1 = np.einsum("b,bqa->qa", wc, N1)
        R1 = (wc[:, None, None] * N1 - R0[:, :, None] * W1) / W0[:, None]
        result[1][rows, :, comp] = R1
        if max_order < 2:  # noqa: PLR2004
            continue

        N2 = tables[2][rows, :, comp]
        W2 = np.einsum("b,bqac->qac", wc, N2)
        R2 = (
            wc[:, None, None, None] * N2
            - R1[:, :, :, None] * W1[None, :, None, :]
            - R1[:, :, None, :] * W1[None, :, :, None]
            - R0[:, :, None, None] * W2
        ) / W0[:, None, None]
        result[2][rows, :, comp] = R2
    return result
