"""Quadrature rules and evaluation point sets on the unit element.

One-dimensional rules live on ``[0, 1]``; :class:`QuadratureTensorProduct`
combines them per direction. :class:`EvaluationPoints` holds an arbitrary
point set that is evaluated point-wise instead of as a lattice.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any, cast

import numpy as np
import numpy.typing as npt
from numpy.polynomial import legendre

from .config import get_strict_tolerance
from .product_array import CartesianProductArray, TensorProductArray
from .unit_element import SubElement


def _scale_nodes_and_weights(
    nodes: npt.NDArray[np.float64], weights: npt.NDArray[np.float64]
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Scale nodes and weights from the interval [-1, 1] to the interval [0, 1]."""
    return (nodes + 1.0) * 0.5, weights * 0.5


def _validate_n_pts(n_pts: int, minimum: int = 1) -> None:
    """Validate the number of points of a 1D rule.

    Raises:
        ValueError: If n_pts is less than ``minimum``.
    """
    if n_pts < minimum:
        raise ValueError(f"n_pts must be at least {minimum}")


def get_trapezoidal_quadrature_1D(
    n_pts: int,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Get trapezoidal quadrature nodes on [0, 1] for the given number of points.

    If n_pts == 1, the nodes are [0.5] and the weights are [1.0].

    Args:
        n_pts (int): The number of points. Must be at least 1.

    Returns:
        tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]: The nodes and weights.

    Raises:
        ValueError: If n_pts is less than 1.
    """
    _validate_n_pts(n_pts)

    if n_pts == 1:
        return np.array([0.5]), np.array([1.0])

    nodes = np.linspace(0.0, 1.0, n_pts)

    h = 1.0 / float(n_pts - 1)
    weights = np.full(n_pts, h)
    weights[0] = weights[-1] = 0.5 * h

    return nodes, weights


def get_gauss_legendre_quadrature_1D(
    n_pts: int,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Get Gauss-Legendre quadrature nodes on [0, 1] for the given number of points.

    The rule integrates exactly polynomials of degree ``2 * n_pts - 1``.

    Args:
        n_pts (int): The number of points. Must be at least 1.

    Returns:
        tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]: The nodes and weights.

    Raises:
        ValueError: If n_pts is less than 1.
    """
    _validate_n_pts(n_pts)

    leggauss_t = cast(
        Callable[[int], tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]],
        legendre.leggauss,
    )
    nodes, weights = leggauss_t(n_pts)

    return _scale_nodes_and_weights(nodes, weights)


def get_gauss_lobatto_legendre_quadrature_1D(
    n_pts: int,
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]:
    """Get Gauss-Lobatto-Legendre quadrature nodes on [0, 1] for the given number of points.

    Args:
        n_pts (int): The number of points. Must be at least 2.

    Returns:
        tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]: The nodes and weights.

    Raises:
        ValueError: If n_pts is less than 2.
    """
    _validate_n_pts(n_pts, minimum=2)

    # GLL nodes are [-1, roots of P_N'(x), 1] on [-1, 1], with N = n_pts - 1
    N = n_pts - 1
    basis_t = cast(Callable[[int], Any], legendre.Legendre.basis)
    P_N = basis_t(N)
    interior_nodes = np.sort(np.real(cast(npt.NDArray[np.float64], P_N.deriv().roots())))
    nodes = np.concatenate((np.array([-1.0]), interior_nodes, np.array([1.0])))

    # Weights on [-1, 1]: w_i = 2 / (N (N+1) [P_N(x_i)]^2)
    P_vals = cast(npt.NDArray[np.float64], P_N(nodes))
    weights = 2.0 / (float(N) * float(N + 1)) / (P_vals * P_vals)

    return _scale_nodes_and_weights(nodes, weights)


def _validate_unit_points(points: npt.NDArray[np.float64]) -> None:
    tol = get_strict_tolerance()
    if np.any(points < -tol) or np.any(points > 1.0 + tol):
        raise ValueError("Evaluation points must lie in the unit element [0, 1]^dim")


class QuadratureTensorProduct:
    """A tensor-product point set with tensor-product weights on ``[0, 1]^dim``.

    Points are stored per direction in a :class:`CartesianProductArray` and
    weights in a :class:`TensorProductArray`; flat point ids follow the
    package-wide C ordering.
    """

    is_tensor_product = True

    def __init__(
        self,
        points_per_dir: Iterable[npt.ArrayLike],
        weights_per_dir: Iterable[npt.ArrayLike] | None = None,
    ) -> None:
        """Initialize the quadrature.

        Args:
            points_per_dir (Iterable[npt.ArrayLike]): 1D coordinates per direction.
            weights_per_dir (Iterable[npt.ArrayLike] | None): 1D weights per
                direction. Defaults to unit weights.

        Raises:
            ValueError: If points lie outside ``[0, 1]`` or weights and points
                have mismatching sizes.
        """
        self._points = CartesianProductArray(list(points_per_dir))
        for k in range(self._points.dim):
            _validate_unit_points(self._points.get_data_direction(k))
        if weights_per_dir is None:
            weights_per_dir = [np.ones(n) for n in self._points.tensor_size()]
        self._weights = TensorProductArray(list(weights_per_dir))
        if self._weights.tensor_size() != self._points.tensor_size():
            raise ValueError(
                f"Weights sizes {self._weights.tensor_size()} do not match "
                f"points sizes {self._points.tensor_size()}"
            )

    @property
    def dim(self) -> int:
        """Dimension of the point set."""
        return self._points.dim

    @property
    def n_points(self) -> int:
        """Total number of points."""
        return self._points.flat_size()

    @property
    def points(self) -> CartesianProductArray:
        """Per-direction coordinates."""
        return self._points

    @property
    def weights(self) -> TensorProductArray:
        """Per-direction weights."""
        return self._weights

    @property
    def coords_per_dir(self) -> tuple[npt.NDArray[np.float64], ...]:
        """Read-only 1D coordinates per direction."""
        return tuple(self._points.get_data_direction(k) for k in range(self.dim))

    def get_points(self) -> npt.NDArray[np.float64]:
        """All the points, shape ``(n_points, dim)``."""
        return self._points.get_flat_cartesian_product()

    def get_weights(self) -> npt.NDArray[np.float64]:
        """All the weights, shape ``(n_points,)``."""
        return self._weights.get_flat_tensor_product()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dim={self.dim}, sizes={self._points.tensor_size()})"


class EvaluationPoints:
    """An arbitrary set of points in the unit element, evaluated point-wise."""

    is_tensor_product = False

    def __init__(self, points: npt.ArrayLike, weights: npt.ArrayLike | None = None) -> None:
        """Initialize the point set.

        Args:
            points (npt.ArrayLike): Points, shape ``(n_points, dim)``.
            weights (npt.ArrayLike | None): Weights, shape ``(n_points,)``.
                Defaults to unit weights.

        Raises:
            ValueError: If shapes are inconsistent or points lie outside the unit element.
        """
        pts = np.array(points, dtype=np.float64)
        if pts.ndim != 2:  # noqa: PLR2004
            raise ValueError(f"Points must have shape (n_points, dim), got {pts.shape}")
        _validate_unit_points(pts)
        wts = np.ones(pts.shape[0]) if weights is None else np.array(weights, dtype=np.float64)
        if wts.shape != (pts.shape[0],):
            raise ValueError(f"Weights must have shape ({pts.shape[0]},), got {wts.shape}")
        pts.flags.writeable = False
        wts.flags.writeable = False
        self._points = pts
        self._weights = wts

    @property
    def dim(self) -> int:
        """Dimension of the point set."""
        return int(self._points.shape[1])

    @property
    def n_points(self) -> int:
        """Total number of points."""
        return int(self._points.shape[0])

    @property
    def coords_per_dir(self) -> tuple[npt.NDArray[np.float64], ...]:
        """Coordinates of every point along each direction (not a lattice)."""
        return tuple(self._points[:, k] for k in range(self.dim))

    def get_points(self) -> npt.NDArray[np.float64]:
        """All the points, shape ``(n_points, dim)``."""
        return self._points

    def get_weights(self) -> npt.NDArray[np.float64]:
        """All the weights, shape ``(n_points,)``."""
        return self._weights

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(dim={self.dim}, n_points={self.n_points})"


EvalPoints = QuadratureTensorProduct | EvaluationPoints


def _make_tensor_rule(
    rule: Callable[[int], tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]]],
    dim: int,
    n_points_per_dir: int | Sequence[int],
) -> QuadratureTensorProduct:
    if dim < 0:
        raise ValueError(f"Dimension must be non-negative, got {dim}")
    if isinstance(n_points_per_dir, int):
        n_points_per_dir = [n_points_per_dir] * dim
    if len(n_points_per_dir) != dim:
        raise ValueError(f"Expected {dim} numbers of points, got {len(n_points_per_dir)}")
    rules = [rule(n) for n in n_points_per_dir]
    return QuadratureTensorProduct([r[0] for r in rules], [r[1] for r in rules])


def QGauss(dim: int, n_points_per_dir: int | Sequence[int]) -> QuadratureTensorProduct:
    """Tensor-product Gauss-Legendre rule on ``[0, 1]^dim``.

    Example:
        >>> QGauss(2, 3).n_points
        9
    """
    return _make_tensor_rule(get_gauss_legendre_quadrature_1D, dim, n_points_per_dir)


def QGaussLobatto(dim: int, n_points_per_dir: int | Sequence[int]) -> QuadratureTensorProduct:
    """Tensor-product Gauss-Lobatto-Legendre rule on ``[0, 1]^dim``."""
    return _make_tensor_rule(get_gauss_lobatto_legendre_quadrature_1D, dim, n_points_per_dir)


def QTrapez(dim: int, n_points_per_dir: int | Sequence[int] = 2) -> QuadratureTensorProduct:
    """Tensor-product trapezoidal rule on ``[0, 1]^dim`` (equispaced points, ends included)."""
    return _make_tensor_rule(get_trapezoidal_quadrature_1D, dim, n_points_per_dir)


def extend_sub_element(eval_points: EvalPoints, sub_element: SubElement, dim: int) -> EvalPoints:
    """Lift a k-dimensional point set to the ``dim``-dimensional points of a sub-element.

    The active directions of the sub-element take the directions of
    ``eval_points`` in order; each constant direction gets a single coordinate
    (0 or 1) with unit weight.

    Args:
        eval_points (EvalPoints): Points of dimension ``k = sub_element.k``.
        sub_element (SubElement): The sub-element of the unit element.
        dim (int): Dimension of the element.

    Returns:
        EvalPoints: Point set of dimension ``dim``, of the same kind as ``eval_points``.

    Raises:
        ValueError: If the dimension of ``eval_points`` does not match the sub-element.
    """
    if eval_points.dim != sub_element.k:
        raise ValueError(
            f"Points of dimension {eval_points.dim} cannot be placed on a "
            f"{sub_element.k}-dimensional sub-element"
        )
    constant = dict(zip(sub_element.constant_directions, sub_element.constant_values))
    active = {d: i for i, d in enumerate(sub_element.active_directions)}

    if isinstance(eval_points, QuadratureTensorProduct):
        points_per_dir = []
        weights_per_dir = []
        for d in range(dim):
            if d in constant:
                points_per_dir.append(np.array([float(constant[d])]))
                weights_per_dir.append(np.ones(1))
            else:
                points_per_dir.append(eval_points.points.get_data_direction(active[d]))
                weights_per_dir.append(eval_points.weights.get_data_direction(active[d]))
        return QuadratureTensorProduct(points_per_dir, weights_per_dir)

    src = eval_points.get_points()
    points = np.empty((eval_points.n_points, dim))
    for d in range(dim):
        points[:, d] = float(constant[d]) if d in constant else src[:, active[d]]
    return EvaluationPoints(points, eval_points.get_weights())
