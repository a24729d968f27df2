"""B-spline bases and their tensor-product evaluation.

Univariate values are computed per knot interval from the Bezier extraction
operators and the Bernstein polynomials, scaled to the grid coordinates, and
stored in a univariate cache indexed ``[component][direction][interval]``
whose entries hold all derivative orders. The multivariate tables of an
element are outer products of the univariate entries across directions.
"""

from __future__ import annotations

import enum
import itertools
from abc import abstractmethod
from collections.abc import Iterable, Sequence
from functools import cached_property
from math import prod
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
import scipy.sparse

from ._bspline_impl import compute_Bezier_extraction_1D, tabulate_Bernstein_derivatives_1D
from .dof_distribution import DofDistribution
from .grid import Grid
from .grid_element import GridElement
from .handler import ElementContainer
from .spline_space import SplineSpace

if TYPE_CHECKING:
    from .basis_element import BasisElement, ReferenceElementHandler

# [component][direction][interval] -> array (max_order + 1, degree + 1, n_points_dir)
UnivariateCache = list[list[dict[int, npt.NDArray[np.float64]]]]


class BasisKind(enum.Enum):
    """Kinds of reference bases the element handlers can evaluate."""

    BSPLINE = "bspline"
    NURBS = "nurbs"


class SplineBasis(ElementContainer):
    """Common interface of the reference bases built on a :class:`SplineSpace`."""

    kind: BasisKind

    def __init__(self, space: SplineSpace) -> None:
        self._space = space

    @property
    def space(self) -> SplineSpace:
        """The spline space."""
        return self._space

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._space.grid

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._space.dim

    @property
    def range(self) -> int:
        """Number of components."""
        return self._space.range

    @property
    def dof_distribution(self) -> DofDistribution:
        """Global numbering of the basis functions."""
        return self._space.dof_distribution

    def get_num_basis(self) -> int:
        """Total number of basis functions."""
        return self._space.get_num_basis()

    def get_num_local_basis(self) -> int:
        """Number of basis functions non-zero on an element."""
        return self._space.get_num_local_basis()

    def get_local_blocks(self) -> list[slice]:
        """Rows of each component in the local tables of an element."""
        blocks = []
        start = 0
        for comp in range(self.range):
            size = self._space.get_num_local_basis(comp)
            blocks.append(slice(start, start + size))
            start += size
        return blocks

    @abstractmethod
    def refined(self, grid: Grid) -> SplineBasis:
        """The basis of the same kind on a refinement of its grid."""

    @abstractmethod
    def prolongate(
        self, fine: SplineBasis, coefficients: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Coefficients in ``fine`` of the function with the given coefficients in this basis.

        Args:
            fine (SplineBasis): A basis returned by :meth:`refined`.
            coefficients (npt.ArrayLike): One coefficient per global dof.
        """

    def refine_h(self, n_subdivisions: int | Sequence[int] = 2) -> SplineBasis:
        """The basis on the grid with every interval split into ``n_subdivisions`` parts."""
        return self.refined(self.grid.refine(n_subdivisions))

    def _new_element(self, prop: str) -> BasisElement:
        # Lazy import to avoid circular dependency
        from .basis_element import BasisElement  # noqa: PLC0415

        return BasisElement(self, GridElement(self.grid, prop))

    def create_cache_handler(self) -> ReferenceElementHandler:
        """Handler filling the caches of the basis elements."""
        # Lazy import to avoid circular dependency
        from .basis_element import ReferenceElementHandler  # noqa: PLC0415

        return ReferenceElementHandler.create(self)


class BSpline(SplineBasis):
    """The B-spline basis of a spline space."""

    kind = BasisKind.BSPLINE

    @cached_property
    def _extraction(self) -> tuple[tuple[npt.NDArray[np.float64], ...], ...]:
        space = self._space
        operators = []
        for c in range(self.range):
            per_dir = []
            for d in range(self.dim):
                all_intervals = compute_Bezier_extraction_1D(
                    space.get_knot_vector(c, d), space.degree[c][d], space.get_multiplicities(c, d)
                )
                offset = space.get_interval_offset(c, d)
                per_dir.append(all_intervals[offset : offset + self.grid.num_intervals[d]])
            operators.append(tuple(per_dir))
        return tuple(operators)

    def get_extraction_operator(self, comp: int, direction: int) -> npt.NDArray[np.float64]:
        """Bezier extraction operators, shape ``(n_intervals, degree + 1, degree + 1)``."""
        return self._extraction[comp][direction]

    def evaluate_univariate(
        self, comp: int, direction: int, interval: int, max_order: int, t: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        """Univariate basis functions non-zero on an interval and their derivatives.

        Args:
            comp (int): Component.
            direction (int): Direction.
            interval (int): Interval index along the direction.
            max_order (int): Highest derivative order.
            t (npt.ArrayLike): 1D points in the unit interval.

        Returns:
            npt.NDArray[np.float64]: Array of shape
                ``(max_order + 1, degree + 1, len(t))``; derivatives are taken
                with respect to the grid coordinate.
        """
        degree = self._space.degree[comp][direction]
        operator = self._extraction[comp][direction][interval]
        knots = self.grid.get_knot_coordinates(direction)
        h = knots[interval + 1] - knots[interval]
        return np.array(
            [
                operator @ tabulate_Bernstein_derivatives_1D(degree, order, t).T / h**order
                for order in range(max_order + 1)
            ]
        )

    def build_univariate_cache(
        self,
        coords_per_dir: Sequence[npt.ArrayLike],
        max_order: int,
        intervals_per_dir: Sequence[Iterable[int]] | None = None,
    ) -> UnivariateCache:
        """Univariate values of all components and directions at the given coordinates.

        Args:
            coords_per_dir (Sequence[npt.ArrayLike]): Unit coordinates along each direction.
            max_order (int): Highest derivative order.
            intervals_per_dir (Sequence[Iterable[int]] | None): Intervals to
                compute along each direction. Defaults to all of them.
        """
        if intervals_per_dir is None:
            intervals_per_dir = [range(n) for n in self.grid.num_intervals]
        intervals = [sorted(set(ids)) for ids in intervals_per_dir]
        return [
            [
                {
                    i: self.evaluate_univariate(c, d, i, max_order, coords_per_dir[d])
                    for i in intervals[d]
                }
                for d in range(self.dim)
            ]
            for c in range(self.range)
        ]

    def refined(self, grid: Grid) -> BSpline:
        """The B-spline basis of the space refined to ``grid``."""
        return BSpline(self._space.refined(grid))

    def _univariate_prolongation(
        self, fine: BSpline, comp: int, direction: int
    ) -> npt.NDArray[np.float64]:
        # On every fine interval both local bases span the polynomials of the
        # degree; collocation at degree + 1 points gives the change of basis.
        degree = self._space.degree[comp][direction]
        coarse_breaks = self.grid.get_knot_coordinates(direction)
        fine_breaks = fine.grid.get_knot_coordinates(direction)
        n_coarse = self._space.get_num_basis_per_direction(comp)[direction]
        n_fine = fine.space.get_num_basis_per_direction(comp)[direction]
        t = np.linspace(0.0, 1.0, degree + 1) if degree > 0 else np.array([0.5])
        local = np.arange(degree + 1)

        P = np.zeros((n_fine, n_coarse))
        for i in range(fine_breaks.shape[0] - 1):
            a, b = fine_breaks[i], fine_breaks[i + 1]
            k = int(np.searchsorted(coarse_breaks, 0.5 * (a + b))) - 1
            k = min(max(k, 0), coarse_breaks.shape[0] - 2)
            t_coarse = (a + t * (b - a) - coarse_breaks[k]) / (
                coarse_breaks[k + 1] - coarse_breaks[k]
            )
            fine_values = fine.evaluate_univariate(comp, direction, i, 0, t)[0]
            coarse_values = self.evaluate_univariate(comp, direction, k, 0, t_coarse)[0]
            rows = (fine.space.get_first_basis_index(comp, direction, i) + local) % n_fine
            cols = (self._space.get_first_basis_index(comp, direction, k) + local) % n_coarse
            P[np.ix_(rows, cols)] = np.linalg.solve(fine_values.T, coarse_values.T)
        # prune round-off
        P[np.abs(P) < 1e-14] = 0.0  # noqa: PLR2004
        return P

    def get_prolongation(self, fine: BSpline) -> scipy.sparse.csr_matrix:
        """Matrix mapping coefficients in this basis to those of the same function in ``fine``.

        Args:
            fine (BSpline): A B-spline basis whose space contains this one, with
                the same degrees, such as the one returned by :meth:`refined`.

        Returns:
            scipy.sparse.csr_matrix: Matrix of shape
                ``(fine.get_num_basis(), self.get_num_basis())``, block diagonal
                by component with Kronecker factors along the directions.

        Raises:
            ValueError: If the degrees or the number of components differ.
        """
        if fine.space.degree != self._space.degree:
            raise ValueError(
                f"Prolongation needs equal degrees, got {self._space.degree} "
                f"and {fine.space.degree}"
            )
        blocks = []
        for comp in range(self.range):
            P = scipy.sparse.csr_matrix(self._univariate_prolongation(fine, comp, 0))
            for d in range(1, self.dim):
                P = scipy.sparse.kron(P, self._univariate_prolongation(fine, comp, d))
            blocks.append(P)
        matrix = scipy.sparse.block_diag(blocks, format="csr")
        matrix.eliminate_zeros()
        return matrix

    def prolongate(
        self, fine: SplineBasis, coefficients: npt.ArrayLike
    ) -> npt.NDArray[np.float64]:
        if not isinstance(fine, BSpline):
            raise TypeError(f"Expected a BSpline, got {type(fine).__name__}")
        return self.get_prolongation(fine) @ np.asarray(coefficients, dtype=np.float64)

    def __repr__(self) -> str:
        return f"BSpline({self._space})"


def tensor_combine(
    factors: Sequence[npt.NDArray[np.float64]], lattice: bool
) -> npt.NDArray[np.float64]:
    """Combine univariate tables ``(n_basis_d, n_points_d)`` into a multivariate one.

    In lattice mode the points form the tensor product of the per-direction
    points and the result has shape ``(prod n_basis_d, prod n_points_d)``;
    otherwise every direction holds the coordinates of the same points and the
    result has shape ``(prod n_basis_d, n_points)``. Both indices follow the
    flat (C) order.
    """
    result = factors[0]
    for factor in factors[1:]:
        if lattice:
            combined = np.einsum("ip,jq->ijpq", result, factor)
            result = combined.reshape(
                result.shape[0] * factor.shape[0], result.shape[1] * factor.shape[1]
            )
        else:
            combined = np.einsum("ip,jp->ijp", result, factor)
            result = combined.reshape(result.shape[0] * factor.shape[0], result.shape[1])
    return result


def tabulate_tensor_derivatives(
    univariate: Sequence[Sequence[npt.NDArray[np.float64]]],
    order: int,
    lattice: bool,
    dim: int,
) -> npt.NDArray[np.float64]:
    """Derivatives of order ``order`` of the local basis of an element.

    Args:
        univariate (Sequence[Sequence[npt.NDArray[np.float64]]]): Per component
            and direction, the univariate values of the element's interval, shape
            ``(max_order + 1, degree + 1, n_points_dir)`` with ``max_order >= order``.
        order (int): Derivative order.
        lattice (bool): Whether the points form a lattice.
        dim (int): Dimension.

    Returns:
        npt.NDArray[np.float64]: Array of shape
            ``(n_local_basis, n_points, range) + (dim,) * order``. Each
            component is non-zero only on its own block of rows.
    """
    n_range = len(univariate)
    n_local = sum(prod(uni[d].shape[1] for d in range(dim)) for uni in univariate)
    first = univariate[0]
    if lattice:
        n_points = prod(first[d].shape[2] for d in range(dim))
    else:
        n_points = first[0].shape[2]

    out = np.zeros((n_local, n_points, n_range) + (dim,) * order)
    start = 0
    for comp, uni in enumerate(univariate):
        size = prod(uni[d].shape[1] for d in range(dim))
        combined: dict[tuple[int, ...], npt.NDArray[np.float64]] = {}
        for axes in itertools.product(range(dim), repeat=order):
            counts = tuple(axes.count(d) for d in range(dim))
            if counts not in combined:
                combined[counts] = tensor_combine([uni[d][counts[d]] for d in range(dim)], lattice)
            out[(slice(start, start + size), slice(None), comp, *axes)] = combined[counts]
        start += size
    return out


def element_univariate(
    cache: UnivariateCache, elem_index: Sequence[int]
) -> list[list[npt.NDArray[np.float64]]]:
    """Entries of a univariate cache for the intervals of one element."""
    return [[per_dir[d][i] for d, i in enumerate(elem_index)] for per_dir in cache]


def tabulate_element_derivatives(
    univariate: Sequence[Sequence[npt.NDArray[np.float64]]],
    max_order: int,
    lattice: bool,
    dim: int,
) -> list[npt.NDArray[np.float64]]:
    """Derivatives of orders ``0..max_order`` of the local basis of an element."""
    return [tabulate_tensor_derivatives(univariate, k, lattice, dim) for k in range(max_order + 1)]


def get_univariate_cache_intervals(
    grid: Grid, elements_flat_ids: Iterable[int] | None
) -> list[list[int]] | None:
    """Intervals along each direction touched by the given elements (all if None)."""
    if elements_flat_ids is None:
        return None
    intervals: list[set[int]] = [set() for _ in range(grid.dim)]
    for flat in elements_flat_ids:
        for d, i in enumerate(grid.flat_to_tensor(flat)):
            intervals[d].add(i)
    return [sorted(ids) for ids in intervals]
