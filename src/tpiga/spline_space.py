"""Tensor-product spline spaces over a grid."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import cached_property
from math import prod

import numpy as np
import numpy.typing as npt

from ._bspline_impl import create_open_knot_vector, create_periodic_knot_vector
from .config import MAX_DIM
from .dof_distribution import DofDistribution
from .grid import Grid

logger = logging.getLogger(__name__)

DegreeSpec = int | Sequence[int] | Sequence[Sequence[int]]


class SplineSpace:
    """Spline space of ``range_`` components over a tensor-product grid.

    Each component has its own degree along each direction. The knot vectors
    are open (end multiplicity ``degree + 1``) and share the grid break points
    and the interior multiplicities; by default every interior multiplicity
    is 1 (maximum regularity).

    A periodic direction identifies both ends of the grid: its seam has
    multiplicity 1 and the basis functions crossing it wrap around, so the
    number of basis functions along it is the sum of the multiplicities of
    the break points excluding the last one.
    """

    def __init__(
        self,
        degree: DegreeSpec,
        grid: Grid,
        interior_multiplicities: Sequence[Sequence[int]] | None = None,
        range_: int = 1,
        periodic: bool | Sequence[bool] = False,
    ) -> None:
        """Initialize the space.

        Args:
            degree (DegreeSpec): An int (all components and directions), a
                sequence of ``dim`` ints (all components) or a sequence of
                ``range_`` sequences of ``dim`` ints.
            grid (Grid): The grid.
            interior_multiplicities (Sequence[Sequence[int]] | None): Per
                direction, the multiplicity of each interior break point.
                Defaults to 1 everywhere.
            range_ (int): Number of components. Defaults to 1.
            periodic (bool | Sequence[bool]): Whether each direction (all of
                them if a bool) is periodic. Defaults to False.

        Raises:
            ValueError: If degrees or multiplicities are invalid, or a periodic
                direction has fewer than ``degree + 1`` basis functions.
        """
        if not 1 <= range_ <= MAX_DIM:
            raise ValueError(f"range_ must be in [1, {MAX_DIM}], got {range_}")
        self._grid = grid
        self._range = range_
        self._degree = self._normalize_degree(degree)
        if isinstance(periodic, (bool, np.bool_)):
            periodic = [bool(periodic)] * grid.dim
        self._periodic = tuple(bool(p) for p in periodic)
        if len(self._periodic) != grid.dim:
            raise ValueError(f"Expected periodicity for {grid.dim} directions, got {periodic}")

        if interior_multiplicities is None:
            interior_multiplicities = [[1] * (n - 1) for n in grid.num_intervals]
        self._interior_mults = tuple(
            tuple(int(m) for m in mults) for mults in interior_multiplicities
        )
        self._validate_multiplicities()
        logger.debug("spline space of degree %s on %s", self._degree, grid)

    def _normalize_degree(self, degree: DegreeSpec) -> tuple[tuple[int, ...], ...]:
        dim = self._grid.dim
        if isinstance(degree, (int, np.integer)):
            per_comp = [[int(degree)] * dim] * self._range
        elif all(isinstance(d, (int, np.integer)) for d in degree):
            per_comp = [[int(d) for d in degree]] * self._range  # type: ignore[union-attr]
        else:
            per_comp = [[int(d) for d in comp] for comp in degree]  # type: ignore[union-attr]
        if len(per_comp) != self._range or any(len(c) != dim for c in per_comp):
            raise ValueError(f"Degree {degree} is not valid for {self._range} components in {dim}D")
        if any(p < 0 for c in per_comp for p in c):
            raise ValueError(f"Degrees must be non-negative, got {degree}")
        return tuple(tuple(c) for c in per_comp)

    def _validate_multiplicities(self) -> None:
        if len(self._interior_mults) != self.dim:
            raise ValueError(
                f"Expected interior multiplicities for {self.dim} directions, "
                f"got {len(self._interior_mults)}"
            )
        for direction, mults in enumerate(self._interior_mults):
            n_interior = self._grid.num_intervals[direction] - 1
            if len(mults) != n_interior:
                raise ValueError(
                    f"Direction {direction} has {n_interior} interior break points, "
                    f"got {len(mults)} multiplicities"
                )
            max_mult = min(self._degree[c][direction] + 1 for c in range(self._range))
            if any(not 1 <= m <= max_mult for m in mults):
                raise ValueError(
                    f"Interior multiplicities of direction {direction} must be in [1, {max_mult}]"
                )
            if self._periodic[direction]:
                n_periodic = 1 + sum(mults)
                max_degree = max(self._degree[c][direction] for c in range(self._range))
                if n_periodic < max_degree + 1:
                    raise ValueError(
                        f"Periodic direction {direction} has {n_periodic} basis functions, "
                        f"at least {max_degree + 1} are needed for degree {max_degree}"
                    )

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._grid

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._grid.dim

    @property
    def range(self) -> int:
        """Number of components."""
        return self._range

    @property
    def degree(self) -> tuple[tuple[int, ...], ...]:
        """Degree per component and direction."""
        return self._degree

    @property
    def interior_multiplicities(self) -> tuple[tuple[int, ...], ...]:
        """Interior multiplicities per direction."""
        return self._interior_mults

    @property
    def periodic(self) -> tuple[bool, ...]:
        """Whether each direction is periodic."""
        return self._periodic

    def get_knot_vector(self, comp: int, direction: int) -> npt.NDArray[np.float64]:
        """Open knot vector of one component along one direction.

        Along a periodic direction this is the knot vector of the break points
        extended periodically by ``degree`` intervals on each side.
        """
        return self._knots_and_mults[comp][direction][0]

    def get_multiplicities(self, comp: int, direction: int) -> npt.NDArray[np.int64]:
        """Multiplicity of every break point of the knot vector, ends included."""
        return self._knots_and_mults[comp][direction][1]

    def get_interval_offset(self, comp: int, direction: int) -> int:
        """Index, in the knot vector intervals, of the first interval of the grid."""
        return self._degree[comp][direction] if self._periodic[direction] else 0

    @cached_property
    def _knots_and_mults(
        self,
    ) -> tuple[tuple[tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]], ...], ...]:
        return tuple(
            tuple(
                (create_periodic_knot_vector if self._periodic[d] else create_open_knot_vector)(
                    self._grid.get_knot_coordinates(d),
                    self._degree[c][d],
                    self._interior_mults[d],
                )
                for d in range(self.dim)
            )
            for c in range(self._range)
        )

    @cached_property
    def _accumulated_mults(self) -> tuple[tuple[npt.NDArray[np.int64], ...], ...]:
        return tuple(
            tuple(
                np.concatenate(([0], np.cumsum(self.get_multiplicities(c, d))))
                for d in range(self.dim)
            )
            for c in range(self._range)
        )

    def get_num_basis_per_direction(self, comp: int) -> tuple[int, ...]:
        """Number of basis functions of one component along each direction."""
        return tuple(
            1 + sum(self._interior_mults[d])
            if self._periodic[d]
            else len(self.get_knot_vector(comp, d)) - self._degree[comp][d] - 1
            for d in range(self.dim)
        )

    def get_num_basis(self, comp: int | None = None) -> int:
        """Number of basis functions of one component, or of all of them."""
        comps = range(self._range) if comp is None else [comp]
        return sum(prod(self.get_num_basis_per_direction(c)) for c in comps)

    def get_num_local_basis(self, comp: int | None = None) -> int:
        """Number of basis functions non-zero on an element, of one component or of all."""
        comps = range(self._range) if comp is None else [comp]
        return sum(prod(p + 1 for p in self._degree[c]) for c in comps)

    def get_first_basis_index(self, comp: int, direction: int, interval: int) -> int:
        """Index (along ``direction``) of the first basis function non-zero on an interval.

        Along a periodic direction the indices of the functions non-zero on
        the last intervals run past the number of basis functions and wrap
        around to the first ones.
        """
        acc = self._accumulated_mults[comp][direction]
        offset = self.get_interval_offset(comp, direction)
        first = int(acc[offset + interval + 1]) - 1 - self._degree[comp][direction]
        if self._periodic[direction]:
            first -= int(acc[offset + 1]) - 1 - self._degree[comp][direction]
        return first

    @cached_property
    def dof_distribution(self) -> DofDistribution:
        """Global numbering of the basis functions."""
        return DofDistribution(self)

    def refined(self, grid: Grid) -> SplineSpace:
        """The space with the same degrees and regularity on a refinement of its grid.

        The break points of the grid keep their multiplicities; the new ones
        get multiplicity 1.

        Args:
            grid (Grid): A grid containing every break point of the current one.

        Raises:
            ValueError: If ``grid`` is not a refinement of the current grid.
        """
        if grid.dim != self.dim:
            raise ValueError(f"Expected a {self.dim}D grid, got a {grid.dim}D one")
        interior = []
        for d in range(self.dim):
            coarse = self._grid.get_knot_coordinates(d)
            fine = grid.get_knot_coordinates(d)
            positions = np.abs(fine[np.newaxis, :] - coarse[:, np.newaxis]).argmin(axis=1)
            if not np.allclose(fine[positions], coarse) or positions[-1] != fine.shape[0] - 1:
                raise ValueError(f"{grid} does not refine {self._grid} along direction {d}")
            mults = np.ones(fine.shape[0] - 2, dtype=np.int64)
            mults[positions[1:-1] - 1] = self._interior_mults[d]
            interior.append(mults.tolist())
        return SplineSpace(self._degree, grid, interior, self._range, self._periodic)

    def refine_h(self, n_subdivisions: int | Sequence[int] = 2) -> SplineSpace:
        """The space on the grid with every interval split into ``n_subdivisions`` parts."""
        return self.refined(self._grid.refine(n_subdivisions))

    def __repr__(self) -> str:
        return (
            f"SplineSpace(degree={self._degree}, grid={self._grid}, range_={self._range}, "
            f"periodic={self._periodic})"
        )
