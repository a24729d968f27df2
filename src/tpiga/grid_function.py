"""Grid functions: maps from the grid coordinates to a ``space_dim``-dimensional space.

A grid function provides its value ``D0`` and derivatives ``D1``, ``D2`` and
``D3`` with respect to the grid coordinates. Derivative arrays have shape
``(n_points, space_dim, dim, ..., dim)`` with one ``dim`` axis per order.
"""

from __future__ import annotations

import copy
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from .cache import ValuesCache
from .config import MAX_DIM
from .errors import ConfigurationError
from .grid import Grid
from .grid_element import GridElement
from .handler import ElementAccessor, ElementContainer, ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_types import GridFunctionCacheFlags, GridFunctionFlags, Level

DERIVATIVE_CACHE_FLAGS = (
    GridFunctionCacheFlags.D0,
    GridFunctionCacheFlags.D1,
    GridFunctionCacheFlags.D2,
    GridFunctionCacheFlags.D3,
)
DERIVATIVE_FLAGS = (
    GridFunctionFlags.D0,
    GridFunctionFlags.D1,
    GridFunctionFlags.D2,
    GridFunctionFlags.D3,
)


class GridFunction(ElementContainer, ABC):
    """A function defined on the elements of a grid."""

    def __init__(self, grid: Grid, space_dim: int) -> None:
        """Initialize the grid function.

        Args:
            grid (Grid): The grid.
            space_dim (int): Dimension of the image space, at least the grid dimension.

        Raises:
            ValueError: If ``space_dim`` is not in ``[grid.dim, 3]``.
        """
        if not grid.dim <= space_dim <= MAX_DIM:
            raise ValueError(f"space_dim must be in [{grid.dim}, {MAX_DIM}], got {space_dim}")
        self._grid = grid
        self._space_dim = space_dim

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._grid

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._grid.dim

    @property
    def space_dim(self) -> int:
        """Dimension of the image space."""
        return self._space_dim

    def derivative_shape(self, n_points: int, order: int) -> tuple[int, ...]:
        """Shape of the order-``order`` derivative at ``n_points`` points."""
        return (n_points, self._space_dim) + (self.dim,) * order

    @abstractmethod
    def create_cache_handler(self) -> ElementHandler:
        """Handler filling the caches of the grid function elements."""

    @abstractmethod
    def refined(self, grid: Grid) -> GridFunction:
        """The same map on a refinement of its grid."""

    def refine_h(self, n_subdivisions: int | Sequence[int] = 2) -> GridFunction:
        """The same map on the grid with every interval split into ``n_subdivisions`` parts."""
        return self.refined(self._grid.refine(n_subdivisions))



class GridFunctionElement(ElementAccessor):
    """Element accessor of a grid function."""

    def __init__(self, grid_function: GridFunction, child: ElementAccessor) -> None:
        super().__init__((child,))
        self._grid_function = grid_function

    @property
    def grid_function(self) -> GridFunction:
        """The grid function."""
        return self._grid_function

    def get_derivatives(
        self, order: int, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Derivative of order ``order`` at the evaluation points of a sub-element."""
        return self.get_sub_elem_cache(topology, sub_id).get(DERIVATIVE_CACHE_FLAGS[order])

    def get_values(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Values (``D0``), shape ``(n_points, space_dim)``."""
        return self.get_derivatives(0, topology, sub_id)

    def get_gradients(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """First derivatives (``D1``), shape ``(n_points, space_dim, dim)``."""
        return self.get_derivatives(1, topology, sub_id)

    def get_hessians(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Second derivatives (``D2``), shape ``(n_points, space_dim, dim, dim)``."""
        return self.get_derivatives(2, topology, sub_id)


class FormulaGridFunction(GridFunction):
    """Grid function given by a closed-form expression of the grid coordinates.

    Subclasses implement :meth:`evaluate`; the handler evaluates it at the
    grid points of each element.
    """

    max_order = 3

    @abstractmethod
    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        """Derivative of order ``order`` at ``points`` (grid coordinates, shape ``(n, dim)``)."""

    def _new_element(self, prop: str) -> GridFunctionElement:
        return GridFunctionElement(self, GridElement(self._grid, prop))

    def refined(self, grid: Grid) -> FormulaGridFunction:
        """The same formula evaluated on ``grid``.

        Raises:
            ValueError: If ``grid`` has another dimension.
        """
        if grid.dim != self.dim:
            raise ValueError(f"Expected a {self.dim}D grid, got a {grid.dim}D one")
        other = copy.copy(self)
        other._grid = grid
        return other


    def create_cache_handler(self) -> FormulaGridFunctionHandler:
        """Handler evaluating the formula at the grid points."""
        return FormulaGridFunctionHandler(self)


class FormulaGridFunctionHandler(ElementHandler):
    """Fills the derivatives of a :class:`FormulaGridFunction` from the grid points."""

    level = Level.GRID_FUNCTION
    activation_level = Level.GRID_FUNCTION

    def __init__(self, grid_function: FormulaGridFunction) -> None:
        super().__init__(grid_function.dim, (grid_function.grid.create_cache_handler(),))
        self._grid_function = grid_function

    def _check_flags(self, flags: Any, topology: Topology) -> None:
        for order, flag in enumerate(DERIVATIVE_FLAGS):
            if flag in flags and order > self._grid_function.max_order:
                raise ConfigurationError(
                    f"{type(self._grid_function).__name__} provides derivatives up to order "
                    f"{self._grid_function.max_order}, D{order} requested"
                )

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        return {
            flag: self._grid_function.derivative_shape(points.n_points, order)
            for order, flag in enumerate(DERIVATIVE_CACHE_FLAGS)
            if flag in cache_flags
        }

    def _fill(self, elem: GridFunctionElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        if not cache.flags:
            return
        grid_elem = elem.children[0]
        assert isinstance(grid_elem, GridElement)
        points = grid_elem.get_points(Topology(k), sub_id)
        for order, flag in enumerate(DERIVATIVE_CACHE_FLAGS):
            if flag in cache.flags:
                cache.set(flag, self._grid_function.evaluate(points, order))


class LinearGridFunction(FormulaGridFunction):
    """The affine map ``x -> A x + b``."""

    def __init__(self, grid: Grid, A: npt.ArrayLike, b: npt.ArrayLike | None = None) -> None:
        """Initialize the map.

        Args:
            grid (Grid): The grid.
            A (npt.ArrayLike): Matrix of shape ``(space_dim, dim)``.
            b (npt.ArrayLike | None): Translation of shape ``(space_dim,)``.
                Defaults to zero.

        Raises:
            ValueError: If the shapes are inconsistent.
        """
        A_arr = np.array(A, dtype=np.float64, ndmin=2)
        if A_arr.shape[1] != grid.dim:
            raise ValueError(f"A must have {grid.dim} columns, got shape {A_arr.shape}")
        super().__init__(grid, A_arr.shape[0])
        b_arr = np.zeros(self.space_dim) if b is None else np.array(b, dtype=np.float64)
        if b_arr.shape != (self.space_dim,):
            raise ValueError(f"b must have shape ({self.space_dim},), got {b_arr.shape}")
        self._A = A_arr
        self._b = b_arr

    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        n = points.shape[0]
        if order == 0:
            return points @ self._A.T + self._b
        if order == 1:
            return np.broadcast_to(self._A, (n, *self._A.shape)).copy()
        return np.zeros(self.derivative_shape(n, order))


class IdentityGridFunction(LinearGridFunction):
    """The identity map of the grid coordinates."""

    def __init__(self, grid: Grid) -> None:
        super().__init__(grid, np.eye(grid.dim))


Factor = Callable[[npt.NDArray[np.float64], int], npt.NDArray[np.float64]]


def _radius_derivative(u: npt.NDArray[np.float64], m: int) -> npt.NDArray[np.float64]:
    if m == 0:
        return u
    return np.ones_like(u) if m == 1 else np.zeros_like(u)


def _sin_derivative(u: npt.NDArray[np.float64], m: int) -> npt.NDArray[np.float64]:
    return (np.sin(u), np.cos(u), -np.sin(u), -np.cos(u))[m % 4]


def _cos_derivative(u: npt.NDArray[np.float64], m: int) -> npt.NDArray[np.float64]:
    return (np.cos(u), -np.sin(u), -np.cos(u), np.sin(u))[m % 4]


def _one_derivative(u: npt.NDArray[np.float64], m: int) -> npt.NDArray[np.float64]:
    return np.ones_like(u) if m == 0 else np.zeros_like(u)


def _affine(factor: Factor, start: float, length: float) -> Factor:
    """The factor composed with ``u -> start + length * u``."""

    def derivative(u: npt.NDArray[np.float64], m: int) -> npt.NDArray[np.float64]:
        return length**m * factor(start + length * u, m)

    return derivative


class SeparableGridFunction(FormulaGridFunction):
    """Formula whose components are products of one univariate factor per coordinate."""

    @abstractmethod
    def _factor(self, component: int, direction: int) -> Factor:
        """Univariate factor of a component along a direction, as ``(u, order) -> values``."""

    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        dim = self.dim
        result = np.empty(self.derivative_shape(points.shape[0], order))
        for component in range(self.space_dim):
            factors = [self._factor(component, d) for d in range(dim)]
            for axes in itertools.product(range(dim), repeat=order):
                counts = [axes.count(d) for d in range(dim)]
                value = np.ones(points.shape[0])
                for d in range(dim):
                    value = value * factors[d](points[:, d], counts[d])
                result[(slice(None), component, *axes)] = value
        return result


class BallGridFunction(SeparableGridFunction):
    """Spherical coordinates ``(r, phi_1, ..., phi_{dim-1})`` mapped to cartesian ones.

    ``x_0 = r cos(phi_1)``, ``x_1 = r sin(phi_1) cos(phi_2)``, ...,
    ``x_{dim-1} = r sin(phi_1) ... sin(phi_{dim-1})``.
    """

    def __init__(self, grid: Grid) -> None:
        super().__init__(grid, grid.dim)

    def _factor(self, component: int, direction: int) -> Factor:
        if direction == 0:
            return _radius_derivative
        if direction <= component:
            return _sin_derivative
        if direction == component + 1:
            return _cos_derivative
        return _one_derivative


class SphereGridFunction(SeparableGridFunction):
    """Angles ``(phi_1, ..., phi_dim)`` mapped to the unit sphere of dimension ``dim + 1``.

    ``x_0 = cos(phi_1)``, ``x_1 = sin(phi_1) cos(phi_2)``, ...,
    ``x_dim = sin(phi_1) ... sin(phi_dim)``: the boundary of the ball of
    radius 1.
    """

    def __init__(self, grid: Grid) -> None:
        super().__init__(grid, grid.dim + 1)

    def _factor(self, component: int, direction: int) -> Factor:
        angle = direction + 1
        if angle <= component:
            return _sin_derivative
        if angle == component + 1:
            return _cos_derivative
        return _one_derivative


class CylindricalAnnulusGridFunction(SeparableGridFunction):
    """Sector of a cylindrical annulus parametrized by the unit cube.

    The coordinates ``(t, s, z)`` are mapped to
    ``(rho cos(theta), rho sin(theta), h)`` with
    ``theta = theta0 + (theta1 - theta0) t``, ``rho = r0 + (r1 - r0) s`` and
    ``h = h0 + (h1 - h0) z``.
    """

    def __init__(
        self,
        grid: Grid,
        r0: float,
        r1: float,
        h0: float,
        h1: float,
        theta0: float,
        theta1: float,
    ) -> None:
        """Initialize the map.

        Raises:
            ValueError: If the grid is not 3D or the radii are not ``0 <= r0 < r1``.
        """
        if grid.dim != 3:  # noqa: PLR2004
            raise ValueError(f"A cylindrical annulus needs a 3D grid, got {grid.dim}D")
        if not 0.0 <= r0 < r1:
            raise ValueError(f"Radii must satisfy 0 <= r0 < r1, got {r0} and {r1}")
        super().__init__(grid, 3)
        self._cos_theta = _affine(_cos_derivative, theta0, theta1 - theta0)
        self._sin_theta = _affine(_sin_derivative, theta0, theta1 - theta0)
        self._radius = _affine(_radius_derivative, r0, r1 - r0)
        self._height = _affine(_radius_derivative, h0, h1 - h0)

    def _factor(self, component: int, direction: int) -> Factor:
        if component == 2:  # noqa: PLR2004
            return self._height if direction == 2 else _one_derivative  # noqa: PLR2004
        if direction == 0:
            return self._cos_theta if component == 0 else self._sin_theta
        return self._radius if direction == 1 else _one_derivative
