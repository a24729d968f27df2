"""Grid functions given by spline or NURBS coefficients."""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from .basis_element import BasisElement, ReferenceElementHandler
from .bspline import SplineBasis
from .cache import ValuesCache
from .errors import dimension_mismatch
from .grid import Grid
from .grid_function import DERIVATIVE_CACHE_FLAGS, GridFunction, GridFunctionElement
from .handler import ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_types import BasisCacheFlags, Level

_BASIS_CACHE_FLAGS = (BasisCacheFlags.VALUE, BasisCacheFlags.GRADIENT, BasisCacheFlags.HESSIAN)


class IgGridFunction(GridFunction):
    """The map ``x -> sum_i c_i phi_i(x)`` of a reference basis with ``range`` components.

    Its derivatives up to order 2 are available; ``D3`` is rejected at reset.
    """

    def __init__(self, basis: SplineBasis, coefficients: npt.ArrayLike) -> None:
        """Initialize the map.

        Args:
            basis (SplineBasis): Reference basis; its range is the image dimension.
            coefficients (npt.ArrayLike): One coefficient per global dof.

        Raises:
            ValueError: If the number of coefficients does not match the basis.
        """
        super().__init__(basis.grid, basis.range)
        coefs = np.array(coefficients, dtype=np.float64).reshape(-1)
        if coefs.shape[0] != basis.get_num_basis():
            raise ValueError(dimension_mismatch("coefficients", basis.get_num_basis(), coefs.size))
        coefs.flags.writeable = False
        self._basis = basis
        self._coefficients = coefs

    @property
    def basis(self) -> SplineBasis:
        """The reference basis."""
        return self._basis

    @property
    def coefficients(self) -> npt.NDArray[np.float64]:
        """Read-only coefficients indexed by global dof."""
        return self._coefficients

    def refined(self, grid: Grid) -> IgGridFunction:
        """The same map in the basis refined to ``grid``, with prolongated coefficients."""
        fine = self._basis.refined(grid)
        return IgGridFunction(fine, self._basis.prolongate(fine, self._coefficients))

    def _new_element(self, prop: str) -> GridFunctionElement:
        return GridFunctionElement(self, self._basis.begin(prop))

    def create_cache_handler(self) -> IgGridFunctionHandler:
        """Handler combining the reference basis derivatives."""
        return IgGridFunctionHandler(self)


class IgGridFunctionHandler(ElementHandler):
    """Fills the derivatives of an :class:`IgGridFunction` from its reference basis element."""

    level = Level.GRID_FUNCTION
    activation_level = Level.IG_GRID_FUNCTION

    def __init__(self, grid_function: IgGridFunction) -> None:
        super().__init__(
            grid_function.dim, (ReferenceElementHandler.create(grid_function.basis),)
        )
        self._grid_function = grid_function

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
        basis_elem = elem.children[0]
        assert isinstance(basis_elem, BasisElement)
        coefs = self._grid_function.coefficients[basis_elem.get_local_to_global()]
        basis_cache = basis_elem.get_sub_elem_cache(Topology(k), sub_id)
        for order, flag in enumerate(DERIVATIVE_CACHE_FLAGS):
            if flag in cache.flags:
                table = basis_cache.get(_BASIS_CACHE_FLAGS[order])
                cache.set(flag, np.einsum("b,bq...->q...", coefs, table))
