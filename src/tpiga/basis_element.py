"""Reference basis elements and the handler filling their caches.

Reference derivatives are taken with respect to the grid coordinates. Value
tables have shape ``(n_local_basis, n_points, range)``, gradients append one
``dim`` axis and hessians two; divergences have shape
``(n_local_basis, n_points)``.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import numpy.typing as npt

from .bspline import (
    BasisKind,
    BSpline,
    SplineBasis,
    UnivariateCache,
    element_univariate,
    get_univariate_cache_intervals,
    tabulate_element_derivatives,
)
from .cache import ValuesCache
from .config import get_settings
from .errors import ConfigurationError, check_precondition
from .grid_element import GridElement
from .handler import ElementAccessor, ElementHandler
from .nurbs import NURBS, apply_nurbs_quotient
from .quad import EvalPoints, EvaluationPoints, QuadratureTensorProduct
from .unit_element import Topology
from .value_table import ValueTable
from .value_types import BasisCacheFlags, Level, activate

logger = logging.getLogger(__name__)

_DERIVATIVE_CACHE_FLAGS = (
    BasisCacheFlags.VALUE,
    BasisCacheFlags.GRADIENT,
    BasisCacheFlags.HESSIAN,
)


def _max_order(cache_flags: Any) -> int:
    """Highest derivative order needed by the cache flags (-1 if none)."""
    if BasisCacheFlags.HESSIAN in cache_flags:
        return 2
    if cache_flags & (BasisCacheFlags.GRADIENT | BasisCacheFlags.DIVERGENCE):
        return 1
    if BasisCacheFlags.VALUE in cache_flags:
        return 0
    return -1


def _tabulate(
    kind: BasisKind,
    basis: SplineBasis,
    univariate: UnivariateCache,
    elem_index: tuple[int, ...],
    max_order: int,
    lattice: bool,
) -> list[npt.NDArray[np.float64]]:
    tables = tabulate_element_derivatives(
        element_univariate(univariate, elem_index), max_order, lattice, basis.dim
    )
    if kind is BasisKind.NURBS:
        assert isinstance(basis, NURBS)
        l2g = basis.dof_distribution.get_local_to_global(elem_index)
        tables = apply_nurbs_quotient(tables, basis.weights[l2g], basis.get_local_blocks())
    return tables


class BasisElement(ElementAccessor):
    """Element accessor of a reference basis."""

    def __init__(self, basis: SplineBasis, grid_element: GridElement) -> None:
        super().__init__((grid_element,))
        self._basis = basis

    @property
    def basis(self) -> SplineBasis:
        """The reference basis."""
        return self._basis

    def get_local_to_global(self) -> list[int]:
        """Global indices of the basis functions non-zero on the current element."""
        return self._basis.dof_distribution.get_local_to_global(self.get_tensor_index())

    def get_num_basis(self) -> int:
        """Number of basis functions non-zero on an element."""
        return self._basis.get_num_local_basis()

    def _table(self, flag: BasisCacheFlags, topology: Topology | None, sub_id: int) -> ValueTable:
        return ValueTable(self.get_sub_elem_cache(topology, sub_id).get(flag))

    def get_values(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Values, shape ``(n_local_basis, n_points, range)``."""
        return self._table(BasisCacheFlags.VALUE, topology, sub_id)

    def get_gradients(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Gradients, shape ``(n_local_basis, n_points, range, dim)``."""
        return self._table(BasisCacheFlags.GRADIENT, topology, sub_id)

    def get_hessians(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Hessians, shape ``(n_local_basis, n_points, range, dim, dim)``."""
        return self._table(BasisCacheFlags.HESSIAN, topology, sub_id)

    def get_divergences(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Divergences, shape ``(n_local_basis, n_points)``."""
        return self._table(BasisCacheFlags.DIVERGENCE, topology, sub_id)

    def get_points(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Evaluation points in grid coordinates."""
        return self.grid_element.get_points(topology, sub_id)

    def get_w_measures(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Quadrature weights times the sub-element measure."""
        return self.grid_element.get_weights(topology, sub_id)

    def evaluate_basis_derivatives_at_points(
        self, order: int, points: EvalPoints | npt.ArrayLike
    ) -> ValueTable:
        """Derivatives of order ``order`` at points of the unit element, without the cache.

        Args:
            order (int): Derivative order, at most 2.
            points (EvalPoints | npt.ArrayLike): Points of the unit element, as
                a point set or an array of shape ``(n_points, dim)``.

        Returns:
            ValueTable: Table of shape ``(n_local_basis, n_points, range) + (dim,) * order``.

        Raises:
            ValueError: If ``order`` is not in ``[0, 2]``.
        """
        if not 0 <= order <= 2:  # noqa: PLR2004
            raise ValueError(f"Derivative order must be in [0, 2], got {order}")
        if not isinstance(points, (QuadratureTensorProduct, EvaluationPoints)):
            points = EvaluationPoints(points)
        elem_index = self.get_tensor_index()
        intervals = [[i] for i in elem_index]
        bspline = self._basis.bspline if isinstance(self._basis, NURBS) else self._basis
        assert isinstance(bspline, BSpline)
        univariate = bspline.build_univariate_cache(points.coords_per_dir, order, intervals)
        tables = _tabulate(
            self._basis.kind,
            self._basis,
            univariate,
            elem_index,
            order,
            points.is_tensor_product,
        )
        return ValueTable(tables[order])


class ReferenceElementHandler(ElementHandler):
    """Fills the caches of reference basis elements.

    Instances are built by :meth:`create`, which reads the kind of the basis
    once; filling switches on that tag.
    """

    level = Level.BASIS
    activation_level = Level.BASIS

    def __init__(self, basis: SplineBasis) -> None:
        super().__init__(basis.dim, (basis.grid.create_cache_handler(),))
        self._basis = basis
        self._kind = basis.kind
        bspline = basis.bspline if isinstance(basis, NURBS) else basis
        assert isinstance(bspline, BSpline)
        self._bspline = bspline
        self._univariate: dict[int, tuple[UnivariateCache, ...]] = {}

    @classmethod
    def create(cls, basis: SplineBasis) -> ReferenceElementHandler:
        """Build the handler of a basis.

        Raises:
            ConfigurationError: If the basis kind is unknown, or it is NURBS and
                NURBS support is disabled in the settings.
        """
        kind = getattr(basis, "kind", None)
        if kind not in (BasisKind.BSPLINE, BasisKind.NURBS):
            raise ConfigurationError(f"No element handler for basis {type(basis).__name__}")
        if kind is BasisKind.NURBS and not get_settings().nurbs_enabled:
            raise ConfigurationError("NURBS support disabled in the settings")
        return cls(basis)

    @property
    def kind(self) -> BasisKind:
        """Kind of the handled basis."""
        return self._kind

    @property
    def basis(self) -> SplineBasis:
        """The handled basis."""
        return self._basis

    def _check_flags(self, flags: Any, topology: Topology) -> None:
        cache_flags = activate(self.activation_level, flags).cache
        if BasisCacheFlags.DIVERGENCE in cache_flags and self._basis.range != self.dim:
            raise ConfigurationError(
                f"Divergence needs range == dim, got range {self._basis.range} in {self.dim}D"
            )

    def _on_reset(self, k: int, elements_flat_ids: tuple[int, ...] | None) -> None:
        max_order = _max_order(self._activations[k].cache)
        if max_order < 0:
            self._univariate[k] = ()
            return
        intervals = get_univariate_cache_intervals(self._basis.grid, elements_flat_ids)
        self._univariate[k] = tuple(
            self._bspline.build_univariate_cache(points.coords_per_dir, max_order, intervals)
            for points in self._sub_points[k]
        )
        logger.debug(
            "univariate cache built for topology %d up to order %d (%s)",
            k,
            max_order,
            self._kind.value,
        )

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        n_basis = self._basis.get_num_local_basis()
        head = (n_basis, points.n_points, self._basis.range)
        shapes: dict[Any, tuple[int, ...]] = {}
        for order, flag in enumerate(_DERIVATIVE_CACHE_FLAGS):
            if flag in cache_flags:
                shapes[flag] = head + (self.dim,) * order
        if BasisCacheFlags.DIVERGENCE in cache_flags:
            shapes[BasisCacheFlags.DIVERGENCE] = (n_basis, points.n_points)
        return shapes

    def _fill(self, elem: BasisElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        cache_flags = self._activations[k].cache
        max_order = _max_order(cache_flags)
        if max_order < 0:
            return
        points = self._sub_points[k][sub_id]
        univariate = self._univariate[k][sub_id]
        elem_index = elem.get_tensor_index()
        check_precondition(
            all(i in univariate[0][d] for d, i in enumerate(elem_index)),
            f"Element {elem.get_index()} was not selected at the last reset",
        )
        tables = _tabulate(
            self._kind,
            self._basis,
            univariate,
            elem_index,
            max_order,
            points.is_tensor_product,
        )
        for order, flag in enumerate(_DERIVATIVE_CACHE_FLAGS):
            if flag in cache_flags:
                cache.set(flag, tables[order])
        if BasisCacheFlags.DIVERGENCE in cache_flags:
            cache.set(BasisCacheFlags.DIVERGENCE, np.einsum("bqii->bq", tables[1]))
