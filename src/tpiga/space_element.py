"""Physical basis: a reference basis pushed forward to a domain.

The push-forward is the h-grad one, ``phi = phi_ref o F^-1``: values are
those of the reference basis, gradients are ``D phi_ref J^-1`` and hessians
follow from the chain rule with the hessian of the map.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from .basis_element import BasisElement, ReferenceElementHandler
from .bspline import SplineBasis
from .cache import ValuesCache
from .domain import Domain, DomainElement
from .errors import ConfigurationError
from .grid import Grid
from .handler import ElementAccessor, ElementContainer, ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_table import ValueTable
from .value_types import Level, SpaceCacheFlags, SpaceFlags


class PhysicalSpace(ElementContainer):
    """Basis functions of a reference basis pushed forward to a domain."""

    def __init__(self, ref_basis: SplineBasis, domain: Domain) -> None:
        """Initialize the space.

        Raises:
            ConfigurationError: If the basis and the domain are not defined on
                the same grid.
        """
        if ref_basis.grid is not domain.grid:
            raise ConfigurationError("The reference basis and the domain must share the grid")
        self._ref_basis = ref_basis
        self._domain = domain

    @property
    def ref_basis(self) -> SplineBasis:
        """The reference basis."""
        return self._ref_basis

    @property
    def domain(self) -> Domain:
        """The domain."""
        return self._domain

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._domain.dim

    @property
    def space_dim(self) -> int:
        """Dimension of the physical space."""
        return self._domain.space_dim

    @property
    def range(self) -> int:
        """Number of components."""
        return self._ref_basis.range

    def get_num_basis(self) -> int:
        """Total number of basis functions."""
        return self._ref_basis.get_num_basis()

    def refined(self, grid: Grid) -> PhysicalSpace:
        """The space of the reference basis and the domain refined to ``grid``."""
        return PhysicalSpace(self._ref_basis.refined(grid), self._domain.refined(grid))

    def refine_h(self, n_subdivisions: int | Sequence[int] = 2) -> PhysicalSpace:
        """The space on the grid with every interval split into ``n_subdivisions`` parts.

        The reference basis and the domain are refined on the same new grid;
        the geometry is unchanged.
        """
        return self.refined(self._domain.grid.refine(n_subdivisions))

    def _new_element(self, prop: str) -> SpaceElement:
        return SpaceElement(self, self._ref_basis.begin(prop), self._domain.begin(prop))

    def create_cache_handler(self) -> SpaceElementHandler:
        """Handler filling the caches of the space elements."""
        return SpaceElementHandler(self)


class SpaceElement(ElementAccessor):
    """Element accessor of a :class:`PhysicalSpace`."""

    def __init__(
        self, space: PhysicalSpace, basis_element: BasisElement, domain_element: DomainElement
    ) -> None:
        super().__init__((basis_element, domain_element))
        self._space = space

    @property
    def space(self) -> PhysicalSpace:
        """The space."""
        return self._space

    @property
    def basis_element(self) -> BasisElement:
        """The wrapped reference basis element."""
        child = self._children[0]
        assert isinstance(child, BasisElement)
        return child

    @property
    def domain_element(self) -> DomainElement:
        """The wrapped domain element."""
        child = self._children[1]
        assert isinstance(child, DomainElement)
        return child

    def get_local_to_global(self) -> list[int]:
        """Global indices of the basis functions non-zero on the current element."""
        return self.basis_element.get_local_to_global()

    def get_num_basis(self) -> int:
        """Number of basis functions non-zero on an element."""
        return self.basis_element.get_num_basis()

    def _table(
        self, flag: SpaceCacheFlags, topology: Topology | None, sub_id: int
    ) -> ValueTable:
        return ValueTable(self.get_sub_elem_cache(topology, sub_id).get(flag))

    def get_values(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Values, shape ``(n_local_basis, n_points, range)``."""
        return self._table(SpaceCacheFlags.VALUE, topology, sub_id)

    def get_gradients(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Physical gradients, shape ``(n_local_basis, n_points, range, space_dim)``."""
        return self._table(SpaceCacheFlags.GRADIENT, topology, sub_id)

    def get_hessians(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Physical hessians, shape ``(n_local_basis, n_points, range, space_dim, space_dim)``."""
        return self._table(SpaceCacheFlags.HESSIAN, topology, sub_id)

    def get_divergences(self, topology: Topology | None = None, sub_id: int = 0) -> ValueTable:
        """Physical divergences, shape ``(n_local_basis, n_points)``."""
        return self._table(SpaceCacheFlags.DIVERGENCE, topology, sub_id)

    def get_points(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Physical points."""
        return self.domain_element.get_points(topology, sub_id)

    def get_w_measures(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Physical quadrature weights."""
        return self.domain_element.get_w_measures(topology, sub_id)


class SpaceElementHandler(ElementHandler):
    """Pushes the reference basis quantities forward with the domain ones."""

    level = Level.SPACE
    activation_level = Level.SPACE

    def __init__(self, space: PhysicalSpace) -> None:
        super().__init__(
            space.dim,
            (
                ReferenceElementHandler.create(space.ref_basis),
                space.domain.create_cache_handler(),
            ),
        )
        self._space = space

    def _check_flags(self, flags: Any, topology: Topology) -> None:
        if SpaceFlags.DIVERGENCE in flags and self._space.range != self._space.space_dim:
            raise ConfigurationError(
                f"Divergence needs range == space_dim, got range {self._space.range} "
                f"in space_dim {self._space.space_dim}"
            )

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        space = self._space
        head = (space.ref_basis.get_num_local_basis(), points.n_points)
        shapes: dict[Any, tuple[int, ...]] = {
            SpaceCacheFlags.VALUE: (*head, space.range),
            SpaceCacheFlags.GRADIENT: (*head, space.range, space.space_dim),
            SpaceCacheFlags.HESSIAN: (*head, space.range, space.space_dim, space.space_dim),
            SpaceCacheFlags.DIVERGENCE: head,
        }
        return {flag: shape for flag, shape in shapes.items() if flag in cache_flags}

    def _fill(self, elem: SpaceElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        cache_flags = self._activations[k].cache
        topology = Topology(k)
        basis_elem = elem.basis_element
        domain_elem = elem.domain_element

        if SpaceCacheFlags.VALUE in cache_flags:
            cache.set(SpaceCacheFlags.VALUE, basis_elem.get_values(topology, sub_id).data)
        if not cache_flags & (
            SpaceCacheFlags.GRADIENT | SpaceCacheFlags.HESSIAN | SpaceCacheFlags.DIVERGENCE
        ):
            return

        inv_jacobians = domain_elem.get_inv_jacobians(topology, sub_id)
        ref_gradients = basis_elem.get_gradients(topology, sub_id).data
        gradients = np.einsum("bqca,qai->bqci", ref_gradients, inv_jacobians)
        cache.set(SpaceCacheFlags.GRADIENT, gradients)
        if SpaceCacheFlags.DIVERGENCE in cache_flags:
            cache.set(SpaceCacheFlags.DIVERGENCE, np.einsum("bqii->bq", gradients))
        if SpaceCacheFlags.HESSIAN in cache_flags:
            ref_hessians = basis_elem.get_hessians(topology, sub_id).data
            map_hessians = domain_elem.get_hessians(topology, sub_id)
            corrected = ref_hessians - np.einsum("bqcs,qsae->bqcae", gradients, map_hessians)
            cache.set(
                SpaceCacheFlags.HESSIAN,
                np.einsum("qai,bqcae,qej->bqcij", inv_jacobians, corrected, inv_jacobians),
            )
