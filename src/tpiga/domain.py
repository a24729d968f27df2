"""Physical domains: the image of a grid through a grid function.

Every geometric quantity is composed from the derivatives already stored by
the grid function element (chain rule):

* ``jacobian`` ``J = D1``, shape ``(n_points, space_dim, dim)``;
* ``measure`` ``sqrt(det(J_a^T J_a))`` with ``J_a`` the columns of the active
  directions of the sub-element (1 on vertices);
* ``inv_jacobian`` the inverse (square) or pseudo-inverse of ``J``, shape
  ``(n_points, dim, space_dim)``;
* ``inv_hessian`` the second derivatives of the inverse map, shape
  ``(n_points, dim, space_dim, space_dim)``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from .cache import ValuesCache
from .errors import ConfigurationError
from .grid import Grid
from .grid_function import GridFunction, GridFunctionElement
from .handler import ElementAccessor, ElementContainer, ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_types import DomainCacheFlags, DomainFlags, Level

logger = logging.getLogger(__name__)


class Domain(ElementContainer):
    """The domain parametrized by a grid function."""

    def __init__(self, grid_function: GridFunction) -> None:
        self._grid_function = grid_function

    @property
    def grid_function(self) -> GridFunction:
        """The parametrization."""
        return self._grid_function

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._grid_function.grid

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._grid_function.dim

    @property
    def space_dim(self) -> int:
        """Dimension of the physical space."""
        return self._grid_function.space_dim

    def refined(self, grid: Grid) -> Domain:
        """The domain parametrized by the grid function refined to ``grid``."""
        return Domain(self._grid_function.refined(grid))

    def refine_h(self, n_subdivisions: int | Sequence[int] = 2) -> Domain:
        """The domain on the grid with every interval split into ``n_subdivisions`` parts."""
        return self.refined(self.grid.refine(n_subdivisions))

    def _new_element(self, prop: str) -> DomainElement:
        return DomainElement(self, self._grid_function.begin(prop))

    def create_cache_handler(self) -> DomainHandler:
        """Handler filling the caches of the domain elements."""
        return DomainHandler(self)

    def __repr__(self) -> str:
        return f"Domain(dim={self.dim}, space_dim={self.space_dim})"


class DomainElement(ElementAccessor):
    """Element accessor of a :class:`Domain`."""

    def __init__(self, domain: Domain, grid_function_element: GridFunctionElement) -> None:
        super().__init__((grid_function_element,))
        self._domain = domain

    @property
    def domain(self) -> Domain:
        """The domain."""
        return self._domain

    @property
    def grid_function_element(self) -> GridFunctionElement:
        """The wrapped grid function element."""
        child = self._children[0]
        assert isinstance(child, GridFunctionElement)
        return child

    def get_points(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Physical points, shape ``(n_points, space_dim)``."""
        return self.grid_function_element.get_values(topology, sub_id)

    def get_jacobians(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Jacobians, shape ``(n_points, space_dim, dim)``."""
        return self.grid_function_element.get_gradients(topology, sub_id)

    def get_hessians(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Second derivatives of the map, shape ``(n_points, space_dim, dim, dim)``."""
        return self.grid_function_element.get_hessians(topology, sub_id)

    def get_measures(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Measure of the (sub-)element map at each point."""
        return self.get_sub_elem_cache(topology, sub_id).get(DomainCacheFlags.MEASURE)

    def get_w_measures(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Measures times the grid quadrature weights: ``sum`` gives the physical measure."""
        return self.get_measures(topology, sub_id) * self.grid_element.get_weights(topology, sub_id)

    def get_inv_jacobians(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Jacobians of the inverse map, shape ``(n_points, dim, space_dim)``."""
        return self.get_sub_elem_cache(topology, sub_id).get(DomainCacheFlags.INV_JACOBIAN)

    def get_inv_hessians(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Hessians of the inverse map, shape ``(n_points, dim, space_dim, space_dim)``."""
        return self.get_sub_elem_cache(topology, sub_id).get(DomainCacheFlags.INV_HESSIAN)

    def get_ext_normals(
        self, topology: Topology | None = None, sub_id: int = 0
    ) -> npt.NDArray[Any]:
        """Unit normals of a codimension-1 domain, shape ``(n_points, space_dim)``."""
        return self.get_sub_elem_cache(topology, sub_id).get(DomainCacheFlags.EXT_NORMAL)

    def get_boundary_normals(self, face_id: int) -> npt.NDArray[Any]:
        """Outward unit normals on a face of the element, shape ``(n_points, space_dim)``."""
        return self.get_sub_elem_cache(Topology.face(self.dim), face_id).get(
            DomainCacheFlags.BOUNDARY_NORMAL
        )


def compute_measures(jacobians: npt.NDArray[np.float64], active: tuple[int, ...]) -> Any:
    """``sqrt(det(J_a^T J_a))`` at each point, ``J_a`` the columns ``active`` of ``J``."""
    if not active:
        return np.ones(jacobians.shape[0])
    J_a = jacobians[:, :, list(active)]
    return np.sqrt(np.linalg.det(np.einsum("qia,qib->qab", J_a, J_a)))


def compute_inverse_jacobians(jacobians: npt.NDArray[np.float64]) -> Any:
    """Inverse of square jacobians, pseudo-inverse otherwise."""
    if jacobians.shape[1] == jacobians.shape[2]:
        return np.linalg.inv(jacobians)
    return np.linalg.pinv(jacobians)


def compute_ext_normals(jacobians: npt.NDArray[np.float64]) -> Any:
    """Unit normals of a codimension-1 map: ``n_i = (-1)^i det(J without row i)``."""
    space_dim = jacobians.shape[1]
    normals = np.empty((jacobians.shape[0], space_dim))
    for i in range(space_dim):
        minor = np.delete(jacobians, i, axis=1)
        normals[:, i] = (-1) ** i * np.linalg.det(minor)
    return normals / np.linalg.norm(normals, axis=1)[:, None]


class DomainHandler(ElementHandler):
    """Fills the caches of domain elements from the grid function caches."""

    level = Level.DOMAIN
    activation_level = Level.DOMAIN

    def __init__(self, domain: Domain) -> None:
        super().__init__(domain.dim, (domain.grid_function.create_cache_handler(),))
        self._domain = domain

    def _check_flags(self, flags: Any, topology: Topology) -> None:
        domain = self._domain
        if DomainFlags.EXT_NORMAL in flags and domain.space_dim != domain.dim + 1:
            raise ConfigurationError(
                f"ext_normal needs a codimension-1 domain, got dim {domain.dim} "
                f"in space_dim {domain.space_dim}"
            )
        if DomainFlags.BOUNDARY_NORMAL in flags:
            if domain.space_dim != domain.dim:
                raise ConfigurationError(
                    f"boundary_normal needs a codimension-0 domain, got dim {domain.dim} "
                    f"in space_dim {domain.space_dim}"
                )
            if topology.k != domain.dim - 1:
                raise ConfigurationError(
                    f"boundary_normal is defined on faces, got topology of dimension {topology.k}"
                )

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        n, dim, space_dim = points.n_points, self.dim, self._domain.space_dim
        shapes: dict[Any, tuple[int, ...]] = {
            DomainCacheFlags.MEASURE: (n,),
            DomainCacheFlags.INV_JACOBIAN: (n, dim, space_dim),
            DomainCacheFlags.INV_HESSIAN: (n, dim, space_dim, space_dim),
            DomainCacheFlags.EXT_NORMAL: (n, space_dim),
            DomainCacheFlags.BOUNDARY_NORMAL: (n, space_dim),
        }
        return {flag: shape for flag, shape in shapes.items() if flag in cache_flags}

    def _fill(self, elem: DomainElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        cache_flags = self._activations[k].cache
        if cache_flags == DomainCacheFlags.NONE:
            return
        topology = Topology(k)
        gf_elem = elem.grid_function_element
        jacobians = gf_elem.get_gradients(topology, sub_id)

        if DomainCacheFlags.MEASURE in cache_flags:
            active = self.unit_element.sub_element(k, sub_id).active_directions
            cache.set(DomainCacheFlags.MEASURE, compute_measures(jacobians, tuple(active)))
        inv_jacobians = None
        if DomainCacheFlags.INV_JACOBIAN in cache_flags:
            inv_jacobians = compute_inverse_jacobians(jacobians)
            cache.set(DomainCacheFlags.INV_JACOBIAN, inv_jacobians)
        if DomainCacheFlags.INV_HESSIAN in cache_flags:
            hessians = gf_elem.get_hessians(topology, sub_id)
            cache.set(
                DomainCacheFlags.INV_HESSIAN,
                -np.einsum(
                    "qab,qbcd,qci,qdj->qaij", inv_jacobians, hessians, inv_jacobians, inv_jacobians
                ),
            )
        if DomainCacheFlags.EXT_NORMAL in cache_flags:
            cache.set(DomainCacheFlags.EXT_NORMAL, compute_ext_normals(jacobians))
        if DomainCacheFlags.BOUNDARY_NORMAL in cache_flags:
            n_ref = self.unit_element.get_face_normal(sub_id)
            normals = np.einsum("qai,a->qi", inv_jacobians, n_ref)
            cache.set(
                DomainCacheFlags.BOUNDARY_NORMAL,
                normals / np.linalg.norm(normals, axis=1)[:, None],
            )
