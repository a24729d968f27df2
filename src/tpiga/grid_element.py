"""Grid element accessor and the handler of its points and weights."""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

from .cache import ValuesCache
from .errors import check_precondition
from .handler import ElementAccessor, ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_types import GridCacheFlags, Level

if TYPE_CHECKING:
    from .grid import Grid

ACTIVE = "active"


class GridElement(ElementAccessor):
    """Cursor over the elements of a grid that own a given property.

    The accessor keeps its position in the sorted list of the element ids of
    the property; the position equal to the number of such elements is the
    past-the-end state.
    """

    def __init__(self, grid: Grid, prop: str = ACTIVE) -> None:
        """Initialize the accessor on the first element with property ``prop``."""
        super().__init__(())
        self._grid = grid
        self._prop = prop
        self._ids: tuple[int, ...] = tuple(grid.get_elements_with_property(prop))
        self._position = 0

    @property
    def grid_element(self) -> GridElement:
        """The accessor itself."""
        return self

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._grid

    @property
    def prop(self) -> str:
        """Name of the property the accessor iterates over."""
        return self._prop

    @property
    def position(self) -> int:
        """Position in the list of elements with the property."""
        return self._position

    @property
    def n_positions(self) -> int:
        """Number of elements with the property."""
        return len(self._ids)

    def position_of(self, index: int | Sequence[int]) -> int:
        """Position of the element with the given flat or tensor index.

        Raises:
            PreconditionError: If the element does not have the accessor's property.
        """
        if isinstance(index, (int, np.integer)):
            flat = int(index)
        else:
            flat = self._grid.tensor_to_flat(index)
        position = bisect_left(self._ids, flat)
        check_precondition(
            position < len(self._ids) and self._ids[position] == flat,
            f"Element {flat} does not have property '{self._prop}'",
        )
        return position

    def _set_position(self, position: int) -> None:
        super()._set_position(position)
        self._position = position

    def get_index(self) -> int:
        """Flat index of the current element (-1 when past the end)."""
        return -1 if self.is_end() else self._ids[self._position]

    def get_tensor_index(self) -> tuple[int, ...]:
        """Tensor index of the current element."""
        check_precondition(not self.is_end(), "Past-the-end element has no index")
        return self._grid.flat_to_tensor(self._ids[self._position])

    def is_end(self) -> bool:
        """Whether the accessor is past the end."""
        return self._position >= len(self._ids)

    @property
    def vertex(self) -> npt.NDArray[np.float64]:
        """Lowest corner of the element."""
        return self._grid.get_element_vertex(self.get_index())

    @property
    def lengths(self) -> npt.NDArray[np.float64]:
        """Lengths of the element along each direction."""
        return self._grid.get_element_lengths(self.get_index())

    def get_measure(self, topology: Topology | None = None, sub_id: int = 0) -> float:
        """Measure of a sub-element in the grid coordinates (1 for a vertex)."""
        k = self.dim if topology is None else topology.k
        active = self._grid.unit_element.sub_element(k, sub_id).active_directions
        return float(np.prod(self.lengths[list(active)]))

    def is_boundary(self, face_id: int | None = None) -> bool:
        """Whether the element touches the boundary of the grid (or one face of it)."""
        return self._grid.is_boundary_element(self.get_index(), face_id)

    def has_property(self, name: str) -> bool:
        """Whether the current element has a property."""
        return self._grid.element_has_property(self.get_index(), name)

    def get_points(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Evaluation points in grid coordinates, shape ``(n_points, dim)``."""
        return self.get_sub_elem_cache(topology, sub_id).get(GridCacheFlags.POINT)

    def get_weights(self, topology: Topology | None = None, sub_id: int = 0) -> npt.NDArray[Any]:
        """Quadrature weights scaled by the sub-element measure, shape ``(n_points,)``."""
        return self.get_sub_elem_cache(topology, sub_id).get(GridCacheFlags.WEIGHT)


class GridElementHandler(ElementHandler):
    """Computes the evaluation points and weights of grid elements."""

    level = Level.GRID
    activation_level = Level.GRID

    def __init__(self, grid: Grid) -> None:
        """Initialize the handler for the elements of ``grid``."""
        super().__init__(grid.dim)
        self._grid = grid

    @property
    def grid(self) -> Grid:
        """The grid."""
        return self._grid

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        shapes: dict[Any, tuple[int, ...]] = {}
        if GridCacheFlags.POINT in cache_flags:
            shapes[GridCacheFlags.POINT] = (points.n_points, self.dim)
        if GridCacheFlags.WEIGHT in cache_flags:
            shapes[GridCacheFlags.WEIGHT] = (points.n_points,)
        return shapes

    def _fill(self, elem: GridElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        cache_flags = self._activations[k].cache
        points = self._sub_points[k][sub_id]
        lengths = elem.lengths
        if GridCacheFlags.POINT in cache_flags:
            cache.set(GridCacheFlags.POINT, elem.vertex + points.get_points() * lengths)
        if GridCacheFlags.WEIGHT in cache_flags:
            measure = elem.get_measure(Topology(k), sub_id)
            cache.set(GridCacheFlags.WEIGHT, points.get_weights() * measure)
