"""Tensor-product grids of intervals."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from math import prod

import numpy as np
import numpy.typing as npt

from .config import get_default_tolerance
from .errors import check_precondition
from .grid_element import ACTIVE, GridElement, GridElementHandler
from .handler import ElementContainer
from .product_array import CartesianProductArray
from .tensor_index import TensorIndex, TensorSize, flat_to_tensor, tensor_range, tensor_to_flat
from .unit_element import UnitElement

logger = logging.getLogger(__name__)


class Grid(ElementContainer):
    """A tensor-product grid given by its break points along each direction.

    Elements are numbered with the package-wide C ordering of their tensor
    index (the interval index along each direction). Every element belongs to
    the ``"active"`` property on creation; further named properties group
    arbitrary sets of elements.
    """

    def __init__(self, knot_coordinates: Iterable[npt.ArrayLike] | CartesianProductArray) -> None:
        """Initialize the grid.

        Args:
            knot_coordinates (Iterable[npt.ArrayLike] | CartesianProductArray):
                Strictly increasing break points along each direction, at least
                two per direction.

        Raises:
            ValueError: If the dimension is not supported, or the break points
                are too few or not strictly increasing.
        """
        if isinstance(knot_coordinates, CartesianProductArray):
            coords = [knot_coordinates.get_data_direction(k) for k in range(knot_coordinates.dim)]
        else:
            coords = [np.asarray(c, dtype=np.float64) for c in knot_coordinates]
        self._unit_element = UnitElement(len(coords))
        tol = get_default_tolerance()
        for direction, c in enumerate(coords):
            if c.ndim != 1 or c.shape[0] < 2:  # noqa: PLR2004
                raise ValueError(f"Direction {direction} needs at least 2 break points")
            if np.any(np.diff(c) <= tol):
                raise ValueError(
                    f"Break points of direction {direction} must be strictly increasing"
                )
        self._knots = CartesianProductArray(coords)
        self._properties: dict[str, set[int]] = {ACTIVE: set(range(self.n_elements))}
        logger.debug("created grid with %s intervals", self.num_intervals)

    @classmethod
    def create(cls, n_knots: int | Sequence[int] = 2, dim: int = 1) -> Grid:
        """Create a uniform grid of ``[0, 1]^dim``.

        Args:
            n_knots (int | Sequence[int]): Number of break points per direction
                (the same for every direction if an int). Defaults to 2.
            dim (int): Dimension, used when ``n_knots`` is an int. Defaults to 1.

        Returns:
            Grid: The uniform grid.

        Example:
            >>> Grid.create(3, dim=2).n_elements
            4
        """
        if isinstance(n_knots, int):
            n_knots = [n_knots] * dim
        return cls([np.linspace(0.0, 1.0, n) for n in n_knots])

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self._unit_element.dim

    @property
    def unit_element(self) -> UnitElement:
        """The unit element of the grid elements."""
        return self._unit_element

    @property
    def knot_coordinates(self) -> CartesianProductArray:
        """Break points along every direction."""
        return self._knots

    def get_knot_coordinates(self, direction: int) -> npt.NDArray[np.float64]:
        """Read-only break points along one direction."""
        return self._knots.get_data_direction(direction)

    @property
    def num_intervals(self) -> TensorSize:
        """Number of intervals along each direction."""
        return tuple(n - 1 for n in self._knots.tensor_size())

    @property
    def n_elements(self) -> int:
        """Total number of elements."""
        return prod(self.num_intervals)

    def tensor_to_flat(self, index: Sequence[int]) -> int:
        """Flat index of the element with the given tensor index."""
        return tensor_to_flat(index, self.num_intervals)

    def flat_to_tensor(self, flat: int) -> TensorIndex:
        """Tensor index of the element with the given flat index."""
        return flat_to_tensor(flat, self.num_intervals)

    def _as_flat(self, index: int | Sequence[int]) -> int:
        if isinstance(index, (int, np.integer)):
            check_precondition(0 <= index < self.n_elements, f"Element {index} out of range")
            return int(index)
        return self.tensor_to_flat(index)

    # Element properties

    @property
    def properties(self) -> tuple[str, ...]:
        """Names of the defined properties."""
        return tuple(self._properties)

    def add_property(self, name: str, elements: Iterable[int] = ()) -> None:
        """Define a new property, initially owned by ``elements`` (flat ids).

        Raises:
            ValueError: If the property already exists.
        """
        if name in self._properties:
            raise ValueError(f"Property '{name}' already exists")
        self._properties[name] = set()
        self.set_property_status(name, elements, True)

    def set_property_status(self, name: str, elements: Iterable[int], status: bool) -> None:
        """Add (``status=True``) or remove the given elements from a property.

        Raises:
            KeyError: If the property does not exist.
        """
        ids = {self._as_flat(e) for e in elements}
        if status:
            self._properties[name] |= ids
        else:
            self._properties[name] -= ids

    def get_elements_with_property(self, name: str) -> list[int]:
        """Sorted flat ids of the elements with a property.

        Raises:
            KeyError: If the property does not exist.
        """
        return sorted(self._properties[name])

    def element_has_property(self, index: int | Sequence[int], name: str) -> bool:
        """Whether an element has a property."""
        return self._as_flat(index) in self._properties[name]

    # Element geometry

    def get_element_vertex(self, index: int | Sequence[int]) -> npt.NDArray[np.float64]:
        """Lowest corner of an element."""
        tensor = self.flat_to_tensor(self._as_flat(index))
        return np.array([self._knots.get_data_direction(k)[i] for k, i in enumerate(tensor)])

    def get_element_lengths(self, index: int | Sequence[int]) -> npt.NDArray[np.float64]:
        """Lengths of an element along each direction."""
        tensor = self.flat_to_tensor(self._as_flat(index))
        lengths = []
        for k, i in enumerate(tensor):
            knots = self._knots.get_data_direction(k)
            lengths.append(knots[i + 1] - knots[i])
        return np.array(lengths)

    def get_element_measure(self, index: int | Sequence[int]) -> float:
        """Volume of an element."""
        return float(np.prod(self.get_element_lengths(index)))

    def is_boundary_element(self, index: int | Sequence[int], face_id: int | None = None) -> bool:
        """Whether an element touches the boundary of the grid (or one face of it)."""
        tensor = self.flat_to_tensor(self._as_flat(index))
        faces = range(self._unit_element.n_faces) if face_id is None else [face_id]
        for face in faces:
            direction, side = divmod(face, 2)
            if tensor[direction] == (0 if side == 0 else self.num_intervals[direction] - 1):
                return True
        return False

    def get_boundary_elements(self, face_id: int, name: str = ACTIVE) -> list[int]:
        """Sorted flat ids of the elements with a property that touch one face of the grid."""
        elements = self.get_elements_with_property(name)
        return [e for e in elements if self.is_boundary_element(e, face_id)]

    def get_bounding_box(self) -> npt.NDArray[np.float64]:
        """Lower and upper coordinate per direction, shape ``(dim, 2)``."""
        return np.array(
            [[c[0], c[-1]] for c in (self._knots.get_data_direction(k) for k in range(self.dim))]
        )

    # Derived grids

    def get_sub_grid(self, k: int, sub_elem_id: int) -> tuple[Grid, dict[int, int]]:
        """Grid of a k-dimensional sub-element of the grid's bounding box.

        Args:
            k (int): Dimension of the sub-element, at least 1.
            sub_elem_id (int): Id of the sub-element in the unit element enumeration.

        Returns:
            tuple[Grid, dict[int, int]]: The sub-grid and the map from sub-grid
                element ids to the ids of the grid elements they lie on.

        Raises:
            ValueError: If ``k`` is not in ``[1, dim]``.
        """
        if not 1 <= k <= self.dim:
            raise ValueError(f"Sub-grid dimension must be in [1, {self.dim}], got {k}")
        sub_elem = self._unit_element.sub_element(k, sub_elem_id)
        sub_grid = Grid([self._knots.get_data_direction(d) for d in sub_elem.active_directions])

        fixed = {
            d: (0 if v == 0 else self.num_intervals[d] - 1)
            for d, v in zip(sub_elem.constant_directions, sub_elem.constant_values)
        }
        elem_map: dict[int, int] = {}
        for sub_index in tensor_range(sub_grid.num_intervals):
            index = [0] * self.dim
            for d, i in zip(sub_elem.active_directions, sub_index):
                index[d] = i
            for d, i in fixed.items():
                index[d] = i
            elem_map[sub_grid.tensor_to_flat(sub_index)] = self.tensor_to_flat(index)
        return sub_grid, elem_map

    def refine(self, n_subdivisions: int | Sequence[int] = 2) -> Grid:
        """Return a new grid with every interval split into equal parts.

        Args:
            n_subdivisions (int | Sequence[int]): Number of parts per interval
                along each direction (the same for every direction if an int).

        Raises:
            ValueError: If a number of subdivisions is less than 1.
        """
        if isinstance(n_subdivisions, int):
            n_subdivisions = [n_subdivisions] * self.dim
        if len(n_subdivisions) != self.dim or any(n < 1 for n in n_subdivisions):
            raise ValueError(f"Invalid number of subdivisions: {n_subdivisions}")
        coords = []
        for k, n in enumerate(n_subdivisions):
            knots = self._knots.get_data_direction(k)
            steps = np.linspace(0.0, 1.0, n + 1)[:-1]
            fine = (knots[:-1, np.newaxis] + np.outer(np.diff(knots), steps)).ravel()
            coords.append(np.append(fine, knots[-1]))
        return Grid(coords)

    def _new_element(self, prop: str) -> GridElement:
        return GridElement(self, prop)

    def create_cache_handler(self) -> GridElementHandler:
        """Handler computing points and weights on the grid elements."""
        return GridElementHandler(self)

    def __repr__(self) -> str:
        return f"Grid(dim={self.dim}, num_intervals={self.num_intervals})"
