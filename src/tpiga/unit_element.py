"""Sub-elements of the unit hypercube ``[0, 1]^dim``."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from functools import cache
from math import comb

import numpy as np
import numpy.typing as npt

from .config import MAX_DIM, get_settings
from .errors import ConfigurationError, check_precondition


@dataclass(frozen=True, order=True)
class Topology:
    """Topological dimension ``k`` of a sub-element.

    ``Topology(dim)`` is the element itself, ``Topology(dim - 1)`` its faces,
    down to ``Topology(0)``, its vertices.
    """

    k: int

    def __post_init__(self) -> None:
        if not 0 <= self.k <= MAX_DIM:
            raise ValueError(f"Topology dimension must be in [0, {MAX_DIM}], got {self.k}")

    @classmethod
    def element(cls, dim: int) -> Topology:
        """Topology of the full ``dim``-dimensional element."""
        return cls(dim)

    @classmethod
    def face(cls, dim: int) -> Topology:
        """Topology of the faces of a ``dim``-dimensional element."""
        if dim < 1:
            raise ValueError("A 0-dimensional element has no faces")
        return cls(dim - 1)


@dataclass(frozen=True)
class SubElement:
    """A k-dimensional sub-element of the unit hypercube.

    Attributes:
        active_directions (tuple[int, ...]): Directions spanned by the sub-element.
        constant_directions (tuple[int, ...]): Directions along which the
            sub-element is fixed.
        constant_values (tuple[int, ...]): Coordinate (0 or 1) of the sub-element
            along each constant direction.
    """

    active_directions: tuple[int, ...]
    constant_directions: tuple[int, ...]
    constant_values: tuple[int, ...]

    @property
    def k(self) -> int:
        """Topological dimension of the sub-element."""
        return len(self.active_directions)


class UnitElement:
    """The unit hypercube and the enumeration of its sub-elements.

    The k-dimensional sub-elements are enumerated by constant directions (in
    lexicographic order of the direction combinations) and then by constant
    values (in C order). For faces this gives the id ``2 * direction + side``.
    """

    def __init__(self, dim: int) -> None:
        """Initialize the unit element.

        Args:
            dim (int): Dimension, in ``[1, 3]``.

        Raises:
            ValueError: If the dimension is not supported.
        """
        if not 1 <= dim <= MAX_DIM:
            raise ValueError(f"Dimension must be in [1, {MAX_DIM}], got {dim}")
        self.dim = dim

    def n_sub_elements(self, k: int) -> int:
        """Number of k-dimensional sub-elements: ``C(dim, k) * 2**(dim - k)``."""
        return comb(self.dim, k) * 2 ** (self.dim - k)

    @property
    def n_faces(self) -> int:
        """Number of faces."""
        return 2 * self.dim

    @property
    def n_vertices(self) -> int:
        """Number of vertices."""
        return 2**self.dim

    def sub_elements(self, k: int) -> tuple[SubElement, ...]:
        """All the k-dimensional sub-elements, in id order."""
        return _sub_elements(self.dim, k)

    def sub_element(self, k: int, sub_id: int) -> SubElement:
        """The k-dimensional sub-element with the given id."""
        subs = self.sub_elements(k)
        check_precondition(0 <= sub_id < len(subs), f"Sub-element id {sub_id} out of range")
        return subs[sub_id]

    def get_face_normal(self, face_id: int) -> npt.NDArray[np.float64]:
        """Outward unit normal of a face of the unit element."""
        check_precondition(0 <= face_id < self.n_faces, f"Face id {face_id} out of range")
        direction, side = divmod(face_id, 2)
        normal = np.zeros(self.dim)
        normal[direction] = 2.0 * side - 1.0
        return normal

    def admissible_topologies(self) -> tuple[Topology, ...]:
        """Topologies accepted by handlers under the current ``num_sub_elem`` setting."""
        lowest = max(0, self.dim - get_settings().num_sub_elem)
        return tuple(Topology(k) for k in range(self.dim, lowest - 1, -1))

    def check_topology(self, topology: Topology) -> None:
        """Validate a topology against the dimension and the ``num_sub_elem`` setting.

        Raises:
            ConfigurationError: If the topology is not admissible.
        """
        if topology not in self.admissible_topologies():
            raise ConfigurationError(
                f"Topology of dimension {topology.k} is not admissible for a "
                f"{self.dim}-dimensional element (num_sub_elem={get_settings().num_sub_elem})"
            )


@cache
def _sub_elements(dim: int, k: int) -> tuple[SubElement, ...]:
    if not 0 <= k <= dim:
        raise ValueError(f"Sub-element dimension must be in [0, {dim}], got {k}")
    result = []
    for constant in itertools.combinations(range(dim), dim - k):
        active = tuple(d for d in range(dim) if d not in constant)
        for values in itertools.product((0, 1), repeat=dim - k):
            result.append(SubElement(active, constant, values))
    return tuple(result)
