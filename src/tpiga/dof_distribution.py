"""Global numbering of the basis functions of a spline space."""

from __future__ import annotations

from collections.abc import Sequence
from math import prod
from typing import TYPE_CHECKING

import numpy as np

from .errors import check_precondition
from .multi_array import DynamicMultiArray
from .tensor_index import TensorIndex, tensor_range

if TYPE_CHECKING:
    from .spline_space import SplineSpace


class DofDistribution:
    """Global indices (dofs) of the basis functions of a spline space.

    Each component has a table of global indices over its tensor-product set
    of basis functions. The standard numbering gives the components
    consecutive blocks, each numbered in flat (C) order.
    """

    def __init__(self, space: SplineSpace) -> None:
        self._space = space
        self._index_table: list[DynamicMultiArray] = []
        offset = 0
        for comp in range(space.range):
            n_basis = space.get_num_basis_per_direction(comp)
            table = DynamicMultiArray(n_basis, dtype=np.int64)
            table.get_data()[:] = np.arange(offset, offset + prod(n_basis))
            self._index_table.append(table)
            offset += prod(n_basis)

    @property
    def n_components(self) -> int:
        """Number of components."""
        return len(self._index_table)

    def get_index_table(self, comp: int) -> DynamicMultiArray:
        """Table of global indices of one component."""
        return self._index_table[comp]

    def get_num_dofs(self) -> int:
        """Total number of dofs."""
        return sum(table.flat_size() for table in self._index_table)

    def get_dofs(self) -> list[int]:
        """All the global indices, component by component."""
        return [int(i) for table in self._index_table for i in table.get_data()]

    def get_min_max_dofs(self) -> tuple[int, int]:
        """Smallest and largest global index."""
        dofs = self.get_dofs()
        return min(dofs), max(dofs)

    def add_dofs_offset(self, offset: int) -> None:
        """Shift every global index by ``offset``."""
        for table in self._index_table:
            table.get_data()[:] += offset

    def basis_tensor_to_flat(self, index: Sequence[int], comp: int = 0) -> int:
        """Global index of the basis function with the given tensor index in a component."""
        return int(self._index_table[comp][tuple(index)])

    def basis_flat_to_tensor(self, dof: int, comp: int = 0) -> TensorIndex:
        """Tensor index, in a component, of the basis function with a global index.

        Raises:
            PreconditionError: If the dof does not belong to the component.
        """
        table = self._index_table[comp]
        positions = np.flatnonzero(table.get_data() == dof)
        check_precondition(positions.size == 1, f"Dof {dof} does not belong to component {comp}")
        return table.flat_to_tensor(int(positions[0]))

    def get_local_to_global(self, elem_index: Sequence[int]) -> list[int]:
        """Global indices of the basis functions non-zero on an element.

        The local ordering is component by component, each in flat (C) order
        of the local tensor index. Along periodic directions the indices wrap
        around.

        Args:
            elem_index (Sequence[int]): Tensor index of the element.
        """
        space = self._space
        dofs: list[int] = []
        for comp, table in enumerate(self._index_table):
            n_basis = table.tensor_size()
            ranges = []
            for d, interval in enumerate(elem_index):
                first = space.get_first_basis_index(comp, d, interval)
                ranges.append(np.arange(first, first + space.degree[comp][d] + 1) % n_basis[d])
            dofs.extend(int(i) for i in table.as_tensor()[np.ix_(*ranges)].ravel())
        return dofs

    def get_boundary_dofs(self, face_id: int) -> list[int]:
        """Sorted global indices of the basis functions non-zero on a face of the grid.

        With open knot vectors these are the functions with the first (side 0)
        or last (side 1) index along the face direction. A periodic direction
        has no boundary and gives no dofs.
        """
        direction, side = divmod(face_id, 2)
        if self._space.periodic[direction]:
            return []
        dofs = set()
        for table in self._index_table:
            n_basis = table.tensor_size()
            fixed = 0 if side == 0 else n_basis[direction] - 1
            for index in tensor_range(n_basis):
                if index[direction] == fixed:
                    dofs.add(int(table[index]))
        return sorted(dofs)
