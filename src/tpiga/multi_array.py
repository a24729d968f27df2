"""Multi-dimensional arrays backed by a flat buffer."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from math import prod
from typing import Any

import numpy as np
import numpy.typing as npt

from .errors import check_precondition
from .tensor_index import (
    TensorIndex,
    TensorSize,
    as_tensor_size,
    flat_to_tensor,
    tensor_to_flat,
)


class DynamicMultiArray:
    """A ``dim``-dimensional array stored as a flat 1-D buffer.

    Entries are addressable either by flat index or by tensor index, using the
    package-wide C ordering (see :mod:`tpiga.tensor_index`). The buffer is a
    numpy array; ``dtype=object`` stores arbitrary Python objects.
    """

    def __init__(
        self,
        extents: Iterable[int],
        fill: Any = None,
        dtype: npt.DTypeLike = object,
    ) -> None:
        """Initialize the array.

        Args:
            extents (Iterable[int]): Number of entries per direction.
            fill (Any): Initial value of every entry. Defaults to None (zero for
                numeric dtypes).
            dtype (npt.DTypeLike): Entry dtype. Defaults to object.
        """
        self._dtype = np.dtype(dtype)
        self._extents: TensorSize = ()
        self._data: npt.NDArray[Any] = np.empty(0, dtype=self._dtype)
        self._allocate(as_tensor_size(extents), fill)

    def _allocate(self, extents: TensorSize, fill: Any) -> None:
        self._extents = extents
        self._data = np.empty(prod(extents), dtype=self._dtype)
        if fill is None and self._dtype != np.dtype(object):
            fill = 0
        self._data[...] = fill

    @property
    def dim(self) -> int:
        """Number of directions."""
        return len(self._extents)

    def tensor_size(self) -> TensorSize:
        """Number of entries per direction."""
        return self._extents

    def flat_size(self) -> int:
        """Total number of entries."""
        return int(self._data.shape[0])

    def resize(self, extents: Iterable[int], fill: Any = None) -> None:
        """Reallocate the buffer with new extents, discarding the previous contents."""
        self._allocate(as_tensor_size(extents), fill)

    def tensor_to_flat(self, index: Sequence[int]) -> int:
        """Flat index of the tensor ``index``."""
        return tensor_to_flat(index, self._extents)

    def flat_to_tensor(self, flat: int) -> TensorIndex:
        """Tensor index of the entry ``flat``."""
        return flat_to_tensor(flat, self._extents)

    def _to_flat(self, key: int | Sequence[int]) -> int:
        if isinstance(key, (int, np.integer)):
            check_precondition(
                0 <= key < self.flat_size(),
                f"Flat index {key} out of range for size {self.flat_size()}",
            )
            return int(key)
        return self.tensor_to_flat(key)

    def __getitem__(self, key: int | Sequence[int]) -> Any:
        return self._data[self._to_flat(key)]

    def __setitem__(self, key: int | Sequence[int], value: Any) -> None:
        self._data[self._to_flat(key)] = value

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __len__(self) -> int:
        return self.flat_size()

    def get_data(self) -> npt.NDArray[Any]:
        """The flat buffer (a view, entries in flat order)."""
        return self._data

    def as_tensor(self) -> npt.NDArray[Any]:
        """View of the buffer reshaped to the tensor extents."""
        return self._data.reshape(self._extents)

    def fill(self, value: Any) -> None:
        """Assign ``value`` to every entry."""
        self._data[...] = value

    def copy(self) -> DynamicMultiArray:
        """Return a deep copy of the array."""
        other = self.__class__.__new__(self.__class__)
        other._dtype = self._dtype
        other._extents = self._extents
        other._data = self._data.copy()
        return other

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DynamicMultiArray):
            return NotImplemented
        return self._extents == other._extents and bool(np.all(self._data == other._data))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(extents={self._extents}, data={self._data!r})"


class StaticMultiArray(DynamicMultiArray):
    """A :class:`DynamicMultiArray` whose extents are fixed at construction."""

    def resize(self, extents: Iterable[int], fill: Any = None) -> None:
        """Not supported: the extents of a static array cannot change.

        Raises:
            TypeError: Always.
        """
        raise TypeError(f"{self.__class__.__name__} cannot be resized")
