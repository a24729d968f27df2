"""Compact storage of tensor-product data sets.

A :class:`CartesianProductArray` keeps one 1-D sequence per direction and
represents their cartesian product without storing it. A
:class:`TensorProductArray` represents the products of the per-direction
scalars instead, which is how quadrature weights are stored.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from math import prod
from typing import Any

import numpy as np
import numpy.typing as npt

from .errors import check_precondition
from .tensor_index import TensorIndex, TensorSize, flat_to_tensor, tensor_to_flat


class CartesianProductArray:
    """Per-direction sequences representing their implicit cartesian product."""

    def __init__(
        self,
        sizes_or_data: Iterable[int] | Iterable[npt.ArrayLike],
        dtype: npt.DTypeLike = np.float64,
    ) -> None:
        """Initialize the array.

        Args:
            sizes_or_data (Iterable[int] | Iterable[npt.ArrayLike]): Either the
                number of entries per direction (entries are zero-initialized) or
                the per-direction sequences themselves.
            dtype (npt.DTypeLike): Entry dtype. Defaults to float64.
        """
        self._dtype = np.dtype(dtype)
        self._data: list[npt.NDArray[Any]] = []
        for item in sizes_or_data:
            if isinstance(item, (int, np.integer)):
                if item < 0:
                    raise ValueError(f"Direction sizes must be non-negative, got {item}")
                self._data.append(np.zeros(int(item), dtype=self._dtype))
            else:
                self._data.append(self._as_sequence(item))

    def _as_sequence(self, seq: npt.ArrayLike) -> npt.NDArray[Any]:
        arr = np.array(seq, dtype=self._dtype)
        if arr.ndim != 1:
            raise ValueError(f"Direction data must be 1D, got shape {arr.shape}")
        return arr

    @property
    def dim(self) -> int:
        """Number of directions."""
        return len(self._data)

    @property
    def dtype(self) -> np.dtype[Any]:
        """Entry dtype."""
        return self._dtype

    def tensor_size(self) -> TensorSize:
        """Number of entries per direction."""
        return tuple(int(d.shape[0]) for d in self._data)

    def flat_size(self) -> int:
        """Number of entries of the implicit product: the product of the direction sizes."""
        return prod(self.tensor_size())

    def resize(self, sizes: Sequence[int]) -> None:
        """Change the number of entries per direction, discarding the data of resized directions.

        Raises:
            ValueError: If the number of sizes does not match the dimension.
        """
        if len(sizes) != self.dim:
            raise ValueError(f"Expected {self.dim} sizes, got {len(sizes)}")
        for k, n in enumerate(sizes):
            if self._data[k].shape[0] != n:
                self._data[k] = np.zeros(int(n), dtype=self._dtype)

    def copy_data_direction(self, direction: int, seq: npt.ArrayLike) -> None:
        """Replace the data of one direction.

        Args:
            direction (int): Direction whose data is replaced.
            seq (npt.ArrayLike): New 1D data. If the direction already has a
                non-zero size, ``seq`` must have that same size.

        Raises:
            ValueError: If ``seq`` does not match the declared size of the direction.
        """
        check_precondition(0 <= direction < self.dim, f"Direction {direction} out of range")
        new = self._as_sequence(seq)
        old_size = self._data[direction].shape[0]
        if old_size not in (0, new.shape[0]):
            raise ValueError(
                f"Direction {direction} has size {old_size}, cannot copy {new.shape[0]} entries"
            )
        self._data[direction] = new

    def get_data_direction(self, direction: int) -> npt.NDArray[Any]:
        """Read-only view of the data of one direction."""
        check_precondition(0 <= direction < self.dim, f"Direction {direction} out of range")
        view = self._data[direction].view()
        view.flags.writeable = False
        return view

    def get_sub_product(self, directions: Sequence[int]) -> CartesianProductArray:
        """Product restricted to the given directions (data is copied)."""
        return self.__class__([self._data[k].copy() for k in directions], dtype=self._dtype)

    def tensor_to_flat(self, index: Sequence[int]) -> int:
        """Flat index of the tensor ``index``."""
        return tensor_to_flat(index, self.tensor_size())

    def flat_to_tensor(self, flat: int) -> TensorIndex:
        """Tensor index of the entry ``flat``."""
        return flat_to_tensor(flat, self.tensor_size())

    def _as_tensor_index(self, key: int | Sequence[int]) -> TensorIndex:
        if isinstance(key, (int, np.integer)):
            return self.flat_to_tensor(int(key))
        index = tuple(int(i) for i in key)
        check_precondition(
            len(index) == self.dim
            and all(0 <= i < n for i, n in zip(index, self.tensor_size())),
            f"Tensor index {index} out of range for sizes {self.tensor_size()}",
        )
        return index

    def __getitem__(self, key: int | Sequence[int]) -> tuple[Any, ...]:
        index = self._as_tensor_index(key)
        return tuple(self._data[k][i] for k, i in enumerate(index))

    def get_flat_cartesian_product(self) -> npt.NDArray[Any]:
        """Materialize the product.

        Returns:
            npt.NDArray[Any]: Array of shape ``(flat_size, dim)`` in flat (C) order.
        """
        if self.dim == 0:
            return np.zeros((1, 0), dtype=self._dtype)
        grids = np.meshgrid(*self._data, indexing="ij")
        return np.array(grids, dtype=self._dtype).reshape(self.dim, -1).T

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({[d.tolist() for d in self._data]})"


class TensorProductArray(CartesianProductArray):
    """Per-direction sequences representing the products ``y_i = prod_k y_{k, i_k}``."""

    def __getitem__(self, key: int | Sequence[int]) -> Any:  # type: ignore[override]
        index = self._as_tensor_index(key)
        value = self._dtype.type(1)
        for k, i in enumerate(index):
            value = value * self._data[k][i]
        return value

    def get_flat_tensor_product(self) -> npt.NDArray[Any]:
        """Materialize the product vector, of length ``flat_size`` in flat (C) order."""
        result = np.ones(1, dtype=self._dtype)
        for data in self._data:
            result = np.multiply.outer(result, data).reshape(-1)
        return result
