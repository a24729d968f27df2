"""Flat/tensor index conversion shared by every multi-dimensional container.

All containers of the package use the C convention: the last index varies
fastest and the first index slowest. With extents ``(2, 3)`` the tensor index
``(1, 2)`` has flat index ``1 * 3 + 2 = 5``.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Iterator, Sequence
from math import prod

from .errors import check_precondition

TensorIndex = tuple[int, ...]
TensorSize = tuple[int, ...]


def as_tensor_size(extents: Iterable[int]) -> TensorSize:
    """Convert ``extents`` to a :data:`TensorSize`, validating that entries are non-negative.

    Raises:
        ValueError: If any extent is negative.
    """
    size = tuple(int(n) for n in extents)
    if any(n < 0 for n in size):
        raise ValueError(f"Extents must be non-negative, got {size}")
    return size


def compute_weights(extents: Sequence[int]) -> TensorIndex:
    """Strides of a C-ordered array with the given extents (in number of entries)."""
    weights = [1] * len(extents)
    for k in range(len(extents) - 2, -1, -1):
        weights[k] = weights[k + 1] * extents[k + 1]
    return tuple(weights)


def tensor_to_flat(index: Sequence[int], extents: Sequence[int]) -> int:
    """Convert a tensor index into a flat index.

    Args:
        index (Sequence[int]): Tensor index, one entry per direction.
        extents (Sequence[int]): Extents of the container.

    Returns:
        int: Flat index.

    Raises:
        PreconditionError: If the index is out of range.

    Example:
        >>> tensor_to_flat((1, 2), (2, 3))
        5
    """
    check_precondition(
        len(index) == len(extents) and all(0 <= i < n for i, n in zip(index, extents)),
        f"Tensor index {tuple(index)} out of range for extents {tuple(extents)}",
    )
    flat = 0
    for i, n in zip(index, extents):
        flat = flat * n + int(i)
    return flat


def flat_to_tensor(flat: int, extents: Sequence[int]) -> TensorIndex:
    """Convert a flat index into a tensor index.

    Args:
        flat (int): Flat index.
        extents (Sequence[int]): Extents of the container.

    Returns:
        TensorIndex: Tensor index.

    Raises:
        PreconditionError: If the flat index is out of range.
    """
    check_precondition(
        0 <= flat < prod(extents), f"Flat index {flat} out of range for extents {tuple(extents)}"
    )
    index = [0] * len(extents)
    for k in range(len(extents) - 1, -1, -1):
        flat, index[k] = divmod(int(flat), extents[k])
    return tuple(index)


def tensor_range(extents: Sequence[int]) -> Iterator[TensorIndex]:
    """Iterate over all tensor indices within ``extents`` in flat order."""
    return itertools.product(*(range(n) for n in extents))
