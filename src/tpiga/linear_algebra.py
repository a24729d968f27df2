"""Thin adapter between element-wise assembly and scipy sparse matrices.

Local blocks are accumulated as coordinate triplets and summed into a CSR
matrix by :meth:`SparseMatrix.fill_complete`; duplicated entries are added.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import cast

import numpy as np
import numpy.typing as npt
import scipy.sparse
import scipy.sparse.linalg

from .errors import check_precondition, dimension_mismatch

logger = logging.getLogger(__name__)


class SparseMatrix:
    """A sparse matrix assembled from local blocks."""

    def __init__(self, n_rows: int, n_cols: int | None = None) -> None:
        self._shape = (n_rows, n_rows if n_cols is None else n_cols)
        self._rows: list[npt.NDArray[np.int64]] = []
        self._cols: list[npt.NDArray[np.int64]] = []
        self._values: list[npt.NDArray[np.float64]] = []
        self._matrix: scipy.sparse.csr_matrix | None = None

    @property
    def shape(self) -> tuple[int, int]:
        """Number of rows and columns."""
        return self._shape

    def add_block(
        self, rows: Sequence[int], cols: Sequence[int], block: npt.ArrayLike
    ) -> None:
        """Add ``block[i, j]`` to the entry ``(rows[i], cols[j])``.

        Raises:
            PreconditionError: If the matrix is already complete.
            ValueError: If the block shape does not match the indices.
        """
        check_precondition(self._matrix is None, "Cannot add blocks after fill_complete")
        values = np.asarray(block, dtype=np.float64)
        if values.shape != (len(rows), len(cols)):
            raise ValueError(dimension_mismatch("block", (len(rows), len(cols)), values.shape))
        I, J = np.meshgrid(np.asarray(rows), np.asarray(cols), indexing="ij")
        self._rows.append(I.ravel())
        self._cols.append(J.ravel())
        self._values.append(values.ravel())

    def fill_complete(self) -> scipy.sparse.csr_matrix:
        """Sum the blocks into a CSR matrix; no blocks can be added afterwards."""
        if self._matrix is None:
            rows = np.concatenate(self._rows) if self._rows else np.empty(0, dtype=np.int64)
            cols = np.concatenate(self._cols) if self._cols else np.empty(0, dtype=np.int64)
            values = np.concatenate(self._values) if self._values else np.empty(0)
            coo = scipy.sparse.coo_matrix((values, (rows, cols)), shape=self._shape)
            self._matrix = coo.tocsr()
            self._rows, self._cols, self._values = [], [], []
            logger.debug(
                "sparse matrix %s completed with %d non-zeros", self._shape, self._matrix.nnz
            )
        return self._matrix

    @property
    def matrix(self) -> scipy.sparse.csr_matrix:
        """The CSR matrix.

        Raises:
            PreconditionError: If :meth:`fill_complete` was not called.
        """
        check_precondition(self._matrix is not None, "fill_complete must be called first")
        return cast(scipy.sparse.csr_matrix, self._matrix)


class Vector:
    """A dense vector assembled from local blocks."""

    def __init__(self, size: int) -> None:
        self._data = np.zeros(size)

    @property
    def data(self) -> npt.NDArray[np.float64]:
        """The entries."""
        return self._data

    def add_block(self, rows: Sequence[int], values: npt.ArrayLike) -> None:
        """Add ``values[i]`` to the entry ``rows[i]`` (repeated rows accumulate)."""
        indices = np.asarray(rows, dtype=np.int64)
        np.add.at(self._data, indices, np.asarray(values, dtype=np.float64))

    def __len__(self) -> int:
        return int(self._data.shape[0])


def apply_boundary_values(
    matrix: scipy.sparse.spmatrix,
    rhs: npt.ArrayLike,
    boundary_values: Mapping[int, float],
) -> tuple[scipy.sparse.csr_matrix, npt.NDArray[np.float64]]:
    """Impose ``u[i] = boundary_values[i]`` on a linear system.

    The constrained rows become identity rows and their columns are moved to
    the right-hand side, which keeps a symmetric matrix symmetric.

    Returns:
        tuple[scipy.sparse.csr_matrix, npt.NDArray[np.float64]]: The modified
            matrix and right-hand side.
    """
    A = scipy.sparse.csr_matrix(matrix, dtype=np.float64, copy=True)
    b = np.array(rhs, dtype=np.float64)
    dofs = np.fromiter(boundary_values.keys(), dtype=np.int64, count=len(boundary_values))
    values = np.fromiter(boundary_values.values(), dtype=np.float64, count=len(boundary_values))
    u = np.zeros(A.shape[1])
    u[dofs] = values
    b -= A @ u

    keep = np.ones(A.shape[0])
    keep[dofs] = 0.0
    mask = scipy.sparse.diags(keep)
    A = (mask @ A @ mask + scipy.sparse.diags(1.0 - keep)).tocsr()
    b[dofs] = values
    return A, b


def solve(
    matrix: scipy.sparse.spmatrix | SparseMatrix, rhs: npt.ArrayLike | Vector
) -> npt.NDArray[np.float64]:
    """Solve a sparse linear system with a direct solver."""
    if isinstance(matrix, SparseMatrix):
        matrix = matrix.fill_complete()
    b = rhs.data if isinstance(rhs, Vector) else np.asarray(rhs, dtype=np.float64)
    return np.asarray(scipy.sparse.linalg.spsolve(scipy.sparse.csc_matrix(matrix), b))
