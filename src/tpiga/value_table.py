"""Tables of values: one row per function, one column per evaluation point."""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt


class ValueTable:
    """Values of ``n_functions`` functions at ``n_points`` points.

    The data is a numpy array of shape ``(n_functions, n_points, *value_shape)``
    where ``value_shape`` is ``()`` for scalars, ``(range,)`` for vectors and so on.
    """

    def __init__(self, data: npt.ArrayLike) -> None:
        """Initialize the table.

        Args:
            data (npt.ArrayLike): Values, shape ``(n_functions, n_points, *value_shape)``.

        Raises:
            ValueError: If the data has less than 2 dimensions.
        """
        array = np.asarray(data)
        if array.ndim < 2:  # noqa: PLR2004
            raise ValueError(
                f"A value table needs shape (n_functions, n_points, ...), got {array.shape}"
            )
        self._data = array

    @classmethod
    def zeros(
        cls, n_functions: int, n_points: int, value_shape: tuple[int, ...] = ()
    ) -> ValueTable:
        """Create a zero-filled table."""
        return cls(np.zeros((n_functions, n_points, *value_shape)))

    @property
    def data(self) -> npt.NDArray[Any]:
        """The underlying array."""
        return self._data

    @property
    def n_functions(self) -> int:
        """Number of functions (rows)."""
        return int(self._data.shape[0])

    @property
    def n_points(self) -> int:
        """Number of points (columns)."""
        return int(self._data.shape[1])

    @property
    def value_shape(self) -> tuple[int, ...]:
        """Shape of a single value."""
        return tuple(self._data.shape[2:])

    def get_function_view(self, function: int) -> npt.NDArray[Any]:
        """Values of one function at all the points, shape ``(n_points, *value_shape)``."""
        return self._data[function]

    def get_point_view(self, point: int) -> npt.NDArray[Any]:
        """Values of all the functions at one point, shape ``(n_functions, *value_shape)``."""
        return self._data[:, point]

    def __getitem__(self, key: Any) -> Any:
        return self._data[key]

    def __array__(self, dtype: npt.DTypeLike = None, copy: bool | None = None) -> npt.NDArray[Any]:
        if dtype is None:
            return self._data
        return self._data.astype(dtype)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(n_functions={self.n_functions}, "
            f"n_points={self.n_points}, value_shape={self.value_shape})"
        )


class ValueVector(ValueTable):
    """A :class:`ValueTable` of a single function.

    ``data`` has shape ``(n_points, *value_shape)``.
    """

    def __init__(self, data: npt.ArrayLike) -> None:
        """Initialize the vector from values of shape ``(n_points, *value_shape)``."""
        array = np.asarray(data)
        if array.ndim < 1:
            raise ValueError(f"A value vector needs shape (n_points, ...), got {array.shape}")
        super().__init__(array[np.newaxis])

    @property
    def data(self) -> npt.NDArray[Any]:
        """The values, shape ``(n_points, *value_shape)``."""
        return self._data[0]

    def __getitem__(self, key: Any) -> Any:
        return self._data[0][key]

    def __array__(self, dtype: npt.DTypeLike = None, copy: bool | None = None) -> npt.NDArray[Any]:
        return super().__array__(dtype, copy)[0]
