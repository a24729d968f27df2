"""Tests for cartesian and tensor product arrays in tpiga.product_array."""

from __future__ import annotations

import numpy.testing as nptest
import pytest

from tpiga.product_array import CartesianProductArray, TensorProductArray


class TestCartesianProductArray:
    """Tests for CartesianProductArray."""

    def test_sizes_constructor(self) -> None:
        arr = CartesianProductArray([2, 3])
        assert arr.dim == 2  # noqa: PLR2004
        assert arr.tensor_size() == (2, 3)
        assert arr.flat_size() == 6  # noqa: PLR2004

    def test_entries(self) -> None:
        arr = CartesianProductArray([[0.0, 1.0], [10.0, 20.0, 30.0]])
        assert arr[(1, 2)] == (1.0, 30.0)
        assert arr[4] == (1.0, 20.0)

    def test_flat_product_in_c_order(self) -> None:
        arr = CartesianProductArray([[0.0, 1.0], [5.0, 6.0]])
        nptest.assert_allclose(
            arr.get_flat_cartesian_product(), [[0.0, 5.0], [0.0, 6.0], [1.0, 5.0], [1.0, 6.0]]
        )

    def test_copy_data_direction(self) -> None:
        arr = CartesianProductArray([2, 0])
        arr.copy_data_direction(1, [1.0, 2.0, 3.0])
        assert arr.tensor_size() == (2, 3)
        nptest.assert_allclose(arr.get_data_direction(1), [1.0, 2.0, 3.0])

    def test_copy_data_direction_mismatch_raises(self) -> None:
        arr = CartesianProductArray([2, 3])
        with pytest.raises(ValueError, match="cannot copy"):
            arr.copy_data_direction(0, [1.0, 2.0, 3.0])

    def test_direction_data_is_read_only(self) -> None:
        arr = CartesianProductArray([[0.0, 1.0]])
        with pytest.raises(ValueError):  # noqa: PT011
            arr.get_data_direction(0)[0] = 3.0

    def test_sub_product(self) -> None:
        arr = CartesianProductArray([[0.0], [1.0, 2.0], [3.0, 4.0, 5.0]])
        sub = arr.get_sub_product([0, 2])
        assert sub.tensor_size() == (1, 3)

    def test_resize(self) -> None:
        arr = CartesianProductArray([[0.0, 1.0], [2.0]])
        arr.resize([2, 4])
        nptest.assert_allclose(arr.get_data_direction(0), [0.0, 1.0])
        assert arr.tensor_size() == (2, 4)


class TestTensorProductArray:
    """Tests for TensorProductArray."""

    def test_entries_are_products(self) -> None:
        arr = TensorProductArray([[1.0, 2.0], [3.0, 4.0, 5.0]])
        assert arr[(1, 2)] == 10.0  # noqa: PLR2004

    def test_flat_product(self) -> None:
        arr = TensorProductArray([[1.0, 2.0], [3.0, 4.0]])
        nptest.assert_allclose(arr.get_flat_tensor_product(), [3.0, 4.0, 6.0, 8.0])
