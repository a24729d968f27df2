"""Tests for tensor/flat index conversions in tpiga.tensor_index."""

from __future__ import annotations

import pytest

from tpiga.errors import PreconditionError
from tpiga.tensor_index import (
    as_tensor_size,
    compute_weights,
    flat_to_tensor,
    tensor_range,
    tensor_to_flat,
)


class TestTensorToFlat:
    """Tests for the C-ordered index conversion."""

    def test_last_direction_fastest(self) -> None:
        assert tensor_to_flat((1, 2), (2, 3)) == 5  # noqa: PLR2004
        assert tensor_to_flat((0, 1), (2, 3)) == 1
        assert tensor_to_flat((1, 0), (2, 3)) == 3  # noqa: PLR2004

    @pytest.mark.parametrize("extents", [(4,), (2, 3), (2, 3, 4)])
    def test_round_trip(self, extents: tuple[int, ...]) -> None:
        for flat, index in enumerate(tensor_range(extents)):
            assert tensor_to_flat(index, extents) == flat
            assert flat_to_tensor(flat, extents) == index

    def test_out_of_range_raises(self) -> None:
        with pytest.raises(PreconditionError, match="out of range"):
            tensor_to_flat((2, 0), (2, 3))
        with pytest.raises(PreconditionError, match="out of range"):
            flat_to_tensor(6, (2, 3))

    def test_wrong_length_raises(self) -> None:
        with pytest.raises(PreconditionError):
            tensor_to_flat((1,), (2, 3))


class TestHelpers:
    """Tests for extents and weights helpers."""

    def test_weights(self) -> None:
        assert compute_weights((2, 3, 4)) == (12, 4, 1)

    def test_as_tensor_size(self) -> None:
        assert as_tensor_size([2, 3]) == (2, 3)

    def test_negative_extent_raises(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            as_tensor_size([2, -1])

    def test_range_count(self) -> None:
        assert len(list(tensor_range((2, 3, 2)))) == 12  # noqa: PLR2004
