"""Tests for spline spaces and dof numbering in tpiga.spline_space and tpiga.dof_distribution."""

from __future__ import annotations

import numpy.testing as nptest
import pytest

from tpiga.grid import Grid
from tpiga.spline_space import SplineSpace


class TestSplineSpace:
    """Tests for SplineSpace."""

    def test_maximum_regularity_sizes(self) -> None:
        space = SplineSpace(2, Grid.create(4, dim=2))
        assert space.degree == ((2, 2),)
        assert space.get_num_basis_per_direction(0) == (5, 5)
        assert space.get_num_basis() == 25  # noqa: PLR2004
        assert space.get_num_local_basis() == 9  # noqa: PLR2004

    def test_open_knot_vector(self) -> None:
        space = SplineSpace(2, Grid.create(3), [[2]])
        nptest.assert_allclose(space.get_knot_vector(0, 0), [0, 0, 0, 0.5, 0.5, 1, 1, 1])
        nptest.assert_array_equal(space.get_multiplicities(0, 0), [3, 2, 3])
        assert space.get_num_basis() == 5  # noqa: PLR2004

    def test_per_component_degrees(self) -> None:
        space = SplineSpace([[2, 1], [1, 2]], Grid.create(3, dim=2), range_=2)
        assert space.get_num_basis_per_direction(0) == (4, 3)
        assert space.get_num_basis_per_direction(1) == (3, 4)
        assert space.get_num_basis() == 24  # noqa: PLR2004
        assert space.get_num_local_basis(1) == 6  # noqa: PLR2004

    def test_first_basis_index(self) -> None:
        space = SplineSpace(2, Grid.create(4))
        assert [space.get_first_basis_index(0, 0, i) for i in range(3)] == [0, 1, 2]

    def test_invalid_degree_raises(self) -> None:
        with pytest.raises(ValueError, match="not valid"):
            SplineSpace([1, 2, 3], Grid.create(3, dim=2))

    def test_invalid_multiplicity_raises(self) -> None:
        with pytest.raises(ValueError, match=r"must be in \[1, 3\]"):
            SplineSpace(2, Grid.create(3), [[4]])

    def test_wrong_number_of_multiplicities_raises(self) -> None:
        with pytest.raises(ValueError, match="interior break points"):
            SplineSpace(2, Grid.create(3), [[1, 1]])


class TestDofDistribution:
    """Tests for DofDistribution."""

    def test_local_to_global_1d(self) -> None:
        dofs = SplineSpace(1, Grid.create(3)).dof_distribution
        assert dofs.get_local_to_global((0,)) == [0, 1]
        assert dofs.get_local_to_global((1,)) == [1, 2]

    def test_local_to_global_2d_c_order(self) -> None:
        dofs = SplineSpace(1, Grid.create(3, dim=2)).dof_distribution
        assert dofs.get_local_to_global((1, 0)) == [3, 4, 6, 7]

    def test_components_are_consecutive_blocks(self) -> None:
        dofs = SplineSpace(1, Grid.create(2, dim=2), range_=2).dof_distribution
        assert dofs.get_num_dofs() == 8  # noqa: PLR2004
        assert dofs.get_local_to_global((0, 0)) == list(range(8))
        assert dofs.basis_tensor_to_flat((1, 0), comp=1) == 6  # noqa: PLR2004
        assert dofs.basis_flat_to_tensor(6, comp=1) == (1, 0)

    def test_boundary_dofs(self) -> None:
        dofs = SplineSpace(2, Grid.create(3, dim=2)).dof_distribution
        assert dofs.get_boundary_dofs(0) == [0, 1, 2, 3]
        assert dofs.get_boundary_dofs(3) == [3, 7, 11, 15]

    def test_offset(self) -> None:
        dofs = SplineSpace(1, Grid.create(3)).dof_distribution
        dofs.add_dofs_offset(10)
        assert dofs.get_min_max_dofs() == (10, 12)


class TestPeriodicSpace:
    """Tests for periodic directions."""

    def test_sizes_and_knot_vector(self) -> None:
        space = SplineSpace(2, Grid.create(5), periodic=True)
        assert space.periodic == (True,)
        assert space.get_num_basis() == 4  # noqa: PLR2004
        nptest.assert_allclose(
            space.get_knot_vector(0, 0),
            [-0.5, -0.5, -0.5, -0.25, 0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.5, 1.5],
        )
        assert space.get_interval_offset(0, 0) == 2  # noqa: PLR2004

    def test_interior_multiplicities_add_basis(self) -> None:
        space = SplineSpace(2, Grid.create(5), [[2, 1, 1]], periodic=True)
        assert space.get_num_basis() == 5  # noqa: PLR2004

    def test_mixed_periodicity(self) -> None:
        space = SplineSpace(2, Grid.create(5, dim=2), periodic=[True, False])
        assert space.get_num_basis_per_direction(0) == (4, 6)

    def test_local_to_global_wraps(self) -> None:
        dofs = SplineSpace(2, Grid.create(5), periodic=True).dof_distribution
        assert [dofs.get_local_to_global((i,)) for i in range(4)] == [
            [0, 1, 2],
            [1, 2, 3],
            [2, 3, 0],
            [3, 0, 1],
        ]

    def test_no_boundary_dofs_along_periodic_direction(self) -> None:
        dofs = SplineSpace(1, Grid.create(3, dim=2), periodic=[True, False]).dof_distribution
        assert dofs.get_boundary_dofs(0) == []
        assert dofs.get_boundary_dofs(1) == []
        assert dofs.get_boundary_dofs(2) == [0, 3]

    def test_too_few_intervals_raises(self) -> None:
        with pytest.raises(ValueError, match="at least 3"):
            SplineSpace(2, Grid.create(3), periodic=True)

    def test_wrong_number_of_directions_raises(self) -> None:
        with pytest.raises(ValueError, match="periodicity"):
            SplineSpace(1, Grid.create(3, dim=2), periodic=[True])


class TestRefineH:
    """Tests for spline spaces on refined grids."""

    def test_multiplicities_are_kept(self) -> None:
        space = SplineSpace(2, Grid.create(3), [[2]])
        fine = space.refine_h(2)
        assert fine.grid.num_intervals == (4,)
        assert fine.interior_multiplicities == ((1, 2, 1),)
        assert fine.get_num_basis() == 7  # noqa: PLR2004
        assert space.get_num_basis() == 5  # noqa: PLR2004

    def test_periodicity_is_kept(self) -> None:
        fine = SplineSpace(2, Grid.create(5), periodic=True).refine_h(3)
        assert fine.periodic == (True,)
        assert fine.get_num_basis() == 12  # noqa: PLR2004

    def test_refined_on_given_grid(self) -> None:
        space = SplineSpace([1, 2], Grid.create(2, dim=2))
        fine = space.refined(Grid([[0.0, 0.3, 1.0], [0.0, 0.5, 0.6, 1.0]]))
        assert fine.get_num_basis_per_direction(0) == (3, 5)

    def test_not_a_refinement_raises(self) -> None:
        space = SplineSpace(1, Grid.create(3))
        with pytest.raises(ValueError, match="does not refine"):
            space.refined(Grid([[0.0, 0.3, 1.0]]))
