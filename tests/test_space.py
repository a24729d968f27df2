"""Tests for physical spaces in tpiga.space_element."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import pytest

from tpiga.bspline import BSpline
from tpiga.domain import Domain
from tpiga.errors import ConfigurationError
from tpiga.grid import Grid
from tpiga.grid_function import IdentityGridFunction, LinearGridFunction
from tpiga.ig_grid_function import IgGridFunction
from tpiga.quad import QGauss
from tpiga.space_element import PhysicalSpace
from tpiga.spline_space import SplineSpace
from tpiga.value_types import BasisFlags, SpaceFlags


def _isoparametric_space() -> tuple[PhysicalSpace, np.ndarray]:
    grid = Grid.create(3, dim=2)
    greville = np.array([0.0, 0.25, 0.75, 1.0])
    u, v = np.meshgrid(greville, greville, indexing="ij")
    control_points = np.array([u + 0.1 * v**2, v + 0.2 * np.sin(u)]).reshape(2, -1)
    geometry = BSpline(SplineSpace(2, grid, range_=2))
    domain = Domain(IgGridFunction(geometry, control_points.ravel()))
    return PhysicalSpace(BSpline(SplineSpace(2, grid)), domain), control_points


def _area(space: PhysicalSpace) -> float:
    handler = space.create_cache_handler()
    handler.reset(SpaceFlags.W_MEASURE, QGauss(2, 3))
    total = 0.0
    for elem in space.elements():
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        total += float(np.sum(elem.get_w_measures()))
    return total


class TestPushForward:
    """Tests for the h-grad push-forward."""

    def test_values_match_reference(self) -> None:
        grid = Grid.create(3, dim=2)
        basis = BSpline(SplineSpace(2, grid))
        space = PhysicalSpace(basis, Domain(LinearGridFunction(grid, [[2.0, 0.0], [1.0, 1.0]])))
        quad = QGauss(2, 2)
        ref_handler = basis.create_cache_handler()
        ref_handler.reset(BasisFlags.VALUE | BasisFlags.GRADIENT, quad)
        handler = space.create_cache_handler()
        handler.reset(SpaceFlags.VALUE | SpaceFlags.GRADIENT, quad)
        ref_elem = basis.create_element(3)
        elem = space.create_element(3)
        for h, e in ((ref_handler, ref_elem), (handler, elem)):
            h.init_element_cache(e)
            h.fill_element_cache(e)
        nptest.assert_allclose(elem.get_values().data, ref_elem.get_values().data)
        inv_A = np.linalg.inv([[2.0, 0.0], [1.0, 1.0]])
        expected = np.einsum("bqca,ai->bqci", ref_elem.get_gradients().data, inv_A)
        nptest.assert_allclose(elem.get_gradients().data, expected)
        assert elem.get_local_to_global() == ref_elem.get_local_to_global()

    def test_coordinates_are_reproduced(self) -> None:
        space, control_points = _isoparametric_space()
        handler = space.create_cache_handler()
        flags = SpaceFlags.VALUE | SpaceFlags.GRADIENT | SpaceFlags.HESSIAN | SpaceFlags.POINT
        handler.reset(flags, QGauss(2, 3))
        for elem in space.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            local = control_points[:, elem.get_local_to_global()]
            values = np.einsum("sb,bq->qs", local, elem.get_values().data[:, :, 0])
            nptest.assert_allclose(values, elem.get_points())
            gradients = np.einsum("sb,bqi->qsi", local, elem.get_gradients().data[:, :, 0])
            identity = np.broadcast_to(np.eye(2), gradients.shape)
            nptest.assert_allclose(gradients, identity, atol=1e-12)
            hessians = np.einsum("sb,bqij->qsij", local, elem.get_hessians().data[:, :, 0])
            nptest.assert_allclose(hessians, 0.0, atol=1e-10)

    def test_w_measures_integrate_area(self) -> None:
        grid = Grid.create(3, dim=2)
        space = PhysicalSpace(
            BSpline(SplineSpace(1, grid)),
            Domain(LinearGridFunction(grid, [[3.0, 0.0], [0.0, 2.0]])),
        )
        handler = space.create_cache_handler()
        handler.reset(SpaceFlags.W_MEASURE, QGauss(2, 2))
        total = 0.0
        for elem in space.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            total += float(np.sum(elem.get_w_measures()))
        assert total == pytest.approx(6.0)

    def test_divergence_of_vector_space(self) -> None:
        grid = Grid.create(2, dim=2)
        space = PhysicalSpace(
            BSpline(SplineSpace(1, grid, range_=2)), Domain(IdentityGridFunction(grid))
        )
        handler = space.create_cache_handler()
        handler.reset(SpaceFlags.DIVERGENCE, QGauss(2, 1))
        elem = space.begin()
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        divergences = elem.get_divergences().data
        assert divergences.shape == (8, 1)
        # the first component only varies along x, the second along y
        nptest.assert_allclose(divergences[:, 0], [-0.5, -0.5, 0.5, 0.5, -0.5, 0.5, -0.5, 0.5])


class TestRefineH:
    """Tests for physical spaces on refined grids."""

    def test_identity_mapped_sizes(self) -> None:
        grid = Grid.create(3, dim=2)
        space = PhysicalSpace(BSpline(SplineSpace(2, grid)), Domain(IdentityGridFunction(grid)))
        fine = space.refine_h()
        assert fine.get_num_basis() == 36  # noqa: PLR2004
        assert fine.ref_basis.grid is fine.domain.grid
        assert fine.domain.grid.num_intervals == (4, 4)
        assert space.get_num_basis() == 16  # noqa: PLR2004
        assert space.domain.grid is grid

    def test_coordinates_are_reproduced_after_refinement(self) -> None:
        space, control_points = _isoparametric_space()
        fine = space.refine_h(2)
        assert isinstance(space.ref_basis, BSpline)
        assert isinstance(fine.ref_basis, BSpline)
        fine_points = control_points @ space.ref_basis.get_prolongation(fine.ref_basis).T
        assert fine_points.shape == (2, 36)

        handler = fine.create_cache_handler()
        handler.reset(SpaceFlags.VALUE | SpaceFlags.POINT | SpaceFlags.W_MEASURE, QGauss(2, 3))
        area = 0.0
        for elem in fine.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            local = fine_points[:, elem.get_local_to_global()]
            values = np.einsum("sb,bq->qs", local, elem.get_values().data[:, :, 0])
            nptest.assert_allclose(values, elem.get_points())
            area += float(np.sum(elem.get_w_measures()))
        assert area == pytest.approx(_area(space), rel=1e-12)


class TestErrors:
    """Tests for invalid physical spaces."""

    def test_different_grids_raise(self) -> None:
        basis = BSpline(SplineSpace(1, Grid.create(3)))
        with pytest.raises(ConfigurationError, match="share the grid"):
            PhysicalSpace(basis, Domain(IdentityGridFunction(Grid.create(3))))

    def test_divergence_needs_vector_range(self) -> None:
        grid = Grid.create(2, dim=2)
        space = PhysicalSpace(BSpline(SplineSpace(1, grid)), Domain(IdentityGridFunction(grid)))
        handler = space.create_cache_handler()
        with pytest.raises(ConfigurationError, match="range == space_dim"):
            handler.reset(SpaceFlags.DIVERGENCE, QGauss(2, 1))
