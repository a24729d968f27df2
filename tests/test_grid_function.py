"""Tests for closed-form grid functions in tpiga.grid_function."""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.testing as nptest
import pytest

from tpiga.errors import ConfigurationError, PreconditionError
from tpiga.grid import Grid
from tpiga.grid_function import (
    BallGridFunction,
    CylindricalAnnulusGridFunction,
    FormulaGridFunction,
    IdentityGridFunction,
    LinearGridFunction,
    SphereGridFunction,
)
from tpiga.quad import EvaluationPoints, QGauss, QTrapez
from tpiga.value_types import GridFunctionFlags


def _fill_first(grid_function: FormulaGridFunction, flags: GridFunctionFlags, quad: Any) -> Any:
    handler = grid_function.create_cache_handler()
    handler.reset(flags, quad)
    elem = grid_function.begin()
    handler.init_element_cache(elem)
    handler.fill_element_cache(elem)
    return elem


class TestLinearGridFunction:
    """Tests for LinearGridFunction."""

    def test_values_and_gradients(self) -> None:
        grid = Grid.create(2, dim=2)
        A = [[2.0, 0.0], [1.0, 3.0], [0.0, 1.0]]
        b = [1.0, 0.0, -1.0]
        gf = LinearGridFunction(grid, A, b)
        assert gf.space_dim == 3  # noqa: PLR2004
        flags = GridFunctionFlags.D0 | GridFunctionFlags.D1 | GridFunctionFlags.D2
        elem = _fill_first(gf, flags, QTrapez(2, 2))
        x = QTrapez(2, 2).get_points()
        nptest.assert_allclose(elem.get_values(), x @ np.array(A).T + b)
        assert elem.get_gradients().shape == (4, 3, 2)
        nptest.assert_allclose(elem.get_gradients()[2], A)
        nptest.assert_allclose(elem.get_hessians(), np.zeros((4, 3, 2, 2)))

    def test_identity(self) -> None:
        grid = Grid([[0.0, 2.0]])
        elem = _fill_first(IdentityGridFunction(grid), GridFunctionFlags.D0, QTrapez(1, 3))
        nptest.assert_allclose(elem.get_values(), [[0.0], [1.0], [2.0]])

    def test_bad_matrix_raises(self) -> None:
        with pytest.raises(ValueError, match="columns"):
            LinearGridFunction(Grid.create(2, dim=2), [[1.0, 0.0, 0.0]])

    def test_space_dim_below_dim_raises(self) -> None:
        with pytest.raises(ValueError, match="space_dim"):
            LinearGridFunction(Grid.create(2, dim=2), [[1.0, 0.0]])

    def test_unrequested_derivative_raises(self) -> None:
        gf = IdentityGridFunction(Grid.create(2))
        elem = _fill_first(gf, GridFunctionFlags.D0, QGauss(1, 2))
        with pytest.raises(PreconditionError, match="not requested"):
            elem.get_gradients()


class TestBallGridFunction:
    """Tests for BallGridFunction."""

    def test_polar_values(self) -> None:
        grid = Grid([[1.0, 2.0], [0.0, np.pi / 2.0]])
        elem = _fill_first(BallGridFunction(grid), GridFunctionFlags.D0, QTrapez(2, 2))
        nptest.assert_allclose(
            elem.get_values(), [[1.0, 0.0], [0.0, 1.0], [2.0, 0.0], [0.0, 2.0]], atol=1e-14
        )

    @pytest.mark.parametrize("dim", [2, 3])
    def test_derivatives_match_finite_differences(self, dim: int) -> None:
        grid = Grid([[1.0, 2.0]] + [[0.1, 1.0]] * (dim - 1))
        gf = BallGridFunction(grid)
        points = np.array([[1.3, 0.4, 0.7][:dim]])
        h = 1e-6
        d0 = gf.evaluate(points, 0)
        d1 = gf.evaluate(points, 1)
        d2 = gf.evaluate(points, 2)
        for d in range(dim):
            shift = np.zeros(dim)
            shift[d] = h
            fd1 = (gf.evaluate(points + shift, 0) - gf.evaluate(points - shift, 0)) / (2 * h)
            nptest.assert_allclose(d1[..., d], fd1, atol=1e-8)
            fd2 = (gf.evaluate(points + shift, 1) - gf.evaluate(points - shift, 1)) / (2 * h)
            nptest.assert_allclose(d2[..., d], fd2, atol=1e-7)
        nptest.assert_allclose(np.linalg.norm(d0, axis=1), points[:, 0])

    def test_third_derivatives_available(self) -> None:
        grid = Grid([[1.0, 2.0], [0.0, 1.0]])
        elem = _fill_first(
            BallGridFunction(grid), GridFunctionFlags.D3, EvaluationPoints([[0.5, 0.5]])
        )
        assert elem.get_derivatives(3).shape == (1, 2, 2, 2, 2)


def _check_finite_differences(gf: FormulaGridFunction, points: Any) -> None:
    h = 1e-6
    d1 = gf.evaluate(points, 1)
    d2 = gf.evaluate(points, 2)
    for d in range(gf.dim):
        shift = np.zeros(gf.dim)
        shift[d] = h
        fd1 = (gf.evaluate(points + shift, 0) - gf.evaluate(points - shift, 0)) / (2 * h)
        nptest.assert_allclose(d1[..., d], fd1, atol=1e-8)
        fd2 = (gf.evaluate(points + shift, 1) - gf.evaluate(points - shift, 1)) / (2 * h)
        nptest.assert_allclose(d2[..., d], fd2, atol=1e-7)


class TestSphereGridFunction:
    """Tests for SphereGridFunction."""

    def test_circle_values(self) -> None:
        gf = SphereGridFunction(Grid([[0.0, np.pi / 2.0]]))
        assert gf.space_dim == 2  # noqa: PLR2004
        elem = _fill_first(gf, GridFunctionFlags.D0, QTrapez(1, 2))
        nptest.assert_allclose(elem.get_values(), [[1.0, 0.0], [0.0, 1.0]], atol=1e-14)

    def test_points_on_unit_sphere(self) -> None:
        grid = Grid([[0.1, 3.0], [0.0, 2.0 * np.pi]])
        elem = _fill_first(SphereGridFunction(grid), GridFunctionFlags.D0, QGauss(2, 3))
        values = elem.get_values()
        assert values.shape == (9, 3)
        nptest.assert_allclose(np.linalg.norm(values, axis=1), np.ones(9))

    def test_derivatives_match_finite_differences(self) -> None:
        gf = SphereGridFunction(Grid([[0.1, 1.0], [0.2, 1.2]]))
        _check_finite_differences(gf, np.array([[0.4, 0.7]]))

    def test_three_dimensional_grid_raises(self) -> None:
        with pytest.raises(ValueError, match="space_dim"):
            SphereGridFunction(Grid.create(2, dim=3))


class TestCylindricalAnnulusGridFunction:
    """Tests for CylindricalAnnulusGridFunction."""

    def test_center_value(self) -> None:
        gf = CylindricalAnnulusGridFunction(Grid.create(2, dim=3), 1.0, 2.0, 0.0, 3.0, 0.0, np.pi)
        value = gf.evaluate(np.array([[0.5, 0.5, 0.5]]), 0)
        nptest.assert_allclose(value, [[0.0, 1.5, 1.5]], atol=1e-14)

    def test_angle_offset(self) -> None:
        gf = CylindricalAnnulusGridFunction(
            Grid.create(2, dim=3), 1.0, 2.0, -1.0, 1.0, np.pi / 2.0, np.pi
        )
        value = gf.evaluate(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]), 0)
        nptest.assert_allclose(value, [[0.0, 1.0, -1.0], [-2.0, 0.0, 1.0]], atol=1e-14)

    def test_derivatives_match_finite_differences(self) -> None:
        gf = CylindricalAnnulusGridFunction(
            Grid.create(2, dim=3), 0.5, 2.0, 1.0, 4.0, 0.3, 2.0
        )
        _check_finite_differences(gf, np.array([[0.3, 0.6, 0.2]]))

    def test_invalid_arguments_raise(self) -> None:
        with pytest.raises(ValueError, match="3D grid"):
            CylindricalAnnulusGridFunction(Grid.create(2, dim=2), 1.0, 2.0, 0.0, 1.0, 0.0, 1.0)
        with pytest.raises(ValueError, match="Radii"):
            CylindricalAnnulusGridFunction(Grid.create(2, dim=3), 2.0, 1.0, 0.0, 1.0, 0.0, 1.0)


class TestRefined:
    """Tests for formula grid functions on refined grids."""

    def test_refine_h_keeps_formula(self) -> None:
        grid = Grid([[1.0, 2.0], [0.0, np.pi]])
        gf = BallGridFunction(grid)
        fine = gf.refine_h(3)
        assert isinstance(fine, BallGridFunction)
        assert fine.grid.num_intervals == (3, 3)
        assert gf.grid is grid
        points = np.array([[1.2, 0.3], [1.9, 2.5]])
        nptest.assert_allclose(fine.evaluate(points, 1), gf.evaluate(points, 1))

    def test_refined_elements_cover_subintervals(self) -> None:
        gf = LinearGridFunction(Grid([[0.0, 2.0]]), [[3.0]], [1.0])
        fine = gf.refine_h(2)
        elem = _fill_first(fine, GridFunctionFlags.D0, QTrapez(1, 2))
        nptest.assert_allclose(elem.get_values(), [[1.0], [4.0]])

    def test_other_dimension_raises(self) -> None:
        gf = IdentityGridFunction(Grid.create(2))
        with pytest.raises(ValueError, match="2D grid"):
            gf.refined(Grid.create(2, dim=2))


class TestMaxOrder:
    """Tests for grid functions with limited derivatives."""

    def test_order_above_max_raises(self) -> None:
        class _Quadratic(LinearGridFunction):
            max_order = 2

        gf = _Quadratic(Grid.create(2), [[1.0]])
        handler = gf.create_cache_handler()
        with pytest.raises(ConfigurationError, match="up to order 2"):
            handler.reset(GridFunctionFlags.D3, QGauss(1, 2))
