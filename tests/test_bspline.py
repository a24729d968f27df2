"""Tests for B-spline bases and the reference basis elements built on them."""

from __future__ import annotations

import numpy as np
import numpy.testing as nptest
import pytest

from tpiga.bspline import BSpline, get_univariate_cache_intervals, tensor_combine
from tpiga.errors import ConfigurationError, PreconditionError
from tpiga.grid import Grid
from tpiga.quad import EvaluationPoints, QGauss, QTrapez
from tpiga.spline_space import SplineSpace
from tpiga.unit_element import Topology
from tpiga.value_types import BasisFlags


def _bspline(degree: int | list[int], n_knots: int, dim: int, range_: int = 1) -> BSpline:
    return BSpline(SplineSpace(degree, Grid.create(n_knots, dim=dim), range_=range_))


class TestTwoLinearElements:
    """Degree 1 on two elements of [0, 1]."""

    def test_local_to_global(self) -> None:
        basis = _bspline(1, 3, 1)
        assert basis.get_num_basis() == 3  # noqa: PLR2004
        assert [e.get_local_to_global() for e in basis.elements()] == [[0, 1], [1, 2]]

    def test_values_at_midpoint(self) -> None:
        basis = _bspline(1, 3, 1)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE, QGauss(1, 1))
        for elem in basis.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            values = elem.get_values()
            assert values.data.shape == (2, 1, 1)
            nptest.assert_allclose(values.data[:, 0, 0], [0.5, 0.5])

    def test_hat_functions_at_element_ends(self) -> None:
        basis = _bspline(1, 3, 1)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE | BasisFlags.GRADIENT, QTrapez(1, 2))
        elem = basis.create_element(1)
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        nptest.assert_allclose(elem.get_values().data[:, :, 0], np.eye(2))
        nptest.assert_allclose(elem.get_gradients().data[:, :, 0, 0], [[-2.0, -2.0], [2.0, 2.0]])


class TestBasisProperties:
    """Partition of unity and derivative consistency."""

    @pytest.mark.parametrize(("degree", "dim"), [(2, 1), (3, 1), (2, 2), ([1, 2, 3], 3)])
    def test_partition_of_unity(self, degree: int | list[int], dim: int) -> None:
        basis = _bspline(degree, 4, dim)
        handler = basis.create_cache_handler()
        flags = BasisFlags.VALUE | BasisFlags.GRADIENT | BasisFlags.HESSIAN
        handler.reset(flags, QGauss(dim, 3))
        for elem in basis.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            nptest.assert_allclose(np.sum(elem.get_values().data, axis=0), 1.0)
            nptest.assert_allclose(np.sum(elem.get_gradients().data, axis=0), 0.0, atol=1e-10)
            nptest.assert_allclose(np.sum(elem.get_hessians().data, axis=0), 0.0, atol=1e-8)

    def test_gradients_match_finite_differences(self) -> None:
        basis = BSpline(SplineSpace(3, Grid([[0.0, 0.3, 1.0], [0.0, 0.5, 2.0]])))
        elem = basis.create_element((1, 1))
        point = np.array([[0.4, 0.7]])
        lengths = elem.grid_element.lengths
        h = 1e-6
        gradients = elem.evaluate_basis_derivatives_at_points(1, point).data
        hessians = elem.evaluate_basis_derivatives_at_points(2, point).data
        for d in range(2):
            shift = np.zeros((1, 2))
            shift[0, d] = h
            plus = elem.evaluate_basis_derivatives_at_points(0, point + shift).data
            minus = elem.evaluate_basis_derivatives_at_points(0, point - shift).data
            fd = (plus - minus) / (2 * h * lengths[d])
            nptest.assert_allclose(gradients[..., d], fd, atol=1e-6)
            plus = elem.evaluate_basis_derivatives_at_points(1, point + shift).data
            minus = elem.evaluate_basis_derivatives_at_points(1, point - shift).data
            fd = (plus - minus) / (2 * h * lengths[d])
            nptest.assert_allclose(hessians[..., d], fd, atol=1e-5)

    def test_lattice_and_point_wise_agree(self) -> None:
        basis = _bspline(2, 3, 2)
        quad = QGauss(2, 2)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.GRADIENT, quad)
        elem = basis.create_element(3)
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        direct = elem.evaluate_basis_derivatives_at_points(1, EvaluationPoints(quad.get_points()))
        nptest.assert_allclose(elem.get_gradients().data, direct.data)

    def test_invalid_order_raises(self) -> None:
        elem = _bspline(2, 3, 1).begin()
        with pytest.raises(ValueError, match="order"):
            elem.evaluate_basis_derivatives_at_points(3, [[0.5]])


class TestVectorBasis:
    """Bases with several components."""

    def test_component_blocks(self) -> None:
        basis = BSpline(SplineSpace([[1, 2], [2, 1]], Grid.create(2, dim=2), range_=2))
        assert basis.get_local_blocks() == [slice(0, 6), slice(6, 12)]
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE | BasisFlags.DIVERGENCE, QGauss(2, 2))
        elem = basis.begin()
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        values = elem.get_values().data
        assert values.shape == (12, 4, 2)
        nptest.assert_allclose(values[:6, :, 1], 0.0)
        nptest.assert_allclose(values[6:, :, 0], 0.0)
        nptest.assert_allclose(np.sum(values[:6, :, 0], axis=0), 1.0)
        assert elem.get_divergences().data.shape == (12, 4)

    def test_divergence_needs_range_equal_dim(self) -> None:
        handler = _bspline(2, 3, 2).create_cache_handler()
        with pytest.raises(ConfigurationError, match="range == dim"):
            handler.reset(BasisFlags.DIVERGENCE, QGauss(2, 2))


class TestHandler:
    """Reset options of the reference element handler."""

    def test_selected_elements_only(self) -> None:
        basis = _bspline(2, 4, 1)
        handler = basis.create_cache_handler()
        handler.reset_selected_elements(BasisFlags.VALUE, QGauss(1, 2), [1])
        elem = basis.create_element(1)
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        elem.move_to(2)
        with pytest.raises(PreconditionError, match="not selected"):
            handler.fill_element_cache(elem)

    def test_face_values(self) -> None:
        basis = _bspline(2, 3, 2)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE | BasisFlags.POINT, QGauss(1, 2))
        elem = basis.begin()
        handler.init_face_cache(elem)
        handler.fill_face_cache(elem, 0)
        face = Topology(1)
        nptest.assert_allclose(elem.get_points(face, 0)[:, 0], 0.0)
        values = elem.get_values(face, 0).data
        # on the face x = 0 only the functions with first index 0 are non-zero
        nptest.assert_allclose(values[3:, :, 0], 0.0, atol=1e-14)
        nptest.assert_allclose(np.sum(values[:3, :, 0], axis=0), 1.0)

    def test_w_measures_come_from_grid(self) -> None:
        basis = _bspline(1, 3, 1)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.W_MEASURE, QGauss(1, 2))
        elem = basis.begin()
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        nptest.assert_allclose(elem.get_w_measures(), [0.25, 0.25])

    def test_read_after_new_reset_raises(self) -> None:
        basis = _bspline(1, 3, 1)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE, QGauss(1, 2))
        elem = basis.begin()
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        handler.reset(BasisFlags.VALUE | BasisFlags.GRADIENT, QGauss(1, 4))
        with pytest.raises(PreconditionError, match="before the last reset"):
            elem.get_values()
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        assert elem.get_values().data.shape == (2, 4, 1)
        assert elem.get_gradients().data.shape == (2, 4, 1, 1)


class TestPeriodic:
    """B-splines along periodic directions."""

    def test_partition_of_unity(self) -> None:
        space = SplineSpace([2, 3], Grid.create([5, 6], dim=2), periodic=[True, False])
        basis = BSpline(space)
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE | BasisFlags.GRADIENT, QGauss(2, 3))
        for elem in basis.elements():
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            nptest.assert_allclose(np.sum(elem.get_values().data, axis=0), 1.0)
            nptest.assert_allclose(np.sum(elem.get_gradients().data, axis=0), 0.0, atol=1e-10)

    def test_uniform_operators_are_equal(self) -> None:
        basis = BSpline(SplineSpace(3, Grid.create(6), periodic=True))
        operators = basis.get_extraction_operator(0, 0)
        assert operators.shape == (5, 4, 4)
        for operator in operators[1:]:
            nptest.assert_allclose(operator, operators[0], atol=1e-14)

    def test_smooth_across_the_seam(self) -> None:
        basis = BSpline(SplineSpace(2, Grid([[0.0, 0.2, 0.5, 0.7, 1.0]]), periodic=True))
        n = basis.get_num_basis()
        handler = basis.create_cache_handler()
        handler.reset(BasisFlags.VALUE | BasisFlags.GRADIENT, QTrapez(1, 2))
        ends = []
        for index, point in ((0, 0), (3, 1)):
            elem = basis.create_element(index)
            handler.init_element_cache(elem)
            handler.fill_element_cache(elem)
            values = np.zeros(n)
            gradients = np.zeros(n)
            l2g = elem.get_local_to_global()
            values[l2g] = elem.get_values().data[:, point, 0]
            gradients[l2g] = elem.get_gradients().data[:, point, 0, 0]
            ends.append((values, gradients))
        nptest.assert_allclose(ends[0][0], ends[1][0], atol=1e-14)
        nptest.assert_allclose(ends[0][1], ends[1][1], atol=1e-12)


class TestProlongation:
    """Coefficient transfer to refined B-spline bases."""

    def test_linear_midpoint_insertion(self) -> None:
        basis = _bspline(1, 2, 1)
        fine = basis.refine_h(2)
        P = basis.get_prolongation(fine).toarray()
        nptest.assert_allclose(P, [[1.0, 0.0], [0.5, 0.5], [0.0, 1.0]])

    @pytest.mark.parametrize(
        "space",
        [
            SplineSpace(3, Grid([[0.0, 0.3, 1.0]])),
            SplineSpace([2, 1], Grid([[0.0, 0.4, 1.0], [0.0, 1.0]]), [[2], []], range_=2),
            SplineSpace(2, Grid.create(4), periodic=True),
        ],
    )
    def test_constants_are_kept(self, space: SplineSpace) -> None:
        basis = BSpline(space)
        fine = basis.refine_h(3)
        P = basis.get_prolongation(fine)
        assert P.shape == (fine.get_num_basis(), basis.get_num_basis())
        nptest.assert_allclose(P @ np.ones(basis.get_num_basis()), 1.0)

    def test_different_degrees_raise(self) -> None:
        basis = _bspline(1, 3, 1)
        with pytest.raises(ValueError, match="equal degrees"):
            basis.get_prolongation(_bspline(2, 5, 1))


class TestHelpers:
    """Module-level helpers."""

    def test_tensor_combine_lattice(self) -> None:
        a = np.array([[1.0, 2.0]])
        b = np.array([[3.0], [4.0]])
        nptest.assert_allclose(tensor_combine([a, b], True), [[3.0, 6.0], [4.0, 8.0]])

    def test_tensor_combine_point_wise(self) -> None:
        a = np.array([[1.0, 2.0], [3.0, 4.0]])
        b = np.array([[5.0, 6.0]])
        nptest.assert_allclose(tensor_combine([a, b], False), [[5.0, 12.0], [15.0, 24.0]])

    def test_cache_intervals(self) -> None:
        grid = Grid.create([3, 4], dim=2)
        assert get_univariate_cache_intervals(grid, [1, 5]) == [[0, 1], [1, 2]]
        assert get_univariate_cache_intervals(grid, None) is None

    def test_extraction_operator_shape(self) -> None:
        basis = _bspline(3, 5, 1)
        assert basis.get_extraction_operator(0, 0).shape == (4, 4, 4)
