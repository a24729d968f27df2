"""Tests for flag activation tables in tpiga.value_types."""

from __future__ import annotations

from typing import Any

import pytest

from tpiga.domain import Domain
from tpiga.errors import ConfigurationError
from tpiga.grid import Grid
from tpiga.grid_function import LinearGridFunction
from tpiga.quad import QGauss
from tpiga.unit_element import Topology
from tpiga.value_types import (
    BasisCacheFlags,
    BasisFlags,
    DomainCacheFlags,
    DomainFlags,
    FunctionFlags,
    GridCacheFlags,
    GridFlags,
    GridFunctionCacheFlags,
    GridFunctionFlags,
    Level,
    activate,
    supported_flags,
)


class TestDomainActivation:
    """Tests for the domain level."""

    def test_w_measure(self) -> None:
        act = activate(Level.DOMAIN, DomainFlags.W_MEASURE)
        assert act.cache == DomainCacheFlags.MEASURE
        assert act.get_lower(Level.GRID_FUNCTION) == GridFunctionFlags.D1
        assert act.get_lower(Level.GRID) == GridFlags.WEIGHT

    def test_point_stores_nothing(self) -> None:
        act = activate(Level.DOMAIN, DomainFlags.POINT)
        assert act.cache == DomainCacheFlags.NONE
        assert act.get_lower(Level.GRID_FUNCTION) == GridFunctionFlags.D0

    def test_boundary_normal_needs_inverse_jacobian(self) -> None:
        act = activate(Level.DOMAIN, DomainFlags.BOUNDARY_NORMAL)
        assert act.cache == DomainCacheFlags.BOUNDARY_NORMAL | DomainCacheFlags.INV_JACOBIAN
        assert act.get_lower(Level.GRID_FUNCTION) == GridFunctionFlags.D1

    def test_inv_hessian(self) -> None:
        act = activate(Level.DOMAIN, DomainFlags.INV_HESSIAN)
        assert DomainCacheFlags.INV_JACOBIAN in act.cache
        assert act.get_lower(Level.GRID_FUNCTION) == GridFunctionFlags.D1 | GridFunctionFlags.D2

    def test_absent_lower_level_is_empty(self) -> None:
        act = activate(Level.DOMAIN, DomainFlags.MEASURE)
        assert act.get_lower(Level.GRID) == GridFlags.NONE


class TestSpaceActivation:
    """Tests for the physical space level."""

    def test_gradient_needs_inverse_jacobian(self) -> None:
        act = activate(Level.SPACE, BasisFlags.GRADIENT)
        assert act.cache == BasisCacheFlags.GRADIENT
        assert act.get_lower(Level.BASIS) == BasisFlags.GRADIENT
        assert act.get_lower(Level.DOMAIN) == DomainFlags.INV_JACOBIAN

    def test_hessian_closure(self) -> None:
        act = activate(Level.SPACE, BasisFlags.HESSIAN)
        assert act.cache == BasisCacheFlags.HESSIAN | BasisCacheFlags.GRADIENT
        assert act.get_lower(Level.BASIS) == BasisFlags.HESSIAN | BasisFlags.GRADIENT
        assert DomainFlags.HESSIAN in act.get_lower(Level.DOMAIN)

    def test_point_is_forwarded(self) -> None:
        act = activate(Level.SPACE, BasisFlags.VALUE | BasisFlags.POINT)
        assert act.get_lower(Level.DOMAIN) == DomainFlags.POINT


class TestErrors:
    """Tests for rejected requests."""

    def test_unsupported_flag_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="d3"):
            activate(Level.IG_GRID_FUNCTION, GridFunctionFlags.D3)

    def test_wrong_flag_type_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="cannot be requested"):
            activate(Level.DOMAIN, FunctionFlags.VALUE)

    def test_empty_request(self) -> None:
        act = activate(Level.GRID, GridFlags.NONE)
        assert not act.cache
        assert not act.lower


class TestDescribe:
    """Tests for flag names."""

    def test_describe(self) -> None:
        assert (BasisFlags.VALUE | BasisFlags.GRADIENT).describe() == "value | gradient"
        assert GridFlags.NONE.describe() == "none"

    def test_supported_flags(self) -> None:
        assert supported_flags(Level.GRID) == GridFlags.POINT | GridFlags.WEIGHT
        assert GridFunctionFlags.D3 not in supported_flags(Level.IG_GRID_FUNCTION)


class TestHandlerChain:
    """Cache flags allocated along the handler chain of a domain after a reset."""

    @staticmethod
    def _handlers(flags: DomainFlags, quad: QGauss) -> tuple[Any, Any, Any]:
        grid = Grid.create(3, dim=2)
        domain = Domain(LinearGridFunction(grid, [[2.0, 0.0], [0.0, 3.0]]))
        handler = domain.create_cache_handler()
        handler.reset(flags, quad)
        (grid_function_handler,) = handler.children
        (grid_handler,) = grid_function_handler.children
        return handler, grid_function_handler, grid_handler

    def test_w_measure(self) -> None:
        quad = QGauss(2, 2)
        handler, gf_handler, grid_handler = self._handlers(DomainFlags.W_MEASURE, quad)
        assert handler.get_cache_flags() == DomainCacheFlags.MEASURE
        assert GridFunctionCacheFlags.D1 in gf_handler.get_cache_flags()
        assert GridFunctionCacheFlags.D2 not in gf_handler.get_cache_flags()
        assert GridCacheFlags.WEIGHT in grid_handler.get_cache_flags()

    def test_w_measure_allocates_element_caches(self) -> None:
        grid = Grid.create(3, dim=2)
        domain = Domain(LinearGridFunction(grid, [[2.0, 0.0], [0.0, 3.0]]))
        handler = domain.create_cache_handler()
        handler.reset(DomainFlags.W_MEASURE, QGauss(2, 2))
        elem = domain.begin()
        handler.init_element_cache(elem)
        (gf_elem,) = elem.children
        (grid_elem,) = gf_elem.children
        assert DomainCacheFlags.MEASURE in elem.get_sub_elem_cache(None, 0).flags
        assert GridFunctionCacheFlags.D1 in gf_elem.get_sub_elem_cache(None, 0).flags
        assert GridCacheFlags.WEIGHT in grid_elem.get_sub_elem_cache(None, 0).flags

    def test_boundary_normal(self) -> None:
        face = Topology(1)
        handler, gf_handler, _ = self._handlers(DomainFlags.BOUNDARY_NORMAL, QGauss(1, 2))
        cache_flags = handler.get_cache_flags(face)
        assert DomainCacheFlags.BOUNDARY_NORMAL in cache_flags
        assert DomainCacheFlags.INV_JACOBIAN in cache_flags
        assert GridFunctionCacheFlags.D1 in gf_handler.get_cache_flags(face)
        assert handler.get_cache_flags() is None
