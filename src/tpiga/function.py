"""Functions defined on a physical domain.

Values have shape ``(n_points, range)``; derivatives are taken with respect
to the physical coordinates and append one ``space_dim`` axis per order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import numpy.typing as npt

from .cache import ValuesCache
from .config import MAX_DIM
from .domain import Domain, DomainElement
from .handler import ElementAccessor, ElementContainer, ElementHandler
from .quad import EvalPoints
from .unit_element import Topology
from .value_table import ValueVector
from .value_types import FunctionCacheFlags, Level

_CACHE_FLAGS = (FunctionCacheFlags.VALUE, FunctionCacheFlags.GRADIENT, FunctionCacheFlags.D2)


class Function(ElementContainer, ABC):
    """A function with ``range_`` components on a domain."""

    def __init__(self, domain: Domain, range_: int = 1) -> None:
        if not 1 <= range_ <= MAX_DIM:
            raise ValueError(f"range_ must be in [1, {MAX_DIM}], got {range_}")
        self._domain = domain
        self._range = range_

    @property
    def domain(self) -> Domain:
        """The domain."""
        return self._domain

    @property
    def range(self) -> int:
        """Number of components."""
        return self._range

    def value_shape(self, n_points: int, order: int) -> tuple[int, ...]:
        """Shape of the order-``order`` derivative at ``n_points`` points."""
        return (n_points, self._range) + (self._domain.space_dim,) * order

    def _new_element(self, prop: str) -> FunctionElement:
        return FunctionElement(self, self._domain.begin(prop))

    @abstractmethod
    def create_cache_handler(self) -> ElementHandler:
        """Handler filling the caches of the function elements."""


class FunctionElement(ElementAccessor):
    """Element accessor of a :class:`Function`."""

    def __init__(self, function: Function, domain_element: DomainElement) -> None:
        super().__init__((domain_element,))
        self._function = function

    @property
    def domain_element(self) -> DomainElement:
        """The wrapped domain element."""
        child = self._children[0]
        assert isinstance(child, DomainElement)
        return child

    def _vector(self, flag: FunctionCacheFlags, topology: Topology | None, sub_id: int) -> Any:
        return ValueVector(self.get_sub_elem_cache(topology, sub_id).get(flag))

    def get_values(self, topology: Topology | None = None, sub_id: int = 0) -> ValueVector:
        """Values, shape ``(n_points, range)``."""
        return self._vector(FunctionCacheFlags.VALUE, topology, sub_id)

    def get_gradients(self, topology: Topology | None = None, sub_id: int = 0) -> ValueVector:
        """Gradients, shape ``(n_points, range, space_dim)``."""
        return self._vector(FunctionCacheFlags.GRADIENT, topology, sub_id)

    def get_hessians(self, topology: Topology | None = None, sub_id: int = 0) -> ValueVector:
        """Second derivatives, shape ``(n_points, range, space_dim, space_dim)``."""
        return self._vector(FunctionCacheFlags.D2, topology, sub_id)


class FormulaFunction(Function):
    """Function given by a closed-form expression of the physical coordinates."""

    @abstractmethod
    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        """Derivative of order ``order`` at physical ``points`` (shape ``(n, space_dim)``)."""

    def create_cache_handler(self) -> FunctionHandler:
        """Handler evaluating the formula at the domain points."""
        return FunctionHandler(self)


class FunctionHandler(ElementHandler):
    """Fills the caches of a :class:`FormulaFunction` from the domain points."""

    level = Level.FUNCTION
    activation_level = Level.FUNCTION

    def __init__(self, function: FormulaFunction) -> None:
        super().__init__(function.domain.dim, (function.domain.create_cache_handler(),))
        self._function = function

    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        cache_flags = self._activations[k].cache
        return {
            flag: self._function.value_shape(points.n_points, order)
            for order, flag in enumerate(_CACHE_FLAGS)
            if flag in cache_flags
        }

    def _fill(self, elem: FunctionElement, k: int, sub_id: int, cache: ValuesCache) -> None:
        if not cache.flags:
            return
        points = elem.domain_element.get_points(Topology(k), sub_id)
        for order, flag in enumerate(_CACHE_FLAGS):
            if flag in cache.flags:
                cache.set(flag, self._function.evaluate(points, order))


class ConstantFunction(FormulaFunction):
    """The function equal to a constant vector."""

    def __init__(self, domain: Domain, value: npt.ArrayLike) -> None:
        b = np.array(value, dtype=np.float64, ndmin=1)
        super().__init__(domain, b.shape[0])
        self._value = b

    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        if order == 0:
            return np.broadcast_to(self._value, (points.shape[0], self.range)).copy()
        return np.zeros(self.value_shape(points.shape[0], order))


class LinearFunction(FormulaFunction):
    """The affine function ``x -> A x + b`` of the physical coordinates."""

    def __init__(self, domain: Domain, A: npt.ArrayLike, b: npt.ArrayLike | None = None) -> None:
        """Initialize the function.

        Raises:
            ValueError: If ``A`` does not have ``space_dim`` columns or ``b``
                does not match its rows.
        """
        A_arr = np.array(A, dtype=np.float64, ndmin=2)
        if A_arr.shape[1] != domain.space_dim:
            raise ValueError(f"A must have {domain.space_dim} columns, got shape {A_arr.shape}")
        super().__init__(domain, A_arr.shape[0])
        b_arr = np.zeros(self.range) if b is None else np.array(b, dtype=np.float64, ndmin=1)
        if b_arr.shape != (self.range,):
            raise ValueError(f"b must have shape ({self.range},), got {b_arr.shape}")
        self._A = A_arr
        self._b = b_arr

    def evaluate(self, points: npt.NDArray[np.float64], order: int) -> npt.NDArray[np.float64]:
        n = points.shape[0]
        if order == 0:
            return points @ self._A.T + self._b
        if order == 1:
            return np.broadcast_to(self._A, (n, *self._A.shape)).copy()
        return np.zeros(self.value_shape(n, order))
