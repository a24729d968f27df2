"""Sampling at equispaced points of every element, for output to plotting tools.

Each function returns one :class:`PlotData` per active element; writing the
samples to a file format is left to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

import numpy as np
import numpy.typing as npt

from .function import Function
from .grid_function import GridFunction
from .quad import QTrapez
from .space_element import PhysicalSpace
from .value_types import FunctionFlags, GridFunctionFlags, SpaceFlags

logger = logging.getLogger(__name__)


class PlotData(NamedTuple):
    """Samples of one element.

    Attributes:
        element_id (int): Flat index of the element.
        points (npt.NDArray[np.float64]): Physical points, shape ``(n_points, space_dim)``.
        values (npt.NDArray[np.float64]): Values at the points, shape
            ``(n_points, *value_shape)``.
    """

    element_id: int
    points: npt.NDArray[np.float64]
    values: npt.NDArray[np.float64]


def _check_n_plot_points(n_plot_points: int) -> None:
    if n_plot_points < 2:  # noqa: PLR2004
        raise ValueError(f"At least 2 plot points per direction are needed, got {n_plot_points}")


def evaluate_at_plot_points(grid_function: GridFunction, n_plot_points: int) -> list[PlotData]:
    """Physical points of a grid function at ``n_plot_points`` points per direction.

    The values are the physical points themselves.
    """
    _check_n_plot_points(n_plot_points)
    handler = grid_function.create_cache_handler()
    handler.reset(GridFunctionFlags.D0, QTrapez(grid_function.dim, n_plot_points))
    result = []
    for elem in grid_function.elements():
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        points = np.array(elem.get_values())
        result.append(PlotData(elem.get_index(), points, points))
    logger.debug("sampled %d elements at %d points per direction", len(result), n_plot_points)
    return result


def evaluate_function_at_plot_points(function: Function, n_plot_points: int) -> list[PlotData]:
    """Values of a function on a domain at ``n_plot_points`` points per direction."""
    _check_n_plot_points(n_plot_points)
    handler = function.create_cache_handler()
    handler.reset(FunctionFlags.VALUE, QTrapez(function.domain.dim, n_plot_points))
    result = []
    for elem in function.elements():
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        points = np.array(elem.domain_element.get_points())
        result.append(PlotData(elem.get_index(), points, np.array(elem.get_values().data)))
    return result


def evaluate_field_at_plot_points(
    space: PhysicalSpace, coefficients: npt.ArrayLike, n_plot_points: int
) -> list[PlotData]:
    """Values of ``sum_i c_i phi_i`` over a physical space, shape ``(n_points, range)``.

    Raises:
        ValueError: If the number of coefficients does not match the space.
    """
    _check_n_plot_points(n_plot_points)
    coefs = np.asarray(coefficients, dtype=np.float64).reshape(-1)
    if coefs.shape[0] != space.get_num_basis():
        raise ValueError(
            f"Expected {space.get_num_basis()} coefficients, got {coefs.shape[0]}"
        )
    handler = space.create_cache_handler()
    flags: Any = SpaceFlags.VALUE | SpaceFlags.POINT
    handler.reset(flags, QTrapez(space.dim, n_plot_points))
    result = []
    for elem in space.elements():
        handler.init_element_cache(elem)
        handler.fill_element_cache(elem)
        local = coefs[elem.get_local_to_global()]
        values = np.einsum("b,bqc->qc", local, elem.get_values().data)
        result.append(PlotData(elem.get_index(), np.array(elem.get_points()), values))
    return result
