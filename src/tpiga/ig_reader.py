"""Reader of single-patch NURBS geometries stored in XML.

The expected layout is::

    <XMLFile>
      <Patch DimReferenceDomain="2" DimPhysicalDomain="2">
        <KnotVector Degree="2" Direction="0" NumBreakPoints="3">
          <BreakPoints> 0.0 0.5 1.0 </BreakPoints>
          <Multiplicities> 3 1 3 </Multiplicities>
        </KnotVector>
        ...one KnotVector per direction...
        <ControlPoints>
          <NumDir> 4 3 </NumDir>
          <Coordinates> ... </Coordinates>
          ...one Coordinates per physical component...
          <Weights> ... </Weights>
        </ControlPoints>
      </Patch>
    </XMLFile>

``Direction`` and ``NumBreakPoints`` are optional: the direction defaults to
the order of the ``KnotVector`` elements and the count to the number of break
points given. Multiplicities include the end break points. Control point
data is listed with the first direction varying fastest; :class:`PatchData`
stores it in the package-wide C order. Every count is checked before any grid is built.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import xml.etree.ElementTree as ET
from math import prod
from typing import IO

import numpy as np
import numpy.typing as npt

from .bspline import BSpline
from .config import MAX_DIM
from .errors import InputDataError, dimension_mismatch
from .grid import Grid
from .ig_grid_function import IgGridFunction
from .nurbs import NURBS
from .spline_space import SplineSpace

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PatchData:
    """Validated content of a patch file.

    Attributes:
        dim (int): Dimension of the reference domain.
        space_dim (int): Dimension of the physical domain.
        degree (tuple[int, ...]): Degree per direction.
        break_points (tuple[npt.NDArray[np.float64], ...]): Break points per direction.
        interior_multiplicities (tuple[tuple[int, ...], ...]): Multiplicities of
            the interior break points per direction.
        n_control_points (tuple[int, ...]): Control points per direction.
        control_points (npt.NDArray[np.float64]): Shape ``(space_dim, n)``, C order.
        weights (npt.NDArray[np.float64]): Shape ``(n,)``, C order.
    """

    dim: int
    space_dim: int
    degree: tuple[int, ...]
    break_points: tuple[npt.NDArray[np.float64], ...]
    interior_multiplicities: tuple[tuple[int, ...], ...]
    n_control_points: tuple[int, ...]
    control_points: npt.NDArray[np.float64]
    weights: npt.NDArray[np.float64]


def _int_attribute(node: ET.Element, name: str, default: int | None = None) -> int:
    value = node.get(name)
    if value is None:
        if default is not None:
            return default
        raise InputDataError(f"{node.tag} is missing the attribute {name}")
    try:
        return int(value)
    except ValueError:
        raise InputDataError(f"{node.tag}.{name} must be an integer, got '{value}'") from None


def _numbers(node: ET.Element | None, field: str, dtype: type = float) -> npt.NDArray:
    if node is None:
        raise InputDataError(f"Missing field {field}")
    try:
        return np.array((node.text or "").split(), dtype=dtype)
    except ValueError:
        raise InputDataError(f"{field} contains non-numeric values") from None


def _check_count(field: str, expected: int, actual: int) -> None:
    if expected != actual:
        raise InputDataError(dimension_mismatch(field, expected, actual))


def _to_c_order(values: npt.NDArray[np.float64], n_dir: tuple[int, ...]) -> npt.NDArray[np.float64]:
    return values.reshape(n_dir, order="F").ravel(order="C")


def _read_knot_vectors(
    patch: ET.Element, dim: int
) -> tuple[list[int], list[npt.NDArray[np.float64]], list[tuple[int, ...]]]:
    degree: list[int | None] = [None] * dim
    break_points: list[npt.NDArray[np.float64] | None] = [None] * dim
    interior: list[tuple[int, ...] | None] = [None] * dim

    for position, knot in enumerate(patch.findall("KnotVector")):
        direction = _int_attribute(knot, "Direction", position)
        if not 0 <= direction < dim:
            raise InputDataError(f"KnotVector.Direction must be in [0, {dim}), got {direction}")
        if degree[direction] is not None:
            raise InputDataError(f"KnotVector of direction {direction} given twice")
        deg = _int_attribute(knot, "Degree")
        if deg < 1:
            raise InputDataError(f"KnotVector.Degree must be at least 1, got {deg}")
        points = _numbers(knot.find("BreakPoints"), f"BreakPoints[{direction}]")
        mults = _numbers(knot.find("Multiplicities"), f"Multiplicities[{direction}]", int)
        n_break = _int_attribute(knot, "NumBreakPoints", points.size)
        if n_break < 2:  # noqa: PLR2004
            raise InputDataError(f"KnotVector.NumBreakPoints must be at least 2, got {n_break}")
        _check_count(f"BreakPoints[{direction}]", n_break, points.size)
        _check_count(f"Multiplicities[{direction}]", n_break, mults.size)
        if np.any(np.diff(points) <= 0.0):
            raise InputDataError(f"BreakPoints[{direction}] must be strictly increasing")
        if mults[0] != deg + 1 or mults[-1] != deg + 1:
            raise InputDataError(
                f"End multiplicities of direction {direction} must be {deg + 1}, "
                f"got {mults[0]} and {mults[-1]}"
            )
        if np.any(mults[1:-1] < 1) or np.any(mults[1:-1] > deg + 1):
            raise InputDataError(
                f"Interior multiplicities of direction {direction} must be in [1, {deg + 1}]"
            )
        degree[direction] = deg
        break_points[direction] = points
        interior[direction] = tuple(int(m) for m in mults[1:-1])

    missing = [d for d in range(dim) if degree[d] is None]
    if missing:
        raise InputDataError(f"Missing KnotVector for directions {missing}")
    return (
        [int(d) for d in degree if d is not None],
        [p for p in break_points if p is not None],
        [m for m in interior if m is not None],
    )


def _parse(root: ET.Element) -> PatchData:
    if root.tag != "XMLFile":
        raise InputDataError(f"Root element must be XMLFile, got {root.tag}")
    patch = root.find("Patch")
    if patch is None:
        raise InputDataError("Missing field Patch")

    dim = _int_attribute(patch, "DimReferenceDomain")
    space_dim = _int_attribute(patch, "DimPhysicalDomain")
    if not 1 <= dim <= space_dim <= MAX_DIM:
        raise InputDataError(
            f"Expected 1 <= DimReferenceDomain <= DimPhysicalDomain <= {MAX_DIM}, "
            f"got {dim} and {space_dim}"
        )
    degree, break_points, interior = _read_knot_vectors(patch, dim)

    control = patch.find("ControlPoints")
    if control is None:
        raise InputDataError("Missing field ControlPoints")
    n_dir_values = _numbers(control.find("NumDir"), "NumDir", int)
    _check_count("NumDir", dim, n_dir_values.size)
    n_dir = tuple(int(n) for n in n_dir_values)
    for d in range(dim):
        expected = sum(interior[d]) + degree[d] + 1
        _check_count(f"NumDir[{d}]", expected, n_dir[d])
    n_points = prod(n_dir)

    coordinates = control.findall("Coordinates")
    _check_count("Coordinates", space_dim, len(coordinates))
    rows = []
    for c, node in enumerate(coordinates):
        values = _numbers(node, f"Coordinates[{c}]")
        _check_count(f"Coordinates[{c}]", n_points, values.size)
        rows.append(_to_c_order(values, n_dir))

    weights = _numbers(control.find("Weights"), "Weights")
    _check_count("Weights", n_points, weights.size)
    if np.any(weights <= 0.0):
        raise InputDataError("Weights must be positive")

    return PatchData(
        dim=dim,
        space_dim=space_dim,
        degree=tuple(degree),
        break_points=tuple(break_points),
        interior_multiplicities=tuple(interior),
        n_control_points=n_dir,
        control_points=np.array(rows),
        weights=_to_c_order(weights, n_dir),
    )


def read_patch(source: str | os.PathLike[str] | IO[str] | IO[bytes]) -> PatchData:
    """Read and validate a patch file.

    Args:
        source (str | os.PathLike[str] | IO[str] | IO[bytes]): Path or open file.

    Raises:
        InputDataError: If the XML is malformed or a field is missing or
            inconsistent; the message names the field.
    """
    try:
        root = ET.parse(source).getroot()
    except ET.ParseError as exc:
        raise InputDataError(f"Malformed XML: {exc}") from exc
    patch = _parse(root)
    logger.debug(
        "read patch of dimension %d in %dD with %s control points",
        patch.dim,
        patch.space_dim,
        patch.n_control_points,
    )
    return patch


def parse_patch(text: str) -> PatchData:
    """Same as :func:`read_patch`, from the XML text itself."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise InputDataError(f"Malformed XML: {exc}") from exc
    return _parse(root)


def create_nurbs_mapping(patch: PatchData) -> IgGridFunction:
    """Build the grid, the NURBS basis and the mapping described by a patch.

    Every physical component uses the same NURBS basis; the control point
    coordinates become the coefficients of the component blocks.
    """
    grid = Grid(patch.break_points)
    space = SplineSpace(
        patch.degree, grid, patch.interior_multiplicities, range_=patch.space_dim
    )
    basis = NURBS(BSpline(space), np.tile(patch.weights, patch.space_dim))
    return IgGridFunction(basis, patch.control_points.ravel())
