"""Public API surface for tpiga.

Defines package metadata and exported interfaces.
"""

import logging
from typing import Final

# Private API imports (accessible but not in __all__)
from . import _bspline_impl  # noqa: F401
from .basis_element import BasisElement, ReferenceElementHandler
from .bspline import BasisKind, BSpline
from .cache import CacheState, CopyPolicy, LocalCache, ValuesCache
from .config import MAX_DIM, Settings, get_settings, set_settings, settings
from .dof_distribution import DofDistribution
from .domain import Domain, DomainElement, DomainHandler
from .errors import ConfigurationError, InputDataError, PreconditionError, TpigaError
from .function import (
    ConstantFunction,
    FormulaFunction,
    Function,
    FunctionElement,
    FunctionHandler,
    LinearFunction,
)
from .grid import Grid
from .grid_element import GridElement, GridElementHandler
from .grid_function import (
    BallGridFunction,
    CylindricalAnnulusGridFunction,
    FormulaGridFunction,
    GridFunction,
    GridFunctionElement,
    IdentityGridFunction,
    LinearGridFunction,
    SeparableGridFunction,
    SphereGridFunction,
)
from .ig_grid_function import IgGridFunction
from .ig_reader import PatchData, create_nurbs_mapping, parse_patch, read_patch
from .linear_algebra import SparseMatrix, Vector, apply_boundary_values, solve
from .multi_array import DynamicMultiArray, StaticMultiArray
from .nurbs import NURBS
from .product_array import CartesianProductArray, TensorProductArray
from .quad import (
    EvaluationPoints,
    QGauss,
    QGaussLobatto,
    QTrapez,
    QuadratureTensorProduct,
    extend_sub_element,
)
from .sampling import (
    PlotData,
    evaluate_at_plot_points,
    evaluate_field_at_plot_points,
    evaluate_function_at_plot_points,
)
from .space_element import PhysicalSpace, SpaceElement, SpaceElementHandler
from .spline_space import SplineSpace
from .tensor_index import flat_to_tensor, tensor_range, tensor_to_flat
from .unit_element import SubElement, Topology, UnitElement
from .value_table import ValueTable, ValueVector
from .value_types import (
    BasisFlags,
    DomainFlags,
    FunctionFlags,
    GridFlags,
    GridFunctionFlags,
    Level,
    SpaceFlags,
    activate,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Package metadata
__version__: Final[str] = "0.1.0"
__license__: Final[str] = "MIT"
__author__: Final[str] = "Pablo Antolin <pablo.antolin@epfl.ch>"

# Public interface: only functions/classes that don't start with _
__all__ = [
    "MAX_DIM",
    "NURBS",
    "BSpline",
    "BallGridFunction",
    "BasisElement",
    "BasisFlags",
    "BasisKind",
    "CacheState",
    "CartesianProductArray",
    "ConfigurationError",
    "ConstantFunction",
    "CopyPolicy",
    "CylindricalAnnulusGridFunction",
    "DofDistribution",
    "Domain",
    "DomainElement",
    "DomainFlags",
    "DomainHandler",
    "DynamicMultiArray",
    "EvaluationPoints",
    "FormulaFunction",
    "FormulaGridFunction",
    "Function",
    "FunctionElement",
    "FunctionFlags",
    "FunctionHandler",
    "Grid",
    "GridElement",
    "GridElementHandler",
    "GridFlags",
    "GridFunction",
    "GridFunctionElement",
    "GridFunctionFlags",
    "IdentityGridFunction",
    "IgGridFunction",
    "InputDataError",
    "Level",
    "LinearFunction",
    "LinearGridFunction",
    "LocalCache",
    "PatchData",
    "PhysicalSpace",
    "PlotData",
    "PreconditionError",
    "QGauss",
    "QGaussLobatto",
    "QTrapez",
    "QuadratureTensorProduct",
    "ReferenceElementHandler",
    "SeparableGridFunction",
    "Settings",
    "SpaceElement",
    "SpaceElementHandler",
    "SpaceFlags",
    "SparseMatrix",
    "SphereGridFunction",
    "SplineSpace",
    "StaticMultiArray",
    "SubElement",
    "TensorProductArray",
    "Topology",
    "TpigaError",
    "UnitElement",
    "ValueTable",
    "ValueVector",
    "ValuesCache",
    "Vector",
    "__author__",
    "__license__",
    "__version__",
    "activate",
    "apply_boundary_values",
    "create_nurbs_mapping",
    "evaluate_at_plot_points",
    "evaluate_field_at_plot_points",
    "evaluate_function_at_plot_points",
    "extend_sub_element",
    "flat_to_tensor",
    "get_settings",
    "parse_patch",
    "read_patch",
    "set_settings",
    "settings",
    "solve",
    "tensor_range",
    "tensor_to_flat",
]
