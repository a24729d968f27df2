"""Value flags and the static tables that propagate them between levels.

Every evaluation level (grid, grid function, domain, function, reference
basis, physical space) has a ``Flags`` type naming the quantities a client can
request and a ``CacheFlags`` type naming the quantities the level stores.
:func:`activate` turns requested flags into the cache flags of the level and
the flags it must request from each lower level.

The tables are built once, on first use, into read-only mappings and are
never modified afterwards.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from functools import cache
from types import MappingProxyType
from typing import Any, NamedTuple, TypeVar

from .errors import ConfigurationError


class Level(enum.Enum):
    """Evaluation levels, ordered from top to bottom."""

    SPACE = "space"
    FUNCTION = "function"
    BASIS = "basis"
    DOMAIN = "domain"
    IG_GRID_FUNCTION = "ig_grid_function"
    GRID_FUNCTION = "grid_function"
    GRID = "grid"


class _NamedFlag(enum.Flag):
    """Flag whose members can be listed and printed by their quantity names."""

    @classmethod
    def members(cls, flags: enum.Flag) -> list[Any]:
        """The single (non-empty) members contained in ``flags``."""
        return [m for m in cls if m.value and m in flags]

    def describe(self) -> str:
        """Human-readable names of the quantities, for example ``"value | gradient"``."""
        names = [m.name.lower() for m in type(self).members(self) if m.name is not None]
        return " | ".join(names) if names else "none"


class GridFlags(_NamedFlag):
    """Quantities of a grid element."""

    NONE = 0
    POINT = enum.auto()
    WEIGHT = enum.auto()


class GridCacheFlags(_NamedFlag):
    """Quantities stored by a grid element."""

    NONE = 0
    POINT = enum.auto()
    WEIGHT = enum.auto()


class GridFunctionFlags(_NamedFlag):
    """Derivatives of a grid function with respect to the grid coordinates."""

    NONE = 0
    D0 = enum.auto()
    D1 = enum.auto()
    D2 = enum.auto()
    D3 = enum.auto()


class GridFunctionCacheFlags(_NamedFlag):
    """Derivatives stored by a grid function element."""

    NONE = 0
    D0 = enum.auto()
    D1 = enum.auto()
    D2 = enum.auto()
    D3 = enum.auto()


class DomainFlags(_NamedFlag):
    """Geometric quantities of a domain element."""

    NONE = 0
    POINT = enum.auto()
    W_MEASURE = enum.auto()
    MEASURE = enum.auto()
    JACOBIAN = enum.auto()
    INV_JACOBIAN = enum.auto()
    HESSIAN = enum.auto()
    INV_HESSIAN = enum.auto()
    EXT_NORMAL = enum.auto()
    BOUNDARY_NORMAL = enum.auto()


class DomainCacheFlags(_NamedFlag):
    """Geometric quantities stored by a domain element."""

    NONE = 0
    MEASURE = enum.auto()
    INV_JACOBIAN = enum.auto()
    INV_HESSIAN = enum.auto()
    EXT_NORMAL = enum.auto()
    BOUNDARY_NORMAL = enum.auto()


class FunctionFlags(_NamedFlag):
    """Quantities of a function defined on a domain."""

    NONE = 0
    VALUE = enum.auto()
    GRADIENT = enum.auto()
    D2 = enum.auto()


class FunctionCacheFlags(_NamedFlag):
    """Quantities stored by a function element."""

    NONE = 0
    VALUE = enum.auto()
    GRADIENT = enum.auto()
    D2 = enum.auto()


class BasisFlags(_NamedFlag):
    """Quantities of the basis functions of an element.

    Used both for the reference basis (derivatives with respect to the grid
    coordinates) and for the physical space (derivatives with respect to the
    physical coordinates).
    """

    NONE = 0
    VALUE = enum.auto()
    GRADIENT = enum.auto()
    HESSIAN = enum.auto()
    DIVERGENCE = enum.auto()
    POINT = enum.auto()
    W_MEASURE = enum.auto()


class BasisCacheFlags(_NamedFlag):
    """Basis quantities stored by an element."""

    NONE = 0
    VALUE = enum.auto()
    GRADIENT = enum.auto()
    HESSIAN = enum.auto()
    DIVERGENCE = enum.auto()


SpaceFlags = BasisFlags
SpaceCacheFlags = BasisCacheFlags

FLAG_TYPES: Mapping[Level, type[_NamedFlag]] = MappingProxyType(
    {
        Level.GRID: GridFlags,
        Level.GRID_FUNCTION: GridFunctionFlags,
        Level.IG_GRID_FUNCTION: GridFunctionFlags,
        Level.DOMAIN: DomainFlags,
        Level.FUNCTION: FunctionFlags,
        Level.BASIS: BasisFlags,
        Level.SPACE: SpaceFlags,
    }
)

CACHE_FLAG_TYPES: Mapping[Level, type[_NamedFlag]] = MappingProxyType(
    {
        Level.GRID: GridCacheFlags,
        Level.GRID_FUNCTION: GridFunctionCacheFlags,
        Level.IG_GRID_FUNCTION: GridFunctionCacheFlags,
        Level.DOMAIN: DomainCacheFlags,
        Level.FUNCTION: FunctionCacheFlags,
        Level.BASIS: BasisCacheFlags,
        Level.SPACE: SpaceCacheFlags,
    }
)

FlagT = TypeVar("FlagT", bound=enum.Flag)


class _Row(NamedTuple):
    """One row of an activation table."""

    cache: enum.Flag
    lower: Mapping[Level, enum.Flag]


class Activation(NamedTuple):
    """Result of activating flags at one level.

    Attributes:
        cache (enum.Flag): Cache flags the level allocates.
        lower (Mapping[Level, enum.Flag]): Flags requested from each lower level.
    """

    cache: Any
    lower: Mapping[Level, Any]

    def get_lower(self, level: Level) -> Any:
        """Flags requested from ``level`` (the empty flag if none)."""
        return self.lower.get(level, FLAG_TYPES[level].NONE)


class _Table(NamedTuple):
    flags: Mapping[enum.Flag, _Row]
    cache: Mapping[enum.Flag, Mapping[Level, enum.Flag]]


def _row(cache: enum.Flag, **lower: enum.Flag) -> _Row:
    return _Row(cache, MappingProxyType({Level[name.upper()]: f for name, f in lower.items()}))


def _lower(**lower: enum.Flag) -> Mapping[Level, enum.Flag]:
    return MappingProxyType({Level[name.upper()]: f for name, f in lower.items()})


def _freeze(
    flags: dict[Any, _Row], cache_rows: dict[Any, Mapping[Level, enum.Flag]] | None = None
) -> _Table:
    return _Table(MappingProxyType(flags), MappingProxyType(cache_rows or {}))


@cache
def _tables() -> Mapping[Level, _Table]:
    G, GC = GridFlags, GridCacheFlags
    GF, GFC = GridFunctionFlags, GridFunctionCacheFlags
    D, DC = DomainFlags, DomainCacheFlags
    F, FC = FunctionFlags, FunctionCacheFlags
    B, BC = BasisFlags, BasisCacheFlags

    grid = _freeze(
        {
            G.POINT: _row(GC.POINT),
            G.WEIGHT: _row(GC.WEIGHT),
        }
    )

    # Formula grid functions are evaluated at the grid points.
    grid_function = _freeze(
        {
            GF.D0: _row(GFC.D0, grid=G.POINT),
            GF.D1: _row(GFC.D1, grid=G.POINT),
            GF.D2: _row(GFC.D2, grid=G.POINT),
            GF.D3: _row(GFC.D3, grid=G.POINT),
        }
    )

    # Spline grid functions combine the reference basis derivatives.
    ig_grid_function = _freeze(
        {
            GF.D0: _row(GFC.D0, basis=B.VALUE),
            GF.D1: _row(GFC.D1, basis=B.GRADIENT),
            GF.D2: _row(GFC.D2, basis=B.HESSIAN),
        }
    )

    domain = _freeze(
        {
            D.POINT: _row(DC.NONE, grid_function=GF.D0),
            D.W_MEASURE: _row(DC.MEASURE, grid_function=GF.D1, grid=G.WEIGHT),
            D.MEASURE: _row(DC.MEASURE, grid_function=GF.D1),
            D.JACOBIAN: _row(DC.NONE, grid_function=GF.D1),
            D.INV_JACOBIAN: _row(DC.INV_JACOBIAN, grid_function=GF.D1),
            D.HESSIAN: _row(DC.NONE, grid_function=GF.D2),
            D.INV_HESSIAN: _row(DC.INV_HESSIAN | DC.INV_JACOBIAN, grid_function=GF.D2),
            D.EXT_NORMAL: _row(DC.EXT_NORMAL, grid_function=GF.D1),
            D.BOUNDARY_NORMAL: _row(DC.BOUNDARY_NORMAL | DC.INV_JACOBIAN),
        },
        {
            DC.MEASURE: _lower(grid_function=GF.D1),
            DC.INV_JACOBIAN: _lower(grid_function=GF.D1),
            DC.INV_HESSIAN: _lower(grid_function=GF.D1 | GF.D2),
            DC.EXT_NORMAL: _lower(grid_function=GF.D1),
        },
    )

    function = _freeze(
        {
            F.VALUE: _row(FC.VALUE, domain=D.POINT),
            F.GRADIENT: _row(FC.GRADIENT, domain=D.POINT),
            F.D2: _row(FC.D2, domain=D.POINT),
        }
    )

    basis = _freeze(
        {
            B.VALUE: _row(BC.VALUE),
            B.GRADIENT: _row(BC.GRADIENT),
            B.HESSIAN: _row(BC.HESSIAN),
            B.DIVERGENCE: _row(BC.DIVERGENCE | BC.GRADIENT),
            B.POINT: _row(BC.NONE, grid=G.POINT),
            B.W_MEASURE: _row(BC.NONE, grid=G.WEIGHT),
        }
    )

    space = _freeze(
        {
            B.VALUE: _row(BC.VALUE),
            B.GRADIENT: _row(BC.GRADIENT),
            B.HESSIAN: _row(BC.HESSIAN | BC.GRADIENT),
            B.DIVERGENCE: _row(BC.DIVERGENCE | BC.GRADIENT),
            B.POINT: _row(BC.NONE, domain=D.POINT),
            B.W_MEASURE: _row(BC.NONE, domain=D.W_MEASURE),
        },
        {
            BC.VALUE: _lower(basis=B.VALUE),
            BC.GRADIENT: _lower(basis=B.GRADIENT, domain=D.INV_JACOBIAN),
            BC.HESSIAN: _lower(basis=B.HESSIAN, domain=D.HESSIAN | D.INV_JACOBIAN),
        },
    )

    return MappingProxyType(
        {
            Level.GRID: grid,
            Level.GRID_FUNCTION: grid_function,
            Level.IG_GRID_FUNCTION: ig_grid_function,
            Level.DOMAIN: domain,
            Level.FUNCTION: function,
            Level.BASIS: basis,
            Level.SPACE: space,
        }
    )


def _merge(into: dict[Level, Any], lower: Mapping[Level, Any]) -> None:
    for level, flags in lower.items():
        into[level] = into.get(level, FLAG_TYPES[level].NONE) | flags


def activate(level: Level, flags: FlagT) -> Activation:
    """Compute the cache flags of ``level`` and the flags requested from lower levels.

    Each requested flag contributes its table row; each resulting cache flag
    then contributes the requirements of the stored quantity itself.

    Args:
        level (Level): Level at which the flags are requested.
        flags (FlagT): Requested flags, of the ``Flags`` type of the level.

    Returns:
        Activation: Cache flags of the level and flags requested below.

    Raises:
        ConfigurationError: If the flags are of the wrong type or one of them
            is not supported at ``level``.

    Example:
        >>> act = activate(Level.DOMAIN, DomainFlags.W_MEASURE)
        >>> act.cache.describe(), act.get_lower(Level.GRID).describe()
        ('measure', 'weight')
    """
    flag_type = FLAG_TYPES[level]
    if not isinstance(flags, flag_type):
        raise ConfigurationError(
            f"Flags of type {type(flags).__name__} cannot be requested at level {level.value}"
        )
    table = _tables()[level]
    cache_flags: Any = CACHE_FLAG_TYPES[level].NONE
    lower: dict[Level, Any] = {}
    for member in flag_type.members(flags):
        row = table.flags.get(member)
        if row is None:
            raise ConfigurationError(
                f"Flag '{member.describe()}' is not supported at level {level.value}"
            )
        cache_flags |= row.cache
        _merge(lower, row.lower)
    for member in CACHE_FLAG_TYPES[level].members(cache_flags):
        _merge(lower, table.cache.get(member, {}))
    return Activation(cache_flags, MappingProxyType(lower))


def supported_flags(level: Level) -> Any:
    """Union of all the flags accepted at ``level``."""
    result: Any = FLAG_TYPES[level].NONE
    for member in _tables()[level].flags:
        result |= member
    return result
