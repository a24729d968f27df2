"""Library-wide settings and floating-point tolerances.

Settings are held in a single immutable :class:`Settings` instance that is
replaced (never mutated) by :func:`set_settings` or temporarily by the
:func:`settings` context manager.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from functools import cache
from typing import Any, NamedTuple, cast

import numpy as np
from numpy import typing as npt

logger = logging.getLogger(__name__)

MAX_DIM = 3


@dataclasses.dataclass(frozen=True)
class Settings:
    """Global configuration of the library.

    Attributes:
        check_preconditions (bool): If True, the element-cache state machine and
            index ranges are checked and violations raise
            :class:`~tpiga.errors.PreconditionError`. Disabling the checks mirrors
            an optimized build where callers are trusted to respect the protocol.
        nurbs_enabled (bool): If False, creating a NURBS element handler is a
            configuration error.
        num_sub_elem (int): Number of sub-element levels below the element that
            handlers accept: topologies ``k >= dim - num_sub_elem`` are admissible.
    """

    check_preconditions: bool = True
    nurbs_enabled: bool = True
    num_sub_elem: int = MAX_DIM

    def __post_init__(self) -> None:
        if not 0 <= self.num_sub_elem <= MAX_DIM:
            raise ValueError(f"num_sub_elem must be in [0, {MAX_DIM}], got {self.num_sub_elem}")


_current_settings = Settings()


def get_settings() -> Settings:
    """Return the settings currently in effect."""
    return _current_settings


def set_settings(**changes: Any) -> Settings:
    """Replace the current settings with a copy updated by ``changes``.

    Args:
        **changes (Any): Fields of :class:`Settings` to change.

    Returns:
        Settings: The previous settings, so callers can restore them.

    Raises:
        TypeError: If a field name is unknown.
        ValueError: If a value is invalid.
    """
    global _current_settings  # noqa: PLW0603
    previous = _current_settings
    _current_settings = dataclasses.replace(previous, **changes)
    logger.debug("settings changed: %s", _current_settings)
    return previous


@contextmanager
def settings(**changes: Any) -> Iterator[Settings]:
    """Temporarily change the settings inside a ``with`` block."""
    global _current_settings  # noqa: PLW0603
    previous = set_settings(**changes)
    try:
        yield _current_settings
    finally:
        _current_settings = previous


class _TolerancePreset(NamedTuple):
    """Tolerance values for each supported floating-point type."""

    float32: float
    float64: float


_TOLERANCE_PRESETS = {
    "default": _TolerancePreset(1e-6, 1e-12),
    "strict": _TolerancePreset(1e-7, 1e-15),
}


@cache
def _ensure_float_dtype_by_name(name: str) -> np.dtype[np.floating[Any]]:
    dtype_obj = np.dtype(name)
    if dtype_obj.type not in (np.float32, np.float64):
        raise ValueError(f"Unsupported dtype: {name}")
    return cast(np.dtype[np.floating[Any]], dtype_obj)


def _get_tolerance(dtype: npt.DTypeLike, preset: _TolerancePreset) -> float:
    dtype_obj = _ensure_float_dtype_by_name(np.dtype(dtype).name)
    return preset.float32 if dtype_obj.type == np.float32 else preset.float64


def get_default_tolerance(dtype: npt.DTypeLike = np.float64) -> float:
    """Get the tolerance used to compare knots and points.

    Args:
        dtype (npt.DTypeLike): float32 or float64. Defaults to float64.

    Returns:
        float: Tolerance for the given dtype.

    Raises:
        ValueError: If dtype is not float32 or float64.

    Example:
        >>> get_default_tolerance(np.float32)
        1e-06
    """
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["default"])


def get_strict_tolerance(dtype: npt.DTypeLike = np.float64) -> float:
    """Get a strict tolerance, used for points that must lie in the unit element."""
    return _get_tolerance(dtype, _TOLERANCE_PRESETS["strict"])
