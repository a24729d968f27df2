"""Numba-compiled kernels for univariate B-spline evaluation.

B-splines are evaluated on each knot interval as a Bezier extraction operator
applied to the Bernstein polynomials of the reference interval ``[0, 1]``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from math import factorial
from typing import TYPE_CHECKING, Any, TypeVar

import numba as nb
import numpy as np
import numpy.typing as npt

F = TypeVar("F", bound=Callable[..., Any])

if TYPE_CHECKING:
    # During type-checking, make the decorator a no-op that preserves types.
    def nb_jit(*args: object, **kwargs: object) -> Callable[[F], F]:
        def decorator(func: F) -> F:
            return func

        return decorator
else:
    # At runtime, use the real Numba decorator.
    nb_jit = nb.jit  # type: ignore[attr-defined]


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _tabulate_Bernstein_basis_1D_core(
    n: np.int32,
    t: npt.NDArray[np.float64],
    out: npt.NDArray[np.float64],
) -> None:
    """Evaluate the Bernstein polynomials of degree n at points t.

    Writes ``B_{i,n}(t_j)`` into ``out[j, i]``, using the recurrence
    ``B_{0,n} = (1-t)^n`` and ``B_{i,n} = B_{i-1,n} (n-i+1)/i t/(1-t)``.
    At ``t = 1`` the recurrence is singular and only ``B_{n,n}(1) = 1`` is non-zero.

    Args:
        n (np.int32): Degree. Must be non-negative.
        t (npt.NDArray[np.float64]): Contiguous 1D array of points.
        out (npt.NDArray[np.float64]): Output array of shape (len(t), n+1).
            Not validated inside this numba-compiled function.
    """
    if n == 0:
        for j in range(out.shape[0]):
            out[j, 0] = 1.0
        return

    for j in range(t.shape[0]):
        u = t[j]
        if u == 1.0:
            for i in range(out.shape[1]):
                out[j, i] = 0.0
            out[j, n] = 1.0
        else:
            one_minus_u = 1.0 - u
            out[j, 0] = np.power(one_minus_u, n)
            t_over_1mt = u / one_minus_u
            for i in range(1, n + 1):
                const_factor = (n - i + 1.0) / i
                out[j, i] = out[j, i - 1] * const_factor * t_over_1mt


@nb_jit(
    nopython=True,
    cache=True,
    parallel=False,
)
def _compute_Bezier_extraction_1D_core(
    knots: npt.NDArray[np.float64],
    degree: int,
    mults: npt.NDArray[np.int64],
    out: npt.NDArray[np.float64],
) -> None:
    r"""Compute the Bezier extraction operators of an open knot vector.

    For each interval ``i`` the operator ``C_i`` satisfies ``N_i(x) = C_i @ B(xi)``
    where ``N_i`` are the B-splines non-zero on the interval and ``B`` the
    Bernstein polynomials of the local coordinate ``xi`` in ``[0, 1]``.

    Args:
        knots (npt.NDArray[np.float64]): Open knot vector.
        degree (int): Degree, at least 1.
        mults (npt.NDArray[np.int64]): Multiplicity of every distinct knot,
            ends included.
        out (npt.NDArray[np.float64]): Output of shape (n_intervals, degree+1, degree+1).
            Not validated inside this numba-compiled function.
    """
    n_elems = mults.shape[0] - 1

    out.fill(0.0)
    for elem_id in range(n_elems):
        for i in range(degree + 1):
            out[elem_id, i, i] = 1.0

    alphas = np.zeros(max(degree - 1, 1))

    knt_id = degree
    mult = 0

    for elem_id in range(n_elems):
        knt_id += mult
        mult = mults[elem_id + 1]

        if mult >= degree:
            continue

        lcl_knots = knots[knt_id : knt_id + degree + 1]
        alphas[: degree - mult] = (lcl_knots[1] - lcl_knots[0]) / (
            lcl_knots[mult + 1 :] - lcl_knots[0]
        )

        C = out[elem_id]

        reg = degree - mult
        for r in range(1, reg + 1):
            s = mult + r
            for k in range(degree, s - 1, -1):
                alpha = alphas[k - s]
                C[:, k] = alpha * C[:, k] + (1.0 - alpha) * C[:, k - 1]

            if elem_id < (n_elems - 1):
                out[elem_id + 1, reg - r : reg + 1, reg - r] = C[degree - r : degree + 1, degree]


def tabulate_Bernstein_derivatives_1D(
    degree: int, order: int, t: npt.ArrayLike
) -> npt.NDArray[np.float64]:
    """Derivative of order ``order`` of the Bernstein polynomials of degree ``degree``.

    Uses ``B'_{i,n} = n (B_{i-1,n-1} - B_{i,n-1})`` applied ``order`` times to
    the polynomials of degree ``degree - order``.

    Args:
        degree (int): Degree, non-negative.
        order (int): Derivative order, non-negative.
        t (npt.ArrayLike): 1D points in ``[0, 1]``.

    Returns:
        npt.NDArray[np.float64]: Array of shape (len(t), degree+1); zero if
            ``order > degree``.

    Raises:
        ValueError: If degree or order is negative.
    """
    if degree < 0 or order < 0:
        raise ValueError(f"Degree and order must be non-negative, got {degree} and {order}")
    pts = np.ascontiguousarray(t, dtype=np.float64).reshape(-1)
    if order > degree:
        return np.zeros((pts.shape[0], degree + 1))

    vals = np.empty((pts.shape[0], degree - order + 1))
    _tabulate_Bernstein_basis_1D_core(np.int32(degree - order), pts, vals)
    for _ in range(order):
        higher = np.zeros((pts.shape[0], vals.shape[1] + 1))
        higher[:, 1:] += vals
        higher[:, :-1] -= vals
        vals = higher
    return vals * (factorial(degree) // factorial(degree - order))


def create_open_knot_vector(
    break_points: npt.ArrayLike, degree: int, interior_mults: Sequence[int]
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]:
    """Knot vector with end multiplicity ``degree + 1`` and the given interior multiplicities.

    Returns:
        tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]: The knot vector
            and the multiplicity of every break point.
    """
    mults = np.array([degree + 1, *interior_mults, degree + 1], dtype=np.int64)
    return np.repeat(np.asarray(break_points, dtype=np.float64), mults), mults


def create_periodic_knot_vector(
    break_points: npt.ArrayLike, degree: int, interior_mults: Sequence[int]
) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]:
    """Open knot vector of the break points extended periodically by ``degree`` intervals.

    The period is the interval spanned by ``break_points``; the seam (first and
    last break point) has multiplicity 1. Extending by ``degree`` intervals on
    each side leaves the functions non-zero on the intervals of the period
    unaffected by the open ends.

    Returns:
        tuple[npt.NDArray[np.float64], npt.NDArray[np.int64]]: The extended
            knot vector and the multiplicity of every extended break point.
    """
    breaks = np.asarray(break_points, dtype=np.float64)
    n_intervals = breaks.shape[0] - 1
    period = breaks[-1] - breaks[0]
    periodic_mults = np.array([1, *interior_mults], dtype=np.int64)

    positions = np.arange(-degree, n_intervals + degree + 1)
    wraps, local = np.divmod(positions, n_intervals)
    values = breaks[local] + period * wraps
    mults = periodic_mults[local]
    mults[0] = mults[-1] = degree + 1
    return np.repeat(values, mults), mults


def compute_Bezier_extraction_1D(
    knots: npt.NDArray[np.float64], degree: int, mults: npt.NDArray[np.int64]
) -> npt.NDArray[np.float64]:
    """Bezier extraction operators of every interval, shape (n_intervals, degree+1, degree+1).

    Args:
        knots (npt.NDArray[np.float64]): Open knot vector.
        degree (int): Degree, non-negative.
        mults (npt.NDArray[np.int64]): Multiplicity of every break point, ends included.
    """
    n_intervals = mults.shape[0] - 1
    out = np.empty((n_intervals, degree + 1, degree + 1))
    if degree == 0:
        out.fill(1.0)
        return out
    _compute_Bezier_extraction_1D_core(
        np.ascontiguousarray(knots, dtype=np.float64),
        degree,
        np.ascontiguousarray(mults, dtype=np.int64),
        out,
    )
    return out


def _warmup_numba_functions() -> None:
    """Precompile the numba kernels with float64 signatures for a faster first call."""
    t_dummy = np.array([0.0, 0.5, 1.0], dtype=np.float64)
    out_dummy = np.empty((3, 2), dtype=np.float64)
    _tabulate_Bernstein_basis_1D_core(np.int32(1), t_dummy, out_dummy)

    knots_dummy = np.array([0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0], dtype=np.float64)
    mults_dummy = np.array([3, 1, 3], dtype=np.int64)
    extraction_dummy = np.empty((2, 3, 3), dtype=np.float64)
    _compute_Bezier_extraction_1D_core(knots_dummy, 2, mults_dummy, extraction_dummy)


# Precompile numba functions on module import (skip during type checking)
if not TYPE_CHECKING:
    _warmup_numba_functions()
