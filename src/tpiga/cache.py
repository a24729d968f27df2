"""Per-element storage of computed quantities.

A :class:`ValuesCache` holds the arrays of one (topology, sub-element) pair
and follows the state machine ``EMPTY -> ALLOCATED -> FILLED``: ``init_cache``
allocates, ``fill_cache`` fills, moving the element accessor takes a filled
cache back to ``ALLOCATED`` and a new ``reset`` of the handler expires the
:class:`ResetToken` the storage was allocated for, forcing a reallocation.
Reading a quantity from a cache that is not filled, or that belongs to an
earlier reset, is a precondition violation.
"""

from __future__ import annotations

import copy
import enum
import logging
from collections.abc import Iterator, Mapping
from typing import Any

import numpy as np
import numpy.typing as npt

from .errors import check_precondition
from .quad import EvalPoints

logger = logging.getLogger(__name__)


class CacheState(enum.Enum):
    """State of a :class:`ValuesCache`."""

    EMPTY = "empty"
    ALLOCATED = "allocated"
    FILLED = "filled"


class CopyPolicy(enum.Enum):
    """How the cache of an element accessor is duplicated when copying the accessor.

    ``DEEP`` allocates new storage, ``SHALLOW`` shares the storage with the copy.
    """

    DEEP = "deep"
    SHALLOW = "shallow"


class ResetToken:
    """Identity of one handler reset for one topology.

    The handler expires the token when the same topology is reset again, which
    makes every cache allocated for it stale.
    """

    __slots__ = ("expired",)

    def __init__(self) -> None:
        self.expired = False

    def __repr__(self) -> str:
        return f"ResetToken(expired={self.expired})"


class ValuesCache:
    """Arrays of the active cache flags of one (topology, sub-element) pair."""

    def __init__(self) -> None:
        self._state = CacheState.EMPTY
        self._flags: Any = None
        self._eval_points: EvalPoints | None = None
        self._token: ResetToken | None = None
        self._data: dict[Any, npt.NDArray[Any]] = {}

    @property
    def state(self) -> CacheState:
        """Current state."""
        return self._state

    @property
    def flags(self) -> Any:
        """Cache flags the storage was allocated for."""
        return self._flags

    @property
    def eval_points(self) -> EvalPoints | None:
        """Point set the storage was allocated for."""
        return self._eval_points

    @property
    def token(self) -> ResetToken | None:
        """Identity of the handler reset the storage was allocated for."""
        return self._token

    def is_allocated_for(self, token: ResetToken) -> bool:
        """Whether the storage was allocated for the handler reset identified by ``token``."""
        return self._state is not CacheState.EMPTY and self._token is token

    def allocate(
        self,
        flags: Any,
        eval_points: EvalPoints,
        token: ResetToken,
        shapes: Mapping[Any, tuple[int, ...]],
    ) -> None:
        """Allocate (uninitialized) storage for every active cache flag.

        Args:
            flags (Any): Cache flags to allocate.
            eval_points (EvalPoints): Point set the values will refer to.
            token (ResetToken): Identity of the handler reset.
            shapes (Mapping[Any, tuple[int, ...]]): Array shape per cache flag member.
        """
        if self._state is not CacheState.EMPTY:
            logger.debug("reallocating cache for %s", flags.describe())
        self._flags = flags
        self._eval_points = eval_points
        self._token = token
        self._data = {flag: np.empty(shape) for flag, shape in shapes.items()}
        self._state = CacheState.ALLOCATED

    def set(self, flag: Any, value: npt.ArrayLike) -> None:
        """Store the value of one quantity.

        Raises:
            PreconditionError: If the cache is empty or the quantity was not allocated.
        """
        check_precondition(
            self._state is not CacheState.EMPTY and flag in self._data,
            f"Quantity '{flag.describe()}' was not allocated in the cache",
        )
        self._data[flag][...] = value

    def get(self, flag: Any) -> npt.NDArray[Any]:
        """Read-only view of the value of one quantity.

        Raises:
            PreconditionError: If the cache is not filled, was allocated before
                the last reset of its handler, or the quantity was not requested.
        """
        check_precondition(
            self._token is None or not self._token.expired,
            "Cache was allocated before the last reset of its handler: init_cache and "
            "fill_cache must be called again",
        )
        check_precondition(
            self._state is CacheState.FILLED,
            f"Cache is {self._state.value}: fill_cache must be called after init_cache "
            "and after every move of the element",
        )
        check_precondition(
            flag in self._data, f"Quantity '{flag.describe()}' was not requested at reset"
        )
        view = self._data[flag].view()
        view.flags.writeable = False
        return view

    def set_filled(self) -> None:
        """Mark the values as valid for the current element."""
        check_precondition(
            self._state is not CacheState.EMPTY, "Cannot fill a cache that was not allocated"
        )
        self._state = CacheState.FILLED

    def invalidate(self) -> None:
        """Take a filled cache back to ``ALLOCATED``, keeping the storage."""
        if self._state is CacheState.FILLED:
            self._state = CacheState.ALLOCATED

    def __deepcopy__(self, memo: dict[int, Any]) -> ValuesCache:
        other = ValuesCache()
        other._state = self._state
        other._flags = self._flags
        other._eval_points = self._eval_points
        other._token = self._token
        other._data = {flag: array.copy() for flag, array in self._data.items()}
        return other

    def __repr__(self) -> str:
        flags = "none" if self._flags is None else self._flags.describe()
        return f"ValuesCache(state={self._state.value}, flags={flags})"


class LocalCache:
    """All the :class:`ValuesCache` objects of an element accessor, keyed by ``(k, sub_id)``."""

    def __init__(self) -> None:
        self._caches: dict[tuple[int, int], ValuesCache] = {}

    def get_sub_elem_cache(self, k: int, sub_id: int) -> ValuesCache | None:
        """Cache of one sub-element, or None if it was never initialized."""
        return self._caches.get((k, sub_id))

    def get_or_create(self, k: int, sub_id: int) -> ValuesCache:
        """Cache of one sub-element, created empty if needed."""
        return self._caches.setdefault((k, sub_id), ValuesCache())

    def invalidate(self) -> None:
        """Take every filled cache back to ``ALLOCATED``."""
        for cache in self._caches.values():
            cache.invalidate()

    def copy(self, policy: CopyPolicy) -> LocalCache:
        """Copy according to ``policy``: a new storage (``DEEP``) or this same one (``SHALLOW``)."""
        if policy is CopyPolicy.SHALLOW:
            return self
        return copy.deepcopy(self)

    def __iter__(self) -> Iterator[tuple[tuple[int, int], ValuesCache]]:
        return iter(self._caches.items())

    def __len__(self) -> int:
        return len(self._caches)
