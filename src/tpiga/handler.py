"""Element accessors and the element handler protocol shared by every level.

An element accessor is a lightweight cursor over the elements of a grid that
owns the :class:`~tpiga.cache.LocalCache` of its level and wraps the accessors
of the levels below it (its *children*). An element handler fills those
caches following the protocol::

    handler.reset(flags, eval_points)      # once
    for elem in obj.elements():
        handler.init_cache(elem)           # allocates (reuses storage if possible)
        handler.fill_cache(elem)           # computes for the current element
        elem.get_...()                     # reads

A handler resets, initializes and fills the handlers of the lower levels it
depends on (its children) before its own level.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, cast

from .cache import CopyPolicy, LocalCache, ResetToken, ValuesCache
from .errors import ConfigurationError, check_precondition
from .quad import EvalPoints, extend_sub_element
from .unit_element import Topology, UnitElement
from .value_types import FLAG_TYPES, Activation, Level, activate

if TYPE_CHECKING:
    from .grid_element import GridElement

logger = logging.getLogger(__name__)


class ElementAccessor:
    """Base class of the element accessors of every level.

    Moving an accessor (``advance``, ``jump``, ``move_to``) moves all the
    accessors it wraps and invalidates every cache along the way, so values
    must be filled again before they are read.
    """

    def __init__(self, children: Sequence[ElementAccessor]) -> None:
        self._children: tuple[ElementAccessor, ...] = tuple(children)
        self.local_cache: LocalCache | None = None

    @property
    def children(self) -> tuple[ElementAccessor, ...]:
        """Accessors of the lower levels wrapped by this one."""
        return self._children

    @property
    def grid_element(self) -> GridElement:
        """The grid element the accessor is positioned on."""
        return self._children[0].grid_element

    @property
    def dim(self) -> int:
        """Dimension of the grid."""
        return self.grid_element.grid.dim

    def get_index(self) -> int:
        """Flat index of the current element in the grid (-1 when past the end)."""
        return self.grid_element.get_index()

    def get_tensor_index(self) -> tuple[int, ...]:
        """Tensor index of the current element in the grid."""
        return self.grid_element.get_tensor_index()

    def is_end(self) -> bool:
        """Whether the accessor is in the past-the-end state."""
        return self.grid_element.is_end()

    def advance(self) -> None:
        """Move to the next element with the accessor's property."""
        self.jump(1)

    def jump(self, increment: int) -> None:
        """Move ``increment`` elements forward (or backward if negative)."""
        position = self.grid_element.position + increment
        check_precondition(
            0 <= position <= self.grid_element.n_positions,
            f"Cannot jump {increment} elements from position {self.grid_element.position}",
        )
        self._set_position(position)

    def move_to(self, index: int | Sequence[int]) -> None:
        """Move to the element with the given flat or tensor index in the grid."""
        self._set_position(self.grid_element.position_of(index))

    def _set_position(self, position: int) -> None:
        if self.local_cache is not None:
            self.local_cache.invalidate()
        for child in self._children:
            child._set_position(position)

    def copy(self, policy: CopyPolicy = CopyPolicy.DEEP) -> ElementAccessor:
        """Copy the accessor, with its caches copied according to ``policy``.

        Shallow copies share the cache storage with the original; deep copies
        allocate their own and can be used independently.
        """
        other = copy.copy(self)
        other._children = tuple(child.copy(policy) for child in self._children)
        other.local_cache = None if self.local_cache is None else self.local_cache.copy(policy)
        return other

    def get_sub_elem_cache(self, topology: Topology | None, sub_id: int) -> ValuesCache:
        """Cache of a sub-element of the current element.

        Raises:
            PreconditionError: If ``init_cache`` was never called for it.
        """
        k = self.dim if topology is None else topology.k
        cache = None if self.local_cache is None else self.local_cache.get_sub_elem_cache(k, sub_id)
        check_precondition(
            cache is not None, f"init_cache was not called for topology {k}, sub-element {sub_id}"
        )
        return cast(ValuesCache, cache)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ElementAccessor):
            return NotImplemented
        mine, theirs = self.grid_element, other.grid_element
        return mine.grid is theirs.grid and mine.position == theirs.position

    def __hash__(self) -> int:
        return hash((id(self.grid_element.grid), self.grid_element.position))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(index={self.get_index()})"


class ElementHandler(ABC):
    """Base class of the element handlers of every level.

    Attributes:
        level (Level): Level the handler evaluates, used by the parent handler
            to route requested flags.
        activation_level (Level): Row set of the activation tables used to
            validate and propagate the flags.
    """

    level: ClassVar[Level]
    activation_level: ClassVar[Level]

    def __init__(self, dim: int, children: Sequence[ElementHandler] = ()) -> None:
        self._unit_element = UnitElement(dim)
        self._children = tuple(children)
        self._flags: dict[int, Any] = {}
        self._activations: dict[int, Activation] = {}
        self._eval_points: dict[int, EvalPoints] = {}
        self._sub_points: dict[int, tuple[EvalPoints, ...]] = {}
        self._tokens: dict[int, ResetToken] = {}

    @property
    def dim(self) -> int:
        """Dimension of the elements."""
        return self._unit_element.dim

    @property
    def unit_element(self) -> UnitElement:
        """The unit element of the handled elements."""
        return self._unit_element

    @property
    def children(self) -> tuple[ElementHandler, ...]:
        """Handlers of the lower levels."""
        return self._children

    def _k(self, topology: Topology | None) -> int:
        return self.dim if topology is None else topology.k

    def get_flags(self, topology: Topology | None = None) -> Any:
        """Flags requested at the last reset for ``topology`` (the element by default)."""
        return self._flags.get(self._k(topology), FLAG_TYPES[self.activation_level].NONE)

    def get_cache_flags(self, topology: Topology | None = None) -> Any:
        """Cache flags activated at the last reset for ``topology``."""
        activation = self._activations.get(self._k(topology))
        return None if activation is None else activation.cache

    def get_eval_points(self, topology: Topology | None = None) -> EvalPoints:
        """Evaluation points given at the last reset for ``topology``."""
        k = self._k(topology)
        check_precondition(k in self._eval_points, f"reset was not called for topology {k}")
        return self._eval_points[k]

    def get_sub_elem_points(self, topology: Topology | None, sub_id: int) -> EvalPoints:
        """Evaluation points of a sub-element, lifted to the dimension of the element."""
        k = self._k(topology)
        check_precondition(k in self._sub_points, f"reset was not called for topology {k}")
        return self._sub_points[k][sub_id]

    def get_num_points(self, topology: Topology | None = None) -> int:
        """Number of evaluation points per sub-element of ``topology``."""
        return self.get_eval_points(topology).n_points

    def reset(self, flags: Any, eval_points: EvalPoints) -> None:
        """Set the flags and evaluation points used for all the elements.

        The topology is the dimension of ``eval_points``: element points reset
        the element caches, face points the face caches, and so on.

        Raises:
            ConfigurationError: If a flag is not supported or the topology is
                not admissible.
        """
        self._reset(flags, eval_points, {})

    def reset_selected_elements(
        self, flags: Any, eval_points: EvalPoints, elements_flat_ids: Sequence[int]
    ) -> None:
        """Same as :meth:`reset`, preparing only the elements with the given flat ids."""
        self._reset(flags, eval_points, {}, tuple(elements_flat_ids))

    def reset_one_element(self, flags: Any, eval_points: EvalPoints, elem_flat_id: int) -> None:
        """Same as :meth:`reset`, preparing only the element with the given flat id."""
        self.reset_selected_elements(flags, eval_points, [elem_flat_id])

    def _reset(
        self,
        flags: Any,
        eval_points: EvalPoints,
        requested: Mapping[Level, Any],
        elements_flat_ids: tuple[int, ...] | None = None,
    ) -> None:
        if eval_points.dim > self.dim:
            raise ConfigurationError(
                f"Evaluation points of dimension {eval_points.dim} on a {self.dim}-dimensional "
                "element"
            )
        topology = Topology(eval_points.dim)
        self._unit_element.check_topology(topology)
        activation = activate(self.activation_level, flags)
        self._check_flags(flags, topology)

        k = topology.k
        self._flags[k] = flags
        self._activations[k] = activation
        self._eval_points[k] = eval_points
        self._sub_points[k] = tuple(
            extend_sub_element(eval_points, sub_elem, self.dim)
            for sub_elem in self._unit_element.sub_elements(k)
        )
        previous = self._tokens.get(k)
        if previous is not None:
            previous.expired = True
        self._tokens[k] = ResetToken()

        below: dict[Level, Any] = dict(activation.lower)
        for level, lower_flags in requested.items():
            below[level] = below.get(level, FLAG_TYPES[level].NONE) | lower_flags
        owned = {child.level for child in self._children}
        extra = {level: f for level, f in below.items() if level not in owned and f}
        if extra and not self._children:
            raise ConfigurationError(
                f"No lower level of {self.level.value} provides "
                + ", ".join(f"{level.value}: {f.describe()}" for level, f in extra.items())
            )
        for child in self._children:
            child_flags = below.get(child.level, FLAG_TYPES[child.activation_level].NONE)
            child._reset(child_flags, eval_points, extra, elements_flat_ids)

        self._on_reset(k, elements_flat_ids)
        logger.debug(
            "%s reset for topology %d: flags=%s, cache=%s",
            type(self).__name__,
            k,
            flags.describe(),
            activation.cache.describe(),
        )

    def _check_flags(self, flags: Any, topology: Topology) -> None:  # noqa: B027
        """Level-specific validation of the requested flags."""

    def _on_reset(self, k: int, elements_flat_ids: tuple[int, ...] | None) -> None:  # noqa: B027
        """Prepare data shared by all the elements after a reset."""

    def init_cache(self, elem: ElementAccessor, topology: Topology | None = None) -> None:
        """Allocate the caches of every sub-element of ``topology`` of ``elem``.

        Storage already allocated for the current reset is reused.

        Raises:
            PreconditionError: If ``reset`` was not called for the topology.
        """
        k = self._k(topology)
        check_precondition(k in self._tokens, f"reset must be called before init_cache ({k})")
        for child, child_elem in zip(self._children, elem.children):
            child.init_cache(child_elem, Topology(k))

        if elem.local_cache is None:
            elem.local_cache = LocalCache()
        token = self._tokens[k]
        cache_flags = self._activations[k].cache
        for sub_id, points in enumerate(self._sub_points[k]):
            values_cache = elem.local_cache.get_or_create(k, sub_id)
            if not values_cache.is_allocated_for(token):
                values_cache.allocate(cache_flags, points, token, self._cache_shapes(k, points))

    def fill_cache(
        self, elem: ElementAccessor, topology: Topology | None = None, sub_id: int = 0
    ) -> None:
        """Compute the values of a sub-element of the current element.

        Raises:
            PreconditionError: If ``init_cache`` was not called since the last
                reset, or the accessor is past the end.
        """
        k = self._k(topology)
        check_precondition(k in self._tokens, f"reset must be called before fill_cache ({k})")
        check_precondition(not elem.is_end(), "Cannot fill the cache of a past-the-end element")
        for child, child_elem in zip(self._children, elem.children):
            child.fill_cache(child_elem, Topology(k), sub_id)

        values_cache = (
            None if elem.local_cache is None else elem.local_cache.get_sub_elem_cache(k, sub_id)
        )
        check_precondition(
            values_cache is not None and values_cache.is_allocated_for(self._tokens[k]),
            "init_cache must be called before fill_cache",
        )
        values_cache = cast(ValuesCache, values_cache)
        self._fill(elem, k, sub_id, values_cache)
        values_cache.set_filled()

    @abstractmethod
    def _cache_shapes(self, k: int, points: EvalPoints) -> dict[Any, tuple[int, ...]]:
        """Array shape of every active cache flag member of topology ``k``."""

    @abstractmethod
    def _fill(self, elem: Any, k: int, sub_id: int, cache: ValuesCache) -> None:
        """Compute and store the active cache quantities."""

    def init_element_cache(self, elem: ElementAccessor) -> None:
        """Shorthand for :meth:`init_cache` on the element itself."""
        self.init_cache(elem, Topology.element(self.dim))

    def fill_element_cache(self, elem: ElementAccessor) -> None:
        """Shorthand for :meth:`fill_cache` on the element itself."""
        self.fill_cache(elem, Topology.element(self.dim), 0)

    def init_face_cache(self, elem: ElementAccessor) -> None:
        """Shorthand for :meth:`init_cache` on the faces of the element."""
        self.init_cache(elem, Topology.face(self.dim))

    def fill_face_cache(self, elem: ElementAccessor, face_id: int) -> None:
        """Shorthand for :meth:`fill_cache` on one face of the element."""
        self.fill_cache(elem, Topology.face(self.dim), face_id)


class ElementContainer(ABC):
    """Objects defined element by element over a grid, iterable through accessors."""

    @abstractmethod
    def _new_element(self, prop: str) -> ElementAccessor:
        """Accessor on the first element with property ``prop``."""

    def create_element(self, index: int | Sequence[int] = 0, prop: str = "active") -> Any:
        """Accessor positioned on the element with the given flat or tensor index."""
        elem = self._new_element(prop)
        elem.move_to(index)
        return elem

    def begin(self, prop: str = "active") -> Any:
        """Accessor on the first element with a property."""
        return self._new_element(prop)

    def end(self, prop: str = "active") -> Any:
        """Past-the-end accessor for the elements with a property."""
        elem = self._new_element(prop)
        elem.jump(elem.grid_element.n_positions)
        return elem

    def elements(self, prop: str = "active") -> Iterator[Any]:
        """Iterate over the elements with a property.

        A single accessor is moved through the elements and yielded at each
        step; use :meth:`ElementAccessor.copy` to keep one.
        """
        elem = self._new_element(prop)
        while not elem.is_end():
            yield elem
            elem.advance()


def active_members(cache_flags: Any) -> list[Any]:
    """The single members of a cache flag value."""
    return list(type(cache_flags).members(cache_flags))
