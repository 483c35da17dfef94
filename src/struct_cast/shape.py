"""Precompiled shape caster — unchecked fast path for shape-stable batches.

``ShapeCaster`` is bound to one target class.  The target's declared field
names are captured once at construction; every ``cast`` call then allocates
an instance and copies exactly those names from the source.  There is no
policy, no recursion and no type check: nested values are copied by
reference, exactly as found.

The caller guarantees that each source carries every captured name.  A
missing name raises ``ShapeMismatch``, which is not a ``CastError`` and is
not meant to be handled as ordinary bad data.

::

    to_point = ShapeCaster(Point)
    points = to_point.cast_many(rows)
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, List, Mapping, Tuple, TypeVar, Union

from .allocation import allocate, assign
from .descriptor import TypeDescriptor
from .errors import ShapeMismatch, type_name

T = TypeVar("T")

_MISSING = object()


class ShapeCaster(Generic[T]):
    """Copy a fixed set of field names from a source into a new target instance.

    Args:
        target:          Target class, ``"module:QualName"`` or descriptor.
        use_constructor: Run ``target()`` instead of bypassing ``__init__``.

    Attributes are never mutated after construction, so one instance can be
    shared by concurrent callers.
    """

    __slots__ = ("_target", "_fields", "_use_constructor")

    def __init__(self, target: Union[type[T], str, TypeDescriptor], *, use_constructor: bool = False) -> None:
        descriptor = TypeDescriptor.of(target)
        self._target: type[T] = descriptor.target
        self._fields: Tuple[str, ...] = descriptor.field_names
        self._use_constructor = use_constructor

    @property
    def target(self) -> type[T]:
        return self._target

    @property
    def fields(self) -> Tuple[str, ...]:
        return self._fields

    def cast(self, source: Any) -> T:
        """Return a new target instance populated from *source*.

        Mappings are read with ``get`` (so ``__missing__`` hooks never fire
        and the source is never written to), everything else by attribute.

        Raises:
            ShapeMismatch: *source* lacks a captured field name.
        """
        instance = allocate(self._target, self._use_constructor)
        by_key = isinstance(source, Mapping)
        for name in self._fields:
            value = source.get(name, _MISSING) if by_key else getattr(source, name, _MISSING)
            if value is _MISSING:
                raise ShapeMismatch(name, type_name(source), type_name(self._target))
            assign(instance, name, value)
        return instance

    __call__ = cast

    def cast_many(self, sources: Iterable[Any]) -> List[T]:
        """Cast every source; the first mismatch aborts the whole batch."""
        return [self.cast(source) for source in sources]

    def __repr__(self) -> str:
        return f"ShapeCaster({type_name(self._target)}, fields={list(self._fields)!r})"
