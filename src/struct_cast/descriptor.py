"""Target-type metadata — derived once per class, cached, immutable.

A ``TypeDescriptor`` answers the only questions the casters ask about a
target class: which fields does it declare (in order), which of them hold
nested structured objects, and which names are static (class-level) and
must never be assigned on an instance.

Derivation rules
----------------
* Dataclasses: ``dataclasses.fields`` (``ClassVar`` / ``InitVar`` excluded).
* Other classes: ``typing.get_type_hints`` over the MRO, base classes first.
* Static fields: ``ClassVar`` annotations plus plain data attributes defined
  on the class body that are not declared fields.
* Field kind (see ``FieldKind``) is decided from the resolved annotation.
  Unions, ``Optional`` and anything unrecognised are ``SCALAR`` — opaque,
  copied verbatim.

Nested descriptors are resolved lazily through ``FieldDescriptor.nested`` so
self-referential classes (``Node.next: Node``) describe without recursion.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import functools
import inspect
import logging
import pkgutil
import typing
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, FrozenSet, Mapping, Optional, Tuple, Union

from .errors import TargetTypeNotFound, type_name

logger = logging.getLogger(__name__)

# Subclasses of these are never treated as structured, whatever they annotate.
_OPAQUE_BASES: Tuple[type, ...] = (
    str, bytes, bytearray, int, float, complex, bool,
    tuple, enum.Enum, BaseException, type,
)

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


class FieldKind(enum.Enum):
    """How the recursive caster treats a declared field's value."""

    SCALAR = "scalar"        # copied verbatim
    NESTED = "nested"        # cast into ``item_type``
    SEQUENCE = "sequence"    # each element cast into ``item_type``
    MAPPING = "mapping"      # each value cast into ``item_type``


@dataclass(frozen=True)
class FieldDescriptor:
    """One declared field of a target class.

    Attributes:
        name:       Attribute name on the instance.
        annotation: Resolved type annotation (informational).
        kind:       See ``FieldKind``.
        item_type:  Structured class for ``NESTED`` / element class for
                    ``SEQUENCE`` and ``MAPPING``; ``None`` for ``SCALAR``.
        container:  Output container for ``SEQUENCE`` (``list`` / ``tuple``,
                    ``None`` → keep the source's) and ``MAPPING`` (``dict``).
    """

    name: str
    annotation: Any = None
    kind: FieldKind = FieldKind.SCALAR
    item_type: Optional[type] = None
    container: Optional[type] = None

    @property
    def nested(self) -> TypeDescriptor:
        """Descriptor of ``item_type``.  Raises ``TypeError`` for scalar fields."""
        if self.item_type is None:
            raise TypeError(f"field {self.name!r} is scalar and has no nested descriptor")
        return TypeDescriptor.of(self.item_type)


@dataclass(frozen=True)
class TypeDescriptor:
    """Immutable field metadata for one target class.

    Build with ``TypeDescriptor.of(cls)`` (cached) rather than directly;
    direct construction is supported for hand-written schemas.
    """

    target: type
    fields: Tuple[FieldDescriptor, ...] = ()
    static_fields: FrozenSet[str] = frozenset()
    _index: Mapping[str, FieldDescriptor] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index = {f.name: f for f in self.fields}
        if len(index) != len(self.fields):
            raise ValueError(f"duplicate field names in descriptor for {type_name(self.target)}")
        object.__setattr__(self, "_index", MappingProxyType(index))

    # -- construction -------------------------------------------------------

    @classmethod
    def of(cls, target: Union[type, str, TypeDescriptor]) -> TypeDescriptor:
        """Return the (cached) descriptor for *target*.

        *target* may be a class, a ``"module:QualName"`` / ``"module.QualName"``
        string, or an existing descriptor (returned unchanged).

        Raises:
            TargetTypeNotFound: the name does not resolve, the object is not
                a class, or its annotations cannot be resolved.
        """
        if isinstance(target, TypeDescriptor):
            return target
        if isinstance(target, str):
            target = resolve_type(target)
        if not isinstance(target, type) or typing.get_origin(target) is not None:
            raise TargetTypeNotFound(target, "not a class")
        return _describe(target)

    # -- queries ------------------------------------------------------------

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get(self, name: str) -> Optional[FieldDescriptor]:
        return self._index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def is_static(self, name: str) -> bool:
        return name in self.static_fields


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def resolve_type(name: str) -> type:
    """Import the class named by *name* (``pkg.mod:Cls`` or ``pkg.mod.Cls``)."""
    if not name:
        raise TargetTypeNotFound(name, "empty type name")
    try:
        obj = pkgutil.resolve_name(name)
    except (ImportError, AttributeError, ValueError) as exc:
        raise TargetTypeNotFound(name, str(exc)) from exc
    if not isinstance(obj, type):
        raise TargetTypeNotFound(name, f"resolves to {type_name(obj)}, not a class")
    return obj


def is_structured(tp: Any) -> bool:
    """``True`` if *tp* is a class the recursive caster descends into."""
    if typing.get_origin(tp) is not None or not isinstance(tp, type):
        return False
    if issubclass(tp, _OPAQUE_BASES) or tp.__module__ == "builtins":
        return False
    if dataclasses.is_dataclass(tp):
        return True
    return any(inspect.get_annotations(klass) for klass in tp.__mro__[:-1])


def _is_classvar(hint: Any) -> bool:
    return hint is ClassVar or typing.get_origin(hint) is ClassVar


def _classify(annotation: Any) -> Tuple[FieldKind, Optional[type], Optional[type]]:
    if is_structured(annotation):
        return FieldKind.NESTED, annotation, None

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin in _SEQUENCE_ORIGINS and len(args) == 1 and is_structured(args[0]):
        return FieldKind.SEQUENCE, args[0], (list if origin is list else None)
    if origin is tuple and len(args) == 2 and args[1] is Ellipsis and is_structured(args[0]):
        return FieldKind.SEQUENCE, args[0], tuple
    if origin in _MAPPING_ORIGINS and len(args) == 2 and is_structured(args[1]):
        return FieldKind.MAPPING, args[1], dict
    return FieldKind.SCALAR, None, None


def _class_level_data(target: type, declared: FrozenSet[str]) -> set[str]:
    """Names of plain data attributes defined on the class bodies along the MRO."""
    names = set()
    for klass in target.__mro__[:-1]:
        for attr, value in vars(klass).items():
            if attr.startswith("__") or attr in declared:
                continue
            if callable(value) or hasattr(value, "__get__"):
                # methods, properties, slots, classmethods
                continue
            names.add(attr)
    return names


@functools.lru_cache(maxsize=None)
def _describe(target: type) -> TypeDescriptor:
    try:
        hints = typing.get_type_hints(target)
    except Exception as exc:
        raise TargetTypeNotFound(target, f"cannot resolve annotations: {exc}") from exc

    if dataclasses.is_dataclass(target):
        names = [f.name for f in dataclasses.fields(target)]
        annotations = {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(target)}
    else:
        names = [name for name, hint in hints.items() if not _is_classvar(hint)]
        annotations = hints

    fields = []
    for name in names:
        kind, item_type, container = _classify(annotations[name])
        fields.append(FieldDescriptor(
            name=name,
            annotation=annotations[name],
            kind=kind,
            item_type=item_type,
            container=container,
        ))

    declared = frozenset(names)
    static = {name for name, hint in hints.items() if _is_classvar(hint)}
    static |= _class_level_data(target, declared)

    descriptor = TypeDescriptor(
        target=target,
        fields=tuple(fields),
        static_fields=frozenset(static - declared),
    )
    logger.debug(
        "described %s: %d fields, %d static",
        type_name(target), len(descriptor.fields), len(descriptor.static_fields),
    )
    return descriptor
