"""Readers for class instances — dataclasses, named tuples, slotted and plain objects.

Each reader is paired with the matcher that selects it; both are wired into
the default registry by ``factory.build_default_caster``.

Exports
-------
DataclassMatcher / DataclassReader
    Declared dataclass fields in definition order, then any extra instance
    attributes.

NamedTupleMatcher / NamedTupleReader
    ``_asdict()`` of a ``typing.NamedTuple`` / ``collections.namedtuple``.

SlotsMatcher / SlotsReader
    Assigned ``__slots__`` along the MRO (base classes first), then
    ``__dict__`` if the instance also has one.

AttributesMatcher / AttributesReader
    ``vars(obj)`` for ordinary instances.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Iterator, List, Tuple

from ..core import ReaderMatcher, SourceReader


def _instance_dict(source: Any) -> dict[str, Any]:
    try:
        return vars(source)
    except TypeError:
        return {}


# -- dataclasses ----------------------------------------------------------


class DataclassMatcher(ReaderMatcher):
    """Match dataclass *instances* (never the dataclass itself)."""

    def matches(self, source: Any) -> bool:
        return dataclasses.is_dataclass(source) and not isinstance(source, type)


class DataclassReader(SourceReader):
    """Read declared fields first, then attributes attached after construction.

    A declared field that was never assigned (instance allocated without
    running ``__init__``) is skipped rather than reported as missing.
    """

    _MISSING = object()

    def read(self, source: Any) -> Iterable[Tuple[str, Any]]:
        pairs: List[Tuple[str, Any]] = []
        declared = set()
        for f in dataclasses.fields(source):
            declared.add(f.name)
            value = getattr(source, f.name, self._MISSING)
            if value is not self._MISSING:
                pairs.append((f.name, value))
        for name, value in _instance_dict(source).items():
            if name not in declared:
                pairs.append((name, value))
        return pairs


# -- named tuples ---------------------------------------------------------


class NamedTupleMatcher(ReaderMatcher):
    """Match tuples that carry ``_fields`` and ``_asdict`` (named tuples)."""

    def matches(self, source: Any) -> bool:
        return (
            isinstance(source, tuple)
            and hasattr(type(source), "_fields")
            and callable(getattr(source, "_asdict", None))
        )


class NamedTupleReader(SourceReader):
    def read(self, source: Any) -> Iterable[Tuple[str, Any]]:
        return list(source._asdict().items())


# -- slotted objects ------------------------------------------------------


def _declared_slots(cls: type) -> Iterator[str]:
    """Yield attribute names of every slot declared along *cls*'s MRO.

    Private names are mangled the way the class body would have mangled
    them (``__secret`` in ``Vault`` → ``_Vault__secret``).
    """
    seen = set()
    for klass in reversed(cls.__mro__):
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        for slot in slots:
            if slot in ("__dict__", "__weakref__"):
                continue
            if slot.startswith("__") and not slot.endswith("__"):
                slot = f"_{klass.__name__.lstrip('_')}{slot}"
            if slot not in seen:
                seen.add(slot)
                yield slot


class SlotsMatcher(ReaderMatcher):
    """Match instances whose class (or a base) declares ``__slots__``."""

    def matches(self, source: Any) -> bool:
        if isinstance(source, type):
            return False
        return any("__slots__" in klass.__dict__ for klass in type(source).__mro__[:-1])


class SlotsReader(SourceReader):
    """Read assigned slots, then any ``__dict__`` entries."""

    def read(self, source: Any) -> Iterable[Tuple[str, Any]]:
        pairs: List[Tuple[str, Any]] = []
        for slot in _declared_slots(type(source)):
            try:
                pairs.append((slot, getattr(source, slot)))
            except AttributeError:
                # unassigned slot
                continue
        pairs.extend(_instance_dict(source).items())
        return pairs


# -- plain objects --------------------------------------------------------


class AttributesMatcher(ReaderMatcher):
    """Match ordinary instances that keep their state in ``__dict__``."""

    def matches(self, source: Any) -> bool:
        return not isinstance(source, type) and hasattr(source, "__dict__")


class AttributesReader(SourceReader):
    def read(self, source: Any) -> Iterable[Tuple[str, Any]]:
        return list(vars(source).items())
