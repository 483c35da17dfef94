"""Caster factory — the single place where the default readers are assembled.

``build_default_caster`` is the recommended entry point for users who want a
fully functional ``RecursiveCaster`` without hand-wiring a reader registry.
``recursive_cast`` is a module-level shortcut over a shared default caster.

Customisation points:

* **readers**       – extra ``ReaderNode``s for custom source shapes; a node
                      whose name matches a built-in replaces it.
* **max_depth**     – nesting limit (default 256).
* **detect_cycles** – cycle guard on/off (default on).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, Optional, Union

from .core import CastPolicy, ReaderNode, ReaderRegistry
from .descriptor import TypeDescriptor
from .matchers import InstanceMatcher
from .readers import (
    AttributesMatcher,
    AttributesReader,
    DataclassMatcher,
    DataclassReader,
    MappingReader,
    NamedTupleMatcher,
    NamedTupleReader,
    SlotsMatcher,
    SlotsReader,
)
from .recursive import RecursiveCaster


def build_default_readers() -> ReaderRegistry:
    """Return a registry with every built-in source reader.

    What gets wired (priority in parentheses)::

        mapping    (100)  Mapping            → items()
        namedtuple  (90)  named tuples       → _asdict()
        dataclass   (80)  dataclass instance → fields, then extra attributes
        slots       (20)  __slots__ objects  → assigned slots, then __dict__
        attributes  (10)  other instances    → vars()
    """
    registry = ReaderRegistry()
    registry.register(ReaderNode(
        name="mapping", priority=100,
        matcher=InstanceMatcher(Mapping),
        reader=MappingReader(),
    ))
    registry.register(ReaderNode(
        name="namedtuple", priority=90,
        matcher=NamedTupleMatcher(),
        reader=NamedTupleReader(),
    ))
    registry.register(ReaderNode(
        name="dataclass", priority=80,
        matcher=DataclassMatcher(),
        reader=DataclassReader(),
    ))
    registry.register(ReaderNode(
        name="slots", priority=20,
        matcher=SlotsMatcher(),
        reader=SlotsReader(),
    ))
    registry.register(ReaderNode(
        name="attributes", priority=10,
        matcher=AttributesMatcher(),
        reader=AttributesReader(),
    ))
    return registry


def build_default_caster(
        *,
        readers: Optional[Iterable[ReaderNode]] = None,
        max_depth: int = 256,
        detect_cycles: bool = True,
) -> RecursiveCaster:
    """Assemble a ``RecursiveCaster`` with the standard reader registry.

    Args:
        readers:       Additional reader nodes, registered after the
                       built-ins (same name → replaces the built-in).
        max_depth:     Nesting limit; deeper graphs raise ``RecursionError``.
        detect_cycles: Raise ``CyclicGraph`` when a source object is reached
                       again through its own fields.

    Returns:
        Ready-to-use ``RecursiveCaster``.

    Example::

        caster = build_default_caster()
        loc = caster.cast({"name": "home", "at": {"x": 4, "y": 5}}, Location)
        # → Location(name='home', at=Point(x=4, y=5))
    """
    if max_depth < 1:
        raise ValueError(f"max_depth must be positive, got {max_depth}")

    registry = build_default_readers()
    for node in readers or ():
        registry.register(node)

    return RecursiveCaster(
        readers=registry,
        max_depth=max_depth,
        detect_cycles=detect_cycles,
    )


_default_caster = build_default_caster()


def recursive_cast(
        source: Any,
        target: Union[type, str, TypeDescriptor],
        use_constructor: bool = False,
        policy: Union[CastPolicy, str] = CastPolicy.THROW,
) -> Any:
    """Cast *source* into *target* with the shared default caster.

    See ``RecursiveCaster.cast`` for argument and error details.
    """
    return _default_caster.cast(source, target, use_constructor=use_constructor, policy=policy)
