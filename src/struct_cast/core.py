"""Core abstractions: cast policy, per-call context, and the source-reader registry.

This module owns every *interface* in the system.  Nothing here depends on a
concrete implementation — concrete readers live in the ``readers``
sub-package and are wired together in ``factory``.

Execution flow (``RecursiveCaster.cast`` entry point)::

    source (any supported object)
      │
      ▼
    ReaderRegistry.resolve(source) → SourceReader     ← select (first-match)
      │
      ▼
    for name, value in reader.read(source):
        TypeDescriptor.get(name) → FieldDescriptor | None
        ├─ declared  → copy / recurse into nested descriptor
        └─ undeclared → CastPolicy (throw / ignore / dynamic assign)
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple


# ─────────────────────────────────────────────────────────────────────────────
# CastPolicy
# ─────────────────────────────────────────────────────────────────────────────


class CastPolicy(enum.Enum):
    """What to do with a source field the target class does not declare.

    ``THROW``
        Abort the whole cast with ``UnknownFieldRejected`` naming the first
        such field in source order.
    ``IGNORE``
        Skip the field.
    ``DYNAMIC_ASSIGN``
        Attach the raw value to the instance as an undeclared attribute.
        Degrades to ``IGNORE`` plus a ``DynamicAssignUnsupported`` warning
        when the instance refuses it.
    """

    THROW = "throw"
    IGNORE = "ignore"
    DYNAMIC_ASSIGN = "dynamic_assign"


# ─────────────────────────────────────────────────────────────────────────────
# CastContext
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CastContext:
    """Per-call settings threaded unchanged through every recursion level.

    Attributes:
        use_constructor: ``True`` → allocate targets with ``cls()``;
                         ``False`` → bypass ``__init__``.
        policy:          Unknown-field policy, shared by nested casts.
        path:            Field names leading from the root to the current
                         (sub)object; used in error messages.
        active:          ``id()`` of every source object currently being cast
                         on this branch (cycle guard).
    """

    use_constructor: bool = False
    policy: CastPolicy = CastPolicy.THROW
    path: Tuple[str, ...] = ()
    active: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def depth(self) -> int:
        return len(self.path)

    def descend(self, name: str) -> CastContext:
        """Return the context for the child reached through field *name*."""
        return replace(self, path=self.path + (name,))

    def enter(self, source: Any) -> CastContext:
        """Return a context that marks *source* as being cast on this branch."""
        return replace(self, active=self.active | {id(source)})


# ─────────────────────────────────────────────────────────────────────────────
# Source readers: first-match dispatch
# ─────────────────────────────────────────────────────────────────────────────


class ReaderMatcher(ABC):
    """Predicate: can this node's reader enumerate *source*?

    Examples::

        InstanceMatcher(Mapping)   → isinstance(source, Mapping)
        DataclassMatcher()         → dataclass instance (not the class)
    """

    @abstractmethod
    def matches(self, source: Any) -> bool: ...


class SourceReader(ABC):
    """Enumerate the named fields of one kind of source object.

    Implementations must not mutate *source* and must yield pairs in the
    source's own order; that order decides which unknown field a ``THROW``
    policy reports first.
    """

    @abstractmethod
    def read(self, source: Any) -> Iterable[Tuple[Any, Any]]:
        """Return ``(name, value)`` pairs.  Names are validated by the caller."""


@dataclass
class ReaderNode:
    """Single entry in a ``ReaderRegistry``.

    Attributes:
        name:     Human-readable label (for introspection / replacement).
        priority: Higher = tried first.  Built-ins use 10‥100.
        matcher:  Decides whether ``reader`` applies to a source.
        reader:   Enumerates the source's fields.
    """

    name: str
    priority: int
    matcher: ReaderMatcher
    reader: SourceReader


def _by_priority(node: ReaderNode) -> int:
    return node.priority


class ReaderRegistry:
    """Priority-ordered registry of source readers with *first-match* dispatch.

    ::

        registry = ReaderRegistry()
        registry.register(ReaderNode("mapping", 100, InstanceMatcher(Mapping), MappingReader()))
        reader = registry.resolve({"x": 1})
    """

    def __init__(self, nodes: Optional[Iterable[ReaderNode]] = None) -> None:
        self._nodes: List[ReaderNode] = sorted(nodes or [], key=_by_priority, reverse=True)

    # -- registration -------------------------------------------------------

    def register(self, node: ReaderNode) -> None:
        """Add a node.  A node registered under an existing name replaces it."""
        nodes = [n for n in self._nodes if n.name != node.name]
        nodes.append(node)
        self._nodes = sorted(nodes, key=_by_priority, reverse=True)

    # -- dispatch -----------------------------------------------------------

    def resolve(self, source: Any) -> Optional[SourceReader]:
        """Return the reader of the highest-priority matching node, or ``None``."""
        for node in self._nodes:
            if node.matcher.matches(source):
                return node.reader
        return None

    # -- introspection ------------------------------------------------------

    def nodes(self) -> List[ReaderNode]:
        """Return a copy of the nodes, by descending priority."""
        return list(self._nodes)
