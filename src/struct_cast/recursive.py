"""Reflective recursive caster — the primary, safe conversion path.

``RecursiveCaster.cast`` converts any source the reader registry understands
into an instance of a target class, field by field:

1. allocate the target (constructor run or bypassed, caller's choice);
2. enumerate the source's ``(name, value)`` pairs in source order;
3. copy declared scalar fields verbatim, recurse into nested / container
   fields with the same ``use_constructor`` and ``policy``, skip static
   field names, and hand undeclared names to the ``CastPolicy``;
4. return the populated instance.

A cast either fully succeeds or raises: instances built for sibling or
nested fields before a failure are simply dropped with the half-built
parent, never returned.
"""

from __future__ import annotations

import logging
import sys
import warnings
from typing import Any, List, Mapping, Tuple, Union

from .allocation import allocate, assign
from .core import CastContext, CastPolicy, ReaderRegistry
from .descriptor import FieldDescriptor, FieldKind, TypeDescriptor
from .errors import (
    CyclicGraph,
    DynamicAssignUnsupported,
    MalformedSource,
    UnknownFieldRejected,
    format_path,
    type_name,
)

logger = logging.getLogger(__name__)

_PACKAGE_PREFIX = __name__.rpartition(".")[0] + "."


class RecursiveCaster:
    """Field-by-field, type-aware caster with a pluggable source-reader registry.

    Usually obtained from ``build_default_caster``; instances hold no per-call
    state and may be shared between threads.

    Args:
        readers:       Registry used to enumerate source objects.
        max_depth:     Nesting limit; deeper graphs raise ``RecursionError``.
        detect_cycles: Track the source objects on the active recursion path
                       and raise ``CyclicGraph`` when one is revisited.
    """

    def __init__(
            self,
            *,
            readers: ReaderRegistry,
            max_depth: int = 256,
            detect_cycles: bool = True,
    ) -> None:
        self.readers = readers
        self.max_depth = max_depth
        self.detect_cycles = detect_cycles

    # -- public API ---------------------------------------------------------

    def cast(
            self,
            source: Any,
            target: Union[type, str, TypeDescriptor],
            *,
            use_constructor: bool = False,
            policy: Union[CastPolicy, str] = CastPolicy.THROW,
    ) -> Any:
        """Cast *source* into a new instance of *target*.

        Args:
            source:          Mapping, dataclass, named tuple or plain object.
            target:          Target class, ``"module:QualName"`` or descriptor.
            use_constructor: Run ``target()`` instead of bypassing ``__init__``.
                             Applies to every nested instance as well.
            policy:          Handling of undeclared source fields (enum member
                             or its value, e.g. ``"ignore"``).

        Raises:
            TargetTypeNotFound, MalformedSource, UnknownFieldRejected,
            TargetInstantiationFailed, CyclicGraph.
        """
        descriptor = TypeDescriptor.of(target)
        ctx = CastContext(use_constructor=use_constructor, policy=CastPolicy(policy))
        return self._cast_object(source, descriptor, ctx)

    def read_fields(self, source: Any, path: Tuple[str, ...] = ()) -> List[Tuple[str, Any]]:
        """Return the validated ``(name, value)`` pairs of *source*.

        Raises ``MalformedSource`` if no reader accepts *source* or any name
        is empty or not a string.
        """
        reader = self.readers.resolve(source)
        if reader is None:
            raise MalformedSource(f"cannot enumerate fields of {type_name(source)}", path=path)

        pairs: List[Tuple[str, Any]] = []
        for name, value in reader.read(source):
            if not isinstance(name, str) or not name:
                raise MalformedSource(f"invalid field name {name!r} in {type_name(source)}", path=path)
            pairs.append((name, value))
        return pairs

    # -- recursion ----------------------------------------------------------

    def _cast_object(self, source: Any, descriptor: TypeDescriptor, ctx: CastContext) -> Any:
        if ctx.depth > self.max_depth:
            raise RecursionError(f"{format_path(ctx.path)}: max_depth {self.max_depth} exceeded")
        if self.detect_cycles:
            if id(source) in ctx.active:
                raise CyclicGraph(ctx.path)
            ctx = ctx.enter(source)

        pairs = self.read_fields(source, ctx.path)
        instance = allocate(descriptor.target, ctx.use_constructor)

        for name, value in pairs:
            field = descriptor.get(name)
            if field is not None:
                assign(instance, name, self._convert(value, field, ctx.descend(name)))
            elif descriptor.is_static(name):
                logger.debug("%s: skipping static field %r", format_path(ctx.path), name)
            else:
                self._unmatched(instance, name, value, source, descriptor, ctx)
        return instance

    def _convert(self, value: Any, field: FieldDescriptor, ctx: CastContext) -> Any:
        if field.kind is FieldKind.SCALAR or value is None:
            return value

        if field.kind is FieldKind.NESTED:
            return self._cast_object(value, field.nested, ctx)

        nested = field.nested
        if field.kind is FieldKind.SEQUENCE:
            if not isinstance(value, (list, tuple)):
                raise MalformedSource(
                    f"expected a list or tuple, got {type_name(value)}", path=ctx.path,
                )
            items = [
                None if item is None else self._cast_object(item, nested, ctx.descend(str(i)))
                for i, item in enumerate(value)
            ]
            container = field.container or (tuple if isinstance(value, tuple) else list)
            return container(items)

        if not isinstance(value, Mapping):
            raise MalformedSource(f"expected a mapping, got {type_name(value)}", path=ctx.path)
        return {
            key: None if item is None else self._cast_object(item, nested, ctx.descend(str(key)))
            for key, item in value.items()
        }

    # -- unknown fields -----------------------------------------------------

    def _unmatched(
            self,
            instance: Any,
            name: str,
            value: Any,
            source: Any,
            descriptor: TypeDescriptor,
            ctx: CastContext,
    ) -> None:
        if ctx.policy is CastPolicy.THROW:
            raise UnknownFieldRejected(
                name, type_name(source), type_name(descriptor.target), path=ctx.path,
            )

        if ctx.policy is CastPolicy.IGNORE:
            logger.debug("%s: ignoring undeclared field %r", format_path(ctx.path), name)
            return

        reason = None
        if hasattr(type(instance), name):
            reason = "name is a class attribute"
        else:
            try:
                setattr(instance, name, value)
            except (AttributeError, TypeError) as exc:
                reason = str(exc) or type(exc).__name__
        if reason is not None:
            warnings.warn(
                f"{format_path(ctx.path)}: cannot attach undeclared field {name!r} "
                f"to {type_name(descriptor.target)} ({reason}); field ignored",
                DynamicAssignUnsupported,
                stacklevel=_outside_stacklevel(),
            )


def _outside_stacklevel() -> int:
    """``stacklevel`` that points ``warnings.warn`` at the first frame outside the package.

    Counted from the function that calls this one, whatever the nesting depth.
    """
    frame = sys._getframe(1)
    level = 1
    while frame is not None and frame.f_globals.get("__name__", "").startswith(_PACKAGE_PREFIX):
        frame = frame.f_back
        level += 1
    return level
