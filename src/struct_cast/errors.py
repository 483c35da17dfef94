"""Exception and warning taxonomy.

Every recoverable failure of the recursive caster and the relabeler derives
from ``CastError`` so callers can catch one type.  ``ShapeMismatch`` sits
outside that hierarchy on purpose: it signals a broken caller contract in the
unchecked fast path and is not meant to be handled as a normal result.

Exports
-------
CastError
    Base class for recoverable cast failures.

TargetTypeNotFound, MalformedSource, UnknownFieldRejected,
TargetInstantiationFailed, CyclicGraph, RelabelFailed
    Concrete failures (see each class).

ShapeMismatch
    Fatal contract violation raised by ``ShapeCaster``.

CastWarning, DynamicAssignUnsupported
    Diagnostic categories emitted through ``warnings.warn``.
"""

from __future__ import annotations

from typing import Any, Tuple


def type_name(obj_or_type: Any) -> str:
    """Return ``module.QualName`` for a class, or for the class of an instance."""
    cls = obj_or_type if isinstance(obj_or_type, type) else type(obj_or_type)
    module = getattr(cls, "__module__", None)
    qualname = getattr(cls, "__qualname__", cls.__name__)
    if module in (None, "builtins"):
        return qualname
    return f"{module}.{qualname}"


def format_path(path: Tuple[str, ...]) -> str:
    """Render a field path as ``a.b.c`` (``<root>`` when empty)."""
    return ".".join(path) if path else "<root>"


# ─────────────────────────────────────────────────────────────────────────────
# Recoverable failures
# ─────────────────────────────────────────────────────────────────────────────


class CastError(Exception):
    """Base class for every recoverable cast failure."""


class TargetTypeNotFound(CastError, LookupError):
    """The requested target does not resolve to an introspectable class."""

    def __init__(self, target: Any, reason: str = "") -> None:
        self.target = target
        message = f"target type not found: {target!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MalformedSource(CastError, ValueError):
    """A source object cannot be read as a field mapping.

    Raised for empty or non-string field names, for objects no reader
    understands, and for container fields holding the wrong container.
    """

    def __init__(self, message: str, *, path: Tuple[str, ...] = ()) -> None:
        self.path = path
        super().__init__(f"{format_path(path)}: {message}")


class UnknownFieldRejected(CastError):
    """``CastPolicy.THROW`` met a source field the target does not declare.

    Attributes:
        field:       Offending source field name.
        source_type: Name of the source object's class.
        target_type: Name of the target class.
        path:        Field path of the (sub)object being cast.
    """

    def __init__(
            self,
            field: str,
            source_type: str,
            target_type: str,
            *,
            path: Tuple[str, ...] = (),
    ) -> None:
        self.field = field
        self.source_type = source_type
        self.target_type = target_type
        self.path = path
        super().__init__(
            f"{format_path(path)}: field {field!r} of {source_type} "
            f"is not declared by {target_type}"
        )


class TargetInstantiationFailed(CastError, TypeError):
    """Allocating the target instance failed (constructor or ``__new__`` raised)."""

    def __init__(self, target_type: str, reason: str) -> None:
        self.target_type = target_type
        super().__init__(f"cannot instantiate {target_type}: {reason}")


class CyclicGraph(CastError):
    """The source graph revisits an object that is still being cast."""

    def __init__(self, path: Tuple[str, ...]) -> None:
        self.path = path
        super().__init__(f"{format_path(path)}: source graph contains a cycle")


class RelabelFailed(CastError, TypeError):
    """Relabeling could not produce an instance of the requested class."""


# ─────────────────────────────────────────────────────────────────────────────
# Fatal contract violation
# ─────────────────────────────────────────────────────────────────────────────


class ShapeMismatch(RuntimeError):
    """A ``ShapeCaster`` source lacks one of the captured field names.

    Not a ``CastError``: the shape caster's caller guarantees an exact shape
    match, so this indicates a programming error rather than bad data.
    """

    def __init__(self, field: str, source_type: str, target_type: str) -> None:
        self.field = field
        self.source_type = source_type
        self.target_type = target_type
        super().__init__(
            f"{source_type} has no field {field!r} required by shape caster for {target_type}"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Diagnostics
# ─────────────────────────────────────────────────────────────────────────────


class CastWarning(UserWarning):
    """Base category for diagnostics emitted while casting."""


class DynamicAssignUnsupported(CastWarning):
    """``CastPolicy.DYNAMIC_ASSIGN`` fell back to ignoring a field.

    Emitted when the target instance refuses an undeclared attribute
    (slotted class without ``__dict__``, frozen dataclass, read-only
    property).  The field value is dropped, never silently.
    """
