"""struct_cast — convert objects of one shape into instances of a declared class.

Three independent strategies over the same type metadata:

* ``recursive_cast`` / ``RecursiveCaster`` – safe, recursive, policy-driven.
* ``ShapeCaster``                          – precompiled exact-shape fast path.
* ``relabel_cast``                         – pickle class-tag rewrite under an
                                             allow-list (escape hatch).
"""

from .allocation import allocate
from .core import (
    CastContext,
    CastPolicy,
    ReaderMatcher,
    ReaderNode,
    ReaderRegistry,
    SourceReader,
)
from .descriptor import FieldDescriptor, FieldKind, TypeDescriptor, is_structured, resolve_type
from .errors import (
    CastError,
    CastWarning,
    CyclicGraph,
    DynamicAssignUnsupported,
    MalformedSource,
    RelabelFailed,
    ShapeMismatch,
    TargetInstantiationFailed,
    TargetTypeNotFound,
    UnknownFieldRejected,
)
from .factory import build_default_caster, build_default_readers, recursive_cast
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
from .relabel import AllowListUnpickler, TypeTag, find_type_tag, relabel_cast, rewrite_type_tag
from .shape import ShapeCaster

__all__ = [
    # core
    "CastContext",
    "CastPolicy",
    "ReaderMatcher",
    "ReaderNode",
    "ReaderRegistry",
    "SourceReader",
    # descriptor
    "FieldDescriptor",
    "FieldKind",
    "TypeDescriptor",
    "is_structured",
    "resolve_type",
    # allocation
    "allocate",
    # errors
    "CastError",
    "CastWarning",
    "CyclicGraph",
    "DynamicAssignUnsupported",
    "MalformedSource",
    "RelabelFailed",
    "ShapeMismatch",
    "TargetInstantiationFailed",
    "TargetTypeNotFound",
    "UnknownFieldRejected",
    # matchers / readers
    "InstanceMatcher",
    "MappingReader",
    "DataclassMatcher",
    "DataclassReader",
    "NamedTupleMatcher",
    "NamedTupleReader",
    "SlotsMatcher",
    "SlotsReader",
    "AttributesMatcher",
    "AttributesReader",
    # strategies
    "RecursiveCaster",
    "ShapeCaster",
    "relabel_cast",
    "rewrite_type_tag",
    "find_type_tag",
    "TypeTag",
    "AllowListUnpickler",
    # factory
    "build_default_caster",
    "build_default_readers",
    "recursive_cast",
]
