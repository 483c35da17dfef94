"""Readers sub-package — concrete SourceReader + ReaderMatcher implementations.

mapping – ``Mapping`` sources (decoded JSON, plain dicts)
objects – dataclass, named-tuple, slotted and plain-object sources
"""

from .mapping import MappingReader
from .objects import (
    AttributesMatcher,
    AttributesReader,
    DataclassMatcher,
    DataclassReader,
    NamedTupleMatcher,
    NamedTupleReader,
    SlotsMatcher,
    SlotsReader,
)

__all__ = [
    # mapping
    "MappingReader",
    # objects
    "DataclassMatcher",
    "DataclassReader",
    "NamedTupleMatcher",
    "NamedTupleReader",
    "SlotsMatcher",
    "SlotsReader",
    "AttributesMatcher",
    "AttributesReader",
]
