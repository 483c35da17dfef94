"""Serialized-representation relabeler — rewrite the class tag of a pickle.

This is an escape hatch for interop with code that reclassifies objects at
the byte level.  It shares nothing with the recursive caster on purpose.

Procedure::

    pickle.dumps(source, protocol >= 4)
      │   PROTO · FRAME · <module> MEMOIZE <qualname> MEMOIZE STACK_GLOBAL · …
      ▼
    rewrite_type_tag(payload, target module, target qualname)
      │   only the leading class reference (and the enclosing FRAME
      │   length) changes; memo entries read back by nested objects keep
      │   their original values; the field payload is untouched
      ▼
    allow-list Unpickler.load()   ← find_class admits only allowed types
      │
      ▼
    isinstance(result, target) or RelabelFailed

Security
--------
Unpickling can import modules and run arbitrary ``__reduce__`` /
``__setstate__`` code.  ``allowed_types`` restricts which globals
``find_class`` may resolve (the target is always admitted).  Passing
``allowed_types=True`` lifts the restriction entirely and must only be done
for payloads produced from fully trusted objects; it is logged at warning
level every time.

Nested objects are not relabeled: they come back as whatever class the
unmodified payload names, provided that class is allowed.  A nested object
of the source's own class therefore needs the source class in the allow-list.
"""

from __future__ import annotations

import io
import logging
import pickle
import pickletools
import struct
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, FrozenSet, Literal, Optional, Tuple, Union

from .descriptor import resolve_type
from .errors import RelabelFailed, TargetTypeNotFound, type_name

logger = logging.getLogger(__name__)

AllowList = Union[Literal[True], Iterable[Union[type, str]]]

_STRING_OPS = frozenset({"SHORT_BINUNICODE", "BINUNICODE", "BINUNICODE8"})
_MEMO_READ_OPS = frozenset({"GET", "BINGET", "LONG_BINGET"})
_FRAME_HEADER = 9  # opcode + 8-byte little-endian length


@dataclass(frozen=True)
class TypeTag:
    """Location of the class reference that opens a pickled object.

    Offsets are byte spans of the two string opcodes, length prefix
    included; ``global_span`` covers ``STACK_GLOBAL`` and the ``MEMOIZE``
    that stores the class, if any.  ``frame`` is ``(offset, size)`` of the
    enclosing FRAME, if any.  ``memo_slots`` holds the memo index each string
    was stored under (``None`` if not memoized), ``class_slot`` the index of
    the resolved class itself, and ``memo_reads`` every memo index fetched
    later in the stream.
    """

    module: str
    qualname: str
    module_span: Tuple[int, int]
    qualname_span: Tuple[int, int]
    global_span: Tuple[int, int]
    frame: Optional[Tuple[int, int]] = None
    memo_slots: Tuple[Optional[int], Optional[int]] = (None, None)
    class_slot: Optional[int] = None
    memo_reads: FrozenSet[int] = frozenset()


def find_type_tag(payload: bytes) -> TypeTag:
    """Locate the leading ``module``/``qualname`` pair of a protocol >= 4 pickle.

    Raises:
        RelabelFailed: the payload is malformed, or anything other than
            framing and memo opcodes precedes the class reference.
    """
    try:
        ops = list(pickletools.genops(payload))
    except Exception as exc:
        raise RelabelFailed(f"malformed pickle payload: {exc}") from exc

    frame = None
    strings: list = []
    memo_count = 0
    for index, (opcode, arg, pos) in enumerate(ops):
        if opcode.name == "STACK_GLOBAL":
            if len(strings) != 2:
                break
            (module, module_span, module_slot), (qualname, qualname_span, qualname_slot) = strings
            memoized = ops[index + 1][0].name == "MEMOIZE"
            class_slot = memo_count if memoized else None
            global_span = (pos, ops[index + 2 if memoized else index + 1][2])
            reads = frozenset(
                later_arg for later_op, later_arg, _ in ops[index + 1:]
                if later_op.name in _MEMO_READ_OPS
            )
            return TypeTag(
                module, qualname, module_span, qualname_span, global_span, frame,
                memo_slots=(module_slot, qualname_slot),
                class_slot=class_slot,
                memo_reads=reads,
            )
        if opcode.name in _STRING_OPS:
            strings.append([arg, (pos, ops[index + 1][2]), None])
        elif opcode.name == "MEMOIZE":
            if strings and strings[-1][2] is None:
                strings[-1][2] = memo_count
            memo_count += 1
        elif opcode.name == "FRAME" and frame is None:
            frame = (pos, arg)
        elif opcode.name != "PROTO":
            break
    raise RelabelFailed("payload does not start with a protocol 4+ class reference")


def _encode_unicode(text: str) -> bytes:
    data = text.encode("utf-8", "surrogatepass")
    if len(data) < 256:
        return pickle.SHORT_BINUNICODE + bytes([len(data)]) + data
    return pickle.BINUNICODE + struct.pack("<I", len(data)) + data


def _tag_string(old: str, new: str, slot: Optional[int], memo_reads: FrozenSet[int]) -> bytes:
    if slot is None:
        return _encode_unicode(new)
    if old != new and slot in memo_reads:
        # later opcodes fetch the old string from this slot
        return _encode_unicode(old) + pickle.MEMOIZE + pickle.POP + _encode_unicode(new)
    return _encode_unicode(new) + pickle.MEMOIZE


def rewrite_type_tag(payload: bytes, module: str, qualname: str) -> bytes:
    """Return *payload* with its leading class reference replaced.

    Only the top-level object is relabeled.  Nested objects that fetch the
    class or one of its name strings back from the memo keep seeing the
    original values: the original entries are still stored under their memo
    indices and the new tag is pushed after them without being memoized.
    When the tag sits inside a FRAME its declared length is adjusted by the
    size delta.  Every byte after the class reference is kept as-is.

    Unpickling a payload whose class is re-used by nested objects still
    resolves the original class, so it must be allowed as well.
    """
    tag = find_type_tag(payload)
    if (tag.module, tag.qualname) == (module, qualname):
        return payload

    start, end = tag.module_span[0], tag.global_span[1]
    if tag.class_slot is not None and tag.class_slot in tag.memo_reads:
        region = (
            payload[start:end] + pickle.POP
            + _encode_unicode(module) + _encode_unicode(qualname) + pickle.STACK_GLOBAL
        )
    else:
        region = (
            _tag_string(tag.module, module, tag.memo_slots[0], tag.memo_reads)
            + _tag_string(tag.qualname, qualname, tag.memo_slots[1], tag.memo_reads)
            + payload[tag.global_span[0]:end]
        )

    out = bytearray(payload)
    out[start:end] = region

    if tag.frame is not None:
        offset, size = tag.frame
        if offset + _FRAME_HEADER <= start < offset + _FRAME_HEADER + size:
            delta = len(out) - len(payload)
            out[offset + 1:offset + _FRAME_HEADER] = struct.pack("<Q", size + delta)
    return bytes(out)


# ─────────────────────────────────────────────────────────────────────────────
# Restricted reconstruction
# ─────────────────────────────────────────────────────────────────────────────


class AllowListUnpickler(pickle.Unpickler):
    """``Unpickler`` whose ``find_class`` only resolves allowed globals.

    *allowed* is a set of ``(module, qualname)`` pairs; ``None`` allows all.
    """

    def __init__(self, file: Any, allowed: Optional[FrozenSet[Tuple[str, str]]]) -> None:
        super().__init__(file)
        self._allowed = allowed

    def find_class(self, module: str, name: str) -> Any:
        if self._allowed is not None and (module, name) not in self._allowed:
            raise pickle.UnpicklingError(f"global '{module}.{name}' is not in the allow-list")
        return super().find_class(module, name)


def _allowed_globals(allowed_types: AllowList, target: type) -> Optional[FrozenSet[Tuple[str, str]]]:
    if allowed_types is True:
        logger.warning(
            "relabel to %s with an unrestricted allow-list: any class in the payload may be instantiated",
            type_name(target),
        )
        return None
    if isinstance(allowed_types, (str, bytes)) or not isinstance(allowed_types, Iterable):
        raise TypeError("allowed_types must be True or an iterable of classes / type names")

    allowed = {(target.__module__, target.__qualname__)}
    for entry in allowed_types:
        cls = resolve_type(entry) if isinstance(entry, str) else entry
        if not isinstance(cls, type):
            raise TargetTypeNotFound(entry, "allow-list entry is not a class")
        allowed.add((cls.__module__, cls.__qualname__))
    return frozenset(allowed)


def relabel_cast(
        source: Any,
        target: Union[type, str],
        allowed_types: AllowList = (),
        *,
        protocol: int = max(4, pickle.DEFAULT_PROTOCOL),
) -> Any:
    """Reclassify *source* as *target* by rewriting its pickled class tag.

    Args:
        source:        Picklable object whose class reference is replaced.
        target:        Target class or ``"module:QualName"`` string.
        allowed_types: Classes (or type names) that may be instantiated while
                       unpickling, besides *target*; ``True`` allows any
                       class (hazardous, trusted payloads only).
        protocol:      Pickle protocol, 4 or higher.

    Raises:
        TargetTypeNotFound: *target* or an allow-list entry does not resolve.
        RelabelFailed:      serialization, rewriting or reconstruction failed,
                            or the result is not a *target* instance.
    """
    if protocol < 4:
        raise ValueError(f"relabeling requires pickle protocol >= 4, got {protocol}")
    target_cls = resolve_type(target) if isinstance(target, str) else target
    if not isinstance(target_cls, type):
        raise TargetTypeNotFound(target, "not a class")
    allowed = _allowed_globals(allowed_types, target_cls)

    try:
        payload = pickle.dumps(source, protocol=protocol)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise RelabelFailed(f"cannot serialize {type_name(source)}: {exc}") from exc

    tag = find_type_tag(payload)
    source_cls = type(source)
    if (tag.module, tag.qualname) != (source_cls.__module__, source_cls.__qualname__):
        raise RelabelFailed(
            f"serialized form of {type_name(source)} opens with {tag.module}.{tag.qualname}, "
            f"not its own class"
        )
    relabeled = rewrite_type_tag(payload, target_cls.__module__, target_cls.__qualname__)

    try:
        result = AllowListUnpickler(io.BytesIO(relabeled), allowed).load()
    except Exception as exc:
        raise RelabelFailed(f"cannot reconstruct {type_name(target_cls)}: {exc}") from exc

    if not isinstance(result, target_cls):
        raise RelabelFailed(f"relabeled payload produced {type_name(result)}, not {type_name(target_cls)}")
    logger.debug("relabeled %s as %s", type_name(source), type_name(target_cls))
    return result
