"""Tests for the serialized-representation relabeler."""

import logging
import pickle
import pickletools
import struct
import threading
from types import SimpleNamespace

import pytest
from struct_cast import (
    CastError,
    RelabelFailed,
    TargetTypeNotFound,
    find_type_tag,
    relabel_cast,
    rewrite_type_tag,
)

EVENTS = []


class Legacy:
    def __init__(self, name, size):
        self.name = name
        self.size = size


class Modern:
    def describe(self):
        return f"{self.name} ({self.size})"


class Evil:
    def __init__(self):
        self.armed = True

    def __setstate__(self, state):
        EVENTS.append("setstate")
        self.__dict__.update(state)


class Impostor:
    def __new__(cls, *args):
        return Modern.__new__(Modern)


def make_built(value):
    return Built(value)


class Built:
    def __init__(self, value):
        self.value = value

    def __reduce__(self):
        return make_built, (self.value,)


@pytest.fixture(autouse=True)
def clear_events():
    EVENTS.clear()
    yield
    EVENTS.clear()


class TestRelabelCast:
    """Test relabel_cast end to end."""

    def test_relabels_top_level_object(self):
        """The result is a target instance carrying the source's state."""
        source = Legacy("crate", 3)

        result = relabel_cast(source, Modern)

        assert type(result) is Modern
        assert vars(result) == {"name": "crate", "size": 3}
        assert result.describe() == "crate (3)"
        assert type(source) is Legacy

    def test_target_by_name(self):
        """Targets can be given as ``module:QualName``."""
        result = relabel_cast(Legacy("crate", 3), f"{Modern.__module__}:Modern")

        assert isinstance(result, Modern)

    def test_relabel_across_modules(self):
        """Module and qualname are both rewritten."""
        result = relabel_cast(Legacy("crate", 3), SimpleNamespace)

        assert result == SimpleNamespace(name="crate", size=3)

    def test_nested_objects_keep_their_class(self):
        """Only the top-level tag changes; nested objects stay what they were."""
        source = Legacy("crate", Evil())

        result = relabel_cast(source, Modern, allowed_types=[Evil])

        assert isinstance(result, Modern)
        assert type(result.size) is Evil
        assert EVENTS == ["setstate"]

    def test_allow_list_refusal(self):
        """Classes outside the allow-list are never instantiated."""
        source = Legacy("crate", Evil())

        with pytest.raises(RelabelFailed, match="allow-list") as exc_info:
            relabel_cast(source, Modern)

        assert isinstance(exc_info.value.__cause__, pickle.UnpicklingError)
        assert EVENTS == []

    def test_allow_list_by_name(self):
        """Allow-list entries can be type names."""
        result = relabel_cast(Legacy("crate", Evil()), Modern, allowed_types=[f"{Evil.__module__}:Evil"])

        assert type(result.size) is Evil

    def test_unrestricted_allow_list_is_logged(self, caplog):
        """``allowed_types=True`` works but logs a warning."""
        with caplog.at_level(logging.WARNING, logger="struct_cast.relabel"):
            result = relabel_cast(Legacy("crate", Evil()), Modern, allowed_types=True)

        assert type(result.size) is Evil
        assert any("unrestricted" in r.getMessage() for r in caplog.records)

    def test_nested_object_of_source_class(self):
        """A nested object of the source's own class keeps that class."""
        source = Legacy("outer", Legacy("inner", 1))

        result = relabel_cast(source, Modern, allowed_types=[Legacy])

        assert type(result) is Modern
        assert type(result.size) is Legacy
        assert vars(result.size) == {"name": "inner", "size": 1}

    def test_nested_object_of_source_class_needs_allowing(self):
        """The source class stays subject to the allow-list when nested objects use it."""
        source = Legacy("outer", Legacy("inner", 1))

        with pytest.raises(RelabelFailed, match="allow-list"):
            relabel_cast(source, Modern)

    def test_nested_object_sharing_module_string(self):
        """Moving to another module leaves nested objects from the source's module alone."""
        source = Legacy("crate", Evil())

        result = relabel_cast(source, SimpleNamespace, allowed_types=[Evil])

        assert type(result) is SimpleNamespace
        assert result.name == "crate"
        assert type(result.size) is Evil
        assert EVENTS == ["setstate"]

    def test_result_must_be_target_instance(self):
        """A target whose __new__ returns something else is rejected."""
        with pytest.raises(RelabelFailed, match="produced"):
            relabel_cast(Legacy("crate", 3), Impostor)

    def test_custom_reduce_is_rejected(self):
        """A payload that does not open with the source's own class is rejected."""
        with pytest.raises(RelabelFailed, match="not its own class"):
            relabel_cast(Built(1), Modern)

    def test_unpicklable_source(self):
        """Serialization failures surface as RelabelFailed."""
        with pytest.raises(RelabelFailed, match="cannot serialize"):
            relabel_cast(Legacy("crate", threading.Lock()), Modern)

    def test_is_cast_error(self):
        """RelabelFailed is a CastError."""
        with pytest.raises(CastError):
            relabel_cast(Built(1), Modern)

    def test_old_protocol_rejected(self):
        """Protocols below 4 are refused up front."""
        with pytest.raises(ValueError, match="protocol"):
            relabel_cast(Legacy("crate", 3), Modern, protocol=2)


class TestRelabelArguments:
    """Test target and allow-list validation."""

    def test_unknown_target(self):
        """Unresolvable targets raise TargetTypeNotFound."""
        with pytest.raises(TargetTypeNotFound):
            relabel_cast(Legacy("crate", 3), "no_such_module_xyz:Thing")

    def test_non_class_target(self):
        """Non-class targets raise TargetTypeNotFound."""
        with pytest.raises(TargetTypeNotFound):
            relabel_cast(Legacy("crate", 3), 42)

    def test_unknown_allow_list_entry(self):
        """Unresolvable allow-list entries raise TargetTypeNotFound."""
        with pytest.raises(TargetTypeNotFound):
            relabel_cast(Legacy("crate", 3), Modern, allowed_types=["no_such_module_xyz:Evil"])

    def test_non_class_allow_list_entry(self):
        """Allow-list entries must be classes."""
        with pytest.raises(TargetTypeNotFound, match="allow-list"):
            relabel_cast(Legacy("crate", 3), Modern, allowed_types=[42])

    @pytest.mark.parametrize("allowed", ["Evil", b"Evil", 42, False])
    def test_bad_allow_list(self, allowed):
        """A bare string or non-iterable is not an allow-list."""
        with pytest.raises(TypeError, match="allowed_types"):
            relabel_cast(Legacy("crate", 3), Modern, allowed_types=allowed)


class TestTypeTag:
    """Test find_type_tag and rewrite_type_tag on raw payloads."""

    def test_find_type_tag(self):
        """The leading class reference and its memo slots are located."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=4)

        tag = find_type_tag(payload)

        assert (tag.module, tag.qualname) == (Legacy.__module__, "Legacy")
        assert tag.frame is not None
        assert tag.memo_slots == (0, 1)
        assert tag.class_slot == 2
        assert tag.class_slot not in tag.memo_reads
        assert payload[tag.global_span[0]:tag.global_span[1]] == pickle.STACK_GLOBAL + pickle.MEMOIZE

    def test_old_protocol_payload(self):
        """Protocol 2 payloads have no STACK_GLOBAL class reference."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=2)

        with pytest.raises(RelabelFailed, match="protocol 4"):
            find_type_tag(payload)

    @pytest.mark.parametrize("payload", [b"", b"\xff\xff", b"\x80\x04"])
    def test_malformed_payload(self, payload):
        """Bytes that are not a pickle are rejected."""
        with pytest.raises(RelabelFailed):
            find_type_tag(payload)

    def test_non_object_payload(self):
        """Payloads that do not open with a class reference are rejected."""
        with pytest.raises(RelabelFailed, match="class reference"):
            find_type_tag(pickle.dumps({"name": "crate"}, protocol=4))

    def test_unchanged_tag_returns_payload(self):
        """Rewriting to the same tag is a no-op."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=4)

        assert rewrite_type_tag(payload, Legacy.__module__, "Legacy") is payload

    def test_rewrite_adjusts_frame_length(self):
        """The enclosing FRAME length follows the size change."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=4)

        out = rewrite_type_tag(payload, "types", "SimpleNamespace")

        tag = find_type_tag(out)
        offset, size = tag.frame
        assert (tag.module, tag.qualname) == ("types", "SimpleNamespace")
        assert size == struct.unpack("<Q", out[offset + 1:offset + 9])[0]
        assert size == len(out) - offset - 9
        assert pickle.loads(out) == SimpleNamespace(name="crate", size=3)

    def test_rewrite_only_touches_tag(self):
        """Every opcode after the class reference is unchanged."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=4)
        out = rewrite_type_tag(payload, Legacy.__module__, "Modern")

        before = [(op.name, arg) for op, arg, _ in pickletools.genops(payload)]
        after = [(op.name, arg) for op, arg, _ in pickletools.genops(out)]

        assert len(before) == len(after)
        changed = [i for i, (old, new) in enumerate(zip(before, after)) if old != new]
        assert [after[i] for i in changed] == [("SHORT_BINUNICODE", "Modern")]

    def test_long_names_use_binunicode(self):
        """Names of 256 bytes or more switch to the 4-byte length prefix."""
        payload = pickle.dumps(Legacy("crate", 3), protocol=4)
        long_name = "Q" * 300

        out = rewrite_type_tag(payload, "types", long_name)

        ops = [(op.name, arg) for op, arg, _ in pickletools.genops(out)]
        assert ("BINUNICODE", long_name) in ops
        tag = find_type_tag(out)
        assert tag.qualname == long_name
        assert tag.frame[1] == len(out) - tag.frame[0] - 9

    def test_rewrite_keeps_memoized_class(self):
        """A class fetched back from the memo stays stored under its memo index."""
        payload = pickle.dumps(Legacy("outer", Legacy("inner", 1)), protocol=4)
        assert find_type_tag(payload).class_slot in find_type_tag(payload).memo_reads

        out = rewrite_type_tag(payload, "types", "SimpleNamespace")

        names = [op.name for op, _, _ in pickletools.genops(out)]
        assert names.count("STACK_GLOBAL") == 2
        assert "POP" in names
        tag = find_type_tag(out)
        assert tag.frame[1] == len(out) - tag.frame[0] - 9
        result = pickle.loads(out)
        assert type(result) is SimpleNamespace
        assert type(result.size) is Legacy
        assert result.size.name == "inner"

    def test_rewrite_keeps_memoized_module_string(self):
        """A module string read back later keeps its memo slot; the new one is pushed after it."""
        payload = pickle.dumps(Legacy("crate", Evil()), protocol=4)
        tag = find_type_tag(payload)
        assert tag.memo_slots[0] in tag.memo_reads

        out = rewrite_type_tag(payload, "types", "SimpleNamespace")

        head = [(op.name, arg) for op, arg, _ in pickletools.genops(out)][2:10]
        assert head == [
            ("SHORT_BINUNICODE", Legacy.__module__),
            ("MEMOIZE", None),
            ("POP", None),
            ("SHORT_BINUNICODE", "types"),
            ("SHORT_BINUNICODE", "SimpleNamespace"),
            ("MEMOIZE", None),
            ("STACK_GLOBAL", None),
            ("MEMOIZE", None),
        ]
        result = pickle.loads(out)
        assert type(result) is SimpleNamespace
        assert type(result.size) is Evil
