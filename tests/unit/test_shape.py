"""Tests for the precompiled shape caster."""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest
from struct_cast import CastError, ShapeCaster, ShapeMismatch, TargetInstantiationFailed


@dataclass
class Point:
    x: int
    y: int


@dataclass
class Location:
    name: str
    at: Point


@dataclass
class Counter:
    count: int = 0
    history: list = field(default_factory=list)

    def __post_init__(self):
        self.history.append("init")


class TestShapeCaster:
    """Test ShapeCaster."""

    def test_captures_field_names(self):
        """Field names are captured at construction."""
        caster = ShapeCaster(Point)

        assert caster.target is Point
        assert caster.fields == ("x", "y")
        assert "Point" in repr(caster)

    def test_cast_mapping(self):
        """Mappings are read by key."""
        assert ShapeCaster(Point).cast({"x": 1, "y": 2}) == Point(1, 2)

    def test_cast_object(self):
        """Other sources are read by attribute."""
        assert ShapeCaster(Point).cast(SimpleNamespace(x=1, y=2)) == Point(1, 2)

    def test_callable(self):
        """Casters can be used directly as functions."""
        to_point = ShapeCaster(Point)

        assert list(map(to_point, [{"x": 1, "y": 2}])) == [Point(1, 2)]

    def test_target_by_name(self):
        """Targets can be given as ``module:QualName``."""
        caster = ShapeCaster(f"{Point.__module__}:Point")

        assert caster.target is Point

    def test_extra_fields_ignored(self):
        """Source fields outside the captured set are not copied."""
        result = ShapeCaster(Point).cast({"x": 1, "y": 2, "z": 3})

        assert result == Point(1, 2)
        assert not hasattr(result, "z")

    def test_no_recursion(self):
        """Nested values are copied by reference, unconverted."""
        at = {"x": 1, "y": 2}
        result = ShapeCaster(Location).cast({"name": "home", "at": at})

        assert result.at is at

    def test_missing_field_is_fatal(self):
        """A missing captured name raises ShapeMismatch, which is not a CastError."""
        with pytest.raises(ShapeMismatch) as exc_info:
            ShapeCaster(Point).cast({"x": 1})

        assert exc_info.value.field == "y"
        assert isinstance(exc_info.value, RuntimeError)
        assert not isinstance(exc_info.value, CastError)

    def test_missing_key_leaves_defaulting_mapping_alone(self):
        """A defaultdict source is neither filled in nor written to."""
        source = defaultdict(int, {"x": 1})

        with pytest.raises(ShapeMismatch, match="'y'"):
            ShapeCaster(Point).cast(source)

        assert dict(source) == {"x": 1}

    def test_none_value_is_not_missing(self):
        """A key present with a None value is copied."""
        assert ShapeCaster(Point).cast({"x": 1, "y": None}) == Point(1, None)

    def test_missing_attribute_is_fatal(self):
        """Attribute sources raise ShapeMismatch too."""
        with pytest.raises(ShapeMismatch, match="'y'"):
            ShapeCaster(Point).cast(SimpleNamespace(x=1))

    def test_bypasses_constructor_by_default(self):
        """Default allocation skips __init__ and __post_init__."""
        result = ShapeCaster(Counter).cast({"count": 3, "history": []})

        assert result.history == []

    def test_constructor_path(self):
        """use_constructor runs __post_init__ before copying fields over."""
        history = ["loaded"]
        result = ShapeCaster(Counter, use_constructor=True).cast({"count": 3, "history": history})

        assert result.count == 3
        assert result.history is history

    def test_constructor_failure(self):
        """Constructor errors surface as TargetInstantiationFailed."""
        with pytest.raises(TargetInstantiationFailed):
            ShapeCaster(Point, use_constructor=True).cast({"x": 1, "y": 2})


class TestCastMany:
    """Test batch casting."""

    def test_cast_many(self):
        """Every source is cast in order."""
        rows = [{"x": i, "y": -i} for i in range(5)]

        assert ShapeCaster(Point).cast_many(rows) == [Point(i, -i) for i in range(5)]

    def test_first_mismatch_aborts(self):
        """A mismatching row aborts the batch."""
        with pytest.raises(ShapeMismatch):
            ShapeCaster(Point).cast_many([{"x": 1, "y": 2}, {"x": 3}])

    def test_concurrent_use(self):
        """One caster can be shared between threads."""
        caster = ShapeCaster(Point)
        rows = [{"x": i, "y": i * 2} for i in range(200)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(caster.cast, rows))

        assert results == [Point(i, i * 2) for i in range(200)]

    def test_slots(self):
        """Casters carry no per-instance dict."""
        caster = ShapeCaster(Point)

        with pytest.raises(AttributeError):
            caster.extra = 1
