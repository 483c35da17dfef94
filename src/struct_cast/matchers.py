"""Shared ReaderMatcher implementations.

Only matchers that are genuinely reusable live here.  Matchers that are
tightly coupled to a single reader (e.g. ``DataclassMatcher``) are
co-located with that reader in the ``readers`` sub-package.

Exports
-------
InstanceMatcher
    Match by ``isinstance`` against one or more classes / ABCs.
"""

from __future__ import annotations

from typing import Any

from .core import ReaderMatcher


class InstanceMatcher(ReaderMatcher):
    """Match a source by ``isinstance``.

    ::

        InstanceMatcher(Mapping).matches({"x": 1})   # True
        InstanceMatcher(Mapping).matches([1])        # False
    """

    def __init__(self, *types: type) -> None:
        if not types:
            raise ValueError("InstanceMatcher requires at least one type")
        self._types = types

    def matches(self, source: Any) -> bool:
        return isinstance(source, self._types)
