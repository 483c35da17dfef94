"""Mapping source reader — decoded JSON documents and other ``Mapping`` objects."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Tuple

from ..core import SourceReader


class MappingReader(SourceReader):
    """Yield the mapping's items in iteration order.

    Keys are passed through as-is; the caster rejects non-string and empty
    keys with ``MalformedSource``.
    """

    def read(self, source: Mapping[Any, Any]) -> Iterable[Tuple[Any, Any]]:
        return list(source.items())
