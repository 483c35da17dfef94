"""Target instance allocation — with or without running the constructor.

The choice is always made by the caller (``use_constructor`` flag); nothing
in this package infers it.

* ``use_constructor=False`` – ``cls.__new__(cls)``: ``__init__`` is skipped,
  declared fields start unset.  Use when ``__init__`` has required
  parameters the caster cannot supply.
* ``use_constructor=True``  – ``cls()``: defaults, ``__post_init__`` and other
  construction side effects run before fields are copied in.
"""

from __future__ import annotations

from typing import Any, TypeVar

from .errors import TargetInstantiationFailed, type_name

T = TypeVar("T")


def allocate(cls: type[T], use_constructor: bool = False) -> T:
    """Return a fresh instance of *cls*.

    Raises:
        TargetInstantiationFailed: ``cls()`` / ``cls.__new__`` raised.
    """
    try:
        if use_constructor:
            return cls()
        return cls.__new__(cls)
    except Exception as exc:
        raise TargetInstantiationFailed(type_name(cls), str(exc) or type(exc).__name__) from exc


def assign(instance: Any, name: str, value: Any) -> None:
    """Write a declared field, bypassing ``__setattr__`` overrides and frozen dataclasses."""
    object.__setattr__(instance, name, value)
