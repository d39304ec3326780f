"""Helpers for reading decoded reply values.

Replies are plain Python values: ``str`` or ``bytes`` for strings, ``int``
for integers, ``list`` for arrays and ``None`` for null.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from redisox.errors import ResponseTypeError


def as_text(value: Any) -> str:
    """Return a string reply, or an integer reply, as ``str``."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ResponseTypeError(f"Invalid UTF-8 in reply: {bytes(value)!r}") from exc
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise ResponseTypeError(f"Expected string reply, got: {value!r}")


def as_int(value: Any) -> int:
    """Return an integer reply, or a string reply holding an integer, as ``int``."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        text = as_text(value)
        try:
            return int(text.strip())
        except ValueError as exc:
            raise ResponseTypeError(f"Expected integer reply, got: {value!r}") from exc
    raise ResponseTypeError(f"Expected integer reply, got: {value!r}")


def pairs(items: Iterable[Any]) -> Iterator[tuple[Any, Any]]:
    """Group a flat ``[k1, v1, k2, v2, ...]`` sequence into ``(k, v)`` tuples.

    A trailing element without a partner is dropped.
    """
    iterator = iter(items)
    return zip(iterator, iterator)