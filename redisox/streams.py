"""Stream entries, range and read options, and parsers for stream replies."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from redisox.errors import ResponseTypeError
from redisox.values import as_int, as_text, pairs

_U64_MAX = 2**64 - 1


def _parse_u64(text: str) -> int | None:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not digits.isascii() or not digits.isdigit():
        return None
    number = int(digits)
    return number if number <= _U64_MAX else None


@dataclass
class StreamEntry:
    """A single stream entry: its ID and its field-value pairs."""

    id: str
    fields: dict[str, str] = field(default_factory=dict)

    def get_field(self, field: str) -> str | None:
        """Return the value of a field, or None if the entry lacks it."""
        return self.fields.get(field)

    def has_field(self, field: str) -> bool:
        """Tell whether the entry has the field."""
        return field in self.fields

    def timestamp(self) -> int | None:
        """The millisecond part of the ID, or None if it is not a number."""
        return _parse_u64(self.id.split("-")[0])

    def sequence(self) -> int | None:
        """The sequence part of the ID, or None if absent or not a number."""
        parts = self.id.split("-")
        if len(parts) < 2:
            return None
        return _parse_u64(parts[1])


@dataclass
class StreamInfo:
    """Summary of a stream from XINFO STREAM."""

    length: int
    groups: int
    first_entry: str | None
    last_entry: str | None
    last_generated_id: str


@dataclass
class ConsumerGroupInfo:
    """Summary of a consumer group."""

    name: str
    consumers: int
    pending: int
    last_delivered_id: str


@dataclass
class ConsumerInfo:
    """Summary of a consumer within a group."""

    name: str
    pending: int
    idle: int


@dataclass
class PendingMessage:
    """A message delivered to a consumer but not yet acknowledged."""

    id: str
    consumer: str
    idle_time: int
    delivery_count: int


@dataclass(frozen=True)
class StreamRange:
    """Inclusive ID bounds and optional count for XRANGE and XREVRANGE."""

    start: str
    end: str
    count: int | None = None

    def with_count(self, count: int) -> StreamRange:
        """Return a copy limited to ``count`` entries."""
        return dataclasses.replace(self, count=count)

    @classmethod
    def all(cls) -> StreamRange:
        """A range covering every entry."""
        return cls("-", "+")

    @classmethod
    def starting_at(cls, start: str) -> StreamRange:
        """A range from ``start`` to the end of the stream."""
        return cls(start, "+")

    @classmethod
    def to(cls, end: str) -> StreamRange:
        """A range from the beginning of the stream to ``end``."""
        return cls("-", end)


@dataclass(frozen=True)
class ReadOptions:
    """Count limit and block timeout for XREAD and XREADGROUP."""

    count: int | None = None
    block: timedelta | None = None

    def with_count(self, count: int) -> ReadOptions:
        """Return a copy with a per-stream entry limit."""
        return dataclasses.replace(self, count=count)

    def with_block(self, timeout: timedelta) -> ReadOptions:
        """Return a copy that blocks for up to ``timeout``."""
        return dataclasses.replace(self, block=timeout)

    @classmethod
    def blocking(cls, timeout: timedelta) -> ReadOptions:
        """Options for a read that blocks for up to ``timeout``."""
        return cls().with_block(timeout)

    @classmethod
    def non_blocking(cls, count: int) -> ReadOptions:
        """Options for a non-blocking read of at most ``count`` entries."""
        return cls().with_count(count)


def parse_stream_entries(response: Any) -> list[StreamEntry]:
    """Parse an XRANGE-style reply: a list of ``[id, [field, value, ...]]``."""
    if not isinstance(response, list):
        raise ResponseTypeError(f"Expected array for stream entries, got: {response!r}")
    entries = []
    for item in response:
        if not isinstance(item, list) or len(item) != 2:
            raise ResponseTypeError(f"Invalid stream entry format: {item!r}")
        entry_id, field_values = item
        entry_id = as_text(entry_id)
        if not isinstance(field_values, list):
            raise ResponseTypeError(
                f"Invalid stream entry field format: {field_values!r}"
            )
        fields = {as_text(name): as_text(value) for name, value in pairs(field_values)}
        entries.append(StreamEntry(entry_id, fields))
    return entries


def parse_xread_response(response: Any) -> dict[str, list[StreamEntry]]:
    """Parse an XREAD/XREADGROUP reply into entries keyed by stream name."""
    if response is None:
        return {}
    if not isinstance(response, list):
        raise ResponseTypeError(
            f"Expected array or null for XREAD response, got: {response!r}"
        )
    result: dict[str, list[StreamEntry]] = {}
    for stream in response:
        if not isinstance(stream, list) or len(stream) != 2:
            raise ResponseTypeError(f"Invalid XREAD response format: {stream!r}")
        name, entries = stream
        result[as_text(name)] = parse_stream_entries(entries)
    return result


def _entry_id(value: Any) -> str | None:
    if isinstance(value, list) and value:
        return as_text(value[0])
    return None


def parse_stream_info(response: Any) -> StreamInfo:
    """Parse an XINFO STREAM reply; unknown keys are ignored."""
    if not isinstance(response, list):
        raise ResponseTypeError(f"Expected array for stream info, got: {response!r}")
    length = 0
    groups = 0
    first_entry: str | None = None
    last_entry: str | None = None
    last_generated_id = ""
    for raw_key, value in pairs(response):
        key = as_text(raw_key)
        if key == "length":
            length = as_int(value)
        elif key == "groups":
            groups = as_int(value)
        elif key == "first-entry":
            first_entry = _entry_id(value) or first_entry
        elif key == "last-entry":
            last_entry = _entry_id(value) or last_entry
        elif key == "last-generated-id":
            last_generated_id = as_text(value)
    return StreamInfo(length, groups, first_entry, last_entry, last_generated_id)