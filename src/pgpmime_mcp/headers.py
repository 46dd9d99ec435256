"""
Header Grammar
==============

Content-Type (RFC 2045) and Content-Disposition (RFC 2183) values parsed into
typed parameter maps, plus the ordered, case-insensitive header collection
shared by the part model and the writer.

INV-MIME-03: Malformed parameters are dropped, never raised.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class HeaderCollection:
    """
    Ordered header map keyed case-insensitively.

    The first spelling of a name is kept for output. Distinct names keep
    insertion order; repeated values keep arrival order.
    """

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._fields: dict[str, tuple[str, list[str]]] = {}
        for name, value in items:
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        key = name.lower()
        if key in self._fields:
            self._fields[key][1].append(value)
        else:
            self._fields[key] = (name, [value])

    def set(self, name: str, value: str) -> None:
        key = name.lower()
        original = self._fields[key][0] if key in self._fields else name
        self._fields[key] = (original, [value])

    def remove(self, name: str) -> None:
        self._fields.pop(name.lower(), None)

    def get(self, name: str, default: str | None = None) -> str | None:
        values = self.get_all(name)
        return values[-1] if values else default

    def get_all(self, name: str) -> list[str]:
        entry = self._fields.get(name.lower())
        return list(entry[1]) if entry else []

    def items(self) -> Iterator[tuple[str, list[str]]]:
        for name, values in self._fields.values():
            yield name, list(values)

    def names(self) -> list[str]:
        return [name for name, _values in self._fields.values()]

    def copy(self) -> HeaderCollection:
        clone = HeaderCollection()
        for name, values in self.items():
            for value in values:
                clone.add(name, value)
        return clone

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderCollection):
            return NotImplemented
        return [(n.lower(), v) for n, v in self.items()] == [
            (n.lower(), v) for n, v in other.items()
        ]

    def __repr__(self) -> str:
        return f"HeaderCollection({list(self.items())!r})"


def _unquote(value: str) -> str:
    """Strip one layer of surrounding double quotes."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def parse_parameters(segments: Iterable[str]) -> dict[str, str]:
    """Turn ``key=value`` segments into a map with case-folded keys."""
    params: dict[str, str] = {}
    for segment in segments:
        key, sep, value = segment.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if not key or not value:
            continue
        params[key] = _unquote(value)
    return params


def _segments(raw: str) -> list[str]:
    return [s for s in raw.split(";") if s.strip()]


@dataclass(frozen=True)
class ContentType:
    """Parsed Content-Type value."""

    type: str
    subtype: str
    parameters: dict[str, str] = field(default_factory=dict)
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> ContentType:
        segments = _segments(raw)
        if not segments:
            return cls(type="", subtype="", parameters={}, raw=raw)
        main, _sep, sub = segments[0].partition("/")
        return cls(
            type=main.strip().lower(),
            subtype=sub.strip().lower(),
            parameters=parse_parameters(segments[1:]),
            raw=raw,
        )

    @property
    def mime_type(self) -> str:
        return f"{self.type}/{self.subtype}" if self.subtype else self.type

    @property
    def charset(self) -> str | None:
        return self.parameters.get("charset")

    @property
    def name(self) -> str | None:
        return self.parameters.get("name")

    @property
    def boundary(self) -> str | None:
        return self.parameters.get("boundary")

    @property
    def protocol(self) -> str | None:
        return self.parameters.get("protocol")

    def __str__(self) -> str:
        rendered = self.mime_type
        for key, value in self.parameters.items():
            rendered += f'; {key}="{value}"'
        return rendered


class DispositionType(Enum):
    """RFC 2183 disposition kinds."""

    INLINE = "inline"
    ATTACHMENT = "attachment"
    UNKNOWN = "unknown"


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class ContentDisposition:
    """Parsed Content-Disposition value."""

    kind: DispositionType
    parameters: dict[str, str] = field(default_factory=dict)
    raw: str = ""

    @classmethod
    def parse(cls, raw: str) -> ContentDisposition:
        segments = _segments(raw)
        if not segments:
            return cls(kind=DispositionType.UNKNOWN, parameters={}, raw=raw)
        first = segments[0].strip().lower()
        if first == "inline":
            kind = DispositionType.INLINE
        elif first == "attachment":
            kind = DispositionType.ATTACHMENT
        else:
            kind = DispositionType.UNKNOWN
        return cls(kind=kind, parameters=parse_parameters(segments[1:]), raw=raw)

    @property
    def filename(self) -> str | None:
        return self.parameters.get("filename")

    @property
    def size(self) -> int | None:
        try:
            return int(self.parameters.get("size", ""))
        except ValueError:
            return None

    @property
    def creation_date(self) -> datetime | None:
        return _parse_date(self.parameters.get("creation-date"))

    @property
    def modification_date(self) -> datetime | None:
        return _parse_date(self.parameters.get("modification-date"))

    @property
    def read_date(self) -> datetime | None:
        return _parse_date(self.parameters.get("read-date"))
