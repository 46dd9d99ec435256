"""
MIME Part Model
===============

Byte-exact parsing of RFC 822 / MIME entities into headers and body, and a
forward-only iterator over the children of a multipart body.

INV-MIME-01: Parts are byte slices of the input. CRLF is a single two-byte
             terminator and bare LF a one-byte terminator; getting this wrong
             changes the bytes fed to signature verification.
INV-MIME-02: Nothing after the final --boundary-- marker is parsed.
INV-DECODE-02: Nothing in this module raises on malformed input.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from pgpmime_mcp.headers import ContentDisposition, ContentType, HeaderCollection

CR = 0x0D
LF = 0x0A
CRLF = b"\r\n"


def line_terminator_width(data: bytes, index: int) -> int:
    """Width of the line terminator starting at index: 2, 1 or 0."""
    if data[index:index + 2] == CRLF:
        return 2
    if data[index:index + 1] == b"\n":
        return 1
    return 0


def canonicalize_signed_data(raw: bytes) -> bytes:
    """
    Rebuild the byte range a detached signature was made over.

    Every trailing CR/LF is trimmed, then at most one terminator is
    re-admitted: CRLF if the trimmed run began with CRLF, LF if it began
    with LF, nothing if it began with a lone CR.
    """
    end = len(raw)
    while end > 0 and raw[end - 1] in (CR, LF):
        end -= 1
    return raw[:end + line_terminator_width(raw, end)]


def canonicalize_for_signing(raw: bytes) -> bytes:
    """Force CRLF line endings and collapse doubled carriage returns."""
    return raw.replace(b"\n", CRLF).replace(b"\r\r", b"\r")


def normalize_line_endings(data: bytes, newline: bytes = b"\n") -> bytes:
    """Convert CRLF to newline (LF by default)."""
    data = data.replace(CRLF, b"\n")
    if newline != b"\n":
        data = data.replace(b"\n", newline)
    return data


def _is_field_name(name: str) -> bool:
    name = name.strip()
    return bool(name) and not any(ch.isspace() for ch in name)


@dataclass(frozen=True)
class MimePart:
    """A single MIME entity; immutable after construction."""

    raw: bytes
    headers: HeaderCollection = field(default_factory=HeaderCollection)
    content_type: ContentType | None = None
    content_disposition: ContentDisposition | None = None
    body_offset: int = 0
    is_multipart: bool = False
    boundary: str | None = None

    @property
    def body(self) -> bytes:
        return self.raw[self.body_offset:]

    @classmethod
    def from_bytes(cls, data: bytes) -> MimePart:
        """
        Scan header lines up to the first empty line.

        Continuation lines join the previous value with a single space.
        Content-Type and Content-Disposition use their latest occurrence;
        any other repeated header is appended.
        """
        raw = bytes(data)
        headers = HeaderCollection()
        content_type: ContentType | None = None
        content_disposition: ContentDisposition | None = None
        field_name: str | None = None
        field_value = ""
        body_offset: int | None = None

        def flush() -> None:
            nonlocal content_type, content_disposition
            if field_name is None:
                return
            value = field_value.strip()
            headers.add(field_name, value)
            lowered = field_name.lower()
            if lowered == "content-type":
                content_type = ContentType.parse(value)
            elif lowered == "content-disposition":
                content_disposition = ContentDisposition.parse(value)

        position = 0
        while position < len(raw):
            newline = raw.find(b"\n", position)
            line_end = len(raw) if newline == -1 else newline
            next_position = len(raw) if newline == -1 else newline + 1
            line_bytes = raw[position:line_end]
            if line_bytes.endswith(b"\r"):
                line_bytes = line_bytes[:-1]
            line = line_bytes.decode("utf-8", errors="replace")

            if not line:
                body_offset = next_position
                break

            if line[0] in " \t":
                if field_name is None:
                    break
                field_value += " " + line.strip()
            else:
                name, sep, value = line.partition(":")
                if sep and _is_field_name(name):
                    flush()
                    field_name = name.strip()
                    field_value = value.strip()
                elif field_name is None:
                    # First line is not a header: the whole buffer is body.
                    break
            position = next_position

        flush()

        # No headers, or headers never closed by a blank line: all body.
        if not len(headers) or body_offset is None:
            body_offset = 0

        is_multipart = content_type is not None and content_type.type == "multipart"
        return cls(
            raw=raw,
            headers=headers,
            content_type=content_type,
            content_disposition=content_disposition,
            body_offset=body_offset,
            is_multipart=is_multipart,
            boundary=content_type.boundary if is_multipart and content_type else None,
        )

    def iter_parts(self) -> PartIterator | None:
        """Iterator over child parts, or None when this is not a multipart."""
        if not self.is_multipart or not self.boundary:
            return None
        return PartIterator(self.body, self.boundary)

    def is_type(self, type_: str, subtype: str | None = None) -> bool:
        if self.content_type is None or self.content_type.type != type_:
            return False
        return subtype is None or self.content_type.subtype == subtype


class PartIterator:
    """
    Forward-only cursor over the body of a multipart entity.

    Each step returns the bytes between the cursor and the next
    ``<terminator>--boundary`` delimiter. The delimiter's leading line
    terminator (CRLF or LF) belongs to the delimiter, not to the part.
    """

    def __init__(self, data: bytes, boundary: str) -> None:
        token = boundary.encode("utf-8")
        self._marker = b"--" + token
        self._delimiter = b"\n" + self._marker
        self._finished = False

        final_marker = b"--" + token + b"--"
        final = data.find(final_marker)
        if final != -1:
            end = final + len(final_marker)
            end += line_terminator_width(data, end)
            data = data[:end]
        self._data = bytes(data)

        self._position = len(self._data)
        first = self._data.find(self._marker)
        if first != -1:
            self._position = self._skip_line(first + len(token) + 2)

    def _skip_line(self, index: int) -> int:
        """Advance past the rest of the current line, terminator included."""
        width = line_terminator_width(self._data, index)
        if width:
            return index + width
        newline = self._data.find(b"\n", index)
        return len(self._data) if newline == -1 else newline + 1

    def _at_marker(self, index: int) -> bool:
        """True when a ``--boundary`` line starts at index."""
        if not self._data.startswith(self._marker, index):
            return False
        after = index + len(self._marker)
        follow = self._data[after:after + 2]
        return follow in (b"", b"--") or line_terminator_width(self._data, after) > 0 or (
            follow[:1] in (b" ", b"\t")
        )

    def __iter__(self) -> Iterator[MimePart]:
        return self

    def __next__(self) -> MimePart:
        if self._finished or self._position >= len(self._data):
            raise StopIteration

        if self._at_marker(self._position):
            # Empty part: the delimiter's terminator was consumed with the previous line
            part = MimePart.from_bytes(b"")
            after = self._position + len(self._marker)
        else:
            start = self._data.find(self._delimiter, self._position)
            if start == -1:
                self._finished = True
                raise StopIteration

            end = start
            if end > self._position and self._data[end - 1] == CR:
                end -= 1
            part = MimePart.from_bytes(self._data[self._position:end])
            after = start + len(self._delimiter)

        if self._data[after:after + 2] == b"--":
            self._finished = True
        else:
            self._position = self._skip_line(after)
        return part
