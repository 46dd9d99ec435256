"""
MIME Writer
===========

Builder for leaf and composite MIME entities with header folding.

INV-MIME-04: A composite writer refuses a Content-Type that is not
             multipart/* or does not carry the writer's own boundary.
INV-MIME-05: Header lines longer than 80 characters are folded with
             CRLF + TAB continuations.
"""

from __future__ import annotations

import uuid

from pgpmime_mcp.headers import ContentType, HeaderCollection
from pgpmime_mcp.mime import CRLF, MimePart, line_terminator_width

SINGLE_VALUE_HEADERS = frozenset({"to", "cc", "bcc", "from", "subject", "mime-version"})

MAX_LINE_LENGTH = 80
FOLD_WIDTH = 78


def fold_header(name: str, value: str) -> str:
    """Render one header line, folding it only when longer than 80 characters."""
    line = f"{name}: {value}"
    if len(line) <= MAX_LINE_LENGTH:
        return line + "\r\n"
    if ";" in line:
        segments = [segment.strip() for segment in line.split(";")]
        return ";\r\n\t".join(s for s in segments if s) + "\r\n"
    chunks = [line[i:i + FOLD_WIDTH] for i in range(0, len(line), FOLD_WIDTH)]
    return "\r\n\t".join(chunks) + "\r\n"


class MimeWriter:
    """
    Leaf-or-composite MIME entity builder.

    A writer becomes composite when its first child is added: a random
    boundary is assigned and Content-Type becomes multipart/mixed until a
    matching multipart type is set explicitly.
    """

    def __init__(self) -> None:
        self.headers = HeaderCollection()
        self.body: bytes | None = None
        self.parts: list[MimePart] = []
        self._boundary: str | None = None

    @property
    def boundary(self) -> str | None:
        return self._boundary

    def add_header(self, name: str, value: str) -> bool:
        """
        Add a header value.

        Returns False when a composite writer is handed a Content-Type that
        would break its framing; the header is left unchanged.
        """
        lowered = name.lower()
        if lowered == "content-type" and self._boundary is not None:
            content_type = ContentType.parse(value)
            if content_type.type != "multipart" or content_type.boundary != self._boundary:
                return False

        if lowered.startswith("content-") or lowered in SINGLE_VALUE_HEADERS:
            self.headers.set(name, value)
        else:
            self.headers.add(name, value)
        return True

    def set_body(self, body: bytes) -> None:
        self.body = bytes(body)

    def add_part(self, part: MimeWriter | MimePart) -> None:
        if isinstance(part, MimeWriter):
            part = MimePart.from_bytes(part.raw)
        self.parts.append(part)

        if self._boundary is None:
            self._boundary = str(uuid.uuid4()).lower()
            self.headers.set("Content-Type", f'multipart/mixed; boundary="{self._boundary}"')

    @property
    def raw(self) -> bytes:
        out = bytearray()
        for name, values in self.headers.items():
            for value in values:
                out += fold_header(name, value).encode("utf-8")
        out += CRLF

        if self._boundary is not None:
            delimiter = f"\r\n--{self._boundary}\r\n".encode("utf-8")
            for part in self.parts:
                out += delimiter
                out += part.raw
            out += f"\r\n--{self._boundary}--\r\n".encode("utf-8")
        elif self.body is not None:
            out += self.body

        if not out.endswith(b"\n"):
            out += CRLF
        return bytes(out)

    @classmethod
    def wrap(cls, outer: MimePart, inner: MimePart) -> MimeWriter:
        """
        Replace outer's content with inner's.

        Outer non-Content-* headers are kept, followed by inner's Content-*
        headers and body.
        """
        writer = cls()
        for name, values in outer.headers.items():
            if name.lower().startswith("content-"):
                continue
            for value in values:
                writer.add_header(name, value)
        for name, values in inner.headers.items():
            if name.lower().startswith("content-"):
                writer.add_header(name, values[-1])
        body = inner.body
        if not len(inner.headers):
            # Header-less entity: drop the empty header block, if any.
            body = body[line_terminator_width(body, 0):]
        writer.set_body(body)
        return writer
