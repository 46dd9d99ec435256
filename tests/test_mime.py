"""
MIME Part Model Tests
=====================

Header scanning, byte-exact part iteration and the line terminator helpers.
"""

import pytest

from pgpmime_mcp.decoder import is_control_part
from pgpmime_mcp.mime import (
    MimePart,
    canonicalize_for_signing,
    canonicalize_signed_data,
    normalize_line_endings,
)


@pytest.fixture
def crlf_multipart():
    return (
        b'Content-Type: multipart/mixed; boundary="b1"\r\n'
        b"\r\n"
        b"This is a multi-part message.\r\n"
        b"--b1\r\n"
        b"Content-Type: text/plain\r\n"
        b"\r\n"
        b"first\r\n"
        b"--b1\r\n"
        b"Content-Type: text/html\r\n"
        b"\r\n"
        b"<p>second</p>\r\n"
        b"--b1--\r\n"
    )


class TestHeaderScan:
    """Tests for MimePart.from_bytes."""

    def test_headers_and_body(self):
        part = MimePart.from_bytes(
            b"From: alice@example.org\r\nSubject: Hi\r\n\r\nBody line\r\n"
        )

        assert part.headers.get("From") == "alice@example.org"
        assert part.headers.get("subject") == "Hi"
        assert part.body == b"Body line\r\n"
        assert part.body_offset == len(b"From: alice@example.org\r\nSubject: Hi\r\n\r\n")

    def test_lf_only_headers(self):
        part = MimePart.from_bytes(b"Subject: Hi\n\nBody\n")

        assert part.headers.get("Subject") == "Hi"
        assert part.body == b"Body\n"

    def test_continuation_joined_with_single_space(self):
        part = MimePart.from_bytes(
            b"Content-Type: multipart/signed;\r\n"
            b'\tprotocol="application/pgp-signature";\r\n'
            b'    boundary="xyz"\r\n'
            b"\r\n"
            b"body"
        )

        assert part.headers.get("Content-Type") == (
            'multipart/signed; protocol="application/pgp-signature"; boundary="xyz"'
        )
        assert part.is_multipart is True
        assert part.boundary == "xyz"
        assert part.content_type.protocol == "application/pgp-signature"

    def test_no_headers_whole_buffer_is_body(self):
        data = b"just some text\r\nwith no headers\r\n"
        part = MimePart.from_bytes(data)

        assert len(part.headers) == 0
        assert part.body_offset == 0
        assert part.body == data

    def test_repeated_headers_appended(self):
        part = MimePart.from_bytes(
            b"Received: one\r\nReceived: two\r\n\r\n"
        )
        assert part.headers.get_all("Received") == ["one", "two"]

    def test_latest_content_type_wins(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="a"\r\n'
            b"Content-Type: text/plain\r\n"
            b"\r\n"
            b"hello"
        )

        assert part.content_type.mime_type == "text/plain"
        assert part.is_multipart is False
        assert part.iter_parts() is None

    def test_disposition_recognized(self):
        part = MimePart.from_bytes(
            b'Content-Disposition: attachment; filename="a.txt"\r\n\r\nx'
        )
        assert part.content_disposition.filename == "a.txt"

    def test_non_utf8_bytes_do_not_raise(self):
        part = MimePart.from_bytes(b"Subject: caf\xe9\r\n\r\n\xff\xfe")
        assert part.body == b"\xff\xfe"


class TestPartIterator:
    """Tests for byte-exact multipart iteration (INV-MIME-01, INV-MIME-02)."""

    def test_iterate_crlf_parts(self, crlf_multipart):
        """
        Contract: MIME
        Enforces: INV-MIME-01

        The CRLF before each delimiter belongs to the delimiter.
        """
        parts = list(MimePart.from_bytes(crlf_multipart).iter_parts())

        assert [p.raw for p in parts] == [
            b"Content-Type: text/plain\r\n\r\nfirst",
            b"Content-Type: text/html\r\n\r\n<p>second</p>",
        ]
        assert parts[0].body == b"first"
        assert parts[1].content_type.subtype == "html"

    def test_crlf_and_lf_yield_same_parts(self, crlf_multipart):
        lf_multipart = crlf_multipart.replace(b"\r\n", b"\n")

        crlf_parts = list(MimePart.from_bytes(crlf_multipart).iter_parts())
        lf_parts = list(MimePart.from_bytes(lf_multipart).iter_parts())

        assert [p.body for p in crlf_parts] == [p.body for p in lf_parts]
        assert [p.content_type for p in crlf_parts] == [p.content_type for p in lf_parts]

    def test_epilogue_ignored(self, crlf_multipart):
        """
        Contract: MIME
        Enforces: INV-MIME-02
        """
        data = crlf_multipart + (
            b"epilogue text\r\n"
            b"--b1\r\n"
            b"Content-Type: text/plain\r\n"
            b"\r\n"
            b"ghost\r\n"
        )
        parts = list(MimePart.from_bytes(data).iter_parts())

        assert len(parts) == 2
        assert all(b"ghost" not in p.raw for p in parts)

    def test_only_final_boundary_yields_nothing(self):
        """
        Contract: MIME
        Enforces: INV-MIME-02, INV-DECODE-02
        """
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="b1"\r\n\r\n--b1--\r\n'
        )
        assert list(part.iter_parts()) == []

    def test_missing_final_boundary(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="b1"\r\n\r\n'
            b"--b1\r\nContent-Type: text/plain\r\n\r\none\r\n"
            b"--b1\r\nContent-Type: text/plain\r\n\r\ntruncated"
        )
        parts = list(part.iter_parts())

        assert [p.body for p in parts] == [b"one"]

    def test_transport_padding_after_delimiter(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="b1"\r\n\r\n'
            b"--b1   \r\nContent-Type: text/plain\r\n\r\none\r\n"
            b"--b1--\r\n"
        )
        assert [p.body for p in part.iter_parts()] == [b"one"]

    def test_nested_multipart(self):
        data = (
            b'Content-Type: multipart/mixed; boundary="outer"\r\n\r\n'
            b"--outer\r\n"
            b'Content-Type: multipart/alternative; boundary="inner"\r\n\r\n'
            b"--inner\r\nContent-Type: text/plain\r\n\r\nplain\r\n"
            b"--inner\r\nContent-Type: text/html\r\n\r\n<b>html</b>\r\n"
            b"--inner--\r\n"
            b"\r\n--outer\r\n"
            b"Content-Type: application/pdf\r\n\r\n%PDF\r\n"
            b"--outer--\r\n"
        )
        children = list(MimePart.from_bytes(data).iter_parts())
        grandchildren = list(children[0].iter_parts())

        assert [c.content_type.mime_type for c in children] == [
            "multipart/alternative",
            "application/pdf",
        ]
        assert [g.body for g in grandchildren] == [b"plain", b"<b>html</b>"]

    def test_empty_part(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="X"\n\n--X\n--X\nfoo\n--X--'
        )
        assert [p.raw for p in part.iter_parts()] == [b"", b"foo"]

    def test_marker_prefix_is_not_a_delimiter(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="X"\n\n--X\n--Xtra line\n--X--\n'
        )
        assert [p.raw for p in part.iter_parts()] == [b"--Xtra line"]

    @pytest.mark.parametrize("newline", [b"\r\n", b"\n"])
    def test_rejoined_parts_rebuild_body(self, newline):
        body = newline.join([
            b"--b1",
            b"Content-Type: text/plain",
            b"",
            b"first",
            b"",
            b"--b1",
            b"Content-Type: application/pgp-encrypted",
            b"",
            b"Version: 1",
            b"",
            b"--b1--",
            b"",
        ])
        part = MimePart.from_bytes(
            b'Content-Type: multipart/mixed; boundary="b1"' + newline + newline + body
        )

        raws = [p.raw for p in part.iter_parts()]
        delimiter = newline + b"--b1" + newline
        rebuilt = b"--b1" + newline + delimiter.join(raws) + newline + b"--b1--" + newline

        assert part.body == body
        assert rebuilt == body

    def test_lf_control_part(self):
        part = MimePart.from_bytes(
            b'Content-Type: multipart/encrypted; protocol="application/pgp-encrypted"; boundary="b"\n'
            b"\n"
            b"--b\n"
            b"Content-Type: application/pgp-encrypted\n"
            b"\n"
            b"Version: 1\n"
            b"\n"
            b"--b\n"
            b"Content-Type: application/octet-stream\n"
            b"\n"
            b"-----BEGIN PGP MESSAGE-----\n"
            b"-----END PGP MESSAGE-----\n"
            b"\n"
            b"--b--\n"
        )
        control, payload = list(part.iter_parts())

        assert control.body == b"Version: 1\n"
        assert is_control_part(control)
        assert payload.body == b"-----BEGIN PGP MESSAGE-----\n-----END PGP MESSAGE-----\n"

    def test_boundary_without_parameter(self):
        part = MimePart.from_bytes(b"Content-Type: multipart/mixed\r\n\r\n--x--\r\n")

        assert part.is_multipart is True
        assert part.iter_parts() is None


class TestLineTerminators:
    """Tests for canonicalization helpers (POST-VERIFY-01)."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (b"text\r\n\r\n", b"text\r\n"),
            (b"text\n\n\n", b"text\n"),
            (b"text\r\n", b"text\r\n"),
            (b"text", b"text"),
            (b"text\r\r\n", b"text"),
            (b"", b""),
        ],
    )
    def test_canonicalize_signed_data(self, raw, expected):
        assert canonicalize_signed_data(raw) == expected

    def test_canonicalize_for_signing(self):
        assert canonicalize_for_signing(b"a\nb\r\nc\n") == b"a\r\nb\r\nc\r\n"

    def test_normalize_line_endings(self):
        assert normalize_line_endings(b"a\r\nb\nc") == b"a\nb\nc"
        assert normalize_line_endings(b"a\r\nb\nc", b"\r\n") == b"a\r\nb\r\nc"
