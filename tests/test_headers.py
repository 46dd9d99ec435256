"""
Header Grammar Tests
====================

Content-Type / Content-Disposition parameter grammar and the header
collection.
"""

from datetime import datetime, timezone

from pgpmime_mcp.headers import (
    ContentDisposition,
    ContentType,
    DispositionType,
    HeaderCollection,
    parse_parameters,
)


class TestContentType:
    """Tests for Content-Type parsing (INV-MIME-03)."""

    def test_content_type_parameters(self):
        """
        Contract: MIME
        Enforces: INV-MIME-03
        """
        ct = ContentType.parse(
            'multipart/signed; protocol="application/pgp-signature"; '
            'micalg=pgp-sha256; boundary="abc123"'
        )

        assert ct.type == "multipart"
        assert ct.subtype == "signed"
        assert ct.mime_type == "multipart/signed"
        assert ct.protocol == "application/pgp-signature"
        assert ct.boundary == "abc123"
        assert ct.parameters["micalg"] == "pgp-sha256"

    def test_malformed_parameters_dropped(self):
        """
        Contract: MIME
        Enforces: INV-MIME-03

        Segments without '=', with an empty key or an empty value vanish.
        """
        ct = ContentType.parse("text/plain; charset; =orphan; name=; ; format=flowed")

        assert ct.type == "text"
        assert ct.subtype == "plain"
        assert ct.parameters == {"format": "flowed"}

    def test_keys_case_folded_values_preserved(self):
        ct = ContentType.parse('Multipart/Mixed; BOUNDARY="MiXeD"; Charset=UTF-8')

        assert ct.type == "multipart"
        assert ct.subtype == "mixed"
        assert ct.boundary == "MiXeD"
        assert ct.charset == "UTF-8"

    def test_only_one_layer_of_quotes_removed(self):
        ct = ContentType.parse('text/plain; name=""quoted""')
        assert ct.name == '"quoted"'

    def test_missing_subtype(self):
        ct = ContentType.parse("text")
        assert ct.type == "text"
        assert ct.subtype == ""

    def test_empty_value(self):
        ct = ContentType.parse("")
        assert ct.type == ""
        assert ct.parameters == {}

    def test_str_renders_parameters(self):
        ct = ContentType.parse("text/plain; charset=utf-8")
        assert str(ct) == 'text/plain; charset="utf-8"'


class TestContentDisposition:
    """Tests for Content-Disposition parsing."""

    def test_kinds(self):
        assert ContentDisposition.parse("INLINE").kind is DispositionType.INLINE
        assert ContentDisposition.parse("attachment; x=y").kind is DispositionType.ATTACHMENT
        assert ContentDisposition.parse("form-data").kind is DispositionType.UNKNOWN
        assert ContentDisposition.parse("").kind is DispositionType.UNKNOWN

    def test_filename_and_size(self):
        cd = ContentDisposition.parse('attachment; filename="report.pdf"; size=2048')

        assert cd.filename == "report.pdf"
        assert cd.size == 2048

    def test_malformed_size_is_none(self):
        cd = ContentDisposition.parse("attachment; size=lots")
        assert cd.size is None

    def test_dates(self):
        cd = ContentDisposition.parse(
            'attachment; creation-date="2024-01-02T03:04:05Z"; read-date="yesterday"'
        )

        assert cd.creation_date == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert cd.read_date is None
        assert cd.modification_date is None


class TestHeaderCollection:
    """Tests for the ordered, case-insensitive header map."""

    def test_case_insensitive_lookup(self):
        headers = HeaderCollection([("Subject", "Hello")])

        assert headers.get("subject") == "Hello"
        assert "SUBJECT" in headers

    def test_repeated_values_kept_in_order(self):
        headers = HeaderCollection()
        headers.add("Received", "from a")
        headers.add("received", "from b")

        assert headers.get_all("Received") == ["from a", "from b"]
        assert headers.get("Received") == "from b"
        assert headers.names() == ["Received"]

    def test_set_replaces_and_keeps_spelling(self):
        headers = HeaderCollection([("Content-Type", "text/plain")])
        headers.set("content-type", "text/html")

        assert list(headers.items()) == [("Content-Type", ["text/html"])]

    def test_insertion_order_and_remove(self):
        headers = HeaderCollection([("From", "a"), ("To", "b"), ("Subject", "c")])
        headers.remove("to")

        assert headers.names() == ["From", "Subject"]
        assert len(headers) == 2

    def test_copy_is_independent(self):
        headers = HeaderCollection([("From", "a")])
        clone = headers.copy()
        clone.add("From", "b")

        assert headers.get_all("From") == ["a"]
        assert clone != headers


def test_parse_parameters_trims():
    assert parse_parameters(["  Charset =  utf-8 "]) == {"charset": "utf-8"}
