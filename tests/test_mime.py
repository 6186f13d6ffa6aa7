"""Tests for MIME parts, multipart containers and attachments."""

import base64
import io
import re

import pytest

from mailcraft.common.exceptions import MailError, ValidationError
from mailcraft.mime import (
    Attachment,
    Boundary,
    MimePart,
    MultipartMessage,
    Part,
    create_text_part,
)
from mailcraft.mime.multipart import PREAMBLE


class TestPart:
    def test_text_defaults(self):
        part = Part("Hello", type="text/plain")
        assert part.encoding == "8bit"
        assert not part.is_stream
        assert part.content() == "Hello"
        assert part.header_lines() == [
            ("Content-Type", "text/plain"),
            ("Content-Transfer-Encoding", "8bit"),
        ]

    def test_text_part_factory(self):
        part = create_text_part("Grüße")
        assert part.content() == "Gr=C3=BC=C3=9Fe"
        assert part.headers("\r\n") == (
            "Content-Type: text/plain; charset=UTF-8\r\n"
            "Content-Transfer-Encoding: quoted-printable\r\n")

    def test_all_headers(self):
        part = Part("<p>hi</p>", type="text/html", charset="UTF-8",
                    encoding="quoted-printable", id="abc",
                    disposition="inline", filename="page.html",
                    description="A page", location="http://example.com/",
                    language="en", boundary="xyz")
        names = [name for name, _ in part.header_lines()]
        assert names == [
            "Content-Type", "Content-Transfer-Encoding", "Content-ID",
            "Content-Disposition", "Content-Description",
            "Content-Location", "Content-Language",
        ]
        lines = dict(part.header_lines("\r\n"))
        assert lines["Content-Type"] == (
            'text/html; charset=UTF-8;\r\n boundary="xyz"')
        assert lines["Content-ID"] == "<abc>"
        assert lines["Content-Disposition"] == 'inline; filename="page.html"'

    def test_binary_needs_disposition(self):
        part = Part(b"\x00\x01")
        with pytest.raises(MailError, match="disposition"):
            part.header_lines()

    def test_disposition_needs_filename(self):
        part = Part(b"\x00\x01", disposition="attachment")
        with pytest.raises(MailError, match="filename"):
            part.header_lines()

    def test_non_ascii_filename(self):
        part = Part(b"data", disposition="attachment", filename="résumé.pdf")
        assert dict(part.header_lines())["Content-Disposition"] == (
            "attachment; filename*=utf-8''r%C3%A9sum%C3%A9.pdf")

    def test_stream_defaults_to_base64(self):
        stream = io.BytesIO(b"binary data")
        part = Part(stream, disposition="attachment", filename="data.bin")
        assert part.is_stream
        assert part.encoding == "base64"
        assert part.content() == base64.b64encode(b"binary data").decode()

    def test_stream_can_be_rendered_twice(self):
        stream = io.BytesIO(b"skip|content")
        stream.seek(5)
        part = Part(stream, disposition="attachment", filename="x.bin")
        assert part.raw_content() == b"content"
        assert part.content() == part.content()

    def test_stream_with_explicit_encoding(self):
        stream = io.BytesIO(b"caf\xc3\xa9\n")
        part = Part(stream, type="text/plain", encoding="quoted-printable",
                    disposition="inline", filename="note.txt")
        assert part.encoding == "quoted-printable"
        assert part.content() == "caf=C3=A9\n"

    def test_invalid_content(self):
        with pytest.raises(ValidationError):
            Part(12345)

    def test_set_content(self):
        part = create_text_part("one")
        part.set_content("two")
        assert part.raw_content() == "two"
        assert part.encoding == "quoted-printable"

    def test_satisfies_protocol(self):
        assert isinstance(Part("x"), MimePart)
        assert isinstance(MultipartMessage(), MimePart)


class TestMultipartMessage:
    def test_empty(self):
        assert MultipartMessage().generate() == ""

    def test_single_part_is_transparent(self):
        part = create_text_part("Only part")
        message = MultipartMessage([part])
        assert not message.is_multipart()
        assert message.generate("\r\n") == part.content("\r\n")
        assert message.header_lines() == part.header_lines()

    def test_two_parts(self):
        boundary = Boundary("frontier")
        message = MultipartMessage(
            [create_text_part("plain text"),
             create_text_part("<b>html</b>", "text/html")],
            type="multipart/alternative", boundary=boundary)
        body = message.generate("\r\n")

        assert body.startswith(PREAMBLE + "\r\n\r\n--frontier\r\n")
        assert body.count("frontier") == 3
        assert body.endswith("\r\n--frontier--")
        assert "Content-Type: text/plain; charset=UTF-8" in body
        assert "Content-Type: text/html; charset=UTF-8" in body
        assert "plain text" in body and "<b>html</b>" in body
        assert message.header_lines("\r\n") == [
            ("Content-Type",
             'multipart/alternative;\r\n boundary="frontier"')]

    @pytest.mark.parametrize("count", [2, 3, 5])
    def test_boundary_count(self, count):
        message = MultipartMessage(
            [create_text_part(f"part {i}") for i in range(count)])
        assert message.generate().count(str(message.boundary)) == count + 1

    def test_nested(self):
        inner = MultipartMessage(
            [create_text_part("a"), create_text_part("b", "text/html")],
            type="multipart/alternative")
        outer = MultipartMessage(
            [inner, Part(b"zip", disposition="attachment", filename="a.zip")])
        body = outer.generate()
        assert f'multipart/alternative;\n boundary="{inner.boundary}"' in body
        assert body.count(str(inner.boundary)) == 4
        assert body.count(str(outer.boundary)) == 3

    def test_duplicate_part(self):
        part = create_text_part("x")
        message = MultipartMessage([part])
        with pytest.raises(MailError, match="already added"):
            message.add_part(part)
        # an equal but distinct part is fine
        message.add_part(create_text_part("x"))
        assert len(message.parts) == 2

    def test_remove_and_set_parts(self):
        first, second = create_text_part("1"), create_text_part("2")
        message = MultipartMessage([first, second])
        assert message.remove_part(first)
        assert not message.remove_part(first)
        assert message.parts == [second]
        message.set_parts([])
        assert message.generate() == ""

    def test_parts_returns_copy(self):
        message = MultipartMessage([create_text_part("1")])
        message.parts.clear()
        assert len(message.parts) == 1

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            MultipartMessage(type="text/plain")

    def test_generated_boundaries_differ(self):
        assert str(MultipartMessage().boundary) != str(
            MultipartMessage().boundary)


class TestAttachment:
    def test_from_file(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4 test")
        attachment = Attachment(path)

        assert attachment.type == "application/pdf"
        assert attachment.filename == "report.pdf"
        assert attachment.is_stream
        assert attachment.raw_content() == b"%PDF-1.4 test"
        assert attachment.content() == base64.b64encode(b"%PDF-1.4 test").decode()
        assert dict(attachment.header_lines())["Content-Disposition"] == (
            'attachment; filename="report.pdf"')

    def test_file_is_read_at_render_time(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"first")
        attachment = Attachment(path)
        path.write_bytes(b"second")
        assert attachment.raw_content() == b"second"

    def test_from_stream(self):
        attachment = Attachment("data.bin", io.BytesIO(b"\x00" * 100),
                                "application/x-custom")
        assert attachment.type == "application/x-custom"
        lines = attachment.content().split("\n")
        assert all(len(line) <= 76 for line in lines)

    def test_unknown_extension(self):
        attachment = Attachment("blob.unknownext", io.BytesIO(b"x"))
        assert attachment.type == "application/octet-stream"

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(MailError, match="Cannot read file"):
            Attachment(tmp_path / "missing.txt")

    def test_large_file_is_streamed(self, tmp_path):
        path = tmp_path / "big.bin"
        path.write_bytes(bytes(range(256)) * 4096)
        attachment = Attachment(path)
        chunks = list(attachment.iter_content())
        assert len(chunks) > 1
        assert base64.b64decode("".join(chunks).replace("\n", "")) == \
            bytes(range(256)) * 4096

    def test_generate_id(self):
        attachment = Attachment("logo.png", io.BytesIO(b"png"))
        content_id = attachment.generate_id()
        assert re.fullmatch(r"[0-9a-f]{32}", content_id)
        assert attachment.id == content_id
        attachment.disposition = "inline"
        assert dict(attachment.header_lines())["Content-ID"] == f"<{content_id}>"
