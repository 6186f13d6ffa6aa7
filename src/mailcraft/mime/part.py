"""
Single MIME parts.

A Part holds one piece of content (text, bytes or a binary stream) and
knows how to render its MIME headers and its transfer-encoded body.
Stream content is encoded chunk by chunk so large attachments are never
held in memory as a whole.
"""

import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from email.utils import encode_rfc2231
from typing import IO, Iterator, Optional, Protocol, Union, runtime_checkable

from ..common.exceptions import MailError, ValidationError
from .encoder import (
    ENCODING_8BIT,
    ENCODING_BASE64,
    LINEEND,
    TYPE_OCTETSTREAM,
    encode,
    is_printable,
    iter_encode_stream,
)

logger = logging.getLogger(__name__)

Content = Union[str, bytes, IO[bytes]]


@runtime_checkable
class MimePart(Protocol):
    """Interface shared by single parts and multipart containers."""

    def header_lines(self, eol: str = LINEEND) -> list[tuple[str, str]]:
        ...

    def headers(self, eol: str = LINEEND) -> str:
        ...

    def content(self, eol: str = LINEEND) -> str:
        ...

    def is_multipart(self) -> bool:
        ...


def render_headers(lines: list[tuple[str, str]], eol: str = LINEEND) -> str:
    """Render ``(name, value)`` pairs as header lines ending in ``eol``."""
    return "".join(f"{name}: {value}{eol}" for name, value in lines)


@dataclass(eq=False)
class Part:
    """
    A single MIME part.

    Attributes:
        body: The content: text, bytes or a readable binary stream.
        type: MIME type of the content.
        encoding: Content-Transfer-Encoding. Defaults to base64 for
            streams and 8bit otherwise.
        id: Content-ID without angle brackets.
        disposition: ``attachment`` or ``inline``.
        description: Content-Description.
        filename: File name announced in Content-Disposition.
        charset: Charset parameter of Content-Type.
        boundary: Boundary parameter of Content-Type.
        location: Content-Location.
        language: Content-Language.
    """

    body: Content = ""
    type: str = TYPE_OCTETSTREAM
    encoding: Optional[str] = None
    id: Optional[str] = None
    disposition: Optional[str] = None
    description: Optional[str] = None
    filename: Optional[str] = None
    charset: Optional[str] = None
    boundary: Optional[str] = None
    location: Optional[str] = None
    language: Optional[str] = None
    is_stream: bool = field(default=False, init=False)
    _start: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self.set_content(self.body, keep_encoding=self.encoding is not None)

    def set_content(self, content: Content,
                    keep_encoding: bool = False) -> "Part":
        """
        Replace the content of the part.

        Setting a stream switches the encoding to base64 unless
        ``keep_encoding`` is set.

        Raises:
            ValidationError: If the content is not text, bytes or a
                readable stream.
        """
        if isinstance(content, (str, bytes)):
            self.body = content
            self.is_stream = False
            if self.encoding is None:
                self.encoding = ENCODING_8BIT
            return self

        if not callable(getattr(content, "read", None)):
            raise ValidationError(
                "content", content,
                "Content must be a string, bytes or a readable stream")

        self.body = content
        self.is_stream = True
        self._start = self._tell(content)
        if not keep_encoding or self.encoding is None:
            self.encoding = ENCODING_BASE64
        return self

    @staticmethod
    def _tell(stream) -> int:
        try:
            if stream.seekable():
                return stream.tell()
        except (AttributeError, OSError):
            pass
        return 0

    def is_multipart(self) -> bool:
        return False

    @contextmanager
    def open_stream(self) -> Iterator[IO[bytes]]:
        """
        Yield the content as a binary stream positioned at its start.

        Seekable streams are rewound each time so the content can be
        rendered more than once.
        """
        if not self.is_stream:
            data = self.body.encode(self.charset or "utf-8") if isinstance(
                self.body, str) else self.body
            yield io.BytesIO(data)
            return

        stream = self.body
        try:
            if stream.seekable():
                stream.seek(self._start)
        except (AttributeError, OSError):
            logger.debug("Stream of part %r is not seekable", self.filename)
        yield stream

    def iter_content(self, eol: str = LINEEND) -> Iterator[str]:
        """
        Yield the transfer-encoded content in chunks.

        Args:
            eol: Line separator.

        Yields:
            Encoded text chunks.
        """
        if not self.is_stream:
            yield self._encode_buffered(eol)
            return

        with self.open_stream() as stream:
            yield from iter_encode_stream(stream, self.encoding, eol)

    def _encode_buffered(self, eol: str) -> str:
        return encode(self.body, self.encoding or ENCODING_8BIT, eol=eol,
                      charset=self.charset or "UTF-8").value

    def content(self, eol: str = LINEEND) -> str:
        """Return the transfer-encoded content."""
        return "".join(self.iter_content(eol))

    def raw_content(self) -> Union[str, bytes]:
        """Return the content without transfer encoding."""
        if not self.is_stream:
            return self.body
        with self.open_stream() as stream:
            return stream.read()

    def _disposition_value(self) -> str:
        filename = self.filename
        if is_printable(filename) and '"' not in filename:
            return f'{self.disposition}; filename="{filename}"'
        return f"{self.disposition}; filename*={encode_rfc2231(filename, 'utf-8')}"

    def header_lines(self, eol: str = LINEEND) -> list[tuple[str, str]]:
        """
        Build the MIME headers of the part.

        Args:
            eol: Line separator used to fold the boundary parameter.

        Returns:
            Ordered list of ``(name, value)`` pairs.

        Raises:
            MailError: If an attachment-like part lacks a disposition, or
                a part with a disposition lacks a filename.
        """
        content_type = self.type
        if (self.is_stream or not content_type.startswith("text")) \
                and not self.disposition:
            raise MailError("You should provide a disposition for attachments",
                            {"type": content_type})

        if self.charset:
            content_type += f"; charset={self.charset}"
        if self.boundary:
            content_type += f";{eol} boundary=\"{self.boundary}\""

        lines = [("Content-Type", content_type)]

        if self.encoding:
            lines.append(("Content-Transfer-Encoding", self.encoding))

        if self.id:
            lines.append(("Content-ID", f"<{self.id}>"))

        if self.disposition:
            if not self.filename:
                raise MailError("You should provide a filename for the attachment",
                                {"disposition": self.disposition})
            lines.append(("Content-Disposition", self._disposition_value()))

        if self.description:
            lines.append(("Content-Description", self.description))

        if self.location:
            lines.append(("Content-Location", self.location))

        if self.language:
            lines.append(("Content-Language", self.language))

        return lines

    def headers(self, eol: str = LINEEND) -> str:
        """Return the MIME headers as text, each line ending in ``eol``."""
        return render_headers(self.header_lines(eol), eol)


def create_text_part(text: str, mime_type: str = "text/plain",
                     charset: str = "UTF-8",
                     encoding: str = "quoted-printable") -> Part:
    """
    Factory function to create a text part.

    Args:
        text: The text content.
        mime_type: ``text/plain``, ``text/html`` or another text type.
        charset: Charset of the text.
        encoding: Transfer encoding.

    Returns:
        Configured Part instance.
    """
    return Part(text, type=mime_type, charset=charset, encoding=encoding)
