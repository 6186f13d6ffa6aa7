"""
Value encoding for mail composition.

This module turns text and bytes into wire-safe representations:
printability checks, RFC 2047 encoded words for header values, and
quoted-printable or base64 transfer encoding for bodies. It also hands
out the boundary tokens that separate multipart bodies.
"""

import base64
import hashlib
import itertools
import logging
import re
import secrets
import threading
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from ..common.exceptions import EncodingError, ValidationError

logger = logging.getLogger(__name__)

TYPE_OCTETSTREAM = "application/octet-stream"
TYPE_TEXT = "text/plain"
TYPE_HTML = "text/html"

ENCODING_7BIT = "7bit"
ENCODING_8BIT = "8bit"
ENCODING_QUOTEDPRINTABLE = "quoted-printable"
ENCODING_BASE64 = "base64"

DISPOSITION_ATTACHMENT = "attachment"
DISPOSITION_INLINE = "inline"

MULTIPART_ALTERNATIVE = "multipart/alternative"
MULTIPART_MIXED = "multipart/mixed"
MULTIPART_RELATED = "multipart/related"

LINELENGTH = 76
LINEEND = "\n"

# Raw input for a base64 line of exactly LINELENGTH characters
BASE64_LINE_BYTES = LINELENGTH // 4 * 3

_NOT_PRINTABLE = re.compile(r"[^\x20-\x7e]")
_CHARSET = re.compile(
    r"=\?(?P<charset>[\x21\x23-\x26\x2a\x2b\x2d\x5e\x5f\x60\x7b-\x7ea-zA-Z0-9]+)"
    r"\?(?P<encoding>[QqBb])\?(?P<text>[\x21-\x3e\x40-\x7e]+)"
)

# Characters that stay literal inside a Q encoded word
_Q_SAFE = frozenset(
    b"abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!*+-/"
)


@dataclass(frozen=True)
class EncodedValue:
    """A string tagged with the encoding that produced it."""

    value: str
    encoding: str

    RAW = "raw"
    QUOTED_PRINTABLE = "quoted-printable"
    BASE64 = "base64"
    ENCODED_WORD = "encoded-word"

    def __str__(self) -> str:
        return self.value


def is_printable(value: str) -> bool:
    """
    Check that a string holds printable ASCII only.

    Args:
        value: The string to check.

    Returns:
        True if every character lies in 0x20-0x7E.
    """
    return _NOT_PRINTABLE.search(value) is None


def detect_charset(value: str) -> str:
    """
    Return the charset named by the first encoded word in a value.

    Args:
        value: A header value that may contain RFC 2047 encoded words.

    Returns:
        The upper-cased charset, or ``ASCII`` when there is no encoded word.
    """
    match = _CHARSET.search(value)
    if match:
        return match.group("charset").upper()
    return "ASCII"


def _scheme_name(scheme: str) -> str:
    if scheme in ("Q", "q", ENCODING_QUOTEDPRINTABLE):
        return "Q"
    if scheme in ("B", "b", ENCODING_BASE64):
        return "B"
    raise ValidationError("encoding", scheme, "Invalid encoding scheme")


def _as_text(value: Union[str, bytes], charset: str) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            raise EncodingError(
                f"Value is not valid {charset}", charset=charset) from e
    try:
        value.encode(charset)
    except (UnicodeEncodeError, LookupError) as e:
        raise EncodingError(
            f"Value cannot be represented in {charset}", charset=charset) from e
    return value


def _as_bytes(value: Union[str, bytes], charset: str) -> bytes:
    if isinstance(value, bytes):
        _as_text(value, charset)
        return value
    try:
        return value.encode(charset)
    except (UnicodeEncodeError, LookupError) as e:
        raise EncodingError(
            f"Value cannot be represented in {charset}", charset=charset) from e


def encode(
    value: Union[str, bytes],
    scheme: str,
    header: Optional[str] = None,
    eol: str = LINEEND,
    charset: str = "UTF-8",
    line_length: int = LINELENGTH,
) -> EncodedValue:
    """
    Encode a value for transport.

    With ``header`` set (the empty string included) the value becomes a
    sequence of RFC 2047 encoded words folded with ``eol`` plus a space,
    each line at most ``line_length`` long counting the ``header: ``
    prefix on the first line. Without ``header`` the value is body
    content and gets plain quoted-printable or base64 encoding.

    Args:
        value: Text or bytes to encode.
        scheme: ``7bit``, ``8bit``, ``Q``/``quoted-printable`` or
            ``B``/``base64``.
        header: Name of the header the value belongs to, or None for
            body content.
        eol: Line separator.
        charset: Charset the value is, or must be representable in.
        line_length: Maximum line length.

    Returns:
        The encoded value tagged with the encoding used.

    Raises:
        EncodingError: If the value does not fit the charset, or 7bit
            content holds 8-bit data.
        ValidationError: If the scheme is unknown.
    """
    if scheme in (ENCODING_7BIT, ENCODING_8BIT):
        if scheme == ENCODING_7BIT:
            data = value.encode("utf-8", "surrogatepass") if isinstance(
                value, str) else value
            if any(octet >= 0x80 for octet in data):
                raise EncodingError("7bit content holds 8-bit data",
                                    charset="US-ASCII")
        if isinstance(value, bytes):
            value = _as_text(value, charset)
        return EncodedValue(value, EncodedValue.RAW)

    name = _scheme_name(scheme)

    if header is not None:
        text = _as_text(value, charset)
        if is_printable(text):
            return EncodedValue(text, EncodedValue.RAW)
        offset = len(header) + 2 if header else 0
        encoded = _encode_header(text, name, charset, offset, eol, line_length)
        return EncodedValue(encoded, EncodedValue.ENCODED_WORD)

    data = _as_bytes(value, charset)
    if name == "B":
        return EncodedValue(encode_base64(data, eol, line_length),
                            EncodedValue.BASE64)
    return EncodedValue(encode_quoted_printable(data, eol, line_length),
                        EncodedValue.QUOTED_PRINTABLE)


def _q_char(char: bytes) -> str:
    return "".join(
        chr(octet) if octet in _Q_SAFE else f"={octet:02X}" for octet in char
    )


def _wrap_words(words: list[str], offset: int, fold: str,
                line_length: int) -> tuple[str, int]:
    out = ""
    column = offset
    for i, word in enumerate(words):
        if i == 0:
            out = word
            column += len(word)
        elif column + 1 + len(word) > line_length:
            out += fold + word
            column = 1 + len(word)
        else:
            out += " " + word
            column += 1 + len(word)
    return out, column


def wrap_text(text: str, offset: int = 0, eol: str = LINEEND,
              line_length: int = LINELENGTH) -> str:
    """
    Word-wrap printable text for a header.

    Lines are broken at spaces only, the broken space being replaced by
    ``eol`` plus a space. Words longer than a line are kept intact.
    """
    return _wrap_words(text.split(" "), offset, eol + " ", line_length)[0]


def _encode_header(text: str, scheme: str, charset: str, offset: int,
                   eol: str, line_length: int) -> str:
    fold = eol + " "
    prefix = f"=?{charset}?{scheme}?"
    overhead = len(prefix) + 2

    def payload_length(octets: int, q_length: int) -> int:
        if scheme == "B":
            return (octets + 2) // 3 * 4
        return q_length

    words = text.split(" ")
    first = next(i for i, word in enumerate(words) if not is_printable(word))
    out, column = _wrap_words(words[:first], offset, fold, line_length)

    if first:
        leading = words[first].encode(charset)
        needed = overhead + payload_length(len(leading), len(_q_char(leading)))
        if column + 1 + needed <= line_length:
            out += " "
            column += 1
        else:
            out += fold
            column = 1

    def emit(chunk: list[bytes]) -> str:
        data = b"".join(chunk)
        if scheme == "B":
            payload = base64.b64encode(data).decode("ascii")
        else:
            payload = "".join(_q_char(char) for char in chunk)
        return prefix + payload + "?="

    chunk: list[bytes] = []
    octets = q_length = 0
    for char in " ".join(words[first:]):
        raw = char.encode(charset)
        length = payload_length(octets + len(raw), q_length + len(_q_char(raw)))
        if chunk and column + overhead + length > line_length:
            out += emit(chunk) + fold
            column = 1
            chunk, octets, q_length = [], 0, 0
        chunk.append(raw)
        octets += len(raw)
        q_length += len(_q_char(raw))
    out += emit(chunk)
    return out


def encode_base64(data: bytes, eol: str = LINEEND,
                  line_length: int = LINELENGTH) -> str:
    """Base64-encode bytes, wrapping lines at ``line_length``."""
    encoded = base64.b64encode(data).decode("ascii")
    return eol.join(
        encoded[i:i + line_length] for i in range(0, len(encoded), line_length)
    )


def _qp_line(line: bytes) -> str:
    out = []
    last = len(line) - 1
    for i, octet in enumerate(line):
        if octet in (0x20, 0x09):
            out.append(f"={octet:02X}" if i == last else chr(octet))
        elif 33 <= octet <= 126 and octet != 0x3D:
            out.append(chr(octet))
        else:
            out.append(f"={octet:02X}")
    return "".join(out)


def _triple_safe(line: str, cut: int) -> int:
    if line[cut - 1] == "=":
        return cut - 1
    if line[cut - 2] == "=":
        return cut - 2
    return cut


def fold_quoted_printable(line: str, line_length: int = LINELENGTH,
                          eol: str = LINEEND) -> str:
    """
    Wrap one quoted-printable encoded line with soft line breaks.

    Every output line but the last ends in ``=``. A fold never splits an
    ``=XX`` escape and never leaves a continuation line starting with a
    dot. A run of dots too long to fold around gets the dot that starts
    the continuation line escaped as ``=2E`` instead.

    Args:
        line: A single encoded line without line terminator.
        line_length: Maximum length of an output line, soft break included.
        eol: Line separator.

    Returns:
        The folded line.
    """
    width = line_length - 1
    pieces = []
    pos = 0
    while len(line) - pos > line_length:
        cut = _triple_safe(line, pos + width)
        while line[cut] == "." and cut - 1 > pos:
            cut = _triple_safe(line, cut - 1)

        if cut <= pos or line[cut] == ".":
            cut = _triple_safe(line, pos + width)
            if line[cut] == ".":
                logger.warning("Escaping leading dot of folded line at offset %d",
                               cut)
                line = line[:cut] + "=2E" + line[cut + 1:]

        pieces.append(line[pos:cut] + "=")
        pos = cut
    pieces.append(line[pos:])
    return eol.join(pieces)


def _strip_eol(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line


def encode_quoted_printable(data: bytes, eol: str = LINEEND,
                            line_length: int = LINELENGTH) -> str:
    """
    Quoted-printable encode bytes per RFC 2045.

    Hard line breaks in the input (LF or CRLF) are kept and rendered with
    ``eol``; long lines are folded by :func:`fold_quoted_printable`.
    """
    return eol.join(
        fold_quoted_printable(_qp_line(_strip_eol(line)), line_length, eol)
        for line in data.split(b"\n")
    )


def _iter_stream_lines(stream) -> Iterator[bytes]:
    ended = True
    for line in iter(stream.readline, b""):
        ended = line.endswith(b"\n")
        yield _strip_eol(line)
    if ended:
        yield b""


def iter_encode_stream(stream, encoding: str, eol: str = LINEEND,
                       block_size: int = BASE64_LINE_BYTES * 1024
                       ) -> Iterator[str]:
    """
    Encode a binary stream chunk by chunk.

    Base64 reads blocks that are a multiple of one output line worth of
    input, so every chunk but the last ends on a full line. Quoted-printable
    reads the stream line by line.

    Args:
        stream: Binary file-like object positioned at the content start.
        encoding: ``base64`` or ``quoted-printable``; anything else is
            passed through undecoded as latin-1 text.
        eol: Line separator.
        block_size: Bytes read per chunk.

    Yields:
        Encoded text chunks; concatenated they form the whole content.
    """
    if encoding == ENCODING_QUOTEDPRINTABLE:
        first = True
        for line in _iter_stream_lines(stream):
            yield ("" if first else eol) + fold_quoted_printable(
                _qp_line(line), LINELENGTH, eol)
            first = False
        return

    if encoding == ENCODING_BASE64:
        block_size = max(BASE64_LINE_BYTES,
                         block_size // BASE64_LINE_BYTES * BASE64_LINE_BYTES)
        first = True
        for block in iter(lambda: stream.read(block_size), b""):
            yield ("" if first else eol) + encode_base64(block, eol)
            first = False
        return

    for block in iter(lambda: stream.read(block_size), b""):
        yield block.decode("latin-1")


class Boundary:
    """
    A multipart boundary token.

    Generated tokens combine random bytes with a process-wide counter so
    that boundaries created in quick succession, or from several threads,
    never collide.
    """

    _counter = itertools.count()
    _lock = threading.Lock()

    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token or self.generate()

    @classmethod
    def generate(cls) -> str:
        """Create a new unique boundary token."""
        with cls._lock:
            sequence = next(cls._counter)
        seed = f"{secrets.token_hex(16)}{sequence}".encode("ascii")
        return "=_" + hashlib.md5(seed, usedforsecurity=False).hexdigest()

    def line(self, eol: str = LINEEND) -> str:
        """Return the delimiter line that opens a part."""
        return f"{eol}--{self.token}{eol}"

    def end(self, eol: str = LINEEND) -> str:
        """Return the closing delimiter."""
        return f"{eol}--{self.token}--{eol}"

    def __str__(self) -> str:
        return self.token

    def __repr__(self) -> str:
        return f"Boundary({self.token!r})"
