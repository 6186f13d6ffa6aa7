"""MIME encoding and body structure."""

from .attachment import Attachment
from .encoder import (
    DISPOSITION_ATTACHMENT,
    DISPOSITION_INLINE,
    ENCODING_7BIT,
    ENCODING_8BIT,
    ENCODING_BASE64,
    ENCODING_QUOTEDPRINTABLE,
    LINEEND,
    LINELENGTH,
    MULTIPART_ALTERNATIVE,
    MULTIPART_MIXED,
    MULTIPART_RELATED,
    TYPE_HTML,
    TYPE_OCTETSTREAM,
    TYPE_TEXT,
    Boundary,
    EncodedValue,
    detect_charset,
    encode,
    is_printable,
)
from .multipart import MultipartMessage
from .part import MimePart, Part, create_text_part

__all__ = [
    "Attachment",
    "Boundary",
    "DISPOSITION_ATTACHMENT",
    "DISPOSITION_INLINE",
    "ENCODING_7BIT",
    "ENCODING_8BIT",
    "ENCODING_BASE64",
    "ENCODING_QUOTEDPRINTABLE",
    "EncodedValue",
    "LINEEND",
    "LINELENGTH",
    "MULTIPART_ALTERNATIVE",
    "MULTIPART_MIXED",
    "MULTIPART_RELATED",
    "MimePart",
    "MultipartMessage",
    "Part",
    "TYPE_HTML",
    "TYPE_OCTETSTREAM",
    "TYPE_TEXT",
    "create_text_part",
    "detect_charset",
    "encode",
    "is_printable",
]
