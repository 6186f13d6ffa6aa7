"""
Mail message envelope.

A Message combines a header block with a body. The body is either plain
text or a MIME tree, in which case the MIME headers describing it are
derived from the tree whenever the message is rendered.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from .address import Address
from .common.exceptions import EncodingError, MailError, ValidationError
from .headers import (
    EOL,
    AddressInput,
    HeaderFormat,
    Headers,
    can_be_encoded,
    normalize_header,
)
from .mime.multipart import MultipartMessage
from .mime.part import Part

logger = logging.getLogger(__name__)

MULTIVALUED_HEADERS = ("From", "To", "Cc", "Bcc", "Reply-To")


class Message:
    """
    An e-mail message.

    Example:
        message = Message()
        message.set_from("sender@example.com", "Sender")
        message.add_to("recipient@example.com")
        message.set_subject("Hello")
        message.set_body("Hi there")
        raw = message.to_string()
    """

    def __init__(self) -> None:
        self._headers = Headers()
        self._body: Union[str, MultipartMessage, None] = None
        self._body_headers: list[str] = []
        self._headers.set_date(datetime.now().astimezone())

    @property
    def headers(self) -> Headers:
        """The header collection."""
        return self._headers

    def is_valid(self) -> bool:
        """A message needs at least one From address."""
        return bool(self.get_from())

    def add_header(self, name: str, value: Any) -> "Message":
        """
        Add a header.

        From, To, Cc, Bcc and Reply-To accumulate addresses; any other
        header is overwritten.

        Raises:
            EncodingError: If a text value cannot be encoded.
            ValidationError: If the value is invalid for the header.
        """
        name = normalize_header(name)
        if isinstance(value, str) and not can_be_encoded(value):
            raise EncodingError(f"Value can not be encoded: {value!r}")
        if name in MULTIVALUED_HEADERS:
            self._headers.add_address(name, value)
        else:
            self._headers.set(name, value)
        return self

    def replace_header(self, name: str, value: Any) -> "Message":
        """Set a header, replacing all previous values."""
        self._headers.set(name, value)
        return self

    def get_header(self, name: str,
                   fmt: HeaderFormat = HeaderFormat.RAW) -> Any:
        """Get a header value, raw or as an encoded line."""
        return self._headers.get(name, fmt)

    def set_date(self, value: Any) -> "Message":
        self._headers.set_date(value)
        return self

    def get_date(self) -> Optional[datetime]:
        return self._headers.get("Date")

    # Address headers

    def _set_addresses(self, header: str, address: AddressInput,
                       name: Optional[str]) -> "Message":
        self._headers.set_address(header, address, name)
        return self

    def _add_addresses(self, header: str, address: AddressInput,
                       name: Optional[str]) -> "Message":
        self._headers.add_address(header, address, name)
        return self

    def _get_addresses(self, header: str) -> list[Address]:
        addresses = self._headers.get_address(header)
        return list(addresses.values()) if addresses else []

    def set_from(self, address: AddressInput,
                 name: Optional[str] = None) -> "Message":
        return self._set_addresses("From", address, name)

    def add_from(self, address: AddressInput,
                 name: Optional[str] = None) -> "Message":
        return self._add_addresses("From", address, name)

    def get_from(self) -> list[Address]:
        return self._get_addresses("From")

    def set_to(self, address: AddressInput,
               name: Optional[str] = None) -> "Message":
        return self._set_addresses("To", address, name)

    def add_to(self, address: AddressInput,
               name: Optional[str] = None) -> "Message":
        return self._add_addresses("To", address, name)

    def get_to(self) -> list[Address]:
        return self._get_addresses("To")

    def set_cc(self, address: AddressInput,
               name: Optional[str] = None) -> "Message":
        return self._set_addresses("Cc", address, name)

    def add_cc(self, address: AddressInput,
               name: Optional[str] = None) -> "Message":
        return self._add_addresses("Cc", address, name)

    def get_cc(self) -> list[Address]:
        return self._get_addresses("Cc")

    def set_bcc(self, address: AddressInput,
                name: Optional[str] = None) -> "Message":
        return self._set_addresses("Bcc", address, name)

    def add_bcc(self, address: AddressInput,
                name: Optional[str] = None) -> "Message":
        return self._add_addresses("Bcc", address, name)

    def get_bcc(self) -> list[Address]:
        return self._get_addresses("Bcc")

    def set_reply_to(self, address: AddressInput,
                     name: Optional[str] = None) -> "Message":
        return self._set_addresses("Reply-To", address, name)

    def add_reply_to(self, address: AddressInput,
                     name: Optional[str] = None) -> "Message":
        return self._add_addresses("Reply-To", address, name)

    def get_reply_to(self) -> list[Address]:
        return self._get_addresses("Reply-To")

    def set_sender(self, address: Union[str, Address],
                   name: Optional[str] = None) -> "Message":
        """Set the single Sender address."""
        return self._set_addresses("Sender", address, name)

    def get_sender(self) -> Optional[Address]:
        addresses = self._get_addresses("Sender")
        return addresses[0] if addresses else None

    def has_address(self, header: str, email: str) -> bool:
        """
        Check whether an address header contains an email.

        Raises:
            ValidationError: If the header is not an address list header.
        """
        name = normalize_header(header)
        if name not in MULTIVALUED_HEADERS:
            raise ValidationError(header, email, "Invalid address header")
        addresses = self._headers.get_address(name) or {}
        return email.lower() in addresses

    # Subject and body

    def set_subject(self, subject: str) -> "Message":
        self._headers.set("Subject", subject)
        return self

    def get_subject(self) -> Optional[str]:
        return self._headers.get("Subject")

    @property
    def body(self) -> Union[str, MultipartMessage, None]:
        return self._body

    def set_body(self, body: Any) -> "Message":
        """
        Set the message body.

        Args:
            body: Text, a MultipartMessage, a single Part, None, or any
                object with its own string representation.

        Raises:
            MailError: If the body cannot be used.
        """
        if isinstance(body, Part):
            body = MultipartMessage([body])
        elif body is not None and not isinstance(body, (str, MultipartMessage)):
            if type(body).__str__ is object.__str__:
                raise MailError(
                    "Body must be a string, a MIME message or provide __str__",
                    {"type": type(body).__name__})
            body = str(body)

        self._body = body
        self._sync_body_headers()
        logger.debug("Message body set to %s", type(body).__name__)
        return self

    def _sync_body_headers(self) -> None:
        for name in self._body_headers:
            self._headers.remove(name)
        self._body_headers = []

        if not isinstance(self._body, MultipartMessage):
            return

        lines = [("Mime-Version", "1.0")]
        if self._body.is_multipart():
            lines.append(("Content-Type",
                          f"{self._body.type};{EOL} "
                          f"boundary=\"{self._body.boundary}\""))
        elif self._body.parts:
            lines.extend(self._body.parts[0].header_lines(EOL))

        for name, value in lines:
            self._headers.set(name, value)
            self._body_headers.append(name)

    def body_text(self) -> str:
        """Render the body as it goes on the wire."""
        if self._body is None:
            return ""
        if isinstance(self._body, MultipartMessage):
            return self._body.generate(EOL)
        return self._body

    def to_string(self) -> str:
        """Render the complete message: headers, blank line, body."""
        self._sync_body_headers()
        body = self.body_text()
        return self._headers.to_string() + body

    def __str__(self) -> str:
        return self.to_string()
