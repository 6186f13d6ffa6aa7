"""
Typed mail header storage.

Headers keeps every field of a message in insertion order under its
normalized name. Address fields hold ordered address lists, Content-Type
is parsed into type and parameters, Date is kept as a datetime, and all
other fields are plain strings. Values are validated when they are set
and encoded only when the header block is rendered.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
from typing import Any, Iterator, Optional, Union

from .address import Address
from .common.exceptions import EncodingError, MailError, ValidationError
from .mime.encoder import LINELENGTH, encode, is_printable, wrap_text

EOL = "\r\n"
EOL_FOLD = "\r\n "

ALLOWABLE_DATE_WINDOW = timedelta(days=365)

ADDRESS_HEADERS = ("From", "To", "Reply-To", "Cc", "Bcc", "Sender")

_TOKEN = r"[A-Za-z0-9!#$%&'*+.^_`|~-]+"
_MIME_TYPE = re.compile(rf"^{_TOKEN}/{_TOKEN}$")
_PARAMETER_KEY = re.compile(rf"^{_TOKEN}\*?$")

AddressInput = Union[str, Address, dict, list, tuple]


class HeaderFormat(str, Enum):
    """Representation returned by Headers.get."""

    RAW = "RAW"
    ENCODED = "ENCODED"


@dataclass
class ContentType:
    """A parsed Content-Type value."""

    type: str
    parameters: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, value: str) -> "ContentType":
        """
        Parse ``type; key=value; ...`` into its parts.

        Whitespace, folding and quotes around parameter values are
        removed.

        Args:
            value: The Content-Type value.

        Returns:
            ContentType instance.

        Raises:
            ValidationError: If the type or a parameter is malformed.
        """
        parts = value.split(";")
        mime_type = parts[0].strip()
        if not _MIME_TYPE.match(mime_type):
            raise ValidationError("Content-Type", value,
                                  f"Invalid MIME type '{mime_type}'")

        parameters: dict[str, str] = {}
        for part in parts[1:]:
            part = part.strip()
            if not part:
                continue
            if "=" not in part:
                raise ValidationError("Content-Type", value,
                                      f"Invalid parameter '{part}'")
            key, param = part.split("=", 1)
            key = key.strip()
            param = param.strip(" \t\r\n\0\x0b'\"")
            if not _PARAMETER_KEY.match(key):
                raise ValidationError("Content-Type", value,
                                      f"Invalid parameter name '{key}'")
            if "\r" in param or "\n" in param:
                raise ValidationError("Content-Type", value,
                                      "Parameter values cannot contain newlines")
            parameters[key] = param
        return cls(mime_type, parameters)


def normalize_header(name: str) -> str:
    """Normalize a header name, e.g. ``content-type`` to ``Content-Type``."""
    return "-".join(part.capitalize() for part in name.strip().split("-"))


def wrap(value: str, header: Optional[str] = None, eol: str = EOL) -> str:
    """
    Make a header value wire safe.

    Printable values are word-wrapped, anything else is Q encoded.

    Args:
        value: The header value.
        header: The header the value is rendered under; its length counts
            towards the first line.
        eol: Line separator used for folding.

    Returns:
        The wrapped or encoded value.
    """
    offset = len(header) + 2 if header else 0
    if is_printable(value):
        return wrap_text(value, offset, eol, LINELENGTH)
    return encode(value, "Q", header=header or "", eol=eol).value


def can_be_encoded(value: str) -> bool:
    """Check that a value can be turned into encoded words."""
    try:
        encode(value, "Q", header="", eol=EOL)
    except EncodingError:
        return False
    return True


class Headers:
    """
    An ordered collection of message headers.

    Example:
        headers = Headers()
        headers.set("Subject", "Hello")
        headers.add_address("To", "Jane Doe <jane@example.com>")
        raw = headers.to_string()
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}

    def has(self, name: str) -> bool:
        """Check whether a header is present and non-empty."""
        return bool(self._fields.get(normalize_header(name)))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        for name in list(self._fields):
            yield name, self.get(name)

    def names(self) -> list[str]:
        """Return header names in insertion order."""
        return list(self._fields)

    def remove(self, name: str) -> "Headers":
        """Remove a header if present."""
        self._fields.pop(normalize_header(name), None)
        return self

    def set(self, name: str, value: Any) -> "Headers":
        """
        Set a header, replacing any previous value.

        Address headers accept an Address, an address string, a mapping of
        email to display name, or a list of those. Content-Type accepts a
        string or ContentType, Date a datetime, date, date string or a
        timestamp within a year of now. Empty values remove the header.

        Args:
            name: Header name in any capitalization.
            value: The new value.

        Returns:
            The Headers instance, for chaining.

        Raises:
            ValidationError: If the value is invalid for the header.
        """
        name = normalize_header(name)

        if value is None or (not isinstance(value, (int, float)) and not value):
            self._fields.pop(name, None)
            return self

        if name in ADDRESS_HEADERS:
            return self.set_address(name, value)
        if name == "Content-Type":
            return self.set_content_type(value)
        if name == "Date":
            return self.set_date(value)
        return self._set_scalar(name, value)

    def _set_scalar(self, name: str, value: Any) -> "Headers":
        if not isinstance(value, str):
            raise ValidationError(name, value, "Header value must be a string")
        if "\r" in value or "\n" in value:
            raise ValidationError(name, value,
                                  "Header values cannot contain newlines")
        self._fields[name] = value
        return self

    @staticmethod
    def _addresses(value: AddressInput,
                   display_name: Optional[str] = None) -> list[Address]:
        if isinstance(value, (str, Address)):
            return [Address.create(value, display_name)]
        if isinstance(value, dict):
            return [Address.create(email, name) for email, name in value.items()]
        if isinstance(value, (list, tuple)):
            addresses = []
            for item in value:
                addresses.extend(Headers._addresses(item))
            return addresses
        raise ValidationError("address", value,
                              "Address must be a string, Address, dict or list")

    def set_address(self, header: str, value: AddressInput,
                    display_name: Optional[str] = None) -> "Headers":
        """Replace the address list of an address header."""
        header = self._address_header(header)
        addresses = self._addresses(value, display_name)
        if header == "Sender" and len(addresses) > 1:
            raise MailError("Only one Sender can be set in an e-mail message")
        self._fields[header] = {address.key: address for address in addresses}
        return self

    def add_address(self, header: str, value: AddressInput,
                    display_name: Optional[str] = None) -> "Headers":
        """
        Append addresses to an address header.

        An address already present (compared case-insensitively) is
        replaced in place.

        Raises:
            ValidationError: If the header is not an address header.
            MailError: If a Sender is already set.
        """
        header = self._address_header(header)
        if header == "Sender" and self._fields.get(header):
            raise MailError("Only one Sender can be set in an e-mail message")

        entries = self._fields.setdefault(header, {})
        for address in self._addresses(value, display_name):
            entries[address.key] = address
        return self

    @staticmethod
    def _address_header(header: str) -> str:
        header = normalize_header(header)
        if header not in ADDRESS_HEADERS:
            raise ValidationError(header, None,
                                  "Header name is not an address header")
        return header

    def set_content_type(self, value: Union[str, ContentType]) -> "Headers":
        """Set Content-Type from a string or a ContentType."""
        if not isinstance(value, ContentType):
            if not isinstance(value, str):
                raise ValidationError("Content-Type", value,
                                      "Content-Type must be a string")
            value = ContentType.parse(value)
        self._fields["Content-Type"] = value
        return self

    def set_date(self, value: Union[datetime, date, str, int, float]
                 ) -> "Headers":
        """
        Set the Date header.

        Raises:
            ValidationError: If the value is not a date or a timestamp
                within a year of now.
        """
        if isinstance(value, datetime):
            moment = value
        elif isinstance(value, date):
            moment = datetime.combine(value, dt_time())
        elif isinstance(value, str):
            moment = self._parse_date(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            window = ALLOWABLE_DATE_WINDOW.total_seconds()
            now = time.time()
            if not now - window <= value <= now + window:
                raise ValidationError(
                    "Date", value, "Timestamp is not within a year of now")
            moment = datetime.fromtimestamp(value, timezone.utc)
        else:
            raise ValidationError(
                "Date", value,
                "Date must be a datetime, date string or valid Unix timestamp")

        if moment.tzinfo is None:
            moment = moment.astimezone()
        self._fields["Date"] = moment
        return self

    @staticmethod
    def _parse_date(value: str) -> datetime:
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            pass
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise ValidationError("Date", value, "Unparseable date string") from e

    def get(self, name: str, fmt: HeaderFormat = HeaderFormat.RAW) -> Any:
        """
        Get a header value.

        Args:
            name: Header name in any capitalization.
            fmt: RAW for the stored value, ENCODED for the wire-ready
                ``Name: value`` line.

        Returns:
            The value, or None if the header is not set.
        """
        name = normalize_header(name)
        fmt = HeaderFormat(fmt)
        value = self._fields.get(name)
        if value is None:
            return None

        if name in ADDRESS_HEADERS:
            return self.get_address(name, fmt)
        if name == "Content-Type":
            return self.get_content_type(fmt)
        if fmt is HeaderFormat.RAW:
            return value
        if name == "Date":
            return f"Date: {format_datetime(value)}"
        return f"{name}: {wrap(value, name)}"

    def get_address(self, name: str, fmt: HeaderFormat = HeaderFormat.RAW
                    ) -> Optional[Union[dict[str, Address], str]]:
        """Get an address header as an ordered mapping or encoded line."""
        name = self._address_header(name)
        value = self._fields.get(name)
        if not value:
            return None
        if HeaderFormat(fmt) is HeaderFormat.RAW:
            return dict(value)

        rendered = [address.to_string() for address in value.values()]
        return f"{name}: " + ("," + EOL_FOLD).join(rendered)

    def get_content_type(self, fmt: HeaderFormat = HeaderFormat.RAW
                         ) -> Optional[Union[ContentType, str]]:
        """Get Content-Type as a ContentType or encoded line."""
        value = self._fields.get("Content-Type")
        if value is None:
            return None
        if HeaderFormat(fmt) is HeaderFormat.RAW:
            return value

        values = [value.type]
        for key, param in value.parameters.items():
            values.append(f'{key}="{wrap(param)}"')
        return "Content-Type: " + (";" + EOL_FOLD).join(values)

    def lines(self) -> list[str]:
        """Return the encoded header lines that go on the wire."""
        return [
            self.get(name, HeaderFormat.ENCODED)
            for name in self._fields
            if name != "Bcc"
        ]

    def to_string(self) -> str:
        """
        Render the header block.

        Each line is terminated by CRLF and an empty line closes the block.
        """
        return "".join(line + EOL for line in self.lines()) + EOL

    def __str__(self) -> str:
        return self.to_string()
