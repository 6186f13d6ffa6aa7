"""
Email address value object.

Addresses are validated when they are created so that malformed input
never reaches a header or the SMTP envelope. Internationalized domains
are converted to their ASCII (punycode) form for the wire.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import idna
from email_validator import EmailNotValidError, validate_email

from .common.exceptions import ValidationError
from .mime.encoder import encode, is_printable

logger = logging.getLogger(__name__)

# RFC 5322 hard limit; display names are never folded
MAX_LINE_LENGTH = 998

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def _punycode_domain(email: str) -> str:
    local, sep, domain = email.rpartition("@")
    if not sep or domain.isascii():
        return email
    try:
        domain = idna.encode(domain, uts46=True).decode("ascii")
    except idna.IDNAError as e:
        raise ValidationError("email", email, f"Invalid domain: {e}") from e
    return f"{local}@{domain}"


@dataclass(frozen=True)
class Address:
    """
    An email address with an optional display name.

    Attributes:
        email: The address as supplied.
        display_name: Display name with control characters removed.
    """

    email: str
    display_name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        email = self.email.strip() if isinstance(self.email, str) else ""
        if not email:
            raise ValidationError("email", self.email, "Address is empty")

        try:
            validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            if email.isascii():
                raise ValidationError("email", email, str(e)) from e
            logger.debug("Retrying validation of %s with punycode domain",
                         email)
            try:
                validate_email(_punycode_domain(email),
                               check_deliverability=False)
            except EmailNotValidError as retry_error:
                raise ValidationError(
                    "email", email, str(retry_error)) from retry_error

        name = self.display_name
        if name is not None:
            name = _CONTROL_CHARS.sub("", str(name)).strip() or None

        object.__setattr__(self, "email", email)
        object.__setattr__(self, "display_name", name)

    @property
    def ascii_email(self) -> str:
        """The address with its domain converted to punycode."""
        return _punycode_domain(self.email)

    @property
    def key(self) -> str:
        """Lookup key used by address lists."""
        return self.email.lower()

    def to_string(self) -> str:
        """
        Render the address for a header.

        Returns:
            ``Name <email>`` with the name quoted when it contains a comma
            and RFC 2047 encoded when it is not printable ASCII, or the
            bare address without a display name.
        """
        email = self.ascii_email
        if not self.display_name:
            return email

        name = self.display_name
        if "," in name:
            name = '"' + name.replace('"', '\\"') + '"'
        if not is_printable(name):
            name = encode(name, "Q", header="",
                          line_length=MAX_LINE_LENGTH).value
        return f"{name} <{email}>"

    def __str__(self) -> str:
        return self.to_string()

    @classmethod
    def parse(cls, value: str) -> "Address":
        """
        Parse an address string.

        Handles formats like:
        - "user@example.com"
        - "Display Name <user@example.com>"
        - '"Display Name" <user@example.com>'

        Args:
            value: Address string.

        Returns:
            Address instance.

        Raises:
            ValidationError: If the address part is invalid.
        """
        value = value.strip()

        if "<" in value and value.endswith(">"):
            name, _, email = value.rpartition("<")
            name = name.strip()
            if len(name) >= 2 and name[0] == name[-1] == '"':
                name = name[1:-1].replace('\\"', '"')
            return cls(email=email[:-1].strip(), display_name=name or None)

        return cls(email=value)

    @classmethod
    def create(cls, value: "str | Address",
               display_name: Optional[str] = None) -> "Address":
        """
        Coerce a string or Address into an Address.

        Args:
            value: An Address, a bare email or a ``Name <email>`` string.
            display_name: Display name overriding any parsed one.

        Returns:
            Address instance.
        """
        if isinstance(value, Address):
            if display_name is None:
                return value
            return cls(value.email, display_name)
        if not isinstance(value, str):
            raise ValidationError("email", value, "Address must be a string")
        address = cls.parse(value)
        if display_name is not None:
            return cls(address.email, display_name)
        return address
