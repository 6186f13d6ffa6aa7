"""mailcraft - E-mail composition and SMTP delivery."""

from mailcraft.__version__ import __description__, __title__, __version__, get_version
from mailcraft.address import Address
from mailcraft.common.exceptions import (
    EncodingError,
    MailcraftError,
    MailError,
    ProtocolError,
    RecipientRejectedError,
    StateError,
    ValidationError,
)
from mailcraft.headers import HeaderFormat, Headers
from mailcraft.html_message import HTMLMessage
from mailcraft.message import Message
from mailcraft.mime import Attachment, MultipartMessage, Part
from mailcraft.smtp import SMTPProtocol, SMTPSender, create_smtp_sender

__all__ = [
    "__version__",
    "__title__",
    "__description__",
    "get_version",
    "Address",
    "Attachment",
    "EncodingError",
    "HTMLMessage",
    "HeaderFormat",
    "Headers",
    "MailError",
    "MailcraftError",
    "Message",
    "MultipartMessage",
    "Part",
    "ProtocolError",
    "RecipientRejectedError",
    "SMTPProtocol",
    "SMTPSender",
    "StateError",
    "ValidationError",
    "create_smtp_sender",
]
