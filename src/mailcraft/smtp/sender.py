"""
SMTP Sender module for mailcraft.

SMTPSender delivers composed messages over an SMTPProtocol session. The
connection is opened just in time on the first send and reused for later
messages, each of which starts with RSET so every transaction begins
clean.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..common.config import SMTPSettings
from ..common.exceptions import MailError, ProtocolError, RecipientRejectedError
from ..message import Message
from .protocol import SMTPProtocol

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Result of a successful delivery."""

    sender: str
    recipients: list[str]
    smtp_message: Optional[str] = None
    host: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sender": self.sender,
            "recipients": list(self.recipients),
            "smtp_message": self.smtp_message,
            "host": self.host,
            "timestamp": self.timestamp.isoformat(),
        }


class SMTPSender:
    """
    Sends messages through an SMTP server.

    Example:
        with create_smtp_sender(host="mail.example.com", ssl="tls",
                                username="me", password="secret") as sender:
            result = sender.send(message)
    """

    def __init__(
        self,
        settings: Optional[SMTPSettings] = None,
        connection: Optional[SMTPProtocol] = None,
        auto_disconnect: bool = True,
    ) -> None:
        """
        Initialize the sender.

        Args:
            settings: SMTP settings used to create the connection.
            connection: An existing protocol session to use instead.
            auto_disconnect: Whether close() also drops a connection on which
                no session was started. QUIT always closes the connection.
        """
        self._connection = connection or SMTPProtocol(settings or SMTPSettings())
        self.auto_disconnect = auto_disconnect

    @property
    def connection(self) -> SMTPProtocol:
        """The protocol session used for delivery."""
        return self._connection

    @connection.setter
    def connection(self, connection: SMTPProtocol) -> None:
        self._connection = connection

    def __enter__(self) -> "SMTPSender":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """End the session; a failing QUIT is logged and ignored."""
        try:
            self._connection.quit()
        except ProtocolError as e:
            logger.warning("QUIT failed on %s: %s", self._connection.host, e)

        if self.auto_disconnect:
            self.disconnect()

    def disconnect(self) -> None:
        """Drop the connection."""
        self._connection.close()

    @staticmethod
    def _envelope_from(message: Message) -> str:
        sender = message.get_sender()
        if sender is not None:
            return sender.ascii_email

        addresses = message.get_from()
        if not addresses:
            raise MailError("No sender specified")
        return addresses[0].ascii_email

    @staticmethod
    def _recipients(message: Message) -> list[str]:
        recipients: dict[str, str] = {}
        for address in message.get_to() + message.get_cc() + message.get_bcc():
            recipients.setdefault(address.key, address.ascii_email)
        return list(recipients.values())

    def _connect(self) -> None:
        # The greeting of a connection without a session was already consumed
        if self._connection.is_connected:
            self._connection.close()
        self._connection.connect()
        self._connection.helo()

    def send(self, message: Message) -> DeliveryResult:
        """
        Send a message.

        Args:
            message: The message to deliver.

        Returns:
            DeliveryResult describing the accepted transaction.

        Raises:
            MailError: If the message has no sender or no recipients.
            RecipientRejectedError: If the server refuses a recipient.
            ProtocolError: On any other protocol failure.
        """
        sender = self._envelope_from(message)
        recipients = self._recipients(message)
        if not recipients:
            raise MailError("Message must have at least one recipient")

        data = message.to_string()

        connection = self._connection
        if not connection.has_session():
            self._connect()
        else:
            connection.rset()

        connection.mail(sender)

        accepted: list[str] = []
        for recipient in recipients:
            try:
                connection.rcpt(recipient)
            except ProtocolError as e:
                raise RecipientRejectedError(
                    recipient,
                    accepted=accepted,
                    code=e.code,
                    response=e.response,
                ) from e
            accepted.append(recipient)

        reply = connection.data(data)
        logger.info(
            "Message from %s accepted for %d recipient(s) by %s",
            sender,
            len(recipients),
            connection.host,
        )

        return DeliveryResult(
            sender=sender,
            recipients=recipients,
            smtp_message=reply,
            host=connection.host,
        )


def create_smtp_sender(auto_disconnect: bool = True,
                       **options: Any) -> SMTPSender:
    """
    Factory function to create a configured SMTPSender.

    Args:
        auto_disconnect: Passed on to SMTPSender.
        **options: SMTP settings (host, port, ssl, auth_type, username,
            password, helo, ...).

    Returns:
        Configured SMTPSender instance.

    Raises:
        InvalidConfigError: If the options are invalid.
    """
    settings = SMTPSettings.from_options(options)
    return SMTPSender(settings=settings, auto_disconnect=auto_disconnect)
