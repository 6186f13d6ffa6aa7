"""SMTP client session and message delivery."""

from .protocol import SessionState, SMTPProtocol
from .sender import DeliveryResult, SMTPSender, create_smtp_sender
from .tls import TLSConfig, TLSContextFactory, TLSVersion, create_smtp_client_context

__all__ = [
    "DeliveryResult",
    "SMTPProtocol",
    "SMTPSender",
    "SessionState",
    "TLSConfig",
    "TLSContextFactory",
    "TLSVersion",
    "create_smtp_client_context",
    "create_smtp_sender",
]
