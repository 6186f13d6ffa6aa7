"""Shared exceptions and configuration for mailcraft."""

from .config import LoggingSettings, Settings, SMTPSettings, get_settings, reload_settings
from .exceptions import (
    ConfigurationError,
    EncodingError,
    InvalidConfigError,
    MailcraftError,
    MailError,
    MissingConfigError,
    ProtocolError,
    RecipientRejectedError,
    SMTPAuthError,
    SMTPConnectionError,
    StateError,
    ValidationError,
)

__all__ = [
    "ConfigurationError",
    "EncodingError",
    "InvalidConfigError",
    "LoggingSettings",
    "MailcraftError",
    "MailError",
    "MissingConfigError",
    "ProtocolError",
    "RecipientRejectedError",
    "SMTPAuthError",
    "SMTPConnectionError",
    "SMTPSettings",
    "Settings",
    "StateError",
    "ValidationError",
    "get_settings",
    "reload_settings",
]
