"""
Custom exceptions for mailcraft.

Every error raised by the library derives from MailcraftError so callers
can catch composition, encoding and protocol failures in one place while
still being able to tell them apart.
"""

from typing import Any, Optional


class MailcraftError(Exception):
    """Base exception for all mailcraft errors."""

    def __init__(self, message: str,
                 details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# Validation Exceptions
class ValidationError(MailcraftError):
    """Raised when a value handed to the composer is malformed."""

    def __init__(
        self,
        field: str,
        value: Any,
        reason: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            field: The field (usually a header name) that failed validation.
            value: The invalid value.
            reason: The reason for validation failure.
            details: Optional dictionary with additional error details.
        """
        super().__init__(f"Validation failed for '{field}': {reason}", details)
        self.field = field
        self.value = value
        self.reason = reason


class EncodingError(MailcraftError):
    """Raised when text cannot be represented in the declared charset."""

    def __init__(
        self,
        message: str,
        charset: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.charset = charset


# Composition Exceptions
class MailError(MailcraftError):
    """Raised when a message cannot be composed or is incomplete."""


# Protocol Exceptions
class ProtocolError(MailcraftError):
    """Raised when the SMTP conversation fails."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        response: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize protocol error.

        Args:
            message: Human-readable error message.
            code: The status code the server replied with, if any.
            response: The full server response text, if any.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message, details)
        self.code = code
        self.response = response


class StateError(ProtocolError):
    """Raised when an SMTP command is issued out of sequence."""


class SMTPConnectionError(ProtocolError):
    """Raised when the SMTP connection cannot be established."""


class SMTPAuthError(ProtocolError):
    """Raised when SMTP authentication fails."""


class RecipientRejectedError(ProtocolError):
    """Raised when the server refuses one of the envelope recipients."""

    def __init__(
        self,
        recipient: str,
        accepted: Optional[list[str]] = None,
        code: Optional[int] = None,
        response: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize recipient rejected error.

        Args:
            recipient: The recipient the server refused.
            accepted: Recipients accepted before the refusal.
            code: The status code of the refusal.
            response: The server response text.
            details: Optional dictionary with additional error details.
        """
        message = f"Recipient '{recipient}' was rejected"
        if response:
            message += f": {response}"
        super().__init__(message, code, response, details)
        self.recipient = recipient
        self.accepted = list(accepted or [])


# Configuration Exceptions
class ConfigurationError(MailcraftError):
    """Base exception for configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration value is missing."""

    def __init__(
        self, config_key: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        super().__init__(
            f"Missing required configuration: '{config_key}'", details)
        self.config_key = config_key


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize invalid config error.

        Args:
            config_key: The configuration key with invalid value.
            value: The invalid value.
            reason: Optional reason why the value is invalid.
            details: Optional dictionary with additional error details.
        """
        message = f"Invalid configuration value for '{config_key}': {value}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, details)
        self.config_key = config_key
        self.value = value
        self.reason = reason
