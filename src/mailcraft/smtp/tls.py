"""
TLS context creation for SMTP client connections.

Both implicit TLS (SMTPS, port 465) and STARTTLS upgrades use the
contexts built here.
"""

import logging
import ssl
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..common.config import SMTPSettings

logger = logging.getLogger(__name__)


class TLSVersion(Enum):
    """Supported TLS versions."""

    TLS_1_2 = "TLSv1.2"
    TLS_1_3 = "TLSv1.3"


# Modern cipher suites for TLS 1.2, preferring forward secrecy
TLS_1_2_CIPHERS = [
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "DHE-RSA-AES256-GCM-SHA384",
    "DHE-RSA-AES128-GCM-SHA256",
]


@dataclass
class TLSConfig:
    """TLS settings for outgoing SMTP connections."""

    ca_file: Optional[str] = None
    ca_path: Optional[str] = None
    min_version: TLSVersion = TLSVersion.TLS_1_2
    ciphers: list[str] = field(default_factory=lambda: TLS_1_2_CIPHERS.copy())
    verify: bool = True

    def get_cipher_string(self) -> str:
        """Get the cipher string for TLS 1.2."""
        return ":".join(self.ciphers)

    @classmethod
    def from_settings(cls, settings: SMTPSettings) -> "TLSConfig":
        """Build the TLS configuration from SMTP settings."""
        return cls(ca_file=settings.ca_file, verify=settings.verify_ssl)


class TLSContextFactory:
    """Factory for SMTP client SSL contexts."""

    def __init__(self, config: Optional[TLSConfig] = None) -> None:
        self.config = config or TLSConfig()

    def create_client_context(
        self,
        verify: Optional[bool] = None,
        check_hostname: Optional[bool] = None,
    ) -> ssl.SSLContext:
        """
        Create an SSL context for client use.

        Args:
            verify: Whether to verify the server certificate; defaults to
                the configured value.
            check_hostname: Whether to check the hostname; defaults to
                ``verify``.

        Returns:
            Configured SSLContext for client use.
        """
        if verify is None:
            verify = self.config.verify
        if check_hostname is None:
            check_hostname = verify

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

        if self.config.min_version == TLSVersion.TLS_1_2:
            context.minimum_version = ssl.TLSVersion.TLSv1_2
        elif self.config.min_version == TLSVersion.TLS_1_3:
            context.minimum_version = ssl.TLSVersion.TLSv1_3

        if verify:
            context.verify_mode = ssl.CERT_REQUIRED
            context.check_hostname = check_hostname
            context.load_default_certs()
        else:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        if self.config.ca_file or self.config.ca_path:
            try:
                context.load_verify_locations(
                    cafile=self.config.ca_file,
                    capath=self.config.ca_path,
                )
            except (OSError, ssl.SSLError) as e:
                logger.warning("Failed to load CA certificates: %s", str(e))

        try:
            context.set_ciphers(self.config.get_cipher_string())
        except ssl.SSLError as e:
            logger.warning("Failed to set custom ciphers: %s", str(e))

        context.options |= ssl.OP_NO_COMPRESSION

        logger.debug("Created client SSL context (verify=%s)", verify)
        return context


def create_smtp_client_context(settings: SMTPSettings) -> ssl.SSLContext:
    """
    Factory function to create the SSL context for an SMTP session.

    Args:
        settings: SMTP settings carrying the verification options.

    Returns:
        Configured SSLContext.
    """
    return TLSContextFactory(TLSConfig.from_settings(settings)).create_client_context()
